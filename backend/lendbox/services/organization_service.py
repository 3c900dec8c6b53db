"""
Organizations (tenants): master-admin CRUD and the public directory.

Slugs are derived from the name and stay unique across all rows, soft-deleted
ones included, since the column carries a unique index.
"""
import logging
import re
import unicodedata
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Query, Session

from lendbox.core.audit import AuditLog, snapshot
from lendbox.core.exceptions import NotFound, ValidationError
from lendbox.core.permissions import AdminContext
from lendbox.models.item import ITEM_STATUS_ACTIVE, Item
from lendbox.models.loan import Loan
from lendbox.models.organization import ORG_STATUS_ACTIVE, ORG_STATUS_INACTIVE, Organization
from lendbox.models.user import ROLE_ADMIN_ORG, User

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = ("description", "address", "phone", "email", "logo", "status")


def slugify(name: str) -> str:
    """'SMK Negeri 1 Bandung!' -> 'smk-negeri-1-bandung'"""
    ascii_name = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_name.lower()).strip("-")
    return slug or "organization"


def unique_slug(db: Session, name: str, exclude_id: Optional[int] = None) -> str:
    base = slugify(name)
    slug = base
    suffix = 2
    while True:
        q = db.query(Organization.id).filter(Organization.slug == slug)
        if exclude_id is not None:
            q = q.filter(Organization.id != exclude_id)
        if not q.first():
            return slug
        slug = f"{base}-{suffix}"
        suffix += 1


def _count(model, *criteria):
    return (
        select(func.count(model.id))
        .where(model.organization_id == Organization.id, *criteria)
        .correlate(Organization)
        .scalar_subquery()
    )


def organization_query(db: Session, search: Optional[str] = None, status: Optional[str] = None) -> Query:
    """Rows of (Organization, items_count, loans_count, users_count), newest first."""
    q = db.query(
        Organization,
        _count(Item, Item.deleted_at.is_(None)).label("items_count"),
        _count(Loan, Loan.deleted_at.is_(None)).label("loans_count"),
        _count(User, User.role == ROLE_ADMIN_ORG, User.deleted_at.is_(None)).label("users_count"),
    ).filter(Organization.deleted_at.is_(None))
    if search:
        q = q.filter(Organization.name.ilike(f"%{search}%"))
    if status:
        q = q.filter(Organization.status == status)
    return q.order_by(Organization.created_at.desc(), Organization.id.desc())


def active_organizations(db: Session) -> List[Any]:
    """Public directory: rows of (Organization, loanable_items_count)."""
    return (
        db.query(
            Organization,
            _count(
                Item,
                Item.is_loanable.is_(True),
                Item.status == ITEM_STATUS_ACTIVE,
                Item.deleted_at.is_(None),
            ).label("items_count"),
        )
        .filter(Organization.status == ORG_STATUS_ACTIVE, Organization.deleted_at.is_(None))
        .order_by(Organization.name)
        .all()
    )


def get_organization(db: Session, organization_id: int) -> Organization:
    organization = (
        db.query(Organization)
        .filter(Organization.id == organization_id, Organization.deleted_at.is_(None))
        .first()
    )
    if not organization:
        raise NotFound("Organization not found")
    return organization


def get_active_by_slug(db: Session, slug: str) -> Organization:
    organization = (
        db.query(Organization)
        .filter(
            Organization.slug == slug,
            Organization.status == ORG_STATUS_ACTIVE,
            Organization.deleted_at.is_(None),
        )
        .first()
    )
    if not organization:
        raise NotFound("Organization not found")
    return organization


def organization_detail(db: Session, organization: Organization) -> Dict[str, Any]:
    """Admins, item count and the 10 latest loans, for the master admin's detail view."""
    admins = (
        db.query(User)
        .filter(User.organization_id == organization.id, User.deleted_at.is_(None))
        .order_by(User.name)
        .all()
    )
    items_count = (
        db.query(func.count(Item.id))
        .filter(Item.organization_id == organization.id, Item.deleted_at.is_(None))
        .scalar()
    )
    loans = (
        db.query(Loan)
        .filter(Loan.organization_id == organization.id, Loan.deleted_at.is_(None))
        .order_by(Loan.created_at.desc(), Loan.id.desc())
        .limit(10)
        .all()
    )
    return {"admins": admins, "items_count": items_count or 0, "recent_loans": loans}


def _validate_status(status: Optional[str]) -> None:
    if status is not None and status not in (ORG_STATUS_ACTIVE, ORG_STATUS_INACTIVE):
        raise ValidationError("Status must be active or inactive")


def create_organization(db: Session, admin: AdminContext, name: str, **fields: Any) -> Organization:
    if not (name or "").strip():
        raise ValidationError("Organization name cannot be empty")
    _validate_status(fields.get("status"))

    organization = Organization(name=name.strip(), slug=unique_slug(db, name))
    for field in _EDITABLE_FIELDS:
        if fields.get(field) is not None:
            setattr(organization, field, fields[field])
    db.add(organization)
    db.commit()
    db.refresh(organization)
    logger.info(f"Organization {organization.slug} created")

    AuditLog.record(
        db, "create", f"Created organization {organization.name}", "Organization", organization.id,
        after=snapshot(organization), user_id=admin.user_id,
    )
    return organization


def update_organization(db: Session, admin: AdminContext, organization_id: int, changes: Dict[str, Any]) -> Organization:
    """Partial update. Renaming re-derives the slug, so public links change."""
    organization = get_organization(db, organization_id)
    _validate_status(changes.get("status"))
    before = snapshot(organization)

    name = changes.get("name")
    if name is not None:
        if not name.strip():
            raise ValidationError("Organization name cannot be empty")
        organization.name = name.strip()
        organization.slug = unique_slug(db, name, exclude_id=organization.id)
    for field in _EDITABLE_FIELDS:
        if field in changes and not (field == "status" and changes[field] is None):
            setattr(organization, field, changes[field])

    db.commit()
    db.refresh(organization)
    logger.info(f"Organization {organization.id} updated")

    AuditLog.record(
        db, "update", f"Updated organization {organization.name}", "Organization", organization.id,
        before=before, after=snapshot(organization), user_id=admin.user_id,
    )
    return organization


def delete_organization(db: Session, admin: AdminContext, organization_id: int) -> None:
    organization = get_organization(db, organization_id)
    before = snapshot(organization)
    organization.deleted_at = datetime.now(timezone.utc)
    db.commit()
    logger.info(f"Organization {organization.slug} deleted")

    AuditLog.record(
        db, "delete", f"Deleted organization {organization.name}", "Organization", organization.id,
        before=before, user_id=admin.user_id,
    )
