"""
Organization admin accounts, managed by the master admin.

Only ``admin_org`` users are reachable from here; pointing any of these
operations at the master account fails with ValidationError.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session, joinedload

from lendbox.core.audit import AuditLog, snapshot
from lendbox.core.config import settings
from lendbox.core.exceptions import NotFound, ValidationError
from lendbox.core.permissions import AdminContext
from lendbox.core.security import get_password_hash
from lendbox.models.organization import Organization
from lendbox.models.user import ROLE_ADMIN_ORG, USER_STATUS_ACTIVE, USER_STATUS_SUSPENDED, User

logger = logging.getLogger(__name__)


def validate_password(password: str) -> None:
    if len(password or "") < settings.MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _email_taken(db: Session, email: str, exclude_id: Optional[int] = None) -> bool:
    q = db.query(User.id).filter(func.lower(User.email) == email)
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return q.first() is not None


def _require_organization(db: Session, organization_id: int) -> Organization:
    organization = (
        db.query(Organization)
        .filter(Organization.id == organization_id, Organization.deleted_at.is_(None))
        .first()
    )
    if not organization:
        raise ValidationError("Organization does not exist")
    return organization


def admin_query(
    db: Session,
    search: Optional[str] = None,
    organization_id: Optional[int] = None,
    status: Optional[str] = None,
) -> Query:
    q = (
        db.query(User)
        .options(joinedload(User.organization))
        .filter(User.role == ROLE_ADMIN_ORG, User.deleted_at.is_(None))
    )
    if search:
        like = f"%{search}%"
        q = q.filter(or_(User.name.ilike(like), User.email.ilike(like)))
    if organization_id is not None:
        q = q.filter(User.organization_id == organization_id)
    if status:
        q = q.filter(User.status == status)
    return q.order_by(User.created_at.desc(), User.id.desc())


def get_org_admin(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
    if not user:
        raise NotFound("Admin not found")
    if user.role != ROLE_ADMIN_ORG:
        raise ValidationError("User is not an organization admin")
    return user


def create_admin(
    db: Session,
    actor: AdminContext,
    *,
    name: str,
    email: str,
    password: str,
    organization_id: int,
    phone: Optional[str] = None,
) -> User:
    email = normalize_email(email)
    if not (name or "").strip():
        raise ValidationError("Name cannot be empty")
    if _email_taken(db, email):
        raise ValidationError("Email is already registered")
    validate_password(password)
    _require_organization(db, organization_id)

    user = User(
        name=name.strip(),
        email=email,
        hashed_password=get_password_hash(password),
        role=ROLE_ADMIN_ORG,
        organization_id=organization_id,
        phone=phone,
        status=USER_STATUS_ACTIVE,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Organization admin {user.id} created for organization {organization_id}")

    AuditLog.record(
        db, "create", f"Created organization admin {user.name}", "User", user.id,
        after=snapshot(user), user_id=actor.user_id,
    )
    return user


def update_admin(db: Session, actor: AdminContext, user_id: int, changes: Dict[str, Any]) -> User:
    user = get_org_admin(db, user_id)
    before = snapshot(user)

    if changes.get("name") is not None:
        if not changes["name"].strip():
            raise ValidationError("Name cannot be empty")
        user.name = changes["name"].strip()
    if changes.get("email") is not None:
        email = normalize_email(changes["email"])
        if _email_taken(db, email, exclude_id=user.id):
            raise ValidationError("Email is already registered")
        user.email = email
    if changes.get("organization_id") is not None:
        _require_organization(db, changes["organization_id"])
        user.organization_id = changes["organization_id"]
    if "phone" in changes:
        user.phone = changes["phone"]

    db.commit()
    db.refresh(user)
    AuditLog.record(
        db, "update", f"Updated organization admin {user.name}", "User", user.id,
        before=before, after=snapshot(user), user_id=actor.user_id,
    )
    return user


def reset_password(db: Session, actor: AdminContext, user_id: int, password: str) -> User:
    user = get_org_admin(db, user_id)
    validate_password(password)
    user.hashed_password = get_password_hash(password)
    db.commit()
    logger.info(f"Password reset for admin {user.id}")
    AuditLog.record(db, "password_reset", f"Reset password of admin {user.name}", "User", user.id, user_id=actor.user_id)
    return user


def toggle_status(db: Session, actor: AdminContext, user_id: int) -> User:
    """active <-> suspended. Suspended admins can no longer log in or use their token."""
    user = get_org_admin(db, user_id)
    old_status = user.status
    user.status = USER_STATUS_SUSPENDED if user.status == USER_STATUS_ACTIVE else USER_STATUS_ACTIVE
    db.commit()
    db.refresh(user)

    verb = "activated" if user.status == USER_STATUS_ACTIVE else "suspended"
    logger.info(f"Admin {user.id} {verb}")
    AuditLog.record(
        db, "status_change", f"Master admin {verb} account {user.name}", "User", user.id,
        before={"status": old_status}, after={"status": user.status}, user_id=actor.user_id,
    )
    return user


def delete_admin(db: Session, actor: AdminContext, user_id: int) -> None:
    user = get_org_admin(db, user_id)
    before = snapshot(user)
    user.deleted_at = datetime.now(timezone.utc)
    db.commit()
    logger.info(f"Admin {user.id} deleted")
    AuditLog.record(db, "delete", f"Deleted organization admin {user.name}", "User", user.id, before=before, user_id=actor.user_id)
