"""Item management for organization admins, plus the public catalogue queries."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from lendbox.core.audit import AuditLog, snapshot
from lendbox.core.exceptions import NotFound, ValidationError
from lendbox.core.permissions import AdminContext, ensure_same_organization
from lendbox.models.item import ITEM_CONDITIONS, ITEM_STATUS_ACTIVE, ITEM_STATUS_INACTIVE, Item
from lendbox.models.loan import Loan
from lendbox.services import inventory_service

logger = logging.getLogger(__name__)

RECENT_LOANS_LIMIT = 10

# Plain column updates; stock goes through inventory_service.adjust_total
_EDITABLE_FIELDS = ("name", "category", "description", "condition", "image", "is_loanable", "not_loanable_reason", "status")
_NOT_NULL_FIELDS = ("name", "condition", "is_loanable", "status")


def _validate(name: Optional[str], condition: Optional[str], status: Optional[str]) -> None:
    if name is not None and not name.strip():
        raise ValidationError("Item name cannot be empty")
    if condition is not None and condition not in ITEM_CONDITIONS:
        raise ValidationError(f"Condition must be one of: {', '.join(ITEM_CONDITIONS)}")
    if status is not None and status not in (ITEM_STATUS_ACTIVE, ITEM_STATUS_INACTIVE):
        raise ValidationError("Status must be active or inactive")


def _require_reason(is_loanable: bool, reason: Optional[str]) -> None:
    if not is_loanable and not (reason or "").strip():
        raise ValidationError("A reason is required for items that cannot be borrowed")


def item_query(
    db: Session,
    organization_id: Optional[int] = None,
    search: Optional[str] = None,
    category: Optional[str] = None,
    is_loanable: Optional[bool] = None,
    status: Optional[str] = None,
) -> Query:
    """Non-deleted items, newest first. ``search`` matches name or code."""
    q = db.query(Item).filter(Item.deleted_at.is_(None))
    if organization_id is not None:
        q = q.filter(Item.organization_id == organization_id)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Item.name.ilike(like), Item.code.ilike(like)))
    if category:
        q = q.filter(Item.category == category)
    if is_loanable is not None:
        q = q.filter(Item.is_loanable.is_(is_loanable))
    if status:
        q = q.filter(Item.status == status)
    return q.order_by(Item.created_at.desc(), Item.id.desc())


def get_item(db: Session, item_id: int) -> Item:
    item = db.query(Item).filter(Item.id == item_id, Item.deleted_at.is_(None)).first()
    if not item:
        raise NotFound("Item not found")
    return item


def get_item_for_admin(db: Session, admin: AdminContext, item_id: int, action: str = "read") -> Item:
    item = get_item(db, item_id)
    ensure_same_organization(admin, item.organization_id, action, "Item", item.id)
    return item


def recent_loans(db: Session, item: Item, limit: int = RECENT_LOANS_LIMIT) -> List[Loan]:
    return (
        db.query(Loan)
        .filter(Loan.item_id == item.id, Loan.deleted_at.is_(None))
        .order_by(Loan.created_at.desc(), Loan.id.desc())
        .limit(limit)
        .all()
    )


def categories(db: Session, organization_id: int, active_only: bool = False) -> List[str]:
    q = db.query(Item.category).filter(
        Item.organization_id == organization_id,
        Item.deleted_at.is_(None),
        Item.category.isnot(None),
        Item.category != "",
    )
    if active_only:
        q = q.filter(Item.status == ITEM_STATUS_ACTIVE)
    return [row[0] for row in q.distinct().order_by(Item.category).all()]


def create_item(
    db: Session,
    admin: AdminContext,
    *,
    name: str,
    stock: int,
    is_loanable: bool,
    condition: str = "good",
    category: Optional[str] = None,
    description: Optional[str] = None,
    not_loanable_reason: Optional[str] = None,
    image: Optional[str] = None,
    code: Optional[str] = None,
) -> Item:
    """New item in the admin's organization. Every unit starts available."""
    if admin.organization_id is None:
        raise ValidationError("Admin is not assigned to an organization")
    _validate(name, condition, None)
    if stock < 0:
        raise ValidationError("Stock cannot be negative")
    _require_reason(is_loanable, not_loanable_reason)

    if code:
        code = code.strip().upper()
        if db.query(Item.id).filter(Item.code == code).first():
            raise ValidationError(f"Item code {code} is already in use")
    else:
        code = inventory_service.generate_item_code(db)

    item = Item(
        organization_id=admin.organization_id,
        name=name.strip(),
        code=code,
        category=category,
        description=description,
        stock=stock,
        available_stock=stock,
        condition=condition,
        image=image,
        is_loanable=is_loanable,
        not_loanable_reason=None if is_loanable else not_loanable_reason,
        status=ITEM_STATUS_ACTIVE,
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info(f"Item {item.code} created in organization {item.organization_id}")

    AuditLog.record(db, "create", f"Created item {item.name}", "Item", item.id, after=snapshot(item), user_id=admin.user_id)
    return item


def update_item(db: Session, admin: AdminContext, item_id: int, changes: Dict[str, Any]) -> Item:
    """Apply a partial update. A new ``stock`` keeps outstanding loans reserved."""
    item = get_item_for_admin(db, admin, item_id, action="update")
    _validate(changes.get("name"), changes.get("condition"), changes.get("status"))

    is_loanable = changes.get("is_loanable")
    if is_loanable is None:
        is_loanable = item.is_loanable
    reason = changes.get("not_loanable_reason", item.not_loanable_reason)
    _require_reason(is_loanable, reason)

    before = snapshot(item)
    try:
        for field in _EDITABLE_FIELDS:
            if field in changes:
                value = changes[field]
                if value is None and field in _NOT_NULL_FIELDS:
                    continue
                setattr(item, field, value.strip() if field == "name" else value)
        if is_loanable:
            item.not_loanable_reason = None
        db.flush()
        if changes.get("stock") is not None:
            inventory_service.adjust_total(db, item, changes["stock"])
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(item)
    logger.info(f"Item {item.code} updated: stock {item.stock}, available {item.available_stock}")

    AuditLog.record(
        db, "update", f"Updated item {item.name}", "Item", item.id,
        before=before, after=snapshot(item), user_id=admin.user_id,
    )
    return item


def delete_item(db: Session, admin: AdminContext, item_id: int) -> None:
    """Soft delete. Loans keep pointing at the item for history."""
    item = get_item_for_admin(db, admin, item_id, action="delete")
    before = snapshot(item)
    item.deleted_at = datetime.now(timezone.utc)
    db.commit()
    logger.info(f"Item {item.code} deleted")
    AuditLog.record(db, "delete", f"Deleted item {item.name}", "Item", item.id, before=before, user_id=admin.user_id)


# ------------------------------------------------------------------------------
# Public catalogue
# ------------------------------------------------------------------------------

def public_item_query(
    db: Session,
    organization_id: int,
    search: Optional[str] = None,
    category: Optional[str] = None,
    loanable_only: bool = False,
) -> Query:
    """Active items of one organization. Non-loanable items are listed too unless ``loanable_only``."""
    q = db.query(Item).filter(
        Item.organization_id == organization_id,
        Item.status == ITEM_STATUS_ACTIVE,
        Item.deleted_at.is_(None),
    )
    if loanable_only:
        q = q.filter(Item.is_loanable.is_(True))
    if search:
        q = q.filter(Item.name.ilike(f"%{search}%"))
    if category:
        q = q.filter(Item.category == category)
    return q.order_by(Item.created_at.desc(), Item.id.desc())


def get_public_item(db: Session, organization_id: int, item_id: int) -> Item:
    item = public_item_query(db, organization_id).filter(Item.id == item_id).first()
    if not item:
        raise NotFound("Item not found")
    return item
