"""
Item inventory: the stock / available_stock pair.

Every mutation of available_stock is ONE conditional UPDATE statement, so the
check and the write cannot be separated by a concurrent request:

- reserve:      decrement only WHERE available_stock >= quantity (loan approval)
- release:      increment clamped at stock (normal/damaged return)
- adjust_total: apply the stock edit's delta to available_stock, clamped

None of these commit. The caller owns the transaction, so a reservation and
the loan transition that needs it commit or roll back together.
"""
import logging
import secrets
import string

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from lendbox.core.exceptions import InsufficientStock, ItemNotLoanable, NotFound, ValidationError
from lendbox.models.item import ITEM_STATUS_ACTIVE, Item

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_item_code(db: Session) -> str:
    """ITM-XXXXXXXX, retried until unused."""
    for _ in range(10):
        code = "ITM-" + "".join(secrets.choice(_CODE_ALPHABET) for _ in range(8))
        if not db.query(Item.id).filter(Item.code == code).first():
            return code
    raise RuntimeError("Could not generate a unique item code")


def check_available(item: Item, quantity: int) -> None:
    """Submission-time check. Holds nothing: two pending requests may both pass."""
    if item.status != ITEM_STATUS_ACTIVE or item.deleted_at is not None:
        raise NotFound("Item not found")
    if not item.is_loanable:
        raise ItemNotLoanable(reason=item.not_loanable_reason)
    if item.available_stock < quantity:
        raise InsufficientStock(available=item.available_stock, requested=quantity)


def reserve(db: Session, item_id: int, quantity: int) -> None:
    """Take ``quantity`` units out of available stock (loan approval).

    Raises ItemNotLoanable or InsufficientStock without changing anything.
    """
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    result = db.execute(
        update(Item)
        .where(
            Item.id == item_id,
            Item.is_loanable.is_(True),
            Item.status == ITEM_STATUS_ACTIVE,
            Item.deleted_at.is_(None),
            Item.available_stock >= quantity,
        )
        .values(available_stock=Item.available_stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        logger.info(f"Reserved {quantity} unit(s) of item {item_id}")
        return

    item = db.get(Item, item_id, populate_existing=True)
    if item is None:
        raise NotFound("Item not found")
    if not item.is_loanable:
        raise ItemNotLoanable(reason=item.not_loanable_reason)
    if item.deleted_at is not None or item.status != ITEM_STATUS_ACTIVE:
        # Withdrawn after the request was made: nothing of it can be lent.
        logger.info(f"Reservation refused for item {item_id}: item is no longer active")
        raise InsufficientStock(available=0, requested=quantity)
    logger.info(f"Reservation refused for item {item_id}: requested {quantity}, available {item.available_stock}")
    raise InsufficientStock(available=item.available_stock, requested=quantity)


def release(db: Session, item_id: int, quantity: int) -> None:
    """Put ``quantity`` units back, never exceeding total stock."""
    restored = Item.available_stock + quantity
    db.execute(
        update(Item)
        .where(Item.id == item_id)
        .values(available_stock=case((restored > Item.stock, Item.stock), else_=restored))
        .execution_options(synchronize_session=False)
    )
    logger.info(f"Released {quantity} unit(s) of item {item_id}")


def adjust_total(db: Session, item: Item, new_stock: int) -> None:
    """Change total stock, shifting available_stock by the same delta.

    Units currently out on loan stay reserved: with 10/7 (3 borrowed) an edit
    to 12 gives 12/9, an edit to 2 gives 2/0. The delta is computed in SQL
    against the row's current stock.
    """
    if new_stock < 0:
        raise ValidationError("Stock cannot be negative")

    shifted = Item.available_stock + (new_stock - Item.stock)
    db.execute(
        update(Item)
        .where(Item.id == item.id)
        # available_stock first: MySQL evaluates SET clauses left to right
        .ordered_values(
            (
                Item.available_stock,
                case(
                    (shifted < 0, 0),
                    (shifted > new_stock, new_stock),
                    else_=shifted,
                ),
            ),
            (Item.stock, new_stock),
        )
        .execution_options(synchronize_session=False)
    )
    db.expire(item, ["stock", "available_stock"])
