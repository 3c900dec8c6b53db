"""
Loan lifecycle: submit -> approve/reject -> submit_return -> complete_return.

CONCURRENCY MODEL:
- Every transition is a compare-and-swap: UPDATE loans SET status = :target
  WHERE id = :id AND status = :expected. Zero rows updated means another
  request got there first (or the loan was never in that state) and the
  caller gets InvalidState. Two concurrent approvals: exactly one wins.
- Approval swaps the status AND reserves stock in one transaction. If the
  reservation fails the whole transaction rolls back and the loan is still
  PENDING, with no verifier recorded.
- Submission only CHECKS availability. Two pending requests can compete for
  the last unit; the first one approved gets it.

Callers pass the acting admin's id explicitly. This module never looks up a
"current user", and does not authorize. Organization scope is enforced by
verification_service before any admin transition reaches this module.
"""
import logging
import secrets
import string
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Query, Session

from lendbox.core.exceptions import InvalidState, NotFound, ValidationError
from lendbox.models.item import ITEM_STATUS_ACTIVE, Item
from lendbox.models.loan import (
    COMPLETION_STATUS,
    Loan,
    LoanStatus,
    ReturnCondition,
    can_transition,
)
from lendbox.models.organization import Organization
from lendbox.services import inventory_service

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_REASON_LENGTH = 500


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_loan_code(db: Session) -> str:
    """LOAN-YYYYMMDD-XXXXXX. Shareable with the borrower; doubles as their return token."""
    prefix = f"LOAN-{_now():%Y%m%d}-"
    for _ in range(10):
        code = prefix + "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
        if not db.query(Loan.id).filter(Loan.loan_code == code).first():
            return code
    raise RuntimeError("Could not generate a unique loan code")


def _transition(db: Session, loan: Loan, expected: LoanStatus, target: LoanStatus, **values: Any) -> None:
    """Conditional status update. Does not commit."""
    if not can_transition(expected, target):
        raise ValueError(f"No transition {expected.value} -> {target.value}")

    result = db.execute(
        update(Loan)
        .where(Loan.id == loan.id, Loan.status == expected, Loan.deleted_at.is_(None))
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = db.execute(select(Loan.status).where(Loan.id == loan.id)).scalar()
        current_label = current.label if current else "unknown"
        logger.info(f"Loan {loan.loan_code}: refused {expected.value} -> {target.value}, current status {current}")
        raise InvalidState(
            f"Loan is not {expected.label.lower()}. Current status: {current_label}",
            status=current.value if current else None,
        )


# ------------------------------------------------------------------------------
# Lookups
# ------------------------------------------------------------------------------

def get_loan(db: Session, loan_id: int) -> Loan:
    loan = db.query(Loan).filter(Loan.id == loan_id, Loan.deleted_at.is_(None)).first()
    if not loan:
        raise NotFound("Loan not found")
    return loan


def get_by_code(db: Session, loan_code: str) -> Loan:
    code = (loan_code or "").strip().upper()
    loan = db.query(Loan).filter(Loan.loan_code == code, Loan.deleted_at.is_(None)).first() if code else None
    if not loan:
        raise NotFound("Loan code not found")
    return loan


def check_status(db: Session, loan_code: str) -> dict:
    """Public status view for a loan code. ``can_return`` is true only while borrowed."""
    loan = get_by_code(db, loan_code)
    return {
        "loan_code": loan.loan_code,
        "item": loan.item.name,
        "borrower_name": loan.borrower_name,
        "status": loan.status,
        "status_label": loan.status_label,
        "loan_date": loan.loan_date,
        "rejection_reason": loan.rejection_reason,
        "can_return": loan.can_return,
    }


def get_submittable_item(db: Session, organization: Organization, item_id: int) -> Item:
    """Active item of an active organization, or NotFound."""
    if not organization.is_active:
        raise NotFound("Organization not found")
    item = (
        db.query(Item)
        .filter(
            Item.id == item_id,
            Item.organization_id == organization.id,
            Item.status == ITEM_STATUS_ACTIVE,
            Item.deleted_at.is_(None),
        )
        .first()
    )
    if not item:
        raise NotFound("Item not found")
    return item


def loan_query(
    db: Session,
    organization_id: Optional[int] = None,
    status: Optional[LoanStatus] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> Query:
    """Non-deleted loans, newest first, with the admin list filters applied."""
    q = db.query(Loan).filter(Loan.deleted_at.is_(None))
    if organization_id is not None:
        q = q.filter(Loan.organization_id == organization_id)
    if status is not None:
        q = q.filter(Loan.status == status)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Loan.borrower_name.ilike(like), Loan.loan_code.ilike(like)))
    if date_from is not None:
        q = q.filter(func.date(Loan.loan_date) >= date_from.isoformat())
    if date_to is not None:
        q = q.filter(func.date(Loan.loan_date) <= date_to.isoformat())
    return q.order_by(Loan.created_at.desc(), Loan.id.desc())


# ------------------------------------------------------------------------------
# Transitions
# ------------------------------------------------------------------------------

def submit_loan(
    db: Session,
    organization: Organization,
    item_id: int,
    *,
    borrower_name: str,
    borrower_phone: str,
    borrower_photo: str,
    quantity: int = 1,
    borrower_class: Optional[str] = None,
    borrower_organization: Optional[str] = None,
    loan_purpose: Optional[str] = None,
    expected_return_date: Optional[datetime] = None,
) -> Loan:
    """Create a PENDING loan. Availability is checked, not reserved.

    ``borrower_photo`` is the storage path of the already-stored photo.
    Not idempotent: every call creates a new loan.
    """
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    borrower_name = (borrower_name or "").strip()
    borrower_phone = (borrower_phone or "").strip()
    if not borrower_name or not borrower_phone:
        raise ValidationError("Borrower name and phone are required")

    item = get_submittable_item(db, organization, item_id)
    inventory_service.check_available(item, quantity)

    loan = Loan(
        loan_code=generate_loan_code(db),
        item_id=item.id,
        organization_id=organization.id,
        borrower_name=borrower_name,
        borrower_phone=borrower_phone,
        borrower_class=borrower_class,
        borrower_organization=borrower_organization,
        borrower_photo=borrower_photo,
        quantity=quantity,
        loan_purpose=loan_purpose,
        loan_date=_now(),
        expected_return_date=expected_return_date,
        status=LoanStatus.PENDING,
    )
    db.add(loan)
    db.commit()
    db.refresh(loan)
    logger.info(f"Loan {loan.loan_code} submitted for item {item.id} (qty {quantity}) in organization {organization.id}")
    return loan


def approve(db: Session, loan: Loan, admin_id: int) -> Loan:
    """PENDING -> BORROWED and reserve stock, atomically."""
    try:
        _transition(
            db,
            loan,
            LoanStatus.PENDING,
            LoanStatus.BORROWED,
            verified_by=admin_id,
            verified_at=_now(),
        )
        inventory_service.reserve(db, loan.item_id, loan.quantity)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(loan)
    logger.info(f"Loan {loan.loan_code} approved by admin {admin_id}")
    return loan


def reject(db: Session, loan: Loan, admin_id: int, reason: str) -> Loan:
    """PENDING -> REJECTED. Nothing was reserved, so stock is untouched."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required")
    if len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"Rejection reason must be at most {MAX_REASON_LENGTH} characters")

    try:
        _transition(
            db,
            loan,
            LoanStatus.PENDING,
            LoanStatus.REJECTED,
            verified_by=admin_id,
            verified_at=_now(),
            rejection_reason=reason,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(loan)
    logger.info(f"Loan {loan.loan_code} rejected by admin {admin_id}")
    return loan


def ensure_returnable(loan: Loan) -> None:
    """Cheap pre-check before storing a return photo; the transition re-checks atomically."""
    if loan.status != LoanStatus.BORROWED:
        raise InvalidState(
            f"Loan is not currently borrowed. Current status: {loan.status.label}",
            status=loan.status.value,
        )


def submit_return(db: Session, loan: Loan, return_photo: str, notes: Optional[str] = None) -> Loan:
    """BORROWED -> RETURN_PENDING. Unauthenticated: holding the loan code is the capability."""
    try:
        _transition(
            db,
            loan,
            LoanStatus.BORROWED,
            LoanStatus.RETURN_PENDING,
            return_photo=return_photo,
            return_condition_notes=notes,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(loan)
    logger.info(f"Return submitted for loan {loan.loan_code}")
    return loan


def complete_return(
    db: Session,
    loan: Loan,
    admin_id: int,
    condition: ReturnCondition | str,
    notes: Optional[str] = None,
) -> Loan:
    """RETURN_PENDING -> COMPLETED | COMPLETED_DAMAGED | COMPLETED_LOST.

    Normal and damaged returns put the units back into available stock. Lost
    units are NOT released and total stock is left as is, so the loss stays
    visible as the gap between stock and available_stock (shrinkage).
    """
    try:
        condition = ReturnCondition(condition)
    except ValueError:
        raise ValidationError("Condition must be one of: normal, damaged, lost")

    now = _now()
    values: dict = {
        "actual_return_date": now,
        "return_checked_by": admin_id,
        "return_checked_at": now,
    }
    if notes is not None:
        values["return_condition_notes"] = notes

    try:
        _transition(db, loan, LoanStatus.RETURN_PENDING, COMPLETION_STATUS[condition], **values)
        if condition != ReturnCondition.LOST:
            inventory_service.release(db, loan.item_id, loan.quantity)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(loan)
    logger.info(f"Return of loan {loan.loan_code} checked by admin {admin_id}: {condition.value}")
    return loan
