"""
Verification gateway: the two human checkpoints (approval, return check).

Each call:
1. loads the loan fresh from the database
2. checks the acting admin's organization against the loan's organization,
   on every call, raising AccessDenied on mismatch
3. delegates to loan_service
4. records an audit entry with before/after snapshots (best-effort)
"""
from typing import Optional

from sqlalchemy.orm import Session

from lendbox.core.audit import AuditLog, snapshot
from lendbox.core.permissions import AdminContext, ensure_same_organization
from lendbox.models.loan import Loan, ReturnCondition
from lendbox.services import loan_service


def get_loan_for_admin(db: Session, admin: AdminContext, loan_id: int, action: str = "read") -> Loan:
    loan = loan_service.get_loan(db, loan_id)
    ensure_same_organization(admin, loan.organization_id, action, "Loan", loan.id)
    return loan


def approve_loan(db: Session, admin: AdminContext, loan_id: int) -> Loan:
    loan = get_loan_for_admin(db, admin, loan_id, action="approve")
    before = snapshot(loan)
    loan = loan_service.approve(db, loan, admin.user_id)
    AuditLog.record(
        db,
        "approve",
        f"Approved loan {loan.loan_code} for {loan.borrower_name}",
        "Loan",
        loan.id,
        before=before,
        after=snapshot(loan),
        user_id=admin.user_id,
    )
    return loan


def reject_loan(db: Session, admin: AdminContext, loan_id: int, reason: str) -> Loan:
    loan = get_loan_for_admin(db, admin, loan_id, action="reject")
    before = snapshot(loan)
    loan = loan_service.reject(db, loan, admin.user_id, reason)
    AuditLog.record(
        db,
        "reject",
        f"Rejected loan {loan.loan_code}: {loan.rejection_reason}",
        "Loan",
        loan.id,
        before=before,
        after=snapshot(loan),
        user_id=admin.user_id,
    )
    return loan


def complete_loan_return(
    db: Session,
    admin: AdminContext,
    loan_id: int,
    condition: ReturnCondition | str,
    notes: Optional[str] = None,
) -> Loan:
    loan = get_loan_for_admin(db, admin, loan_id, action="return_complete")
    before = snapshot(loan)
    loan = loan_service.complete_return(db, loan, admin.user_id, condition, notes)
    AuditLog.record(
        db,
        "return_complete",
        f"Completed return of loan {loan.loan_code}: {loan.status.label}",
        "Loan",
        loan.id,
        before=before,
        after=snapshot(loan),
        user_id=admin.user_id,
    )
    return loan
