"""
Read-only views: dashboards, inventory and monthly loan reports, CSV export.

Nothing here mutates state. Counts exclude soft-deleted rows.
"""
import csv
import io
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session, joinedload

from lendbox.core.exceptions import ValidationError
from lendbox.models.audit_log import AuditLogEntry
from lendbox.models.item import Item
from lendbox.models.loan import COMPLETED_STATUSES, Loan, LoanStatus
from lendbox.models.organization import ORG_STATUS_ACTIVE, Organization
from lendbox.models.user import ROLE_ADMIN_ORG, USER_STATUS_ACTIVE, User

CONDITION_LABELS = {"good": "Good", "fair": "Fair", "poor": "Poor (Damaged)"}

CSV_HEADER = ["Item Code", "Item Name", "Category", "Total Stock", "Available Stock", "Condition", "Loanable", "Description"]


def _loans(db: Session, organization_id: Optional[int] = None) -> Query:
    q = db.query(Loan).filter(Loan.deleted_at.is_(None))
    if organization_id is not None:
        q = q.filter(Loan.organization_id == organization_id)
    return q


def _items(db: Session, organization_id: Optional[int] = None) -> Query:
    q = db.query(Item).filter(Item.deleted_at.is_(None))
    if organization_id is not None:
        q = q.filter(Item.organization_id == organization_id)
    return q


def organization_dashboard(db: Session, organization_id: int) -> Dict[str, Any]:
    loans = _loans(db, organization_id)
    stats = {
        "total_items": _items(db, organization_id).count(),
        "loanable_items": _items(db, organization_id).filter(Item.is_loanable.is_(True)).count(),
        "total_loans": loans.count(),
        "pending_loans": loans.filter(Loan.status == LoanStatus.PENDING).count(),
        "active_loans": loans.filter(Loan.status == LoanStatus.BORROWED).count(),
        "return_pending": loans.filter(Loan.status == LoanStatus.RETURN_PENDING).count(),
        "completed_loans": loans.filter(Loan.status.in_(COMPLETED_STATUSES)).count(),
    }
    newest = (Loan.created_at.desc(), Loan.id.desc())
    recent_loans = loans.options(joinedload(Loan.item)).order_by(*newest).limit(5).all()
    pending_loans = (
        loans.options(joinedload(Loan.item))
        .filter(Loan.status == LoanStatus.PENDING)
        .order_by(*newest)
        .limit(5)
        .all()
    )
    return {"stats": stats, "recent_loans": recent_loans, "pending_loans": pending_loans}


def master_dashboard(db: Session) -> Dict[str, Any]:
    organizations = db.query(Organization).filter(Organization.deleted_at.is_(None))
    admins = db.query(User).filter(User.role == ROLE_ADMIN_ORG, User.deleted_at.is_(None))
    loans = _loans(db)
    stats = {
        "total_organizations": organizations.count(),
        "active_organizations": organizations.filter(Organization.status == ORG_STATUS_ACTIVE).count(),
        "total_admins": admins.count(),
        "active_admins": admins.filter(User.status == USER_STATUS_ACTIVE).count(),
        "total_items": _items(db).count(),
        "total_loans": loans.count(),
        "active_loans": loans.filter(Loan.status == LoanStatus.BORROWED).count(),
        "pending_loans": loans.filter(Loan.status == LoanStatus.PENDING).count(),
    }
    recent_logs = audit_log_query(db).limit(10).all()
    return {"stats": stats, "recent_logs": recent_logs}


def inventory_report(db: Session, organization_id: int) -> Dict[str, Any]:
    """Per-item loan counts plus organization-wide stock totals."""
    loan_counts = dict(
        _loans(db, organization_id)
        .with_entities(Loan.item_id, func.count(Loan.id))
        .group_by(Loan.item_id)
        .all()
    )
    active_counts = dict(
        _loans(db, organization_id)
        .filter(Loan.status == LoanStatus.BORROWED)
        .with_entities(Loan.item_id, func.count(Loan.id))
        .group_by(Loan.item_id)
        .all()
    )
    items = _items(db, organization_id).order_by(Item.name).all()

    summary = {
        "total_items": len(items),
        "total_stock": sum(i.stock for i in items),
        "available_stock": sum(i.available_stock for i in items),
        "loanable_items": sum(1 for i in items if i.is_loanable),
        "non_loanable_items": sum(1 for i in items if not i.is_loanable),
    }
    rows = [
        {
            "item": item,
            "loans_count": loan_counts.get(item.id, 0),
            "active_loans_count": active_counts.get(item.id, 0),
        }
        for item in items
    ]
    return {"summary": summary, "items": rows}


def monthly_loan_report(db: Session, organization_id: int, month: int, year: int) -> Dict[str, Any]:
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    if not 2020 <= year <= 2100:
        raise ValidationError("Year must be between 2020 and 2100")

    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    loans: List[Loan] = (
        _loans(db, organization_id)
        .options(joinedload(Loan.item))
        .filter(Loan.loan_date >= start, Loan.loan_date < end)
        .order_by(Loan.loan_date.desc(), Loan.id.desc())
        .all()
    )

    statuses = [loan.status for loan in loans]
    summary = {
        "total_loans": len(loans),
        # approved = anything that got past the approval checkpoint
        "approved": sum(1 for s in statuses if s not in (LoanStatus.PENDING, LoanStatus.REJECTED)),
        "rejected": statuses.count(LoanStatus.REJECTED),
        "completed": sum(1 for s in statuses if s in COMPLETED_STATUSES),
        "damaged": statuses.count(LoanStatus.COMPLETED_DAMAGED),
        "lost": statuses.count(LoanStatus.COMPLETED_LOST),
    }
    return {"period": {"month": month, "year": year}, "summary": summary, "loans": loans}


def items_csv(db: Session, organization_id: int) -> str:
    """Items as CSV, prefixed with a UTF-8 BOM so spreadsheet apps pick the right encoding."""
    items = _items(db, organization_id).order_by(Item.created_at.desc(), Item.id.desc()).all()

    output = io.StringIO()
    output.write("\ufeff")
    writer = csv.writer(output)
    writer.writerow(CSV_HEADER)
    for item in items:
        writer.writerow([
            item.code,
            item.name,
            item.category or "",
            item.stock,
            item.available_stock,
            CONDITION_LABELS.get(item.condition, item.condition),
            "Loanable" if item.is_loanable else "Not loanable",
            item.description or "",
        ])
    return output.getvalue()


def audit_log_query(
    db: Session,
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    entity_type: Optional[str] = None,
) -> Query:
    q = db.query(AuditLogEntry).options(joinedload(AuditLogEntry.user))
    if user_id is not None:
        q = q.filter(AuditLogEntry.user_id == user_id)
    if action:
        q = q.filter(AuditLogEntry.action == action)
    if entity_type:
        q = q.filter(AuditLogEntry.entity_type == entity_type)
    return q.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
