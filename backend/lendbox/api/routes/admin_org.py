"""Organization admin: items, loan verification, return checks, reports.

Every route is scoped to the acting admin's own organization. Loan
transitions go through verification_service, which re-checks the scope
against the loan as loaded from the database.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from lendbox.api.deps import get_db, require_admin_org
from lendbox.core.pagination import paginate
from lendbox.core.permissions import AdminContext
from lendbox.models.loan import LoanStatus
from lendbox.schemas.common import envelope
from lendbox.schemas.item import ItemCreate, ItemReportRow, ItemResponse, ItemUpdate
from lendbox.schemas.loan import LoanDetail, LoanReject, LoanResponse, ReturnComplete
from lendbox.services import item_service, loan_service, report_service, storage_service, verification_service

router = APIRouter()


def _loan(loan) -> LoanResponse:
    return LoanResponse.model_validate(loan)


def _item(item) -> ItemResponse:
    return ItemResponse.model_validate(item)


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_org)):
    data = report_service.organization_dashboard(db, admin.organization_id)
    return envelope({
        "stats": data["stats"],
        "recent_loans": [_loan(l) for l in data["recent_loans"]],
        "pending_loans": [_loan(l) for l in data["pending_loans"]],
    })


# ==============================================================================
# ITEM MANAGEMENT
# ==============================================================================

@router.get("/items/export")
def export_items(db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_org)):
    """Items as a spreadsheet-friendly CSV download."""
    content = report_service.items_csv(db, admin.organization_id)
    filename = f"items_export_{date.today()}.csv"
    return StreamingResponse(
        iter([content]),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Cache-Control": "no-cache",
        },
    )


@router.get("/items")
def list_items(
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    is_loanable: Optional[bool] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_org),
):
    q = item_service.item_query(
        db, admin.organization_id, search=search, category=category, is_loanable=is_loanable, status=status
    )
    return envelope(paginate(q, page, per_page).to_dict(_item))


@router.post("/items", status_code=status.HTTP_201_CREATED)
def create_item(data: ItemCreate, db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_org)):
    fields = data.model_dump(exclude={"image"})
    image_path = storage_service.store_base64(data.image, storage_service.ITEM_IMAGES) if data.image else None
    item = item_service.create_item(db, admin, image=image_path, **fields)
    return envelope(_item(item), message="Item created")


@router.get("/items/{item_id}")
def show_item(item_id: int, db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_org)):
    item = item_service.get_item_for_admin(db, admin, item_id)
    loans = item_service.recent_loans(db, item)
    return envelope({**_item(item).model_dump(), "recent_loans": [_loan(l) for l in loans]})


@router.put("/items/{item_id}")
def update_item(
    item_id: int,
    data: ItemUpdate,
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_org),
):
    changes = data.model_dump(exclude_unset=True)
    if changes.get("image"):
        # Scope check before writing a file for someone else's item
        item_service.get_item_for_admin(db, admin, item_id, action="update")
        changes["image"] = storage_service.store_base64(changes["image"], storage_service.ITEM_IMAGES)
    item = item_service.update_item(db, admin, item_id, changes)
    return envelope(_item(item), message="Item updated")


@router.delete("/items/{item_id}")
def delete_item(item_id: int, db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_org)):
    item_service.delete_item(db, admin, item_id)
    return envelope(message="Item deleted")


@router.get("/categories")
def list_categories(db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_org)):
    return envelope(item_service.categories(db, admin.organization_id))


# ==============================================================================
# LOAN VERIFICATION
# ==============================================================================

@router.get("/loans/pending")
def pending_loans(
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_org),
):
    q = loan_service.loan_query(db, admin.organization_id, status=LoanStatus.PENDING)
    return envelope(paginate(q, page, per_page).to_dict(_loan))


@router.get("/loans")
def all_loans(
    status: Optional[LoanStatus] = Query(None),
    search: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_org),
):
    q = loan_service.loan_query(
        db, admin.organization_id, status=status, search=search, date_from=date_from, date_to=date_to
    )
    return envelope(paginate(q, page, per_page).to_dict(_loan))


@router.get("/loans/{loan_id}")
def show_loan(loan_id: int, db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_org)):
    loan = verification_service.get_loan_for_admin(db, admin, loan_id)
    return envelope(LoanDetail.model_validate(loan))


@router.post("/loans/{loan_id}/approve")
def approve_loan(loan_id: int, db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_org)):
    loan = verification_service.approve_loan(db, admin, loan_id)
    return envelope(_loan(loan), message="Loan approved")


@router.post("/loans/{loan_id}/reject")
def reject_loan(
    loan_id: int,
    data: LoanReject,
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_org),
):
    loan = verification_service.reject_loan(db, admin, loan_id, data.reason)
    return envelope(_loan(loan), message="Loan rejected")


# ==============================================================================
# RETURN VERIFICATION
# ==============================================================================

@router.get("/returns/pending")
def pending_returns(
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_org),
):
    q = loan_service.loan_query(db, admin.organization_id, status=LoanStatus.RETURN_PENDING)
    return envelope(paginate(q, page, per_page).to_dict(_loan))


@router.post("/returns/{loan_id}/complete")
def complete_return(
    loan_id: int,
    data: ReturnComplete,
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_org),
):
    loan = verification_service.complete_loan_return(db, admin, loan_id, data.condition, data.notes)
    return envelope(_loan(loan), message="Return completed")


# ==============================================================================
# REPORTS
# ==============================================================================

@router.get("/reports/inventory")
def inventory_report(db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_org)):
    report = report_service.inventory_report(db, admin.organization_id)
    rows = [
        ItemReportRow.model_validate(row["item"]).model_copy(
            update={"loans_count": row["loans_count"], "active_loans_count": row["active_loans_count"]}
        )
        for row in report["items"]
    ]
    return envelope({"summary": report["summary"], "items": rows})


@router.get("/reports/loans")
def loan_report(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2020, le=2100),
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_org),
):
    report = report_service.monthly_loan_report(db, admin.organization_id, month, year)
    return envelope({
        "period": report["period"],
        "summary": report["summary"],
        "loans": [_loan(l) for l in report["loans"]],
    })
