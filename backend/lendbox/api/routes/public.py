"""Public API: catalogue, loan requests and returns. No login; a loan code is the borrower's only credential."""
import logging
from datetime import datetime, time
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from lendbox.api.deps import get_db
from lendbox.core.audit import AuditLog, snapshot
from lendbox.core.pagination import paginate
from lendbox.schemas.common import envelope
from lendbox.schemas.item import ItemResponse
from lendbox.schemas.loan import LoanCode, LoanStatusView, LoanSubmit, ReturnSubmit
from lendbox.schemas.organization import OrganizationResponse
from lendbox.services import (
    inventory_service,
    item_service,
    loan_service,
    notification_service,
    organization_service,
    storage_service,
)

logger = logging.getLogger(__name__)

router = APIRouter()

PUBLIC_PAGE_SIZE = 20


def _item(item) -> ItemResponse:
    return ItemResponse.model_validate(item)


@router.get("/organizations")
def list_organizations(db: Session = Depends(get_db)):
    """Active organizations, each with its number of loanable items."""
    rows = organization_service.active_organizations(db)
    return envelope([
        {**OrganizationResponse.model_validate(org).model_dump(), "items_count": items_count}
        for org, items_count in rows
    ])


@router.get("/organizations/{slug}")
def show_organization(slug: str, db: Session = Depends(get_db)):
    organization = organization_service.get_active_by_slug(db, slug)
    return envelope(OrganizationResponse.model_validate(organization))


@router.get("/organizations/{slug}/items")
def list_items(
    slug: str,
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(PUBLIC_PAGE_SIZE, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """All active items, loanable or not; ``is_available`` tells them apart."""
    organization = organization_service.get_active_by_slug(db, slug)
    q = item_service.public_item_query(db, organization.id, search=search, category=category)
    return envelope(paginate(q, page, per_page).to_dict(_item))


@router.get("/organizations/{slug}/items/loanable")
def list_loanable_items(
    slug: str,
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(PUBLIC_PAGE_SIZE, ge=1, le=100),
    db: Session = Depends(get_db),
):
    organization = organization_service.get_active_by_slug(db, slug)
    q = item_service.public_item_query(db, organization.id, search=search, category=category, loanable_only=True)
    return envelope(paginate(q, page, per_page).to_dict(_item))


@router.get("/organizations/{slug}/items/{item_id}")
def show_item(slug: str, item_id: int, db: Session = Depends(get_db)):
    organization = organization_service.get_active_by_slug(db, slug)
    return envelope(_item(item_service.get_public_item(db, organization.id, item_id)))


@router.get("/organizations/{slug}/categories")
def list_categories(slug: str, db: Session = Depends(get_db)):
    organization = organization_service.get_active_by_slug(db, slug)
    return envelope(item_service.categories(db, organization.id, active_only=True))


@router.post("/organizations/{slug}/loans", status_code=status.HTTP_201_CREATED)
def submit_loan(
    slug: str,
    data: LoanSubmit,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """
    Submit a loan request with the borrower's live photo.

    Availability is checked before the photo is written so a refused request
    leaves no file behind. Nothing is reserved until an admin approves.
    """
    organization = organization_service.get_active_by_slug(db, slug)
    item = loan_service.get_submittable_item(db, organization, data.item_id)
    inventory_service.check_available(item, data.quantity)

    photo_path = storage_service.store_base64(data.borrower_photo, storage_service.LOAN_PHOTOS)
    expected_return = (
        datetime.combine(data.expected_return_date, time.min) if data.expected_return_date else None
    )
    try:
        loan = loan_service.submit_loan(
            db,
            organization,
            item.id,
            borrower_name=data.borrower_name,
            borrower_phone=data.borrower_phone,
            borrower_photo=photo_path,
            quantity=data.quantity,
            borrower_class=data.borrower_class,
            borrower_organization=data.borrower_organization,
            loan_purpose=data.loan_purpose,
            expected_return_date=expected_return,
        )
    except Exception:
        storage_service.discard(photo_path)
        raise
    AuditLog.record(
        db, "create", f"Loan request {loan.loan_code} from {loan.borrower_name}", "Loan", loan.id,
        after=snapshot(loan),
    )
    background_tasks.add_task(notification_service.notify_new_loan_request, loan.id)

    return envelope(
        {"loan_code": loan.loan_code, "status": loan.status_label, "item": item.name},
        message="Loan request submitted. Please wait for verification by the admin.",
    )


@router.post("/loans/check-status")
def check_loan_status(data: LoanCode, db: Session = Depends(get_db)):
    return envelope(LoanStatusView(**loan_service.check_status(db, data.loan_code)))


@router.post("/loans/return")
def submit_return(data: ReturnSubmit, db: Session = Depends(get_db)):
    """Borrower hands the item back: photo now, admin condition check later."""
    loan = loan_service.get_by_code(db, data.loan_code)
    loan_service.ensure_returnable(loan)

    before = snapshot(loan)
    photo_path = storage_service.store_base64(data.return_photo, storage_service.RETURN_PHOTOS)
    try:
        loan = loan_service.submit_return(db, loan, photo_path, data.notes)
    except Exception:
        storage_service.discard(photo_path)
        raise
    AuditLog.record(
        db, "return_submit", f"Return submitted for loan {loan.loan_code}", "Loan", loan.id,
        before=before, after=snapshot(loan),
    )

    return envelope(
        {"loan_code": loan.loan_code, "status": loan.status_label},
        message="Return submitted. Please wait for the admin to check the item.",
    )
