"""Master admin: organizations, organization admin accounts, read-only monitoring."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from lendbox.api.deps import get_db, require_admin_master
from lendbox.core.pagination import paginate
from lendbox.core.permissions import AdminContext
from lendbox.models.loan import LoanStatus
from lendbox.schemas.common import envelope
from lendbox.schemas.item import ItemResponse
from lendbox.schemas.loan import LoanResponse
from lendbox.schemas.organization import (
    OrganizationCreate,
    OrganizationResponse,
    OrganizationSummary,
    OrganizationUpdate,
)
from lendbox.schemas.records import AuditLogRecord
from lendbox.schemas.user import AdminCreate, AdminUpdate, PasswordReset, UserResponse
from lendbox.services import (
    admin_service,
    item_service,
    loan_service,
    organization_service,
    report_service,
    storage_service,
)

router = APIRouter()


def _organization_row(row) -> OrganizationSummary:
    organization, items_count, loans_count, users_count = row
    return OrganizationSummary.model_validate(organization).model_copy(
        update={"items_count": items_count, "loans_count": loans_count, "users_count": users_count}
    )


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_master)):
    data = report_service.master_dashboard(db)
    return envelope({
        "stats": data["stats"],
        "recent_logs": [AuditLogRecord.model_validate(log) for log in data["recent_logs"]],
    })


# ==============================================================================
# ORGANIZATIONS
# ==============================================================================

@router.get("/organizations")
def list_organizations(
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    q = organization_service.organization_query(db, search=search, status=status)
    return envelope(paginate(q, page, per_page).to_dict(_organization_row))


@router.post("/organizations", status_code=status.HTTP_201_CREATED)
def create_organization(
    data: OrganizationCreate,
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    fields = data.model_dump(exclude={"name", "logo"})
    if data.logo:
        fields["logo"] = storage_service.store_base64(data.logo, storage_service.ORGANIZATION_LOGOS)
    organization = organization_service.create_organization(db, admin, data.name, **fields)
    return envelope(OrganizationResponse.model_validate(organization), message="Organization created")


@router.get("/organizations/{organization_id}")
def show_organization(
    organization_id: int,
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    organization = organization_service.get_organization(db, organization_id)
    detail = organization_service.organization_detail(db, organization)
    return envelope({
        **OrganizationResponse.model_validate(organization).model_dump(),
        "admins": [UserResponse.model_validate(u) for u in detail["admins"]],
        "items_count": detail["items_count"],
        "recent_loans": [LoanResponse.model_validate(l) for l in detail["recent_loans"]],
    })


@router.put("/organizations/{organization_id}")
def update_organization(
    organization_id: int,
    data: OrganizationUpdate,
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    changes = data.model_dump(exclude_unset=True)
    if changes.get("logo"):
        organization_service.get_organization(db, organization_id)
        changes["logo"] = storage_service.store_base64(changes["logo"], storage_service.ORGANIZATION_LOGOS)
    organization = organization_service.update_organization(db, admin, organization_id, changes)
    return envelope(OrganizationResponse.model_validate(organization), message="Organization updated")


@router.delete("/organizations/{organization_id}")
def delete_organization(
    organization_id: int,
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    organization_service.delete_organization(db, admin, organization_id)
    return envelope(message="Organization deleted")


# ==============================================================================
# ORGANIZATION ADMINS
# ==============================================================================

@router.get("/admins")
def list_admins(
    search: Optional[str] = Query(None),
    organization_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    q = admin_service.admin_query(db, search=search, organization_id=organization_id, status=status)
    return envelope(paginate(q, page, per_page).to_dict(UserResponse.model_validate))


@router.post("/admins", status_code=status.HTTP_201_CREATED)
def create_admin(data: AdminCreate, db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_master)):
    user = admin_service.create_admin(db, admin, **data.model_dump())
    return envelope(UserResponse.model_validate(user), message="Organization admin created")


@router.put("/admins/{user_id}")
def update_admin(
    user_id: int,
    data: AdminUpdate,
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    user = admin_service.update_admin(db, admin, user_id, data.model_dump(exclude_unset=True))
    return envelope(UserResponse.model_validate(user), message="Organization admin updated")


@router.put("/admins/{user_id}/reset-password")
def reset_admin_password(
    user_id: int,
    data: PasswordReset,
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    admin_service.reset_password(db, admin, user_id, data.password)
    return envelope(message="Admin password reset")


@router.put("/admins/{user_id}/toggle-status")
def toggle_admin_status(user_id: int, db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_master)):
    user = admin_service.toggle_status(db, admin, user_id)
    return envelope(UserResponse.model_validate(user), message="Admin status changed")


@router.delete("/admins/{user_id}")
def delete_admin(user_id: int, db: Session = Depends(get_db), admin: AdminContext = Depends(require_admin_master)):
    admin_service.delete_admin(db, admin, user_id)
    return envelope(message="Organization admin deleted")


# ==============================================================================
# MONITORING (read-only)
# ==============================================================================

@router.get("/items")
def all_items(
    organization_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    q = item_service.item_query(db, organization_id, search=search)
    return envelope(paginate(q, page, per_page).to_dict(ItemResponse.model_validate))


@router.get("/loans")
def all_loans(
    organization_id: Optional[int] = Query(None),
    status: Optional[LoanStatus] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    q = loan_service.loan_query(db, organization_id, status=status, search=search)
    return envelope(paginate(q, page, per_page).to_dict(LoanResponse.model_validate))


@router.get("/audit-logs")
def audit_logs(
    user_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    entity_type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    admin: AdminContext = Depends(require_admin_master),
):
    q = report_service.audit_log_query(db, user_id=user_id, action=action, entity_type=entity_type)
    return envelope(paginate(q, page, per_page).to_dict(AuditLogRecord.model_validate))
