"""
Permission checks for admin operations.

Trust: an organization admin may only act on loans and items of their own
organization. The check runs on every call against the resource as loaded
from the database; nothing about scope is cached between requests.
"""
from dataclasses import dataclass
from typing import Optional

from lendbox.core.audit import AuditLog
from lendbox.core.exceptions import AccessDenied
from lendbox.models.user import ROLE_ADMIN_MASTER, ROLE_ADMIN_ORG, User


@dataclass(frozen=True)
class AdminContext:
    """Identity and organization scope of the acting admin, passed explicitly into the core."""

    user_id: int
    role: str
    organization_id: Optional[int] = None

    @classmethod
    def from_user(cls, user: User) -> "AdminContext":
        return cls(user_id=user.id, role=user.role, organization_id=user.organization_id)

    @property
    def is_master(self) -> bool:
        return self.role == ROLE_ADMIN_MASTER


def ensure_same_organization(admin: AdminContext, organization_id: int, action: str, entity_type: str, entity_id: Optional[int]) -> None:
    """Raise AccessDenied unless the admin belongs to the resource's organization.

    Verification checkpoints (approve, reject, return check) are organization
    admin duties; the master admin monitors but does not verify.
    """
    if admin.role != ROLE_ADMIN_ORG or admin.organization_id != organization_id:
        AuditLog.log_access_denied(action, entity_type, entity_id, admin.user_id, "Different organization")
        raise AccessDenied("Access denied")
