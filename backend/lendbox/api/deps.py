"""FastAPI dependencies: DB session, current admin from JWT, role guards.

SECURITY: Supports JWT from:
1. Authorization header (for API clients)
2. httpOnly cookie (for web frontend)
"""
from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from lendbox.core.config import settings
from lendbox.core.exceptions import AccessDenied, AuthenticationFailed
from lendbox.core.permissions import AdminContext
from lendbox.core.security import decode_access_token
from lendbox.db.session import SessionLocal
from lendbox.models.user import User

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> int:
    """
    Extract user ID from JWT token.
    Header takes precedence over cookie.
    """
    token = None
    if credentials:
        token = credentials.credentials
    elif settings.TOKEN_COOKIE_NAME in request.cookies:
        token = request.cookies[settings.TOKEN_COOKIE_NAME]

    if not token:
        raise AuthenticationFailed("Not authenticated")

    sub = decode_access_token(token)
    if not sub:
        raise AuthenticationFailed("Invalid or expired token")

    try:
        return int(sub)
    except ValueError:
        raise AuthenticationFailed("Invalid token")


def get_current_user(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
) -> User:
    """Load current user from DB. Suspended accounts lose access immediately."""
    user = db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
    if not user:
        raise AuthenticationFailed("User not found")
    if not user.is_active_account():
        raise AccessDenied("Your account has been suspended")
    return user


def require_admin_master(current_user: User = Depends(get_current_user)) -> AdminContext:
    admin = AdminContext.from_user(current_user)
    if not admin.is_master:
        raise AccessDenied("Access denied. Only the master admin can access this.")
    return admin


def require_admin_org(current_user: User = Depends(get_current_user)) -> AdminContext:
    if not current_user.is_admin_org():
        raise AccessDenied("Access denied. Only organization admins can access this.")
    if not current_user.organization_id:
        raise AccessDenied("You are not assigned to any organization.")
    return AdminContext.from_user(current_user)
