"""Auth: admin login/logout, profile and password.

SECURITY FEATURES:
- Password hashing with bcrypt
- httpOnly, Secure, SameSite cookies
- Generic login error to prevent account enumeration
- Suspended accounts refused
"""
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import func
from sqlalchemy.orm import Session

from lendbox.api.deps import get_current_user, get_db
from lendbox.core.audit import AuditLog
from lendbox.core.config import settings
from lendbox.core.exceptions import AccessDenied, AuthenticationFailed, ValidationError
from lendbox.core.security import create_access_token, get_password_hash, verify_password
from lendbox.models.user import User
from lendbox.schemas.common import envelope
from lendbox.schemas.user import PasswordChange, ProfileUpdate, Token, UserLogin, UserResponse

router = APIRouter()


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/login")
def login(data: UserLogin, request: Request, response: Response, db: Session = Depends(get_db)):
    """
    Login and set the token in an httpOnly cookie; the token is also returned
    for API clients that send it as a Bearer header.
    """
    email = data.email.strip().lower()
    user = (
        db.query(User)
        .filter(func.lower(User.email) == email, User.deleted_at.is_(None))
        .first()
    )
    if not user or not verify_password(data.password, user.hashed_password):
        AuditLog.log_authentication("failed_login", email, _client_ip(request), False, reason="Invalid credentials")
        raise AuthenticationFailed("Invalid email or password")

    if not user.is_active_account():
        AuditLog.log_authentication("failed_login", email, _client_ip(request), False, reason="Account suspended")
        raise AccessDenied("Your account has been suspended")

    token = create_access_token(subject=str(user.id), claims={"role": user.role})
    response.set_cookie(
        key=settings.TOKEN_COOKIE_NAME,
        value=token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        secure=settings.SECURE_COOKIES,
        httponly=True,
        samesite=settings.SAME_SITE_COOKIE,
    )

    AuditLog.log_authentication("login", email, _client_ip(request), True)
    AuditLog.record(db, "login", f"User {user.name} logged in", "User", user.id, user_id=user.id)

    return envelope(
        Token(access_token=token, user=UserResponse.model_validate(user)),
        message="Login successful",
    )


@router.post("/logout")
def logout(response: Response, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Clear the cookie. Bearer tokens stay valid until they expire."""
    response.delete_cookie(
        key=settings.TOKEN_COOKIE_NAME,
        secure=settings.SECURE_COOKIES,
        httponly=True,
        samesite=settings.SAME_SITE_COOKIE,
    )
    AuditLog.record(db, "logout", f"User {current_user.name} logged out", "User", current_user.id, user_id=current_user.id)
    return envelope(message="Logged out successfully")


@router.get("/me")
def me(current_user: User = Depends(get_current_user)):
    return envelope(UserResponse.model_validate(current_user))


@router.put("/profile")
def update_profile(
    data: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if data.name is not None:
        current_user.name = data.name.strip()
    if data.phone is not None:
        current_user.phone = data.phone
    db.commit()
    db.refresh(current_user)
    return envelope(UserResponse.model_validate(current_user), message="Profile updated")


@router.put("/password")
def change_password(
    data: PasswordChange,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not verify_password(data.current_password, current_user.hashed_password):
        raise ValidationError("Current password is incorrect")

    current_user.hashed_password = get_password_hash(data.password)
    db.commit()
    AuditLog.record(
        db, "password_change", f"User {current_user.name} changed their password", "User", current_user.id,
        user_id=current_user.id,
    )
    return envelope(message="Password changed")
