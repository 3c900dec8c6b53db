"""Create all tables and the master admin. Run on app startup.

SECURITY: When MASTER_ADMIN_PASSWORD is not set, a random password is
generated and printed once. Change it after first login.
"""
import logging
import secrets

import lendbox.models  # noqa: F401 - register models
from lendbox.core.config import settings
from lendbox.core.security import get_password_hash
from lendbox.db.base import Base
from lendbox.db.session import SessionLocal, engine
from lendbox.models.user import ROLE_ADMIN_MASTER, USER_STATUS_ACTIVE, User

logger = logging.getLogger(__name__)


def init_db():
    Base.metadata.create_all(bind=engine)
    ensure_master_admin()


def ensure_master_admin() -> None:
    db = SessionLocal()
    try:
        if db.query(User).filter(User.role == ROLE_ADMIN_MASTER, User.deleted_at.is_(None)).first():
            return

        password = settings.MASTER_ADMIN_PASSWORD or secrets.token_urlsafe(16)
        db.add(User(
            name="Master Admin",
            email=settings.MASTER_ADMIN_EMAIL,
            hashed_password=get_password_hash(password),
            role=ROLE_ADMIN_MASTER,
            status=USER_STATUS_ACTIVE,
        ))
        db.commit()
        logger.info(f"Master admin {settings.MASTER_ADMIN_EMAIL} created")

        if not settings.MASTER_ADMIN_PASSWORD:
            print("\n" + "=" * 70)
            print("MASTER ADMIN CREATED")
            print("=" * 70)
            print(f"Email:    {settings.MASTER_ADMIN_EMAIL}")
            print(f"Password: {password}")
            print("\nSECURITY: Change this password immediately after first login!")
            print("=" * 70 + "\n")
    finally:
        db.close()
