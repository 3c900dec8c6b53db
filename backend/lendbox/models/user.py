from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from lendbox.db.base import Base

ROLE_ADMIN_MASTER = "admin_master"
ROLE_ADMIN_ORG = "admin_org"

USER_STATUS_ACTIVE = "active"
USER_STATUS_SUSPENDED = "suspended"


class User(Base):
    """Admin account. Borrowers never log in, so every user is an admin."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default=ROLE_ADMIN_ORG)
    # NULL for the master admin; required for organization admins
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True)
    phone = Column(String(32), nullable=True)
    status = Column(String(16), nullable=False, default=USER_STATUS_ACTIVE)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    organization = relationship("Organization", backref="users")

    def is_admin_master(self) -> bool:
        return self.role == ROLE_ADMIN_MASTER

    def is_admin_org(self) -> bool:
        return self.role == ROLE_ADMIN_ORG

    def is_active_account(self) -> bool:
        return self.status == USER_STATUS_ACTIVE and self.deleted_at is None

    @property
    def role_label(self) -> str:
        return {ROLE_ADMIN_MASTER: "Master Admin", ROLE_ADMIN_ORG: "Organization Admin"}.get(
            self.role, self.role.title()
        )
