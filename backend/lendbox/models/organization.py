from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from lendbox.db.base import Base
from lendbox.services.storage_service import public_url

ORG_STATUS_ACTIVE = "active"
ORG_STATUS_INACTIVE = "inactive"


class Organization(Base):
    """Tenant boundary: owns items, loans and its admin accounts."""

    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    logo = Column(String(512), nullable=True)  # storage path
    address = Column(Text, nullable=True)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default=ORG_STATUS_ACTIVE)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def logo_url(self):
        return public_url(self.logo)

    @property
    def is_active(self) -> bool:
        return self.status == ORG_STATUS_ACTIVE and self.deleted_at is None

    def __repr__(self):
        return f"<Organization id={self.id} slug={self.slug}>"
