"""
AuditLogEntry: persisted trail of state-changing operations.

Written best-effort by core.audit.AuditLog.record after the operation has
committed; a failed audit write never undoes or fails the operation.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from lendbox.db.base import Base


class AuditLogEntry(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(64), nullable=False, index=True)  # create, update, approve, reject, return_complete, ...
    description = Column(Text, nullable=False)
    entity_type = Column(String(64), nullable=True, index=True)  # Loan, Item, Organization, User
    entity_id = Column(Integer, nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
