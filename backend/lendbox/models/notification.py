from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from lendbox.db.base import Base

NEW_LOAN_REQUEST = "new_loan_request"


class Notification(Base):
    """In-app notification, one row per recipient admin."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(64), nullable=False)
    data = Column(JSON, nullable=True)  # loan_id, loan_code, borrower_name, item_name, message
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
