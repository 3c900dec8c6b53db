from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

from lendbox.schemas.user import UserBrief


class NotificationRecord(BaseModel):
    id: int
    type: str
    data: Optional[Dict[str, Any]] = None
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuditLogRecord(BaseModel):
    id: int
    user_id: Optional[int] = None
    user: Optional[UserBrief] = None
    action: str
    description: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
