"""Notifications for the logged-in admin."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from lendbox.api.deps import get_current_user, get_db
from lendbox.models.user import User
from lendbox.schemas.common import envelope
from lendbox.schemas.records import NotificationRecord
from lendbox.services import notification_service

router = APIRouter()


@router.get("")
def list_notifications(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Latest 20, newest first."""
    notifications = notification_service.latest_for_user(db, current_user.id)
    return envelope([NotificationRecord.model_validate(n) for n in notifications])


@router.get("/unread-count")
def unread_count(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return envelope({"count": notification_service.unread_count(db, current_user.id)})


@router.put("/read-all")
def mark_all_read(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    updated = notification_service.mark_all_read(db, current_user.id)
    return envelope({"updated": updated})


@router.put("/{notification_id}/read")
def mark_read(notification_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    notification = notification_service.mark_read(db, current_user.id, notification_id)
    return envelope(NotificationRecord.model_validate(notification))
