"""
In-app notifications for organization admins.

notify_new_loan_request runs as a FastAPI background task after the submit
response is built. It opens its own session and swallows every failure
after logging it: a borrower's request must never fail because a
notification could not be written.
"""
import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy.orm import Session

from lendbox.core.exceptions import NotFound
from lendbox.db.session import SessionLocal
from lendbox.models.loan import Loan
from lendbox.models.notification import NEW_LOAN_REQUEST, Notification
from lendbox.models.user import ROLE_ADMIN_ORG, USER_STATUS_ACTIVE, User

logger = logging.getLogger(__name__)

LATEST_LIMIT = 20


def notify_new_loan_request(loan_id: int) -> None:
    """Fire-and-forget: one notification per active admin of the loan's organization."""
    db = SessionLocal()
    try:
        loan = db.get(Loan, loan_id)
        if not loan:
            logger.warning(f"Notification skipped: loan {loan_id} not found")
            return

        admins = (
            db.query(User)
            .filter(
                User.organization_id == loan.organization_id,
                User.role == ROLE_ADMIN_ORG,
                User.status == USER_STATUS_ACTIVE,
                User.deleted_at.is_(None),
            )
            .all()
        )
        if not admins:
            logger.info(f"No admins to notify for organization {loan.organization_id}")
            return

        data = {
            "loan_id": loan.id,
            "loan_code": loan.loan_code,
            "borrower_name": loan.borrower_name,
            "item_name": loan.item.name,
            "message": f"New loan request from {loan.borrower_name}",
            "created_at": loan.created_at.isoformat() if loan.created_at else None,
        }
        for admin in admins:
            db.add(Notification(user_id=admin.id, type=NEW_LOAN_REQUEST, data=data))
        db.commit()
        logger.info(f"Notified {len(admins)} admin(s) of loan {loan.loan_code}")
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to send notification for loan {loan_id}: {e}", exc_info=True)
    finally:
        db.close()


def latest_for_user(db: Session, user_id: int, limit: int = LATEST_LIMIT) -> List[Notification]:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def unread_count(db: Session, user_id: int) -> int:
    return db.query(Notification).filter(Notification.user_id == user_id, Notification.read_at.is_(None)).count()


def mark_read(db: Session, user_id: int, notification_id: int) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if not notification:
        raise NotFound("Notification not found")
    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read_at.is_(None))
        .update({Notification.read_at: datetime.now(timezone.utc)}, synchronize_session=False)
    )
    db.commit()
    return updated
