"""
Audit logging for state-changing operations.

Two outputs per event:
- a JSON line on the "audit" logger (shippable to centralized logging)
- an AuditLogEntry row, browsable by the master admin

Auditing is best-effort: it runs after the operation committed, and any
failure is logged and swallowed so it never fails the triggering request.
Passwords and tokens are never included in snapshots.
"""
import enum
import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from lendbox.models.audit_log import AuditLogEntry

audit_logger = logging.getLogger("audit")
logger = logging.getLogger(__name__)

_REDACTED_FIELDS = {"hashed_password"}


def _json_safe(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def snapshot(instance: Any) -> Dict[str, Any]:
    """Column values of a model instance as a JSON-serializable dict."""
    mapper = inspect(instance).mapper
    return {
        attr.key: _json_safe(getattr(instance, attr.key))
        for attr in mapper.column_attrs
        if attr.key not in _REDACTED_FIELDS
    }


class AuditLog:
    """Central audit logging for business and security events."""

    @staticmethod
    def record(
        db: Session,
        action: str,  # "create", "update", "delete", "approve", "reject", "return_submit", "return_complete", ...
        description: str,
        entity_type: Optional[str] = None,  # "Loan", "Item", "Organization", "User"
        entity_id: Optional[int] = None,
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
        user_id: Optional[int] = None,
    ) -> Optional[AuditLogEntry]:
        """
        Record a state change. Call AFTER the change is committed.

        Usage:
            AuditLog.record(db, "approve", f"Approved loan {loan.loan_code}", "Loan", loan.id,
                            before=before, after=snapshot(loan), user_id=admin.user_id)
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": f"{(entity_type or 'system').lower()}.{action}",
            "user_id": user_id,
            "entity_id": entity_id,
            "description": description,
        }
        audit_logger.info(json.dumps(log_entry))

        try:
            entry = AuditLogEntry(
                user_id=user_id,
                action=action,
                description=description,
                entity_type=entity_type,
                entity_id=entity_id,
                old_values=before,
                new_values=after,
            )
            db.add(entry)
            db.commit()
            return entry
        except Exception:
            db.rollback()
            logger.error(f"Failed to persist audit entry {log_entry['event_type']} for {entity_id}", exc_info=True)
            return None

    @staticmethod
    def log_authentication(action: str, email: str, ip_address: str, success: bool, reason: str = ""):
        """
        Log login/logout attempts. Never includes passwords or tokens.

        Usage:
            AuditLog.log_authentication("failed_login", "a@b.org", "10.0.0.1", False, reason="Invalid password")
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": f"auth.{action}",
            "email": email,
            "ip_address": ip_address,
            "success": success,
        }
        if reason and not success:
            log_entry["reason"] = reason
        if success:
            audit_logger.info(json.dumps(log_entry))
        else:
            audit_logger.warning(json.dumps(log_entry))

    @staticmethod
    def log_access_denied(action: str, entity_type: str, entity_id: Optional[int], user_id: int, reason: str):
        """
        Log denied access attempts, e.g. an admin acting on another organization's loan.

        Usage:
            AuditLog.log_access_denied("approve", "Loan", 456, 2, "Different organization")
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_severity": "WARNING",
            "event_type": "access_denied",
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "user_id": user_id,
            "reason": reason,
        }
        audit_logger.warning(json.dumps(log_entry))
