"""
Domain errors for the lending core.

Every error carries an HTTP status and a message that is safe to show to the
caller. The API layer turns them into the standard JSON envelope
(``{"success": false, "message": ..., ...}``); the core never logs and
swallows them.

Internal failures (database errors, bugs) are NOT LendingErrors. They are
logged with a stack trace and answered with a generic 500.
"""
from typing import Any, Dict, Optional


class LendingError(Exception):
    """Base class for errors the caller can act on."""

    status_code: int = 400
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "message": self.message}
        payload.update(self.extra)
        return payload


class NotFound(LendingError):
    """Unknown (or soft-deleted) loan, item, organization, user or loan code."""

    status_code = 404
    default_message = "Resource not found"


class AccessDenied(LendingError):
    """Acting admin is outside the resource's organization or lacks the role."""

    status_code = 403
    default_message = "Access denied"


class AuthenticationFailed(LendingError):
    status_code = 401
    default_message = "Authentication failed"


class InvalidState(LendingError):
    """Transition attempted from a status that does not allow it."""

    status_code = 409
    default_message = "Loan is not in a state that allows this action"


class InsufficientStock(LendingError):
    status_code = 400
    default_message = "Not enough stock available"

    def __init__(self, available: int, requested: int, message: Optional[str] = None):
        super().__init__(message, available=available, requested=requested)
        self.available = available
        self.requested = requested


class ItemNotLoanable(LendingError):
    """The item's loanable flag is off; ``reason`` is the admin's explanation."""

    status_code = 400
    default_message = "This item cannot be borrowed"

    def __init__(self, reason: Optional[str] = None, message: Optional[str] = None):
        super().__init__(message, reason=reason)
        self.reason = reason


class ValidationError(LendingError):
    """Malformed input, e.g. an empty rejection reason or a bad photo payload."""

    status_code = 422
    default_message = "Invalid input"
