from lendbox.models.organization import Organization
from lendbox.models.user import User
from lendbox.models.item import Item
from lendbox.models.loan import Loan, LoanStatus, ReturnCondition
from lendbox.models.audit_log import AuditLogEntry
from lendbox.models.notification import Notification

__all__ = ["Organization", "User", "Item", "Loan", "LoanStatus", "ReturnCondition", "AuditLogEntry", "Notification"]
