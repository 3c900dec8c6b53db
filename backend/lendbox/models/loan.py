"""
Loan: one borrow request for one item by one (unauthenticated) borrower.

Status flow:
    PENDING -> REJECTED | BORROWED
    BORROWED -> RETURN_PENDING
    RETURN_PENDING -> COMPLETED | COMPLETED_DAMAGED | COMPLETED_LOST

Statuses only change through loan_service, which applies every transition
as a conditional UPDATE keyed on the expected current status.
"""
import enum

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from lendbox.db.base import Base
from lendbox.services.storage_service import public_url


class LoanStatus(str, enum.Enum):
    PENDING = "pending"
    REJECTED = "rejected"
    BORROWED = "borrowed"
    RETURN_PENDING = "return_pending"
    COMPLETED = "completed"
    COMPLETED_DAMAGED = "completed_damaged"
    COMPLETED_LOST = "completed_lost"

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @property
    def color(self) -> str:
        return STATUS_COLORS[self]


class ReturnCondition(str, enum.Enum):
    """Outcome of the admin's return check."""

    NORMAL = "normal"
    DAMAGED = "damaged"
    LOST = "lost"


# Must name every LoanStatus member; terminal statuses map to an empty set.
ALLOWED_TRANSITIONS = {
    LoanStatus.PENDING: frozenset({LoanStatus.REJECTED, LoanStatus.BORROWED}),
    LoanStatus.BORROWED: frozenset({LoanStatus.RETURN_PENDING}),
    LoanStatus.RETURN_PENDING: frozenset(
        {LoanStatus.COMPLETED, LoanStatus.COMPLETED_DAMAGED, LoanStatus.COMPLETED_LOST}
    ),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.COMPLETED: frozenset(),
    LoanStatus.COMPLETED_DAMAGED: frozenset(),
    LoanStatus.COMPLETED_LOST: frozenset(),
}

COMPLETION_STATUS = {
    ReturnCondition.NORMAL: LoanStatus.COMPLETED,
    ReturnCondition.DAMAGED: LoanStatus.COMPLETED_DAMAGED,
    ReturnCondition.LOST: LoanStatus.COMPLETED_LOST,
}

ACTIVE_STATUSES = (LoanStatus.PENDING, LoanStatus.BORROWED, LoanStatus.RETURN_PENDING)
COMPLETED_STATUSES = (LoanStatus.COMPLETED, LoanStatus.COMPLETED_DAMAGED, LoanStatus.COMPLETED_LOST)

STATUS_LABELS = {
    LoanStatus.PENDING: "Awaiting Verification",
    LoanStatus.REJECTED: "Rejected",
    LoanStatus.BORROWED: "Borrowed",
    LoanStatus.RETURN_PENDING: "Awaiting Return Check",
    LoanStatus.COMPLETED: "Completed",
    LoanStatus.COMPLETED_DAMAGED: "Completed (Damaged)",
    LoanStatus.COMPLETED_LOST: "Completed (Lost)",
}

STATUS_COLORS = {
    LoanStatus.PENDING: "yellow",
    LoanStatus.REJECTED: "red",
    LoanStatus.BORROWED: "blue",
    LoanStatus.RETURN_PENDING: "orange",
    LoanStatus.COMPLETED: "green",
    LoanStatus.COMPLETED_DAMAGED: "red",
    LoanStatus.COMPLETED_LOST: "red",
}


def can_transition(current: LoanStatus, target: LoanStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (CheckConstraint("quantity >= 1", name="ck_loans_quantity_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    loan_code = Column(String(32), nullable=False, unique=True, index=True)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)

    # Borrower (no account)
    borrower_name = Column(String(255), nullable=False)
    borrower_phone = Column(String(32), nullable=False)
    borrower_class = Column(String(100), nullable=True)
    borrower_organization = Column(String(255), nullable=True)
    borrower_photo = Column(String(512), nullable=False)  # storage path of the live photo
    loan_purpose = Column(Text, nullable=True)

    quantity = Column(Integer, nullable=False, default=1)
    status = Column(
        Enum(
            LoanStatus,
            name="loan_status",
            native_enum=False,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=LoanStatus.PENDING,
        index=True,
    )
    loan_date = Column(DateTime(timezone=True), server_default=func.now())
    expected_return_date = Column(DateTime(timezone=True), nullable=True)  # informational only
    actual_return_date = Column(DateTime(timezone=True), nullable=True)

    # Return submission
    return_photo = Column(String(512), nullable=True)
    return_condition_notes = Column(Text, nullable=True)

    # Verification checkpoints
    verified_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    return_checked_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    return_checked_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)  # soft delete only

    item = relationship("Item", backref="loans")
    organization = relationship("Organization", backref="loans")
    verifier = relationship("User", foreign_keys=[verified_by])
    return_checker = relationship("User", foreign_keys=[return_checked_by])

    @property
    def status_label(self) -> str:
        return self.status.label

    @property
    def status_color(self) -> str:
        return self.status.color

    @property
    def borrower_photo_url(self):
        return public_url(self.borrower_photo)

    @property
    def return_photo_url(self):
        return public_url(self.return_photo)

    @property
    def can_return(self) -> bool:
        return self.status == LoanStatus.BORROWED

    def __repr__(self):
        return f"<Loan {self.loan_code} status={self.status.value if self.status else None}>"
