from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from lendbox.db.base import Base
from lendbox.services.storage_service import public_url

ITEM_STATUS_ACTIVE = "active"
ITEM_STATUS_INACTIVE = "inactive"

ITEM_CONDITIONS = ("good", "fair", "poor")


class Item(Base):
    """
    Borrowable item owned by one organization.

    STOCK INVARIANT: 0 <= available_stock <= stock, enforced here by CHECK
    constraints and by inventory_service, the only code that moves
    available_stock. ``stock`` is the total owned; ``available_stock`` excludes
    units held by approved (borrowed) loans and units lost on return.
    """

    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_items_stock_non_negative"),
        CheckConstraint(
            "available_stock >= 0 AND available_stock <= stock",
            name="ck_items_available_stock_bounds",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    code = Column(String(32), nullable=False, unique=True, index=True)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    stock = Column(Integer, nullable=False, default=0)
    available_stock = Column(Integer, nullable=False, default=0)
    condition = Column(String(16), nullable=False, default="good")  # good | fair | poor
    image = Column(String(512), nullable=True)  # storage path
    is_loanable = Column(Boolean, nullable=False, default=False)
    not_loanable_reason = Column(Text, nullable=True)  # required when is_loanable is False
    status = Column(String(16), nullable=False, default=ITEM_STATUS_ACTIVE)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    organization = relationship("Organization", backref="items")

    @property
    def image_url(self):
        return public_url(self.image)

    @property
    def is_available(self) -> bool:
        """Shown in the public catalogue: can at least one unit be requested right now?"""
        return bool(self.is_loanable) and self.available_stock > 0 and self.status == ITEM_STATUS_ACTIVE

    def __repr__(self):
        return f"<Item id={self.id} code={self.code} {self.available_stock}/{self.stock}>"
