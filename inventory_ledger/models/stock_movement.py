"""Stock movement: append-only ledger entry for one quantity change."""
import enum
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from inventory_ledger.database import Base, utcnow


class MovementType(str, enum.Enum):
    STOCK_IN = "STOCK_IN"
    STOCK_OUT = "STOCK_OUT"
    ADJUSTMENT = "ADJUSTMENT"
    INITIAL = "INITIAL"


class StockMovement(Base):
    """Immutable record of a quantity change.

    ``quantity`` is always the absolute magnitude. ADJUSTMENT rows do not
    encode direction in their type; the ``previous_quantity`` and
    ``new_quantity`` snapshots do.
    """

    __tablename__ = "stock_movements"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    inventory_item_id = Column(
        String(36),
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quantity = Column(Integer, nullable=False)
    type = Column(Enum(MovementType, name="movement_type"), nullable=False, index=True)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), index=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=True)

    inventory_item = relationship("InventoryItem", back_populates="movements")

    def __repr__(self):
        return f"<StockMovement {self.type.value} {self.quantity} item={self.inventory_item_id}>"

    @property
    def signed_quantity(self) -> int:
        """Contribution of this movement to the item's quantity."""
        if self.type == MovementType.STOCK_OUT:
            return -self.quantity
        if self.type == MovementType.ADJUSTMENT:
            return self.new_quantity - self.previous_quantity
        return self.quantity
