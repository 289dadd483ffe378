from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from uuid import uuid4
from inventory_ledger.database import Base, utcnow


class PriceHistory(Base):
    """Audit trail for financial field changes on an inventory item."""

    __tablename__ = "price_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    inventory_item_id = Column(
        String(36),
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    old_price = Column(Numeric(10, 2), nullable=True)
    new_price = Column(Numeric(10, 2), nullable=True)
    old_cost = Column(Numeric(10, 2), nullable=True)
    new_cost = Column(Numeric(10, 2), nullable=True)
    old_margin = Column(Numeric(10, 2), nullable=True)
    new_margin = Column(Numeric(10, 2), nullable=True)
    change_reason = Column(String(255), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), index=True)

    inventory_item = relationship("InventoryItem", back_populates="price_history")
    user = relationship("User", back_populates="price_changes")

    def __repr__(self):
        return f"<PriceHistory {self.id} item={self.inventory_item_id} price={self.old_price}->{self.new_price}>"
