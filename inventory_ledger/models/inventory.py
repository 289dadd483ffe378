"""Inventory item: the current-state projection of the stock and price ledgers."""
from sqlalchemy import CheckConstraint, Column, String, DateTime, Integer, Numeric, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import uuid

from inventory_ledger.database import Base, utcnow


class StockStatus:
    NORMAL = "normal"
    LOW = "low"
    OUT_OF_STOCK = "out_of_stock"


def stock_status(quantity: int, min_stock_level: int) -> str:
    """Classify a stock level against its reorder threshold."""
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity <= min_stock_level:
        return StockStatus.LOW
    return StockStatus.NORMAL


class InventoryItem(Base):
    """One row per stocked product.

    ``quantity`` is only ever changed by the stock ledger service together
    with a StockMovement row. ``cost``/``price``/``margin`` are only changed
    by the financial update service together with a PriceHistory row.
    """

    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        CheckConstraint("min_stock_level >= 0", name="ck_inventory_items_min_stock_non_negative"),
        CheckConstraint("cost >= 0", name="ck_inventory_items_cost_non_negative"),
        CheckConstraint("price >= 0", name="ck_inventory_items_price_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Item identification
    sku = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category_id = Column(String(36), nullable=True, index=True)
    location = Column(String(100), nullable=True)  # Bin, shelf, etc.
    active = Column(Boolean, nullable=False, default=True)

    # Stock levels
    quantity = Column(Integer, nullable=False, default=0)
    min_stock_level = Column(Integer, nullable=False, default=5)

    # Pricing (margin is persisted as written, never recomputed on read)
    cost = Column(Numeric(10, 2), nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    margin = Column(Numeric(10, 2), nullable=False, default=0)

    # Audit
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    last_updated = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now())

    movements = relationship(
        "StockMovement",
        back_populates="inventory_item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    price_history = relationship(
        "PriceHistory",
        back_populates="inventory_item",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<InventoryItem {self.sku} - {self.name}>"

    @property
    def stock_status(self) -> str:
        return stock_status(self.quantity or 0, self.min_stock_level or 0)

    @property
    def needs_reorder(self) -> bool:
        """Check if item needs to be reordered."""
        return (self.quantity or 0) <= (self.min_stock_level or 0)
