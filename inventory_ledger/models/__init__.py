from inventory_ledger.models.user import User
from inventory_ledger.models.inventory import InventoryItem, StockStatus, stock_status
from inventory_ledger.models.stock_movement import StockMovement, MovementType
from inventory_ledger.models.price_history import PriceHistory

__all__ = [
    "User",
    "InventoryItem",
    "StockStatus",
    "stock_status",
    "StockMovement",
    "MovementType",
    "PriceHistory",
]
