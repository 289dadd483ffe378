"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .inventory_item import (
    InventoryItemFactory,
    LowStockItemFactory,
    OutOfStockItemFactory,
    UnpricedItemFactory,
)
from .financials import FinancialsUpdateFactory

__all__ = [
    "InventoryItemFactory",
    "LowStockItemFactory",
    "OutOfStockItemFactory",
    "UnpricedItemFactory",
    "FinancialsUpdateFactory",
]
