# Services module
from inventory_ledger.services.inventory_store import InventoryItemStore
from inventory_ledger.services.stock_ledger import StockLedgerService, StockOperationResult
from inventory_ledger.services.financials import FinancialUpdateService, FinancialUpdateResult
from inventory_ledger.services.identity import IdentityResolver, UserIdentityResolver

__all__ = [
    "InventoryItemStore",
    "StockLedgerService",
    "StockOperationResult",
    "FinancialUpdateService",
    "FinancialUpdateResult",
    "IdentityResolver",
    "UserIdentityResolver",
]
