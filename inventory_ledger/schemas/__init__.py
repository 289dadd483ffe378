from inventory_ledger.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemResponse,
    InventoryListResponse,
    InventoryDeleteResponse,
    StockAlertListResponse,
)
from inventory_ledger.schemas.stock_movement import (
    StockQuantityRequest,
    StockAdjustmentRequest,
    StockMovementResponse,
    StockOperationResponse,
    StockMovementListResponse,
    ReconciliationResponse,
)
from inventory_ledger.schemas.price_history import (
    FinancialsUpdate,
    FinancialsUpdateResponse,
    PriceHistoryResponse,
    PriceHistoryFeedEntry,
)
