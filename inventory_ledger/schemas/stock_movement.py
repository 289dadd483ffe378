"""Stock movement schemas."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional

from inventory_ledger.models.stock_movement import MovementType
from inventory_ledger.schemas.inventory import InventoryItemResponse


class StockQuantityRequest(BaseModel):
    """Body for add-stock and remove-stock."""

    quantity: int = Field(..., gt=0, description="Units to add or remove")
    notes: Optional[str] = None
    created_by: Optional[str] = Field(None, max_length=100)


class StockAdjustmentRequest(BaseModel):
    """Body for adjust-stock: the counted quantity, not a delta."""

    new_quantity: int = Field(..., ge=0)
    notes: Optional[str] = None
    created_by: Optional[str] = Field(None, max_length=100)


class StockMovementResponse(BaseModel):
    id: str
    inventory_item_id: str
    quantity: int
    type: MovementType
    previous_quantity: int
    new_quantity: int
    signed_quantity: int
    date: datetime
    notes: Optional[str] = None
    created_by: Optional[str] = None

    class Config:
        from_attributes = True


class StockOperationResponse(BaseModel):
    """Result of a stock operation. ``movement`` is null for a zero-delta adjustment."""

    movement: Optional[StockMovementResponse] = None
    item: InventoryItemResponse


class StockMovementListResponse(BaseModel):
    movements: list[StockMovementResponse]
    total: int
    page: int
    page_size: int


class ReconciliationResponse(BaseModel):
    item_id: str
    quantity: int
    ledger_total: int
    movement_count: int
    consistent: bool
