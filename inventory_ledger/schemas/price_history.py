"""Financial update and price history schemas."""

from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional

from inventory_ledger.schemas.inventory import InventoryItemResponse


class FinancialsUpdate(BaseModel):
    """Partial financial update; omitted fields stay unchanged."""

    price: Optional[Decimal] = Field(None, ge=0)
    cost: Optional[Decimal] = Field(None, ge=0)
    margin: Optional[Decimal] = Field(None, ge=0)
    change_reason: Optional[str] = Field(None, max_length=255)
    user_id: Optional[int] = Field(None, description="Acting user; falls back to the request identity, then the system user")


class PriceHistoryUser(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    display_name: str

    class Config:
        from_attributes = True


class PriceHistoryRecord(BaseModel):
    """A price history row as written."""

    id: str
    inventory_item_id: str
    old_price: Optional[Decimal] = None
    new_price: Optional[Decimal] = None
    old_cost: Optional[Decimal] = None
    new_cost: Optional[Decimal] = None
    old_margin: Optional[Decimal] = None
    new_margin: Optional[Decimal] = None
    change_reason: Optional[str] = None
    user_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PriceHistoryResponse(PriceHistoryRecord):
    """A price history row with the acting user."""

    user: Optional[PriceHistoryUser] = None


class PriceHistoryItem(BaseModel):
    id: str
    sku: str
    name: str
    category_id: Optional[str] = None

    class Config:
        from_attributes = True


class PriceHistoryFeedEntry(PriceHistoryResponse):
    """A price history row with the item it belongs to, for the cross-item feed."""

    inventory_item: PriceHistoryItem


class FinancialsUpdateResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[InventoryItemResponse] = None
    price_history: Optional[PriceHistoryRecord] = None
