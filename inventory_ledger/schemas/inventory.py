"""Inventory schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, computed_field
from typing import Optional

from inventory_ledger.config import settings
from inventory_ledger.services.margin import margin_category


class InventoryItemCreate(BaseModel):
    """Schema for creating an inventory item."""

    sku: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    category_id: Optional[str] = Field(None, max_length=36)
    location: Optional[str] = Field(None, max_length=100)
    quantity: int = Field(0, ge=0, description="Opening stock, recorded as an INITIAL movement")
    min_stock_level: Optional[int] = Field(None, ge=0)
    cost: Decimal = Field(Decimal("0"), ge=0)
    price: Decimal = Field(Decimal("0"), ge=0)
    margin: Optional[Decimal] = Field(None, ge=0, description="Derived from cost and price when omitted")
    created_by: Optional[str] = Field(None, max_length=100)


class InventoryItemResponse(BaseModel):
    """Schema for inventory item response."""

    id: str
    sku: str
    name: str
    category_id: Optional[str] = None
    location: Optional[str] = None
    active: bool
    quantity: int
    min_stock_level: int
    stock_status: str
    cost: Decimal
    price: Decimal
    margin: Decimal
    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    @computed_field
    @property
    def margin_category(self) -> str:
        return margin_category(self.margin, settings.MARGIN_LOW_MAX, settings.MARGIN_MEDIUM_MAX)

    class Config:
        from_attributes = True


class InventoryListResponse(BaseModel):
    """Paginated inventory list response."""

    items: list[InventoryItemResponse]
    total: int
    page: int
    page_size: int


class StockAlert(BaseModel):
    id: str
    sku: str
    name: str
    quantity: int
    min_stock_level: int
    status: str


class StockAlertListResponse(BaseModel):
    items: list[StockAlert]
    total: int


class MinStockLevelUpdate(BaseModel):
    min_level: int = Field(..., ge=0)


class LocationUpdate(BaseModel):
    location: Optional[str] = Field(None, max_length=100)


class DeletedItemSummary(BaseModel):
    id: str
    sku: str
    name: str
    quantity: int
    min_stock_level: int


class InventoryDeleteResponse(BaseModel):
    deleted: bool
    item: DeletedItemSummary
    movements_deleted: int
    price_history_deleted: int
