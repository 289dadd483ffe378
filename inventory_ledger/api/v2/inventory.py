"""Inventory API - stock ledger and pricing operations.

Each endpoint validates primitives, calls exactly one service operation and
serializes its result. Failures propagate as InventoryException subclasses
and are rendered as RFC 7807 problems by the application handlers.
"""

from datetime import datetime
from typing import Optional
import logging

from fastapi import APIRouter, Query, status

from inventory_ledger.api.deps import Financials, ItemStore, StockLedger
from inventory_ledger.middleware.correlation import get_actor_id
from inventory_ledger.models.stock_movement import MovementType
from inventory_ledger.schemas.inventory import (
    InventoryDeleteResponse,
    InventoryItemCreate,
    InventoryItemResponse,
    InventoryListResponse,
    LocationUpdate,
    MinStockLevelUpdate,
    StockAlertListResponse,
)
from inventory_ledger.schemas.price_history import (
    FinancialsUpdate,
    FinancialsUpdateResponse,
    PriceHistoryFeedEntry,
    PriceHistoryRecord,
    PriceHistoryResponse,
)
from inventory_ledger.schemas.stock_movement import (
    ReconciliationResponse,
    StockAdjustmentRequest,
    StockMovementListResponse,
    StockMovementResponse,
    StockOperationResponse,
    StockQuantityRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def operation_to_response(result) -> StockOperationResponse:
    return StockOperationResponse(
        movement=StockMovementResponse.model_validate(result.movement) if result.movement else None,
        item=InventoryItemResponse.model_validate(result.item),
    )


@router.get("", response_model=InventoryListResponse)
async def list_inventory(
    store: ItemStore,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,  # Search by SKU or name
    location: Optional[str] = None,
    active: Optional[bool] = None,
):
    """List inventory items with pagination and filtering."""
    result = await store.list_items(page=page, page_size=page_size, search=search, location=location, active=active)
    return {
        **result,
        "items": [InventoryItemResponse.model_validate(i) for i in result["items"]],
    }


@router.post("", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(item_data: InventoryItemCreate, store: ItemStore):
    """Create a new inventory item with its opening stock."""
    item = await store.create_item(**item_data.model_dump())
    return InventoryItemResponse.model_validate(item)


@router.get("/alerts", response_model=StockAlertListResponse)
async def get_stock_alerts(store: ItemStore):
    """Get all active items at or below their minimum stock level."""
    alerts = await store.stock_alerts()
    return {"items": alerts, "total": len(alerts)}


@router.get("/movements", response_model=StockMovementListResponse)
async def list_movements(
    ledger: StockLedger,
    type: Optional[MovementType] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    """List stock movements across all items."""
    result = await ledger.list_movements(
        movement_type=type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )
    return {
        **result,
        "movements": [StockMovementResponse.model_validate(m) for m in result["movements"]],
    }


@router.get("/price-history", response_model=list[PriceHistoryFeedEntry])
async def list_price_history(
    financials: Financials,
    search: Optional[str] = None,  # Item name or SKU
    category_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    sort: str = Query("date-desc", description="date-asc, date-desc, product-asc or product-desc"),
    limit: int = Query(100, ge=1, le=100),
):
    """List recent price changes across all items."""
    history = await financials.list_price_history(
        search=search,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
        sort=sort,
        limit=limit,
    )
    return [PriceHistoryFeedEntry.model_validate(h) for h in history]


@router.get("/sku/{sku}", response_model=InventoryItemResponse)
async def get_inventory_by_sku(sku: str, store: ItemStore):
    """Get an inventory item by SKU."""
    return InventoryItemResponse.model_validate(await store.get_item_by_sku(sku))


@router.get("/{item_id}", response_model=InventoryItemResponse)
async def get_inventory_item(item_id: str, store: ItemStore):
    """Get a single inventory item by ID."""
    return InventoryItemResponse.model_validate(await store.get_item(item_id))


@router.post("/{item_id}/add-stock", response_model=StockOperationResponse)
async def add_stock(item_id: str, body: StockQuantityRequest, ledger: StockLedger):
    """Receive units into stock."""
    result = await ledger.add_stock(item_id, body.quantity, notes=body.notes, created_by=body.created_by)
    return operation_to_response(result)


@router.post("/{item_id}/remove-stock", response_model=StockOperationResponse)
async def remove_stock(item_id: str, body: StockQuantityRequest, ledger: StockLedger):
    """Take units out of stock."""
    result = await ledger.remove_stock(item_id, body.quantity, notes=body.notes, created_by=body.created_by)
    return operation_to_response(result)


@router.post("/{item_id}/adjust-stock", response_model=StockOperationResponse)
async def adjust_stock(item_id: str, body: StockAdjustmentRequest, ledger: StockLedger):
    """Set stock to a counted quantity."""
    result = await ledger.adjust_stock(item_id, body.new_quantity, notes=body.notes, created_by=body.created_by)
    return operation_to_response(result)


@router.delete("/{item_id}", response_model=InventoryDeleteResponse)
async def delete_inventory_item(item_id: str, ledger: StockLedger):
    """Delete an inventory item together with its movements and price history."""
    return await ledger.delete_item(item_id)


@router.get("/{item_id}/movements", response_model=list[StockMovementResponse])
async def get_item_movements(
    item_id: str,
    ledger: StockLedger,
    limit: Optional[int] = Query(None, ge=1, le=500),
):
    """Get the movement history for an inventory item."""
    movements = await ledger.get_movement_history(item_id, limit=limit)
    return [StockMovementResponse.model_validate(m) for m in movements]


@router.get("/{item_id}/reconcile", response_model=ReconciliationResponse)
async def reconcile_item(item_id: str, ledger: StockLedger):
    """Check the stored quantity against the movement ledger."""
    return await ledger.reconcile(item_id)


@router.patch("/{item_id}/financials", response_model=FinancialsUpdateResponse)
async def update_financials(item_id: str, body: FinancialsUpdate, financials: Financials):
    """Update price, cost and/or margin, recording price history on real changes."""
    actor_id = body.user_id if body.user_id is not None else get_actor_id()
    result = await financials.update_financials(
        item_id,
        price=body.price,
        cost=body.cost,
        margin=body.margin,
        change_reason=body.change_reason,
        actor_id=actor_id,
    )
    if not result.updated:
        return {"success": True, "message": "No financial data provided for update."}

    return {
        "success": True,
        "message": "Inventory item financials updated successfully.",
        "data": InventoryItemResponse.model_validate(result.item),
        "price_history": PriceHistoryRecord.model_validate(result.price_history) if result.price_history else None,
    }


@router.get("/{item_id}/price-history", response_model=list[PriceHistoryResponse])
async def get_price_history(
    item_id: str,
    financials: Financials,
    limit: Optional[int] = Query(None, ge=1, le=500),
):
    """Get the price history for an inventory item, newest first."""
    history = await financials.get_price_history(item_id, limit=limit)
    return [PriceHistoryResponse.model_validate(h) for h in history]


@router.patch("/{item_id}/min-level", response_model=InventoryItemResponse)
async def update_min_level(item_id: str, body: MinStockLevelUpdate, store: ItemStore):
    """Update the reorder threshold for an item."""
    return InventoryItemResponse.model_validate(await store.update_min_stock_level(item_id, body.min_level))


@router.patch("/{item_id}/location", response_model=InventoryItemResponse)
async def update_location(item_id: str, body: LocationUpdate, store: ItemStore):
    """Update where an item is stored."""
    return InventoryItemResponse.model_validate(await store.update_location(item_id, body.location))
