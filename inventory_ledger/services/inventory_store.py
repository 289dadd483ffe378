"""Inventory item store.

Access layer for the current-state projection. Reads are plain; the two
session-level helpers ``lock_item`` and ``fetch_item`` are what the stock
and financial orchestrators build their transactions on.

Quantity and financial fields are deliberately absent from the update
operations here: they only change through the ledger services.
"""

from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_ledger.config import settings
from inventory_ledger.database import read_session, transaction, utcnow
from inventory_ledger.exceptions import DuplicateSkuError, NotFoundError
from inventory_ledger.models.inventory import InventoryItem, StockStatus
from inventory_ledger.models.stock_movement import MovementType, StockMovement
from inventory_ledger.services.margin import margin_from_cost_price, quantize_money
from inventory_ledger.services.validation import (
    require_non_negative_amount,
    require_non_negative_int,
    require_text,
)

logger = logging.getLogger(__name__)

ITEM_RESOURCE = "Inventory item"


async def fetch_item(db: AsyncSession, item_id: str) -> InventoryItem:
    """Read the row as currently stored, bypassing the identity map."""
    result = await db.execute(
        select(InventoryItem)
        .where(InventoryItem.id == item_id)
        .execution_options(populate_existing=True)
    )
    item = result.scalar_one_or_none()
    if item is None:
        raise NotFoundError(ITEM_RESOURCE, item_id)
    return item


async def lock_item(db: AsyncSession, item_id: str) -> InventoryItem:
    """Take the item's row write lock for the rest of the transaction.

    A no-op guarded UPDATE locks the row on PostgreSQL and takes the
    database write lock on SQLite, so concurrent read-modify-write
    operations on the same item serialize behind it.
    """
    result = await db.execute(
        update(InventoryItem)
        .where(InventoryItem.id == item_id)
        .values(quantity=InventoryItem.quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError(ITEM_RESOURCE, item_id)
    return await fetch_item(db, item_id)


class InventoryItemStore:
    """Item lifecycle and current-state queries."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_item(
        self,
        sku: str,
        name: str,
        quantity: int = 0,
        min_stock_level: Optional[int] = None,
        cost: Any = 0,
        price: Any = 0,
        margin: Any = None,
        location: Optional[str] = None,
        category_id: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> InventoryItem:
        """Create an item; opening stock is recorded as an INITIAL movement."""
        sku = require_text("sku", sku, 50)
        name = require_text("name", name, 255)
        quantity = require_non_negative_int("quantity", quantity)
        if min_stock_level is None:
            min_stock_level = settings.DEFAULT_MIN_STOCK_LEVEL
        min_stock_level = require_non_negative_int("min_stock_level", min_stock_level)
        cost = quantize_money(require_non_negative_amount("cost", cost) or 0)
        price = quantize_money(require_non_negative_amount("price", price) or 0)
        margin = require_non_negative_amount("margin", margin)
        margin = quantize_money(margin if margin is not None else margin_from_cost_price(cost, price))

        async with transaction(self.session_factory) as db:
            item = InventoryItem(
                sku=sku,
                name=name,
                category_id=category_id,
                location=location,
                active=True,
                quantity=quantity,
                min_stock_level=min_stock_level,
                cost=cost,
                price=price,
                margin=margin,
                last_updated=utcnow(),
            )
            db.add(item)
            try:
                await db.flush()
            except IntegrityError as e:
                if "sku" in str(e.orig).lower():
                    raise DuplicateSkuError(sku) from e
                raise

            if quantity > 0:
                db.add(
                    StockMovement(
                        inventory_item_id=item.id,
                        quantity=quantity,
                        type=MovementType.INITIAL,
                        previous_quantity=0,
                        new_quantity=quantity,
                        notes="Initial stock",
                        created_by=created_by,
                    )
                )

        logger.info(f"Created inventory item {item.id} ({item.sku}) with opening quantity {quantity}")
        return item

    async def get_item(self, item_id: str) -> InventoryItem:
        async with read_session(self.session_factory) as db:
            return await fetch_item(db, item_id)

    async def get_item_by_sku(self, sku: str) -> InventoryItem:
        async with read_session(self.session_factory) as db:
            result = await db.execute(select(InventoryItem).where(InventoryItem.sku == sku))
            item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError(ITEM_RESOURCE, sku)
        return item

    async def list_items(
        self,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
        location: Optional[str] = None,
        active: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """List items with pagination and filtering."""
        query = select(InventoryItem)

        if search:
            search_pattern = f"%{search}%"
            query = query.where((InventoryItem.sku.ilike(search_pattern)) | (InventoryItem.name.ilike(search_pattern)))
        if location:
            query = query.where(InventoryItem.location == location)
        if active is not None:
            query = query.where(InventoryItem.active == active)

        async with read_session(self.session_factory) as db:
            count_query = select(func.count()).select_from(query.subquery())
            total = (await db.execute(count_query)).scalar()

            offset = (page - 1) * page_size
            result = await db.execute(query.order_by(InventoryItem.name).offset(offset).limit(page_size))
            items = result.scalars().all()

        return {"items": list(items), "total": total, "page": page, "page_size": page_size}

    async def update_min_stock_level(self, item_id: str, min_level: int) -> InventoryItem:
        min_level = require_non_negative_int("min_stock_level", min_level)
        async with transaction(self.session_factory) as db:
            item = await lock_item(db, item_id)
            item.min_stock_level = min_level
            item.last_updated = utcnow()
        logger.info(f"Minimum stock level for {item_id} set to {min_level}")
        return item

    async def update_location(self, item_id: str, location: Optional[str]) -> InventoryItem:
        if location is not None:
            location = location.strip() or None
        async with transaction(self.session_factory) as db:
            item = await lock_item(db, item_id)
            item.location = location
            item.last_updated = utcnow()
        logger.info(f"Location for {item_id} set to {location!r}")
        return item

    async def low_stock_items(self) -> List[InventoryItem]:
        """Active items at or below their minimum stock level (out of stock included)."""
        query = (
            select(InventoryItem)
            .where(InventoryItem.quantity <= InventoryItem.min_stock_level, InventoryItem.active.is_(True))
            .order_by(InventoryItem.name)
        )
        async with read_session(self.session_factory) as db:
            return list((await db.execute(query)).scalars().all())

    async def out_of_stock_items(self) -> List[InventoryItem]:
        query = (
            select(InventoryItem)
            .where(InventoryItem.quantity == 0, InventoryItem.active.is_(True))
            .order_by(InventoryItem.name)
        )
        async with read_session(self.session_factory) as db:
            return list((await db.execute(query)).scalars().all())

    async def stock_alerts(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": item.id,
                "sku": item.sku,
                "name": item.name,
                "quantity": item.quantity,
                "min_stock_level": item.min_stock_level,
                "status": StockStatus.OUT_OF_STOCK if item.quantity == 0 else StockStatus.LOW,
            }
            for item in await self.low_stock_items()
        ]
