"""Movement ledger and stock operation orchestrator.

Each operation appends exactly one StockMovement and updates the item's
quantity in the same transaction, so ``InventoryItem.quantity`` always equals
the signed sum of the item's movements:

    INITIAL, STOCK_IN   +quantity
    STOCK_OUT           -quantity
    ADJUSTMENT          new_quantity - previous_quantity

Concurrency:
- add/remove use a single atomic UPDATE (``quantity = quantity +/- n``);
  removal is guarded by ``quantity >= n`` so two concurrent removals can
  never drive the quantity below zero.
- adjust/delete need the current value first, so they take the row lock via
  ``lock_item`` before reading.
- None of these operations is retried automatically: none is idempotent.
"""

from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional
import logging

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_ledger.database import read_session, transaction, utcnow
from inventory_ledger.exceptions import InsufficientStockError, NotFoundError
from inventory_ledger.models.inventory import InventoryItem
from inventory_ledger.models.price_history import PriceHistory
from inventory_ledger.models.stock_movement import MovementType, StockMovement
from inventory_ledger.services.inventory_store import ITEM_RESOURCE, fetch_item, lock_item
from inventory_ledger.services.validation import require_non_negative_int, require_positive_int

logger = logging.getLogger(__name__)


class StockOperationResult(NamedTuple):
    movement: Optional[StockMovement]
    item: InventoryItem


# Signed contribution of a movement row, evaluated in SQL
SIGNED_QUANTITY = case(
    (StockMovement.type == MovementType.STOCK_OUT, -StockMovement.quantity),
    (StockMovement.type == MovementType.ADJUSTMENT, StockMovement.new_quantity - StockMovement.previous_quantity),
    else_=StockMovement.quantity,
)


class StockLedgerService:
    """Atomic stock mutations plus ledger queries."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add_stock(
        self,
        item_id: str,
        quantity: int,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> StockOperationResult:
        """Receive ``quantity`` units into stock."""
        quantity = require_positive_int("quantity", quantity)

        async with transaction(self.session_factory) as db:
            result = await db.execute(
                update(InventoryItem)
                .where(InventoryItem.id == item_id)
                .values(quantity=InventoryItem.quantity + quantity, last_updated=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError(ITEM_RESOURCE, item_id)

            item = await fetch_item(db, item_id)
            movement = self._append(db, item, MovementType.STOCK_IN, quantity, item.quantity - quantity, notes, created_by)

        logger.info(f"Stock in for {item_id}: +{quantity} ({movement.previous_quantity} -> {movement.new_quantity})")
        return StockOperationResult(movement, item)

    async def remove_stock(
        self,
        item_id: str,
        quantity: int,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> StockOperationResult:
        """Take ``quantity`` units out of stock; fails without mutation if fewer are available."""
        quantity = require_positive_int("quantity", quantity)

        async with transaction(self.session_factory) as db:
            result = await db.execute(
                update(InventoryItem)
                .where(InventoryItem.id == item_id, InventoryItem.quantity >= quantity)
                .values(quantity=InventoryItem.quantity - quantity, last_updated=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                # Either the item is gone or the guard rejected the removal
                current = await fetch_item(db, item_id)
                logger.warning(
                    f"Rejected stock out for {item_id}: requested {quantity}, available {current.quantity}"
                )
                raise InsufficientStockError(item_id, requested=quantity, available=current.quantity)

            item = await fetch_item(db, item_id)
            movement = self._append(db, item, MovementType.STOCK_OUT, quantity, item.quantity + quantity, notes, created_by)

        logger.info(f"Stock out for {item_id}: -{quantity} ({movement.previous_quantity} -> {movement.new_quantity})")
        return StockOperationResult(movement, item)

    async def adjust_stock(
        self,
        item_id: str,
        new_quantity: int,
        notes: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> StockOperationResult:
        """Set the quantity to a counted value.

        The movement stores ``abs(delta)`` under the single ADJUSTMENT type;
        direction is only recoverable from its before/after snapshot. A count
        equal to the current quantity writes nothing and returns no movement.
        """
        new_quantity = require_non_negative_int("new_quantity", new_quantity)

        async with transaction(self.session_factory) as db:
            item = await lock_item(db, item_id)
            previous = item.quantity
            delta = new_quantity - previous
            if delta == 0:
                logger.info(f"Adjustment for {item_id} matches current quantity {previous}; nothing recorded")
                return StockOperationResult(None, item)

            item.quantity = new_quantity
            item.last_updated = utcnow()
            notes = notes or f"Adjusted from {previous} to {new_quantity} units"
            movement = self._append(db, item, MovementType.ADJUSTMENT, abs(delta), previous, notes, created_by)

        logger.info(f"Adjustment for {item_id}: {previous} -> {new_quantity} (delta {delta:+d})")
        return StockOperationResult(movement, item)

    async def delete_item(self, item_id: str) -> Dict[str, Any]:
        """Delete an item together with its whole ledger and price history."""
        async with transaction(self.session_factory) as db:
            item = await lock_item(db, item_id)

            movements_deleted = (await db.execute(
                delete(StockMovement).where(StockMovement.inventory_item_id == item_id)
            )).rowcount
            price_history_deleted = (await db.execute(
                delete(PriceHistory).where(PriceHistory.inventory_item_id == item_id)
            )).rowcount
            await db.execute(delete(InventoryItem).where(InventoryItem.id == item_id))

        logger.info(
            f"Deleted inventory item {item_id} ({item.sku}) with {movements_deleted} movements "
            f"and {price_history_deleted} price history rows"
        )
        return {
            "deleted": True,
            "item": {
                "id": item.id,
                "sku": item.sku,
                "name": item.name,
                "quantity": item.quantity,
                "min_stock_level": item.min_stock_level,
            },
            "movements_deleted": movements_deleted,
            "price_history_deleted": price_history_deleted,
        }

    @staticmethod
    def _append(
        db: AsyncSession,
        item: InventoryItem,
        movement_type: MovementType,
        quantity: int,
        previous_quantity: int,
        notes: Optional[str],
        created_by: Optional[str],
    ) -> StockMovement:
        movement = StockMovement(
            inventory_item_id=item.id,
            quantity=quantity,
            type=movement_type,
            previous_quantity=previous_quantity,
            new_quantity=item.quantity,
            notes=notes,
            created_by=created_by,
        )
        db.add(movement)
        return movement

    # Ledger queries

    async def get_movement_history(self, item_id: str, limit: Optional[int] = None) -> List[StockMovement]:
        """Movements for one item, newest first."""
        query = (
            select(StockMovement)
            .where(StockMovement.inventory_item_id == item_id)
            .order_by(StockMovement.date.desc(), StockMovement.id.desc())
        )
        if limit:
            query = query.limit(limit)

        async with read_session(self.session_factory) as db:
            await fetch_item(db, item_id)
            return list((await db.execute(query)).scalars().all())

    async def list_movements(
        self,
        movement_type: Optional[MovementType] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> Dict[str, Any]:
        """Movements across all items, filtered and paginated."""
        query = select(StockMovement)
        if movement_type:
            query = query.where(StockMovement.type == movement_type)
        if start_date:
            query = query.where(StockMovement.date >= start_date)
        if end_date:
            query = query.where(StockMovement.date <= end_date)

        async with read_session(self.session_factory) as db:
            total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
            offset = (page - 1) * page_size
            result = await db.execute(
                query.order_by(StockMovement.date.desc(), StockMovement.id.desc()).offset(offset).limit(page_size)
            )
            movements = result.scalars().all()

        return {"movements": list(movements), "total": total, "page": page, "page_size": page_size}

    async def reconcile(self, item_id: str) -> Dict[str, Any]:
        """Compare the stored quantity with the signed sum of the item's ledger.

        One statement, so the quantity and the ledger come from the same snapshot.
        """
        query = (
            select(
                InventoryItem.quantity,
                func.coalesce(func.sum(SIGNED_QUANTITY), 0),
                func.count(StockMovement.id),
            )
            .select_from(InventoryItem)
            .outerjoin(StockMovement, StockMovement.inventory_item_id == InventoryItem.id)
            .where(InventoryItem.id == item_id)
            .group_by(InventoryItem.id, InventoryItem.quantity)
        )
        async with read_session(self.session_factory) as db:
            row = (await db.execute(query)).first()

        if row is None:
            raise NotFoundError(ITEM_RESOURCE, item_id)

        quantity, ledger_total, movement_count = row
        consistent = int(quantity) == int(ledger_total)
        if not consistent:
            logger.error(f"Ledger drift on {item_id}: stored {quantity}, ledger {ledger_total}")
        return {
            "item_id": item_id,
            "quantity": int(quantity),
            "ledger_total": int(ledger_total),
            "movement_count": int(movement_count),
            "consistent": consistent,
        }
