"""Financial update orchestrator.

Updates an item's price/cost/margin and, only when the row as written differs
from what was stored, appends one PriceHistory row in the same transaction.
"""

from decimal import Decimal
from datetime import datetime
from typing import Any, List, NamedTuple, Optional
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import contains_eager, selectinload

from inventory_ledger.config import settings
from inventory_ledger.database import read_session, transaction, utcnow
from inventory_ledger.models.inventory import InventoryItem
from inventory_ledger.models.price_history import PriceHistory
from inventory_ledger.services.identity import IdentityResolver
from inventory_ledger.services.inventory_store import fetch_item, lock_item
from inventory_ledger.services.margin import (
    margin_from_cost_price,
    price_from_cost_margin,
    quantize_money,
)
from inventory_ledger.services.validation import require_non_negative_amount

logger = logging.getLogger(__name__)

PRICE_HISTORY_FEED_LIMIT = 100

PRICE_HISTORY_SORTS = {
    "date-asc": (PriceHistory.created_at.asc(), PriceHistory.id.asc()),
    "date-desc": (PriceHistory.created_at.desc(), PriceHistory.id.desc()),
    "product-asc": (InventoryItem.name.asc(), PriceHistory.created_at.desc()),
    "product-desc": (InventoryItem.name.desc(), PriceHistory.created_at.desc()),
}


class FinancialValues(NamedTuple):
    price: Decimal
    cost: Decimal
    margin: Decimal


class FinancialUpdateResult(NamedTuple):
    item: Optional[InventoryItem]
    price_history: Optional[PriceHistory]
    updated: bool


def derive_financials(
    current: FinancialValues,
    price: Optional[Decimal] = None,
    cost: Optional[Decimal] = None,
    margin: Optional[Decimal] = None,
) -> FinancialValues:
    """Fill in the fields the caller did not provide so price and margin stay consistent.

    - margin without price: price follows from cost and margin
    - price without margin: margin follows from cost and price
    - cost alone: the stored margin is kept and price follows
    - all three: persisted exactly as given
    """
    new_cost = cost if cost is not None else current.cost

    if price is not None and margin is not None:
        new_price, new_margin = price, margin
    elif margin is not None:
        new_price, new_margin = price_from_cost_margin(new_cost, margin), margin
    elif price is not None:
        new_price, new_margin = price, margin_from_cost_price(new_cost, price)
    elif cost is not None:
        new_price, new_margin = price_from_cost_margin(new_cost, current.margin), current.margin
    else:
        new_price, new_margin = current.price, current.margin

    return FinancialValues(
        price=quantize_money(new_price),
        cost=quantize_money(new_cost),
        margin=quantize_money(new_margin),
    )


def _stored(item: InventoryItem) -> FinancialValues:
    return FinancialValues(
        price=quantize_money(item.price or 0),
        cost=quantize_money(item.cost or 0),
        margin=quantize_money(item.margin or 0),
    )


class FinancialUpdateService:
    """Price, cost and margin changes with their audit trail."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        identity_resolver: IdentityResolver,
    ):
        self.session_factory = session_factory
        self.identity_resolver = identity_resolver

    async def update_financials(
        self,
        item_id: str,
        price: Any = None,
        cost: Any = None,
        margin: Any = None,
        change_reason: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> FinancialUpdateResult:
        """
        Apply a financial update to an inventory item.

        Args:
            item_id: Inventory item to update
            price, cost, margin: New values; ``None`` leaves a field unchanged
            change_reason: Recorded on the history row
            actor_id: Caller identity; the system user when absent

        Returns:
            FinancialUpdateResult. ``updated`` is False only when no field
            was provided, which is a successful no-op.
        """
        provided = {
            "price": require_non_negative_amount("price", price),
            "cost": require_non_negative_amount("cost", cost),
            "margin": require_non_negative_amount("margin", margin),
        }
        provided = {field: quantize_money(value) for field, value in provided.items() if value is not None}
        if not provided:
            logger.info(f"No financial data provided for {item_id}; nothing to update")
            return FinancialUpdateResult(item=None, price_history=None, updated=False)

        async with read_session(self.session_factory) as db:
            await fetch_item(db, item_id)
        user_id = await self.identity_resolver.resolve(actor_id)

        async with transaction(self.session_factory) as db:
            item = await lock_item(db, item_id)
            old = _stored(item)
            # Re-sending stored values must not re-derive the other fields
            if any(value != getattr(old, field) for field, value in provided.items()):
                new = derive_financials(old, **provided)
            else:
                new = old
            has_change = new != old

            item.price = new.price
            item.cost = new.cost
            item.margin = new.margin
            item.last_updated = utcnow()

            history = None
            if has_change:
                history = PriceHistory(
                    inventory_item_id=item.id,
                    old_price=old.price,
                    new_price=new.price,
                    old_cost=old.cost,
                    new_cost=new.cost,
                    old_margin=old.margin,
                    new_margin=new.margin,
                    change_reason=change_reason or settings.DEFAULT_CHANGE_REASON,
                    user_id=user_id,
                )
                db.add(history)

        if has_change:
            logger.info(
                f"Financials for {item_id} updated by user {user_id}: "
                f"price {old.price} -> {new.price}, cost {old.cost} -> {new.cost}, "
                f"margin {old.margin} -> {new.margin}"
            )
        else:
            logger.info(f"Financials for {item_id} unchanged; no history recorded")
        return FinancialUpdateResult(item=item, price_history=history, updated=True)

    async def get_price_history(self, item_id: str, limit: Optional[int] = None) -> List[PriceHistory]:
        """Price history for one item, newest first, with the acting user loaded."""
        query = (
            select(PriceHistory)
            .options(selectinload(PriceHistory.user))
            .where(PriceHistory.inventory_item_id == item_id)
            .order_by(PriceHistory.created_at.desc(), PriceHistory.id.desc())
        )
        if limit:
            query = query.limit(limit)

        async with read_session(self.session_factory) as db:
            await fetch_item(db, item_id)
            return list((await db.execute(query)).scalars().all())

    async def list_price_history(
        self,
        search: Optional[str] = None,
        category_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        sort: str = "date-desc",
        limit: int = PRICE_HISTORY_FEED_LIMIT,
    ) -> List[PriceHistory]:
        """Price changes across all items, with item and user details.

        ``sort`` is one of date-asc, date-desc, product-asc, product-desc;
        anything else falls back to date-desc. At most 100 rows are returned.
        """
        query = (
            select(PriceHistory)
            .join(PriceHistory.inventory_item)
            .options(contains_eager(PriceHistory.inventory_item), selectinload(PriceHistory.user))
        )
        if search:
            search_pattern = f"%{search}%"
            query = query.where((InventoryItem.name.ilike(search_pattern)) | (InventoryItem.sku.ilike(search_pattern)))
        if category_id and category_id != "all":
            query = query.where(InventoryItem.category_id == category_id)
        if start_date:
            query = query.where(PriceHistory.created_at >= start_date)
        if end_date:
            query = query.where(PriceHistory.created_at <= end_date)

        order_by = PRICE_HISTORY_SORTS.get(sort, PRICE_HISTORY_SORTS["date-desc"])
        limit = max(1, min(limit, PRICE_HISTORY_FEED_LIMIT))

        async with read_session(self.session_factory) as db:
            result = await db.execute(query.order_by(*order_by).limit(limit))
            return list(result.scalars().all())
