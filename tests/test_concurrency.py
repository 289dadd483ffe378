"""Concurrent operations on the same inventory item.

Every call uses its own session and connection from the file-backed test
database, so the guarded UPDATE and the item write lock are what serialize
them, exactly as on PostgreSQL.
"""

import asyncio
from decimal import Decimal

import pytest

from inventory_ledger.exceptions import InsufficientStockError
from inventory_ledger.models.price_history import PriceHistory
from inventory_ledger.models.stock_movement import MovementType


@pytest.mark.asyncio
async def test_concurrent_removals_never_oversell(make_item, ledger):
    item = await make_item(quantity=10)

    results = await asyncio.gather(
        *(ledger.remove_stock(item.id, 2) for _ in range(8)),
        return_exceptions=True,
    )

    successes = [r for r in results if not isinstance(r, BaseException)]
    failures = [r for r in results if isinstance(r, BaseException)]
    assert len(successes) == 5
    assert len(failures) == 3
    assert all(isinstance(f, InsufficientStockError) for f in failures)
    assert all(r.item.quantity >= 0 for r in successes)

    report = await ledger.reconcile(item.id)
    assert report["quantity"] == 0
    assert report["consistent"] is True


@pytest.mark.asyncio
async def test_each_removal_sees_a_distinct_snapshot(make_item, ledger):
    item = await make_item(quantity=6)

    results = await asyncio.gather(*(ledger.remove_stock(item.id, 1) for _ in range(6)))

    previous = sorted(r.movement.previous_quantity for r in results)
    assert previous == [1, 2, 3, 4, 5, 6]
    assert all(r.movement.new_quantity == r.movement.previous_quantity - 1 for r in results)


@pytest.mark.asyncio
async def test_mixed_concurrent_operations_reconcile(make_item, ledger):
    item = await make_item(quantity=20)

    await asyncio.gather(
        ledger.add_stock(item.id, 5),
        ledger.remove_stock(item.id, 3),
        ledger.adjust_stock(item.id, 12),
        ledger.add_stock(item.id, 1),
        ledger.remove_stock(item.id, 2),
    )

    report = await ledger.reconcile(item.id)
    assert report["consistent"] is True
    assert report["quantity"] >= 0

    history = await ledger.get_movement_history(item.id)
    adjustment = next(m for m in history if m.type == MovementType.ADJUSTMENT)
    assert adjustment.new_quantity == 12


@pytest.mark.asyncio
async def test_concurrent_price_changes_chain(make_item, financials, identity, item_store, count_rows):
    item = await make_item(cost="10", price="20")
    # Resolve the fallback actor up front so only the item row is contended
    await identity.resolve()

    prices = ["21", "22", "23", "24", "25"]
    results = await asyncio.gather(*(financials.update_financials(item.id, price=p) for p in prices))

    assert await count_rows(PriceHistory, item.id) == len(prices)
    history = await financials.get_price_history(item.id)
    # Every row starts from the value the previous writer left behind
    for newer, older in zip(history, history[1:]):
        assert newer.old_price == older.new_price
    assert history[-1].old_price == Decimal("20.00")
    assert (await item_store.get_item(item.id)).price == history[0].new_price
    assert history[0].new_price in {r.item.price for r in results}
