import os
import sqlite3

# Settings are read once at import time; point them at a throwaway backend
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event, func, select
from sqlalchemy.exc import OperationalError

from inventory_ledger.main import app
from inventory_ledger.database import build_engine, build_session_maker, get_session_maker, init_db
from inventory_ledger.models.user import User
from inventory_ledger.services.financials import FinancialUpdateService
from inventory_ledger.services.identity import UserIdentityResolver
from inventory_ledger.services.inventory_store import InventoryItemStore
from inventory_ledger.services.stock_ledger import StockLedgerService

from tests.factories import InventoryItemFactory


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """File-backed SQLite database per test.

    A file (not ``:memory:``) so that concurrent operations each get their
    own connection and contend for the write lock the way they would on
    PostgreSQL.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return build_session_maker(test_engine)


@pytest.fixture
def item_store(session_maker):
    return InventoryItemStore(session_maker)


@pytest.fixture
def ledger(session_maker):
    return StockLedgerService(session_maker)


@pytest.fixture
def identity(session_maker):
    return UserIdentityResolver(session_maker)


@pytest.fixture
def financials(session_maker, identity):
    return FinancialUpdateService(session_maker, identity)


@pytest.fixture
def make_item(item_store):
    """Create an inventory item from factory data, with overrides."""

    async def _make(**overrides):
        return await item_store.create_item(**InventoryItemFactory(**overrides))

    return _make


@pytest.fixture
def count_rows(session_maker):
    """Count ledger rows, optionally for one item."""

    async def _count(model, item_id=None):
        query = select(func.count()).select_from(model)
        if item_id is not None:
            query = query.where(model.inventory_item_id == item_id)
        async with session_maker() as db:
            return (await db.execute(query)).scalar()

    return _count


@pytest.fixture
def failing_statements(test_engine):
    """Make statements starting with a given prefix fail in the driver.

    Usage:
        failing_statements("INSERT INTO price_history", "disk I/O error")
    """
    installed = []

    def _install(prefix, message):
        def _fail(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith(prefix.upper()):
                raise OperationalError(statement, parameters, sqlite3.OperationalError(message))

        event.listen(test_engine.sync_engine, "before_cursor_execute", _fail)
        installed.append(_fail)

    yield _install

    for listener in installed:
        event.remove(test_engine.sync_engine, "before_cursor_execute", listener)


@pytest_asyncio.fixture
async def test_user(session_maker):
    """A regular (non-system) user to attribute changes to."""
    async with session_maker() as db:
        user = User(
            email="buyer@example.com",
            first_name="Test",
            last_name="Buyer",
            is_active=True,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def client(session_maker):
    """Create test client bound to the per-test database."""
    app.dependency_overrides[get_session_maker] = lambda: session_maker

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

