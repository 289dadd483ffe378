"""
FastAPI Dependencies

Provides the session factory and the ledger services built on it. Services
own their transactions, so endpoints never receive a raw session.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory_ledger.database import get_session_maker
from inventory_ledger.services.financials import FinancialUpdateService
from inventory_ledger.services.identity import UserIdentityResolver
from inventory_ledger.services.inventory_store import InventoryItemStore
from inventory_ledger.services.stock_ledger import StockLedgerService

SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)]


def get_item_store(session_factory: SessionFactory) -> InventoryItemStore:
    return InventoryItemStore(session_factory)


def get_stock_ledger(session_factory: SessionFactory) -> StockLedgerService:
    return StockLedgerService(session_factory)


def get_financial_service(session_factory: SessionFactory) -> FinancialUpdateService:
    return FinancialUpdateService(session_factory, UserIdentityResolver(session_factory))


# Type aliases for dependency injection
ItemStore = Annotated[InventoryItemStore, Depends(get_item_store)]
StockLedger = Annotated[StockLedgerService, Depends(get_stock_ledger)]
Financials = Annotated[FinancialUpdateService, Depends(get_financial_service)]
