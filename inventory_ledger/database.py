"""
Database Configuration

SECURITY:
- SQLAlchemy echo disabled in production to prevent credential leakage
- Connection string never logged

CONSISTENCY:
- Every ledger operation runs in exactly one transaction (see ``transaction``)
- SQLite connections enforce foreign keys and wait on busy locks instead of
  failing immediately, so the test backend serializes writers like PostgreSQL
"""

import logging
import time
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from inventory_ledger.config import settings
from inventory_ledger.exceptions import translate_db_error

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_MS = settings.SLOW_QUERY_THRESHOLD_MS


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# Slow query logging
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info["query_start_time"] = time.monotonic()


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = conn.info.get("query_start_time")
    if start is None:
        return
    duration_ms = (time.monotonic() - start) * 1000
    if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
        param_count = len(parameters) if parameters else 0
        truncated = statement[:200] + ("..." if len(statement) > 200 else "")
        logger.warning(
            "Slow query (%.0fms, %d params): %s", duration_ms, param_count, truncated
        )


def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine configured for the ledger workload.

    PostgreSQL gets a bounded connection pool. SQLite gets one connection per
    session (NullPool), a busy timeout and foreign key enforcement.
    """
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            poolclass=NullPool,
            connect_args={
                "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS,
                "check_same_thread": False,
            },
        )
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragma)
    else:
        engine = create_async_engine(
            database_url,
            echo=echo,
            future=True,
            # Connection pool settings for production stability
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_recycle=3600,      # Recycle connections after 1 hour to prevent stale connections
            pool_pre_ping=True,     # Test connection validity before use
        )

    event.listen(engine.sync_engine, "before_cursor_execute", _before_cursor_execute)
    event.listen(engine.sync_engine, "after_cursor_execute", _after_cursor_execute)
    return engine


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# SECURITY: Use sqlalchemy_echo property which is disabled in production
engine = build_engine(settings.DATABASE_URL, echo=settings.sqlalchemy_echo)
logger.info("Slow query logging enabled (threshold: %dms)", SLOW_QUERY_THRESHOLD_MS)

# Session factory
async_session_maker = build_session_maker(engine)


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Open a session and run the block as one transaction.

    Commits when the block exits normally. Any exception, including task
    cancellation, rolls back everything the block wrote. Driver errors are
    translated into ``ConflictError`` or ``PersistenceError``.
    """
    async with session_factory() as session:
        try:
            async with session.begin():
                if session.bind.dialect.name == "postgresql":
                    await session.execute(
                        text(f"SET LOCAL lock_timeout = '{int(settings.LOCK_TIMEOUT_MS)}ms'")
                    )
                yield session
        except SQLAlchemyError as e:
            raise translate_db_error(e) from e


@asynccontextmanager
async def read_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Open a session for queries, translating driver errors like ``transaction``."""
    async with session_factory() as session:
        try:
            yield session
        except SQLAlchemyError as e:
            raise translate_db_error(e) from e


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Dependency providing the session factory services open transactions from."""
    return async_session_maker


async def init_db(target: AsyncEngine | None = None):
    """Initialize database tables."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def utcnow() -> datetime:
    """Timezone-aware timestamp used for ledger ordering."""
    return datetime.now(timezone.utc)
