"""Order store engine and unit-of-work sessions."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine as sa_create_async_engine,
)
from sqlalchemy.pool import StaticPool

from . import models

logger = logging.getLogger(__name__)

ASYNC_DRIVERS = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
}


def normalize_database_url(db_url: str) -> str:
    """Point plain PostgreSQL URLs at the asyncpg driver."""
    for prefix, replacement in ASYNC_DRIVERS.items():
        if db_url.startswith(prefix):
            return replacement + db_url[len(prefix):]
    return db_url


def _engine_options(url: str, pool_size: int, max_overflow: int) -> Dict[str, Any]:
    if make_url(url).get_backend_name() == "sqlite":
        # One shared connection, so an in-memory store outlives each session
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
    }


def create_async_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
) -> AsyncEngine:
    """
    Build the async engine for the order store.

    Args:
        database_url: SQLAlchemy URL; ``postgres://`` URLs are rewritten for asyncpg.
        echo: Log every SQL statement.
        pool_size: Persistent connections for server databases.
        max_overflow: Extra connections allowed under load.
    """
    url = normalize_database_url(database_url)
    return sa_create_async_engine(url, echo=echo, **_engine_options(url, pool_size, max_overflow))


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


class DatabaseManager:
    """
    Holds the one connection pool the relay uses and hands out
    transactional sessions from it.

    Example:
        database = DatabaseManager("sqlite+aiosqlite:///./payments.db")
        await database.initialize()

        async with database.session() as session:
            await PaymentRecordRepository(session).set_status("conv-1", "completed")

        await database.shutdown()
    """

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
    ):
        self.database_url = database_url
        self.echo = echo
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> Optional[AsyncEngine]:
        return self._engine

    async def initialize(self, create_tables: bool = True) -> None:
        """Open the pool; with ``create_tables`` also create any missing tables."""
        engine = create_async_engine(
            self.database_url,
            echo=self.echo,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
        )
        if create_tables:
            async with engine.begin() as conn:
                await conn.run_sync(models.Base.metadata.create_all)

        self._engine = engine
        self._sessions = create_session_factory(engine)
        logger.info(f"Order store ready ({engine.url.get_backend_name()})")

    async def shutdown(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Order store pool disposed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """One unit of work: committed when the block exits cleanly, rolled back otherwise."""
        if self._sessions is None:
            raise RuntimeError("DatabaseManager not initialized. Call initialize() first.")

        async with self._sessions() as session, session.begin():
            yield session
