"""Database connection and session management."""
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pawapay_marketplace.database.models import Base

logger = structlog.get_logger(__name__)


class Database:
    """
    Owns the async engine and session factory for one process.

    Constructed once by the application factory (or a test fixture) and
    handed to every store, instead of living in module globals.

    Example:
        db = Database("postgresql+asyncpg://localhost/marketplace")
        async with db.session() as session:
            ...
        await db.dispose()
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        engine: Optional[AsyncEngine] = None,
        **engine_kwargs: Any,
    ):
        if engine is None:
            if not url.startswith("sqlite"):
                engine_kwargs.setdefault("pool_pre_ping", True)  # Verify connections before using
                engine_kwargs.setdefault("pool_recycle", 3600)
            engine = create_async_engine(url, echo=echo, **engine_kwargs)
        self.engine = engine
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Session scope that commits on success and rolls back on error.

        Yields:
            AsyncSession: Database session
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        """
        Initialize database tables.

        Creates all tables defined in models if they don't exist.
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_ensured")

    async def dispose(self) -> None:
        """Close database connections and dispose of the engine."""
        await self.engine.dispose()
        logger.info("database_connections_closed")
