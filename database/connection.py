"""
Lokale Datenbank-Verbindung für das Order Board.

Hält den SQLite-Fallback-Store, der einspringt, wenn der Remote-Store nicht
erreichbar ist.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from database.tables import Base

logger = logging.getLogger(__name__)


class Database:
    """
    Async database connection for the local fallback store.

    One instance per store; the owner decides its lifetime.

    Usage:
        db = Database("sqlite+aiosqlite:///order_board.db")
        await db.create_tables()
        async with db.session() as session:
            result = await session.execute(select(OrderRow))
    """

    def __init__(self, database_url: str, *, echo: bool = False):
        # Plain sqlite:// URLs get the async driver
        if database_url.startswith("sqlite://"):
            database_url = database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        self.database_url = database_url

        self.engine: AsyncEngine = create_async_engine(self.database_url, echo=echo)
        self.AsyncSessionLocal = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("[Database] Configured: %s", self._mask_url(self.database_url))

    def session(self) -> AsyncSession:
        """Returns new async session"""
        return self.AsyncSessionLocal()

    async def create_tables(self) -> None:
        """Create missing tables. Safe to call on every startup."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        """Close all connections"""
        await self.engine.dispose()
        logger.info("[Database] Connections closed")

    def _mask_url(self, url: str) -> str:
        """Mask password in URL for logging"""
        if "@" in url:
            parts = url.split("@")
            return f"***@{parts[1]}"
        return url
