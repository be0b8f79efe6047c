"""Async database manager for NexaConnect billing (single-DB)."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from nexaconnect_billing.common.config import BillingSettings, get_settings
from nexaconnect_billing.common.models import Base

# Import all model modules so Base.metadata is complete for create_all().
import nexaconnect_billing.billing.models  # noqa: F401
import nexaconnect_billing.leads.models  # noqa: F401
import nexaconnect_billing.webhooks.models  # noqa: F401

_INSERT_BY_DIALECT = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def insert_for(session: AsyncSession, table: Table, values: dict[str, Any]):
    """Build a dialect-specific INSERT that supports ON CONFLICT clauses."""
    dialect = session.bind.dialect.name
    try:
        insert = _INSERT_BY_DIALECT[dialect]
    except KeyError:
        raise RuntimeError(f"Upserts are not supported on dialect '{dialect}'") from None
    return insert(table).values(**values)


class DatabaseManager:
    """Manages a single async database engine."""

    def __init__(self, settings: BillingSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        self.engine = create_async_engine(url, echo=False)
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._session_factory is None:
            raise RuntimeError("DatabaseManager not initialized — call init() first")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        if self.engine is None:
            raise RuntimeError("DatabaseManager not initialized — call init() first")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self._session_factory = None
