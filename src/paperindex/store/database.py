"""Async engine and session factory for the relational store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from paperindex.store.models import Base

if TYPE_CHECKING:
    from paperindex.config.settings import DatabaseSettings

logger = logging.getLogger(__name__)


class Database:
    """Owns the ``AsyncEngine`` and hands out sessions.

    Args:
        url: SQLAlchemy async URL, e.g. ``postgresql+asyncpg://...`` or
            ``sqlite+aiosqlite:///papers.db``.
        echo: Log every SQL statement.
        pool_pre_ping: Test pooled connections before use.
    """

    def __init__(self, url: str, *, echo: bool = False, pool_pre_ping: bool = True) -> None:
        engine_kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": pool_pre_ping}
        if url.startswith("sqlite") and ":memory:" in url:
            # One shared connection, otherwise every checkout sees an empty database.
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}

        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.sessionmaker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: DatabaseSettings) -> Database:
        return cls(settings.url, echo=settings.echo, pool_pre_ping=settings.pool_pre_ping)

    async def startup(self) -> None:
        """Create missing tables.  Production schemas are managed by migrations."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database ready: %s", self.engine.url.render_as_string(hide_password=True))

    async def shutdown(self) -> None:
        await self.engine.dispose()
