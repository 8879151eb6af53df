"""Database connection pool and session management.

The engine is owned by a :class:`Database` object built once at process start
(see ``voice_agent.main.create_app``) and handed to the components that need
durable storage. There is no module-level engine.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from voice_agent.config.settings import DatabaseConfig

# Import models so they are attached to Base.metadata before table creation
from voice_agent.models import Base

logger = logging.getLogger(__name__)


def _engine_options(url: str, config: DatabaseConfig | None) -> dict[str, Any]:
    """Return pool options appropriate for the backend behind ``url``."""

    options: dict[str, Any] = {"echo": bool(config and config.echo)}
    if url.startswith("sqlite"):
        if ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:"):
            # One shared connection so every session sees the same in-memory DB.
            options["poolclass"] = StaticPool
            options["connect_args"] = {"check_same_thread": False}
        return options

    options["pool_pre_ping"] = True
    if config is not None:
        options["pool_size"] = config.pool_size
    return options


class Database:
    """Explicit connection pool shared by session, context and turn stores."""

    def __init__(self, url: str, *, config: DatabaseConfig | None = None) -> None:
        self.url = url
        self.engine: AsyncEngine = create_async_engine(
            url, **_engine_options(url, config)
        )
        self._session_factory = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "Database":
        return cls(config.url, config=config)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Async context manager that yields a configured SQLAlchemy session."""

        async with self._session_factory() as session:
            yield session

    async def create_all(self) -> None:
        """Create database tables and indexes if they do not exist."""

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Ensured database tables for %s.", self.engine.url.render_as_string())

    async def dispose(self) -> None:
        """Dispose of the engine and release pooled connections."""

        await self.engine.dispose()


__all__ = ["Database"]
