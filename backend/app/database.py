from __future__ import annotations
"""SQLAlchemy 2.0 async database engine and session management.

The engine is created lazily so importing the app never opens a pool.
MySQL tables force utf8mb4; other dialects ignore the mysql_* table args.
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import get_settings

logger = logging.getLogger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


class Base(DeclarativeBase):
    """Base class for all ORM models.

    Forces utf8mb4 charset to prevent Emoji crashes in MySQL.
    """

    __table_args__ = {
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }


def get_engine() -> AsyncEngine:
    """Return the process-wide async engine, creating it on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        url = settings.DATABASE_URL
        kwargs: dict = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
        if url.startswith("mysql"):
            kwargs.update(
                pool_recycle=3600,
                pool_size=10,
                max_overflow=20,
                connect_args={"connect_timeout": 30},
            )
        _engine = create_async_engine(url, **kwargs)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the async session factory bound to the shared engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def init_db() -> None:
    """Create all tables defined by Base metadata (best-effort).

    Called once at application startup when AUTO_CREATE_TABLES is on;
    production schemas are managed by Alembic.
    """
    import app.models  # noqa: F401  registers models with Base.metadata

    try:
        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        logger.warning("Could not run create_all (tables may already exist): %s", e)


async def close_db() -> None:
    """Dispose of the engine connection pool.

    Called at application shutdown.
    """
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
