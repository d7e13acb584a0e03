"""SQLAlchemy async engine and session management.

Provides a factory for async engines (asyncpg in production, aiosqlite in
tests), a scoped session context manager, and lifecycle helpers for schema
creation and shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from eventpipe.core.errors import StorageError

from .models import Base

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton (set via ``init_engine``)
# ---------------------------------------------------------------------------
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(
    url: str,
    *,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_recycle: int = 1800,
    echo: bool = False,
    use_null_pool: bool = False,
) -> AsyncEngine:
    """Create a new :class:`AsyncEngine`.

    Args:
        url: Database URL, e.g. ``postgresql+asyncpg://...``.
        use_null_pool: Disable pooling. Useful for one-off commands and
            tests.
    """
    pool_kwargs: dict = {}
    if use_null_pool:
        pool_kwargs["poolclass"] = NullPool
    else:
        pool_kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_recycle=pool_recycle,
        )

    engine = create_async_engine(url, echo=echo, **pool_kwargs)
    logger.info("Created async engine for %s", url.split("@")[-1])
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def init_engine(
    url: str,
    *,
    echo: bool = False,
    use_null_pool: bool = False,
    create_tables: bool = False,
) -> async_sessionmaker[AsyncSession]:
    """Initialise the module-level engine and return its session factory.

    ``create_tables`` runs ``CREATE TABLE IF NOT EXISTS`` for every model;
    production schemas are managed by alembic instead.
    """
    global _engine, _session_factory  # noqa: PLW0603

    _engine = create_engine(url, echo=echo, use_null_pool=use_null_pool)
    _session_factory = create_session_factory(_engine)

    if create_tables:
        await create_all(_engine)

    return _session_factory


async def create_all(engine: AsyncEngine | None = None) -> None:
    eng = engine or _engine
    if eng is None:
        raise RuntimeError(
            "No engine available. Call init_engine() first or pass an engine."
        )

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created / verified.")


async def dispose() -> None:
    """Dispose of the module-level engine and release pooled connections."""
    global _engine, _session_factory  # noqa: PLW0603

    if _engine is not None:
        await _engine.dispose()
        logger.info("Engine disposed.")
        _engine = None
        _session_factory = None


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """Yield a session committed on success and rolled back on error."""
    factory = factory or _session_factory
    if factory is None:
        raise RuntimeError(
            "Session factory not initialised. Call init_engine() first."
        )

    session = factory()
    try:
        yield session
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StorageError(f"Database operation failed: {exc}") from exc
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
