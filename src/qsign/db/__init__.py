"""qsign database module.

- SQLAlchemy 2.x async engine and session factory
- Connection pooling via psycopg
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from qsign.core.config import DatabaseSettings

# Module-level session factory (initialized on first use)
_engine = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def build_async_url(url: str) -> str:
    """Rewrite a PostgreSQL URL to use the psycopg async driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    return url


def _init_engine(database: DatabaseSettings | None = None) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _async_session_factory

    if _engine is not None:
        return

    if database is None:
        from qsign.core.settings import get_settings

        database = get_settings().database

    if database.url is None:
        msg = "Database URL is not configured. Set QSIGN_DATABASE__URL."
        raise RuntimeError(msg)

    _engine = create_async_engine(
        build_async_url(str(database.url)),
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_timeout=database.pool_timeout,
        echo=database.echo,
    )

    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Get an async database session.

    Usage:
        async with get_async_session() as session:
            repository = SqlAlchemyProcedureRepository(session)
            await recovery.handle_post_recover_error(procedure_id, email)
            await session.commit()

    Yields:
        AsyncSession for database operations.
    """
    _init_engine()

    if _async_session_factory is None:
        msg = "Database session factory not initialized"
        raise RuntimeError(msg)

    session = _async_session_factory()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def close_engine() -> None:
    """Close the database engine.

    Call this during application shutdown to clean up connections.
    """
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
