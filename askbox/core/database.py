"""Database connection and session management.

Transaction Guarantees:
- Each request or background task gets its own session
- On any exception, the session's pending work is rolled back
- Sessions are properly closed after use
"""

import logging
from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless this is set per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pooling options only apply to Postgres."""
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo)
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_async_engine(
        url,
        pool_size=10,
        max_overflow=20,
        echo=echo,
        pool_pre_ping=True,  # Check connection health before use
        pool_recycle=300,
        pool_timeout=30,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,
    )


@lru_cache
def get_engine() -> AsyncEngine:
    settings = get_settings()
    url = settings.database_url_async
    logger.info(f"Database URL (masked): {url[:30]}...")
    return create_engine_for_url(url, echo=settings.database_echo)


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return create_session_factory(get_engine())


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Usage in FastAPI:
        @router.post("/slack/commands")
        async def handle(session: Annotated[AsyncSession, Depends(get_session)]):
            ...
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error, transaction rolled back: {e}")
            raise
        except Exception as e:
            await session.rollback()
            logger.error(f"Error during request, transaction rolled back: {e}")
            raise
        finally:
            await session.close()


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Initialize database (create tables if needed)."""
    from ..models import Base

    async with (engine or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await get_engine().dispose()
