"""
Async Database Session Management

Handles SQLAlchemy async session lifecycle and dependency injection.
"""

import logging
from typing import Any, AsyncGenerator, Dict

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from booking_engine.config import settings
from booking_engine.db.tables import metadata

logger = logging.getLogger(__name__)


# Global engine instance
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get or create the async database engine.

    Configures connection pooling with settings from config. SQLite
    engines keep the driver's default pool and wait up to the pool
    timeout for another writer to release the database.

    Returns:
        AsyncEngine: SQLAlchemy async engine instance
    """
    global _engine

    if _engine is None:
        engine_kwargs: Dict[str, Any] = {"echo": settings.db_echo}
        if settings.is_sqlite:
            engine_kwargs["connect_args"] = {"timeout": settings.db_pool_timeout}
        else:
            engine_kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_timeout=settings.db_pool_timeout,
                pool_recycle=settings.db_pool_recycle,
                pool_pre_ping=True,  # Enable connection health checks
            )
        _engine = create_async_engine(settings.database_url_str, **engine_kwargs)
        logger.info("Database engine created successfully")

    return _engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,  # Prevent lazy loading after commit
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async session factory.

    Returns:
        async_sessionmaker: Session factory for creating new sessions
    """
    global _async_session_factory

    if _async_session_factory is None:
        _async_session_factory = create_session_factory(get_engine())
        logger.info("Session factory created successfully")

    return _async_session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    Provides one session per request. Services own their commits; any
    transaction still open when the request ends is rolled back.

    Yields:
        AsyncSession: Database session for the request
    """
    session_factory = get_session_factory()
    session = session_factory()

    try:
        yield session
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Database error occurred: {e}")
        raise
    finally:
        await session.close()


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create any missing booking tables."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Database tables verified")


async def check_database_connection(engine: AsyncEngine | None = None) -> bool:
    """Return True when the database answers ``SELECT 1``."""
    engine = engine or get_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection check failed: {e}")
        return False
    return True


async def close_database_connection() -> None:
    """Dispose of the engine so the next request builds a fresh one."""
    global _engine, _async_session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connections closed")
