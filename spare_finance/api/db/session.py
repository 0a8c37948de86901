"""
Database Session Management

Async SQLAlchemy session with PostgreSQL.
"""

import logging
import ssl
from typing import AsyncGenerator, Optional
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from spare_finance.api.config import settings

logger = logging.getLogger(__name__)

# Module-level engine (created lazily)
_engine: Optional[AsyncEngine] = None
_async_session_maker: Optional[async_sessionmaker] = None


def _get_ssl_context():
    """Create SSL context for hosted PostgreSQL."""
    ssl_context = ssl.create_default_context()
    ssl_context.check_hostname = False
    ssl_context.verify_mode = ssl.CERT_NONE
    return ssl_context


def get_engine() -> AsyncEngine:
    """Get or create the database engine."""
    global _engine

    if _engine is None:
        url = settings.DATABASE_URL
        logger.info("Creating engine for %s...", url.split("@")[-1][:60])

        # Hosted Postgres (Supabase, Neon) requires SSL
        connect_args = {}
        if "neon.tech" in url or "supabase" in url:
            logger.info("Detected hosted PostgreSQL, enabling SSL context")
            connect_args["ssl"] = _get_ssl_context()

        _engine = create_async_engine(
            url,
            echo=settings.DATABASE_ECHO,
            poolclass=NullPool,
            connect_args=connect_args,
        )

    return _engine


def get_session_maker() -> async_sessionmaker:
    """Get or create the session maker."""
    global _async_session_maker

    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )

    return _async_session_maker


async def init_db() -> None:
    """Initialize database connection."""
    from spare_finance.api.db.models import Base

    engine = get_engine()
    logger.info("Initializing database connection...")

    async with engine.begin() as conn:
        # Production schema is managed by Alembic
        if settings.DEBUG:
            logger.info("Creating tables (DEBUG mode)...")
            await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connection."""
    global _engine, _async_session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_maker = None
        logger.info("Database connection closed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Usage in FastAPI:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
