"""
Database Configuration
Version: 1.2

Async SQLAlchemy engine and session factory for the Postgres back end.
Only used when DATA_BACKEND=postgres.
DEPENDS ON: config.py only
"""

import asyncio
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def _engine_options() -> dict:
    if settings.APP_ENV == "test":
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_recycle": settings.DB_POOL_RECYCLE,
    }


engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    **_engine_options()
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)

# Tables are declared in models.py
Base = declarative_base()


async def create_tables() -> None:
    import models  # noqa: F401 (registers tables on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def wait_for_database(max_retries: int = 30, delay: float = 2) -> bool:
    """Block until Postgres answers, then make sure every table exists."""
    for attempt in range(1, max_retries + 1):
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            await create_tables()
            logger.info(f"Database ready after {attempt} attempt(s)")
            return True
        except Exception as e:
            logger.warning(f"Database not ready ({attempt}/{max_retries}): {e}")
            if attempt < max_retries:
                await asyncio.sleep(delay)

    logger.error("Database unreachable, giving up")
    return False


async def close_db() -> None:
    await engine.dispose()
