"""
Storage bootstrap.

The storage handle is a SQLAlchemy AsyncEngine, connected once at startup
and shared by every request for the lifetime of the process.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..config import mask_url
from ..core.errors import StorageBootstrapError

logger = logging.getLogger(__name__)


async def connect_storage(url: str, *, echo: bool = False) -> AsyncEngine:
    """
    Create the async engine and verify the database answers.

    Args:
        url: SQLAlchemy async URL (e.g. postgresql+asyncpg://..., sqlite+aiosqlite://...)
        echo: Log SQL statements

    Returns:
        Connected AsyncEngine

    Raises:
        StorageBootstrapError: If the URL is invalid or the database is unreachable
    """
    safe_url = mask_url(url)

    try:
        engine = create_async_engine(url, echo=echo, pool_pre_ping=True)
    except (ArgumentError, ImportError) as e:
        raise StorageBootstrapError(safe_url, str(e)) from e

    logger.info(f"Connecting to storage: {safe_url}")
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        await engine.dispose()
        raise StorageBootstrapError(safe_url, str(e)) from e

    logger.info("Storage connected")
    return engine


async def close_storage(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()
    logger.info("Storage connections closed")
