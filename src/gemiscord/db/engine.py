"""
Database engine management with proper lifecycle handling.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..config import DatabaseSettings

logger = logging.getLogger(__name__)

# Global engine instance
_engine: Optional[AsyncEngine] = None


def get_engine(database: DatabaseSettings) -> AsyncEngine:
    """Get or create the async database engine."""
    global _engine

    if _engine is None:
        _engine = create_async_engine(
            url=database.url_for_sqlalchemy,
            echo=database.echo,
        )
        logger.debug(f"Created async database engine for {_engine.dialect.name}")

    return _engine


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine."""
    global _engine

    if _engine is not None:
        await _engine.dispose()
        logger.debug("Disposed async database engine")
        _engine = None


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    from .base import Base
    from .. import models  # noqa: F401  registers the tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
