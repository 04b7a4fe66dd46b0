"""Database Session Management.

Engine and session factory construction for the asset store.
"""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)

from config.hierarchy_config import DatabaseConfig
from .models import Base

logger = logging.getLogger(__name__)


def create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an async engine with the configured pool."""
    logger.info(f"Initializing database connection to {config.host}:{config.port}/{config.database}")
    return create_async_engine(
        config.url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout_seconds,
        pool_recycle=config.pool_recycle_seconds,
        echo=config.echo,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create the asset tables if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
