import logging
from typing import Tuple

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.models.models import Base

logger = logging.getLogger(__name__)


def create_engine_and_sessionmaker(database_url: str, echo: bool = False) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Build the async engine and its session factory."""
    engine_kwargs = {"echo": echo, "future": True}
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(pool_pre_ping=True, pool_recycle=1800)
    engine = create_async_engine(database_url, **engine_kwargs)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    return engine, async_session


async def connect_to_db(engine: AsyncEngine) -> None:
    """Connect to the database."""
    try:
        # Test connection by executing a simple query
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connected successfully")
    except Exception:
        logger.exception("Error connecting to the database")
        raise


async def create_tables(engine: AsyncEngine) -> None:
    """Create missing tables. Production schemas are managed by alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db_connection(engine: AsyncEngine) -> None:
    """Close the database connection."""
    try:
        await engine.dispose()
        logger.info("Database connection closed successfully")
    except Exception:
        logger.exception("Error closing the database connection")
        raise
