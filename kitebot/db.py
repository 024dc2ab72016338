# kitebot/db.py
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from kitebot.models import Base
from kitebot.settings import settings

logger = logging.getLogger(__name__)

engine: AsyncEngine | None = None


async def connect_to_db(url: str | None = None) -> async_sessionmaker:
    """
    Create the engine, make sure both tables exist and return a session factory.
    Table creation is idempotent, so this is safe on every start.
    """
    global engine
    engine = create_async_engine(url or settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized successfully.")
    return async_sessionmaker(engine, expire_on_commit=False)


async def ping_db(db: async_sessionmaker) -> bool:
    async with db() as s:
        await s.execute(text("SELECT 1"))
    return True


async def close_db_connection():
    global engine
    if engine:
        await engine.dispose()
        engine = None
        logger.info("Database connection closed.")
