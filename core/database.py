"""
Database session management with SQLAlchemy async

Two databases are involved in a pipeline run: the analytics destination the
loader writes to, and the relational source the review extractor reads from.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from core.config import Settings
import logging

logger = logging.getLogger(__name__)


def create_engine(database_url: str, settings: Settings) -> AsyncEngine:
    """Create an async engine for one of the pipeline databases"""
    return create_async_engine(
        database_url,
        echo=settings.ENVIRONMENT == "development" and settings.LOG_LEVEL.upper() == "DEBUG",
        poolclass=NullPool,  # Each run opens and releases its own connections
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create session factory bound to an engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


class DatabaseResources:
    """Engines and session factories for the destination and source databases"""

    def __init__(self, settings: Settings):
        self.destination_engine = create_engine(settings.DATABASE_URL, settings)
        self.source_engine = create_engine(settings.SOURCE_DATABASE_URL, settings)
        self.destination_sessions = create_session_maker(self.destination_engine)
        self.source_sessions = create_session_maker(self.source_engine)

    async def dispose(self):
        """Release pooled connections of both engines"""
        await self.destination_engine.dispose()
        await self.source_engine.dispose()
        logger.debug("Database engines disposed")
