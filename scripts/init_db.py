import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from sqlalchemy.exc import SQLAlchemyError
from core.config import settings
from core.database import create_engine
from core.logging import setup_logging
from models.base import Base
# Import all models to ensure they are registered
from models.analytics import Customer, Product, Order, OrderDetail  # noqa: F401
from models.etl_run import ETLRun  # noqa: F401

logger = logging.getLogger(__name__)


async def init_database() -> bool:
    logger.info("Connecting to destination database...")
    engine = create_engine(settings.DATABASE_URL, settings)

    try:
        async with engine.begin() as conn:
            logger.info("Creating tables...")
            # Create all destination tables defined in models
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Tables created successfully.")
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Destination database unavailable, tables not created: {str(e)}")
        return False
    finally:
        await engine.dispose()

    return True


if __name__ == "__main__":
    setup_logging(settings)
    asyncio.run(init_database())
