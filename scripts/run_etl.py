"""
Script to run the ETL pipeline once for all configured sources
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import DatabaseResources
from core.logging import setup_logging
from ingestion.runner import ETLRunner
from ingestion.staging import StagingStore
from models.base import RunStatus

logger = logging.getLogger(__name__)


async def run_etl() -> int:
    """Run the pipeline once; returns the process exit code"""
    resources = DatabaseResources(settings)

    try:
        runner = ETLRunner(
            settings=settings,
            staging=StagingStore(settings.STAGING_PATH),
            source_session_maker=resources.source_sessions,
            destination_session_maker=resources.destination_sessions,
        )
        run = await runner.run()
    except Exception as e:
        logger.error(f"ETL pipeline error: {str(e)}")
        return 1
    finally:
        await resources.dispose()

    for name, outcome in run.source_outcomes.items():
        logger.info(f"Source {name}: {outcome.status.value} ({outcome.record_count} records)")

    if run.load_pending:
        logger.warning(f"{run.records_pending} records remain staged for the next run")

    return 1 if run.status == RunStatus.FAILED else 0


if __name__ == "__main__":
    setup_logging(settings)
    sys.exit(asyncio.run(run_etl()))
