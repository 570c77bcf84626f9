import logging
import time
from datetime import datetime
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import Settings, settings as default_settings
from core.database import DatabaseResources
from ingestion.runner import ETLRunner
from ingestion.staging import StagingStore
from schemas.pipeline import PipelineRun

logger = logging.getLogger(__name__)


class ETLScheduler:
    """
    Runs the pipeline on startup and then every ``RUN_INTERVAL_MINUTES``.

    The job is single flight: a run still in progress when the next one is
    due makes the scheduler skip (and coalesce) the missed fires.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.scheduler = AsyncIOScheduler()

    async def run_etl_job(self) -> Optional[PipelineRun]:
        """Job to run the ETL pipeline once; never raises into the scheduler"""
        logger.info("Scheduler: Starting ETL job")
        started = time.perf_counter()

        resources = DatabaseResources(self.settings)
        try:
            runner = ETLRunner(
                settings=self.settings,
                staging=StagingStore(self.settings.STAGING_PATH),
                source_session_maker=resources.source_sessions,
                destination_session_maker=resources.destination_sessions,
            )
            run = await runner.run()
        except Exception as e:
            logger.error(f"Scheduler: ETL job failed - {e}")
            return None
        finally:
            await resources.dispose()
            logger.info(f"Scheduler: ETL job finished in {time.perf_counter() - started:.2f}s")

        logger.info(f"Scheduler: run {run.run_id} {run.status.value}")
        return run

    def start(self):
        """Start the scheduler; the first run fires immediately"""
        self.scheduler.add_job(
            self.run_etl_job,
            trigger=IntervalTrigger(minutes=self.settings.RUN_INTERVAL_MINUTES),
            id="etl_job",
            replace_existing=True,
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"ETL Scheduler started (every {self.settings.RUN_INTERVAL_MINUTES} minutes)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("ETL Scheduler stopped")
