"""
Persist finished pipeline runs to the ``etl_runs`` table.

Recording is best effort: a destination that cannot take the row must not
turn a finished run into a failed one.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from models.etl_run import ETLRun
from schemas.pipeline import PipelineRun
import logging

logger = logging.getLogger(__name__)


def run_to_row(run: PipelineRun) -> ETLRun:
    """Map a finished run onto an ``etl_runs`` row"""
    return ETLRun(
        run_id=run.run_id,
        status=run.status,
        load_pending=run.load_pending,
        started_at=run.started_at,
        completed_at=run.completed_at,
        duration_seconds=run.duration_seconds,
        records_extracted=run.records_extracted,
        records_loaded=run.records_loaded,
        records_pending=run.records_pending,
        phase_timings=dict(run.phase_timings),
        source_outcomes={
            name: outcome.model_dump(mode="json")
            for name, outcome in run.source_outcomes.items()
        },
        load_outcomes={
            name: outcome.model_dump(mode="json")
            for name, outcome in run.load_outcomes.items()
        },
        error_message=run.error,
    )


class RunHistoryRecorder:
    """Writes one ``ETLRun`` row per finished pipeline run"""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def record(self, run: PipelineRun) -> bool:
        """
        Insert the run; returns False (and logs a warning) if it could not be stored
        """
        if run.status is None:
            raise ValueError("Only finished runs can be recorded")

        try:
            async with self.session_maker() as session:
                session.add(run_to_row(run))
                await session.commit()
        except Exception as e:
            logger.warning(f"Could not record pipeline run {run.run_id}: {str(e)}")
            return False

        logger.debug(f"Recorded pipeline run {run.run_id}")
        return True
