"""
ETL Runner - Orchestrates the staged Extract, Transform, Load pipeline.

Pipeline phases:
1. Extract - CSV, relational and API sources write raw staging snapshots.
   Sources are isolated: one failing source stages nothing new and the
   others carry on.
2. Transform - latest raw snapshots are cleaned and written back to staging
   as ``<name>_Transformed``.
3. Load - transformed snapshots are inserted into the destination in
   dependency order. The first failing table stops the load; what was not
   loaded stays in staging for the next run.

Only staging failures and unexpected errors mark a run failed.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence
import asyncio
import time

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.config import Settings
from core.exceptions import (
    ETLException,
    ExtractionError,
    LoadError,
    UnexpectedError,
)
from ingestion.base import Extractor
from ingestion.entities import (
    API_REVIEWS_STAGING_NAME,
    COMMENTS_STAGING_NAME,
    CUSTOMERS,
    LOADED_ENTITIES,
    ORDER_DETAILS,
    ORDERS,
    PRODUCTS,
    REVIEWS_STAGING_NAME,
)
from ingestion.extractors.api_extractor import APIExtractor
from ingestion.extractors.csv_extractor import CSVExtractor
from ingestion.extractors.database_extractor import DatabaseExtractor, recent_rows
from ingestion.loaders.identity_loader import IdentityLoader
from ingestion.run_history import RunHistoryRecorder
from ingestion.staging import StagingStore
from models.base import OutcomeStatus, RunStatus
from models.source import ReviewRow
from schemas.pipeline import LoadOutcome, PipelineRun, SourceOutcome
from schemas.records import Comment, Review
import logging

logger = logging.getLogger(__name__)


class ETLRunner:
    """
    Staged ETL Orchestrator

    Responsibilities:
    - Build the extractors of every configured source
    - Fan extraction out per source group and join the outcomes
    - Transform raw staging into transformed staging
    - Load transformed staging in dependency order
    - Report everything in a ``PipelineRun``
    """

    def __init__(
        self,
        settings: Settings,
        staging: StagingStore,
        source_session_maker: async_sessionmaker[AsyncSession],
        destination_session_maker: async_sessionmaker[AsyncSession],
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.settings = settings
        self.staging = staging
        self.source_session_maker = source_session_maker
        self.destination_session_maker = destination_session_maker
        self.http_client = http_client
        self.history = RunHistoryRecorder(destination_session_maker)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self) -> PipelineRun:
        """
        Run all three phases once.

        Returns:
            The finished run, ``succeeded`` or ``failed``. Cancellation is
            not caught and propagates to the caller.
        """
        run = PipelineRun()
        started = time.perf_counter()
        logger.info(f"Pipeline run {run.run_id} started")

        try:
            await self._timed(run, "extract", self.extract_phase(run))
            await self._timed(run, "transform", self.transform_phase(run))
            await self._timed(run, "load", self.load_phase(run))

            if self.settings.STAGING_RETENTION > 0:
                await self._timed(run, "retention", self.prune_staging())

            run.status = RunStatus.SUCCEEDED

        except ETLException as e:
            logger.error(
                f"Pipeline run {run.run_id} failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            run.status = RunStatus.FAILED
            run.error = str(e)

        except Exception as e:
            logger.exception(f"Unexpected error in pipeline run {run.run_id}")
            error = UnexpectedError(
                "Unexpected error in pipeline run",
                context={"run_id": str(run.run_id)},
                original_exception=e
            )
            run.status = RunStatus.FAILED
            run.error = str(error)

        run.completed_at = datetime.now(timezone.utc)
        self._log_summary(run, time.perf_counter() - started)

        if self.settings.RECORD_RUN_HISTORY:
            await self.history.record(run)

        return run

    async def _timed(self, run: PipelineRun, phase: str, phase_coroutine):
        started = time.perf_counter()
        try:
            return await phase_coroutine
        finally:
            elapsed = time.perf_counter() - started
            run.phase_timings[phase] = round(elapsed, 3)
            logger.info(f"Phase {phase} finished in {elapsed:.2f}s")

    def _log_summary(self, run: PipelineRun, elapsed: float):
        logger.info(
            f"Pipeline run {run.run_id} {run.status.value} in {elapsed:.2f}s - "
            f"Extracted: {run.records_extracted}, Loaded: {run.records_loaded}, "
            f"Pending: {run.records_pending}"
        )
        if run.failed_sources:
            logger.warning(f"Failed sources: {', '.join(run.failed_sources)}")

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def csv_extractors(self) -> List[Extractor]:
        files = (
            (CUSTOMERS, self.settings.CSV_CUSTOMERS_FILE),
            (PRODUCTS, self.settings.CSV_PRODUCTS_FILE),
            (ORDERS, self.settings.CSV_ORDERS_FILE),
            (ORDER_DETAILS, self.settings.CSV_ORDER_DETAILS_FILE),
        )
        return [
            CSVExtractor(
                name=entity.staging_name,
                record_type=entity.record_type,
                file_path=self.settings.csv_file(file_name),
                delimiter=self.settings.CSV_DELIMITER,
            )
            for entity, file_name in files
        ]

    def database_extractors(self) -> List[Extractor]:
        return [
            DatabaseExtractor(
                name=REVIEWS_STAGING_NAME,
                record_type=Review,
                session_maker=self.source_session_maker,
                model=ReviewRow,
                query_builder=recent_rows(
                    ReviewRow.review_date, months=self.settings.REVIEW_WINDOW_MONTHS
                ),
            )
        ]

    def api_extractors(self, run: PipelineRun) -> List[Extractor]:
        """API extractors for configured endpoints; unconfigured ones are marked skipped"""
        endpoints = (
            (COMMENTS_STAGING_NAME, Comment, self.settings.API_COMMENTS_ENDPOINT),
            (API_REVIEWS_STAGING_NAME, Review, self.settings.API_REVIEWS_ENDPOINT),
        )

        extractors: List[Extractor] = []
        for name, record_type, endpoint in endpoints:
            if not self.settings.API_BASE_URL or not endpoint:
                logger.info(f"Skipping {name}: API endpoint not configured")
                run.source_outcomes[name] = SourceOutcome(name=name, status=OutcomeStatus.SKIPPED)
                continue
            extractors.append(
                APIExtractor(
                    name=name,
                    record_type=record_type,
                    base_url=self.settings.API_BASE_URL,
                    endpoint=endpoint,
                    api_key=self.settings.API_KEY,
                    timeout=self.settings.API_TIMEOUT_SECONDS,
                    client=self.http_client,
                )
            )
        return extractors

    # ------------------------------------------------------------------
    # Extract
    # ------------------------------------------------------------------

    async def extract_phase(self, run: PipelineRun):
        """
        Extract every source group and stage the results.

        Raises:
            StagingError: If a snapshot could not be written; with parallel
                processing it is raised only after every group finished
        """
        groups = [
            self.csv_extractors(),
            self.database_extractors(),
            self.api_extractors(run),
        ]

        if self.settings.ENABLE_PARALLEL_PROCESSING:
            results = await asyncio.gather(
                *(self._extract_group(group) for group in groups),
                return_exceptions=True
            )
        else:
            results = [await self._extract_group(group) for group in groups]

        failures = []
        for result in results:
            if isinstance(result, BaseException):
                failures.append(result)
                continue
            for outcome in result:
                run.source_outcomes[outcome.name] = outcome

        for failure in failures:
            if isinstance(failure, asyncio.CancelledError):
                raise failure
        if failures:
            raise failures[0]

    async def _extract_group(self, extractors: Sequence[Extractor]) -> List[SourceOutcome]:
        return [await self._extract_source(extractor) for extractor in extractors]

    async def _extract_source(self, extractor: Extractor) -> SourceOutcome:
        started = time.perf_counter()

        try:
            records = await extractor.extract()
        except ExtractionError as e:
            logger.error(f"Source {extractor.name} failed, nothing staged: {e.message}")
            return SourceOutcome(
                name=extractor.name,
                status=OutcomeStatus.FAILED,
                error=str(e),
                elapsed_seconds=time.perf_counter() - started,
            )

        if extractor.last_error is not None:
            logger.warning(f"Source {extractor.name} reported an error, nothing staged")
            return SourceOutcome(
                name=extractor.name,
                status=OutcomeStatus.FAILED,
                error=str(extractor.last_error),
                elapsed_seconds=time.perf_counter() - started,
            )

        # StagingWriteError propagates
        await self.staging.save(extractor.name, records)

        return SourceOutcome(
            name=extractor.name,
            status=OutcomeStatus.SUCCESS,
            record_count=len(records),
            elapsed_seconds=time.perf_counter() - started,
        )

    # ------------------------------------------------------------------
    # Transform
    # ------------------------------------------------------------------

    async def transform_phase(self, run: PipelineRun):
        """
        Clean the latest raw snapshot of every loaded entity.

        Raises:
            StagingReadError: If a raw snapshot is unreadable
            TransformationError: If a snapshot holds the wrong record type
        """
        for entity in LOADED_ENTITIES:
            snapshot = await self.staging.load_snapshot(entity.staging_name, entity.record_type)
            if snapshot is None:
                logger.warning(f"Nothing staged for {entity.staging_name}; skipping transform")
                continue

            result = entity.rule.apply(snapshot.records)
            await self.staging.save(entity.transformed_name, result.records)

            logger.info(
                f"Transformed {entity.staging_name}: {snapshot.record_count} in, "
                f"{len(result.records)} out"
            )

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load_phase(self, run: PipelineRun):
        """
        Load transformed snapshots in dependency order.

        A ``LoadError`` stops the remaining tables and marks the run
        ``load_pending``; it does not fail the run.
        """
        staged = {}
        for entity in LOADED_ENTITIES:
            staged[entity.table_name] = await self.staging.load(
                entity.transformed_name, entity.record_type
            )

        async with self.destination_session_maker() as session:
            loader = IdentityLoader(session)

            for index, entity in enumerate(LOADED_ENTITIES):
                records = staged[entity.table_name]
                try:
                    loaded = await loader.load_with_identity(
                        records, entity.table_name, entity.pk_column
                    )
                except LoadError as e:
                    run.load_outcomes[entity.table_name] = LoadOutcome(
                        table_name=entity.table_name,
                        status=OutcomeStatus.FAILED,
                        record_count=len(records),
                        error=str(e),
                    )
                    self._mark_pending(run, LOADED_ENTITIES[index:], staged)
                    return

                run.load_outcomes[entity.table_name] = LoadOutcome(
                    table_name=entity.table_name,
                    status=OutcomeStatus.SUCCESS,
                    record_count=loaded,
                )
                run.records_loaded += loaded

    def _mark_pending(self, run: PipelineRun, entities, staged):
        pending_counts = {entity.table_name: len(staged[entity.table_name]) for entity in entities}

        for table_name, count in list(pending_counts.items())[1:]:
            run.load_outcomes[table_name] = LoadOutcome(
                table_name=table_name,
                status=OutcomeStatus.PENDING,
                record_count=count,
            )

        run.load_pending = True
        run.records_pending = sum(pending_counts.values())

        details = ", ".join(f"{table}={count}" for table, count in pending_counts.items())
        logger.warning(
            f"Load stopped at {entities[0].table_name}; {run.records_pending} records "
            f"remain staged for the next run ({details})"
        )

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def staging_names(self) -> List[str]:
        names = []
        for entity in LOADED_ENTITIES:
            names.extend([entity.staging_name, entity.transformed_name])
        names.extend([REVIEWS_STAGING_NAME, COMMENTS_STAGING_NAME, API_REVIEWS_STAGING_NAME])
        return names

    async def prune_staging(self) -> int:
        """Keep only the newest ``STAGING_RETENTION`` snapshots per staging name"""
        removed = 0
        for name in self.staging_names():
            removed += await self.staging.prune(name, keep=self.settings.STAGING_RETENTION)
        return removed
