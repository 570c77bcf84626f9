"""
ETL pipeline components for staged data ingestion.

This package contains all components for the Extract-Transform-Load pipeline:

Modules:
    base: Abstract extractor with uniform timing and record-count logging
    entities: Staged entities, their cleaning rules and load order
    staging: Timestamped JSON snapshot store between phases
    runner: ETL orchestrator that coordinates extract, transform, and load phases
    run_history: Optional persistence of finished runs
    scheduler: APScheduler integration for automated ETL job execution

Subpackages:
    extractors: CSV, relational database and HTTP API extractors
    transformers: Validity filters and de-duplication
    loaders: Destination loader with identity-insert fallback

Architecture:
    The ETL pipeline follows a three-phase approach, connected only through
    the staging store:

    1. Extract - Each source writes a raw snapshot; sources are isolated
    2. Transform - Latest raw snapshots become ``<name>_Transformed`` snapshots
    3. Load - Transformed snapshots are inserted in dependency order

    A source that fails stages nothing new; a table that fails to load
    leaves its records staged for the next run.

Usage:
    from core.config import settings
    from core.database import DatabaseResources
    from ingestion.runner import ETLRunner
    from ingestion.staging import StagingStore

Example:
    resources = DatabaseResources(settings)
    runner = ETLRunner(
        settings=settings,
        staging=StagingStore(settings.STAGING_PATH),
        source_session_maker=resources.source_sessions,
        destination_session_maker=resources.destination_sessions,
    )
    run = await runner.run()

    print(f"Loaded {run.records_loaded} records ({run.status.value})")

Error Handling:
    All components use custom exceptions from core.exceptions for
    structured error handling; see that module for the hierarchy.
"""

__all__ = [
    "Extractor",
    "ETLRunner",
    "ETLScheduler",
    "StagingStore",
    "CSVExtractor",
    "DatabaseExtractor",
    "APIExtractor",
    "IdentityLoader",
]
