"""
Core utilities and configuration for the staged ETL worker.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Engines and session factories for destination and source databases
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import DatabaseResources
    from core.exceptions import ExtractionError, StagingReadError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Open database resources
    resources = DatabaseResources(settings)
    async with resources.destination_sessions() as session:
        # Perform database operations
        pass
    await resources.dispose()
"""

__all__ = [
    "settings",
    "DatabaseResources",
    "setup_logging",
    # Exceptions
    "ETLException",
    "ExtractionError",
    "CSVExtractionError",
    "DatabaseExtractionError",
    "APIExtractionError",
    "StagingError",
    "StagingWriteError",
    "StagingReadError",
    "TransformationError",
    "LoadError",
    "LoadIdentityConflict",
    "UnexpectedError",
]
