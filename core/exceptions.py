"""
Custom exceptions for the staged ETL pipeline with structured error context.

Each exception carries context information for debugging and for the
per-source outcome reports emitted at the end of a pipeline run.

Exception Hierarchy:
    ETLException (base)
    ├── ExtractionError            (per source, non-fatal to the run)
    │   ├── CSVExtractionError
    │   ├── DatabaseExtractionError
    │   └── APIExtractionError
    ├── StagingError               (fatal to the run)
    │   ├── StagingWriteError
    │   └── StagingReadError
    ├── TransformationError
    ├── LoadError                  (destination side, degrades the run)
    │   └── LoadIdentityConflict   (recoverable, triggers identity fallback)
    └── UnexpectedError            (anything else, marks the run failed)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ETLException(Exception):
    """
    Base exception for all ETL-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, table, path, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """
    Base exception for data extraction failures.

    A failed extraction only affects its own source: the orchestrator logs it
    and the source contributes nothing new to staging.
    """

    def __init__(
        self,
        source: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        context = dict(context or {})
        context.setdefault("source", source)
        super().__init__(message, context, original_exception)
        self.source = source

    @property
    def cause(self) -> Optional[BaseException]:
        return self.original_exception


class CSVExtractionError(ExtractionError):
    """
    Exception raised when CSV file extraction fails.

    Context should include:
        - file_path: Path to the CSV file
    """
    pass


class DatabaseExtractionError(ExtractionError):
    """
    Exception raised when the relational source query fails.

    Context should include:
        - model: Name of the queried table
    """
    pass


class APIExtractionError(ExtractionError):
    """
    Exception raised when API data extraction fails.

    Context should include:
        - api_url: The API endpoint that failed
        - status_code: HTTP status code (if applicable)
        - response_body: Response body (truncated if large)
    """
    pass


# ============================================================================
# Staging Errors
# ============================================================================

class StagingError(ETLException):
    """Base exception for staging area failures. Always fatal to the run."""
    pass


class StagingWriteError(StagingError):
    """
    Exception raised when a snapshot cannot be persisted.

    Context should include:
        - source_name: Staging name of the snapshot
        - file_path: Target snapshot path
    """
    pass


class StagingReadError(StagingError):
    """
    Exception raised when a snapshot exists but cannot be read or decoded.

    Context should include:
        - source_name: Staging name of the snapshot
        - file_path: Snapshot path that failed
    """
    pass


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for data transformation failures."""
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """
    Base exception for destination-side load failures.

    Context should include:
        - table_name: Destination table
        - record_count: Number of records in the failed call
    """
    pass


class LoadIdentityConflict(LoadError):
    """
    The destination refused an explicit value for an auto-generated key.

    Raised internally by the loader to trigger the identity-insert fallback.
    """
    pass


# ============================================================================
# Run-level Errors
# ============================================================================

class UnexpectedError(ETLException):
    """Unclassified failure during a phase. Marks the pipeline run failed."""
    pass
