"""
Abstract base class for extractors with uniform timing and record-count logging
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, Iterable, List, Mapping, Optional, Type, TypeVar
from pydantic import ValidationError
from models.base import SourceType
from schemas.records import Record
from core.exceptions import ExtractionError
import logging
import time

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Record)


class Extractor(ABC, Generic[T]):
    """
    Abstract base class for all extractors.

    An extractor reads records of one type from exactly one source. ``extract``
    either returns a list (possibly empty) or raises ``ExtractionError``; it
    never returns ``None``.

    When a source fails in a way that is reported rather than raised (missing
    file, non-success HTTP status), the extractor returns an empty list and
    keeps the failure in ``last_error`` so callers can tell "no data" apart
    from "no usable answer".
    """

    source_type: SourceType
    error_class: Type[ExtractionError] = ExtractionError

    def __init__(self, name: str, record_type: Type[T]):
        self.name = name
        self.record_type = record_type
        self.last_error: Optional[ExtractionError] = None
        self.rows_skipped = 0

    @abstractmethod
    async def fetch_records(self) -> List[T]:
        """
        Read records from the source.

        Returns:
            List of validated records
        """
        pass

    async def extract(self) -> List[T]:
        """Run the extraction and log source, record count and elapsed time"""
        self.last_error = None
        self.rows_skipped = 0
        started = time.perf_counter()

        logger.info(
            f"Starting {self.source_type.value} extraction for {self.name} "
            f"({self.record_type.__name__})"
        )

        try:
            records = await self.fetch_records()
        except ExtractionError as e:
            logger.error(
                f"Extraction failed for {self.name} after {self._elapsed_ms(started)}ms: {e.message}"
            )
            raise
        except Exception as e:
            logger.error(
                f"Extraction failed for {self.name} after {self._elapsed_ms(started)}ms: {str(e)}"
            )
            raise self.error_class(
                self.name,
                f"Unexpected error extracting {self.record_type.__name__} records",
                original_exception=e
            )

        records = list(records) if records is not None else []

        logger.info(
            f"Extracted {len(records)} records from {self.name} "
            f"in {self._elapsed_ms(started)}ms"
            + (f" ({self.rows_skipped} rows skipped)" if self.rows_skipped else "")
        )
        return records

    def record_error(self, error: ExtractionError) -> List[T]:
        """Keep a reported failure and answer with an empty result"""
        self.last_error = error
        logger.warning(f"{self.name}: {error.message}")
        return []

    def validate_rows(self, rows: Iterable[Mapping[str, Any]]) -> List[T]:
        """
        Validate raw rows into records, skipping rows that do not fit.

        Field matching is best-effort: unknown columns are ignored and missing
        columns fall back to model defaults. A row is skipped only when it
        cannot produce a valid record (e.g. no primary key).
        """
        records: List[T] = []
        for index, row in enumerate(rows):
            try:
                records.append(self.record_type.model_validate(dict(row)))
            except ValidationError as e:
                self.rows_skipped += 1
                logger.warning(
                    f"{self.name}: skipping row {index} "
                    f"({e.error_count()} validation errors: {e.errors()[0]['msg']})"
                )
        return records

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)
