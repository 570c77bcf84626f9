"""
CSV file extractor with best-effort header mapping
"""

import asyncio
import pandas as pd
from typing import List, Dict, Any, Type, Union
from pathlib import Path
from ingestion.base import Extractor, T
from models.base import SourceType
from core.exceptions import CSVExtractionError
import logging

logger = logging.getLogger(__name__)


class CSVExtractor(Extractor[T]):
    """
    Extract records from a delimited text file with a header row.

    Supports:
    - Header and value whitespace trimming
    - Case-insensitive header matching (via the record schema)
    - Tolerance for unknown and missing columns
    """

    source_type = SourceType.CSV
    error_class = CSVExtractionError

    def __init__(
        self,
        name: str,
        record_type: Type[T],
        file_path: Union[str, Path],
        delimiter: str = ","
    ):
        super().__init__(name=name, record_type=record_type)
        self.file_path = Path(file_path)
        self.delimiter = delimiter

    async def fetch_records(self) -> List[T]:
        """Read and validate every row of the file"""
        if not self.file_path.exists():
            return self.record_error(
                CSVExtractionError(
                    self.name,
                    f"CSV file not found: {self.file_path}",
                    context={"file_path": str(self.file_path)}
                )
            )

        logger.info(f"Reading CSV from {self.file_path}")

        try:
            rows = await asyncio.to_thread(self._read_rows)
        except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
            raise CSVExtractionError(
                self.name,
                "Failed to parse CSV file",
                context={"file_path": str(self.file_path)},
                original_exception=e
            )

        return self.validate_rows(rows)

    def _read_rows(self) -> List[Dict[str, Any]]:
        try:
            df = pd.read_csv(
                self.file_path,
                sep=self.delimiter,
                dtype=str,
                keep_default_na=False,
                skipinitialspace=True,
                encoding="utf-8-sig",
            )
        except pd.errors.EmptyDataError:
            logger.warning(f"CSV file is empty: {self.file_path}")
            return []

        # Trim headers and values; short rows come back as NaN
        df.columns = df.columns.str.strip()
        df = df.fillna("").apply(lambda column: column.str.strip())

        return df.to_dict(orient="records")
