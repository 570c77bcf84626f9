"""
File-based staging area between pipeline phases.

Every ``save`` writes a new JSON snapshot named
``{source_name}_{yyyyMMdd_HHmmss_ffffff}.json``; nothing is overwritten.
Reads select the snapshot with the greatest timestamp for the exact source
name, so ``Customers`` and ``Customers_Transformed`` never shadow each other.
Files written as ``{source_name}_{yyyyMMdd_HHmmss}.json`` are read as well.
"""

import asyncio
import glob
import json
import os
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Type, TypeVar, Union

from pydantic import TypeAdapter, ValidationError

from core.exceptions import StagingReadError, StagingWriteError
from schemas.pipeline import StagingSnapshot
from schemas.records import Record
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Record)

SNAPSHOT_SUFFIX = ".json"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def utc_now() -> datetime:
    """Naive UTC time; file names never step back when local time does"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def snapshot_file_name(source_name: str, captured_at: datetime) -> str:
    return f"{source_name}_{captured_at:%Y%m%d_%H%M%S_%f}{SNAPSHOT_SUFFIX}"


def parse_snapshot_time(file_name: str, source_name: str) -> Optional[datetime]:
    """Timestamp encoded in a snapshot file name, or None if it belongs to another name"""
    match = re.fullmatch(
        re.escape(source_name) + r"_(\d{8}_\d{6})(?:_(\d{6}))?" + re.escape(SNAPSHOT_SUFFIX),
        file_name,
    )
    if match is None:
        return None
    try:
        captured_at = datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
    except ValueError:
        return None
    if match.group(2):
        captured_at = captured_at.replace(microsecond=int(match.group(2)))
    return captured_at


class StagingStore:
    """
    Durable, source-named, timestamped snapshot storage.

    Attributes:
        staging_path: Directory holding snapshot files (created if missing)
    """

    def __init__(
        self,
        staging_path: Union[str, Path],
        clock: Callable[[], datetime] = utc_now
    ):
        self.staging_path = Path(staging_path)
        self._clock = clock

        if not self.staging_path.exists():
            try:
                self.staging_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StagingWriteError(
                    "Cannot create staging directory",
                    context={"staging_path": str(self.staging_path)},
                    original_exception=e
                )
            logger.info(f"Created staging directory: {self.staging_path}")

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _snapshots(self, source_name: str) -> List[Tuple[datetime, Path]]:
        entries = []
        for path in self.staging_path.glob(f"{glob.escape(source_name)}_*{SNAPSHOT_SUFFIX}"):
            captured_at = parse_snapshot_time(path.name, source_name)
            if captured_at is not None:
                entries.append((captured_at, path))
        entries.sort(key=lambda entry: (entry[0], entry[1].name))
        return entries

    def list_snapshots(self, source_name: str) -> List[Path]:
        """Snapshot files for a source name, oldest first"""
        return [path for _, path in self._snapshots(source_name)]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def save(self, source_name: str, records: Iterable[Record]) -> StagingSnapshot:
        """
        Persist a new snapshot for ``source_name``.

        Raises:
            StagingWriteError: If the snapshot cannot be written
        """
        records = list(records)
        payload = json.dumps(
            [record.model_dump(mode="json", by_alias=True) for record in records],
            indent=2,
        )

        try:
            path, captured_at = await asyncio.to_thread(self._write_snapshot, source_name, payload)
        except OSError as e:
            logger.error(f"Error saving staging data for {source_name}: {str(e)}")
            raise StagingWriteError(
                f"Failed to write staging snapshot for {source_name}",
                context={"source_name": source_name, "staging_path": str(self.staging_path)},
                original_exception=e
            )

        logger.info(f"Saved {len(records)} records for {source_name} to {path}")
        return StagingSnapshot(
            source_name=source_name,
            captured_at=captured_at,
            records=records,
            path=path,
        )

    def _write_snapshot(self, source_name: str, payload: str) -> Tuple[Path, datetime]:
        captured_at = self._clock()
        path = self.staging_path / snapshot_file_name(source_name, captured_at)

        # Snapshots are write-once
        while path.exists():
            captured_at += timedelta(microseconds=1)
            path = self.staging_path / snapshot_file_name(source_name, captured_at)

        temp_path = path.with_name(path.name + ".tmp")
        temp_path.write_text(payload, encoding="utf-8")
        os.replace(temp_path, path)
        return path, captured_at

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def load_snapshot(self, source_name: str, record_type: Type[T]) -> Optional[StagingSnapshot]:
        """
        Latest snapshot for ``source_name``, or None when none exists.

        Raises:
            StagingReadError: If the latest snapshot is unreadable or malformed
        """
        snapshots = self._snapshots(source_name)
        if not snapshots:
            logger.warning(f"No staging files found for {source_name}")
            return None

        captured_at, path = snapshots[-1]
        context = {"source_name": source_name, "file_path": str(path)}

        try:
            raw = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StagingReadError(
                f"Cannot read staging snapshot for {source_name}",
                context=context,
                original_exception=e
            )

        try:
            records = TypeAdapter(List[record_type]).validate_json(raw)
        except ValidationError as e:
            raise StagingReadError(
                f"Malformed staging snapshot for {source_name}",
                context={**context, "error_count": e.error_count()},
                original_exception=e
            )

        logger.info(f"Loaded {len(records)} records from staging file {path}")
        return StagingSnapshot(
            source_name=source_name,
            captured_at=captured_at,
            records=records,
            path=path,
        )

    async def load(self, source_name: str, record_type: Type[T]) -> List[T]:
        """Records of the latest snapshot; empty when no snapshot exists"""
        snapshot = await self.load_snapshot(source_name, record_type)
        if snapshot is None:
            return []
        return list(snapshot.records)

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    async def clear(self, source_name: str) -> int:
        """Delete every snapshot of ``source_name``; returns the number removed"""
        removed = await self._delete(self.list_snapshots(source_name), source_name)
        logger.info(f"Cleared {removed} staging files for {source_name}")
        return removed

    async def prune(self, source_name: str, keep: int) -> int:
        """Delete all but the newest ``keep`` snapshots of ``source_name``"""
        if keep < 1:
            raise ValueError("keep must be at least 1")
        snapshots = self.list_snapshots(source_name)
        removed = await self._delete(snapshots[:-keep], source_name)
        if removed:
            logger.info(f"Pruned {removed} old staging files for {source_name}")
        return removed

    async def _delete(self, paths: List[Path], source_name: str) -> int:
        def delete_all() -> int:
            for path in paths:
                path.unlink(missing_ok=True)
            return len(paths)

        try:
            return await asyncio.to_thread(delete_all)
        except OSError as e:
            raise StagingWriteError(
                f"Failed to delete staging snapshots for {source_name}",
                context={"source_name": source_name},
                original_exception=e
            )
