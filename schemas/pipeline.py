"""
Pydantic schemas describing staging snapshots and pipeline run outcomes
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from models.base import OutcomeStatus, RunStatus
from schemas.records import Record


class StagingSnapshot(BaseModel):
    """One immutable, timestamped batch of records for a staging name"""
    source_name: str
    captured_at: datetime
    records: List[Record] = Field(default_factory=list)
    path: Optional[Path] = None

    @property
    def record_count(self) -> int:
        return len(self.records)


class SourceOutcome(BaseModel):
    """Result of extracting and staging one source"""
    name: str
    status: OutcomeStatus
    record_count: int = 0
    error: Optional[str] = None
    elapsed_seconds: float = 0.0


class LoadOutcome(BaseModel):
    """Result of loading one destination table"""
    table_name: str
    status: OutcomeStatus
    record_count: int = 0
    error: Optional[str] = None


class PipelineRun(BaseModel):
    """
    Ephemeral record of one orchestrator invocation.

    Succeeded runs may still carry ``load_pending``: the destination load did
    not complete and ``records_pending`` records wait in staging for the next
    run.
    """
    run_id: UUID = Field(default_factory=uuid4)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    status: Optional[RunStatus] = None
    phase_timings: Dict[str, float] = Field(default_factory=dict)
    source_outcomes: Dict[str, SourceOutcome] = Field(default_factory=dict)
    load_outcomes: Dict[str, LoadOutcome] = Field(default_factory=dict)
    records_loaded: int = 0
    records_pending: int = 0
    load_pending: bool = False
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    @property
    def records_extracted(self) -> int:
        return sum(
            outcome.record_count
            for outcome in self.source_outcomes.values()
            if outcome.status == OutcomeStatus.SUCCESS
        )

    @property
    def failed_sources(self) -> List[str]:
        return [
            name for name, outcome in self.source_outcomes.items()
            if outcome.status == OutcomeStatus.FAILED
        ]
