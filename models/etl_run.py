from sqlalchemy import Column, BigInteger, Enum, DateTime, Float, Integer, Text, Index, JSON, Boolean, Uuid
from sqlalchemy.dialects.postgresql import JSONB
import uuid
from models.base import Base, RunStatus

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class ETLRun(Base):
    """
    History of pipeline runs.

    Purpose:
    - Audit trail of all runs
    - Phase timing and per-source outcome inspection
    - Tracking how many records are still waiting in staging
    """
    __tablename__ = "etl_runs"

    id = Column(BigInteger().with_variant(Integer(), "sqlite"), primary_key=True, autoincrement=True)
    run_id = Column(Uuid(as_uuid=True), default=uuid.uuid4, unique=True, nullable=False, index=True)

    # Run metadata
    status = Column(Enum(RunStatus), nullable=False, index=True)
    load_pending = Column(Boolean, nullable=False, default=False)

    # Timestamps
    started_at = Column(DateTime(timezone=True), nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    records_extracted = Column(Integer, default=0)
    records_loaded = Column(Integer, default=0)
    records_pending = Column(Integer, default=0)

    # Details
    phase_timings = Column(JSONType, nullable=True)
    source_outcomes = Column(JSONType, nullable=True)
    load_outcomes = Column(JSONType, nullable=True)

    # Error tracking
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_etl_run_status_started", "status", "started_at"),
    )
