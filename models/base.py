from sqlalchemy.orm import declarative_base
import enum

# Analytics destination tables and run history
Base = declarative_base()

# Relational source tables (read-only, never created by this service)
SourceBase = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class SourceType(str, enum.Enum):
    """Extraction source types"""
    CSV = "csv"
    DATABASE = "database"
    API = "api"


class RunStatus(str, enum.Enum):
    """Terminal pipeline run status"""
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class OutcomeStatus(str, enum.Enum):
    """Per-source / per-table outcome within one run"""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"
    PENDING = "pending"
