"""
Destination-specific identity column handling.

Each supported dialect knows how to:
- tell from catalog metadata whether a column is an identity column,
- temporarily allow explicit values for that column, and restore the default.

``is_identity_conflict`` is the single place that decides whether a failed
insert was refused because it carried explicit values for a generated key.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from sqlalchemy import text
from sqlalchemy.exc import StatementError
from sqlalchemy.sql.elements import TextClause
import logging

logger = logging.getLogger(__name__)

# PostgreSQL: cannot insert a non-DEFAULT value into a GENERATED ALWAYS column
POSTGRES_GENERATED_ALWAYS_SQLSTATE = "428C9"

# SQL Server: cannot insert explicit value for identity column when IDENTITY_INSERT is OFF
SQLSERVER_EXPLICIT_IDENTITY_ERROR = 544

# Message fragments used only when the driver reports no usable error code
IDENTITY_MESSAGE_MARKERS = (
    "cannot insert a non-default value into column",
    "cannot insert explicit value for identity column",
    "identity_insert is set to off",
)


def _error_chain(error: BaseException):
    seen = set()
    current = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = getattr(current, "orig", None) or current.__cause__


def _driver_messages(error: BaseException) -> List[str]:
    # Statement wrappers render bound parameters, so only driver text is matched
    return [
        str(candidate) for candidate in _error_chain(error)
        if not isinstance(candidate, StatementError)
    ]


def is_identity_conflict(error: BaseException) -> bool:
    """
    True if ``error`` means the destination refused explicit key values.

    Driver error codes are checked first (SQLSTATE on PostgreSQL drivers,
    native error number on SQL Server drivers). Matching on the driver's
    message text is the fallback for drivers that expose neither.
    """
    for candidate in _error_chain(error):
        sqlstate = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if sqlstate == POSTGRES_GENERATED_ALWAYS_SQLSTATE:
            return True

        args = getattr(candidate, "args", ())
        if args and args[0] == SQLSERVER_EXPLICIT_IDENTITY_ERROR:
            return True

    messages = _driver_messages(error)
    if any(f"({SQLSERVER_EXPLICIT_IDENTITY_ERROR})" in message for message in messages):
        return True

    message = " ".join(messages).lower()
    return any(marker in message for marker in IDENTITY_MESSAGE_MARKERS)


class IdentityDialect(ABC):
    """Catalog query and explicit-identity directives for one destination dialect"""

    name: str

    @abstractmethod
    def quote(self, identifier: str) -> str:
        pass

    @abstractmethod
    def identity_query(self, table_name: str, column_name: str) -> TextClause:
        """Query returning one truthy scalar when the column is an identity column"""
        pass

    @abstractmethod
    def enable_explicit_identity(self, table_name: str, column_name: str) -> List[TextClause]:
        pass

    @abstractmethod
    def disable_explicit_identity(self, table_name: str, column_name: str) -> List[TextClause]:
        pass

    @staticmethod
    def is_truthy(value) -> bool:
        if isinstance(value, str):
            return value.strip().upper() in ("YES", "TRUE", "1")
        return bool(value)


class PostgresIdentity(IdentityDialect):
    """
    PostgreSQL ``GENERATED ALWAYS AS IDENTITY`` columns.

    Explicit values are allowed by switching the column to
    ``GENERATED BY DEFAULT`` inside the load transaction; DDL is
    transactional, so a rollback also restores the column.
    """

    name = "postgresql"

    def quote(self, identifier: str) -> str:
        return '"' + identifier.replace('"', '""') + '"'

    def identity_query(self, table_name: str, column_name: str) -> TextClause:
        return text(
            "SELECT is_identity FROM information_schema.columns "
            "WHERE table_schema = current_schema() "
            "AND table_name = :table_name AND column_name = :column_name"
        ).bindparams(table_name=table_name, column_name=column_name)

    def enable_explicit_identity(self, table_name: str, column_name: str) -> List[TextClause]:
        return [
            text(
                f"ALTER TABLE {self.quote(table_name)} "
                f"ALTER COLUMN {self.quote(column_name)} SET GENERATED BY DEFAULT"
            )
        ]

    def disable_explicit_identity(self, table_name: str, column_name: str) -> List[TextClause]:
        table = self.quote(table_name)
        column = self.quote(column_name)
        return [
            text(f"ALTER TABLE {table} ALTER COLUMN {column} SET GENERATED ALWAYS"),
            # Move the identity sequence past the explicitly inserted keys
            text(
                f"SELECT setval(pg_get_serial_sequence(:qualified_table, :column_name), "
                f"COALESCE(MAX({column}), 1), MAX({column}) IS NOT NULL) FROM {table}"
            ).bindparams(qualified_table=table, column_name=column_name),
        ]


class SqlServerIdentity(IdentityDialect):
    """SQL Server ``IDENTITY`` columns toggled with ``SET IDENTITY_INSERT``"""

    name = "mssql"

    def __init__(self, schema: str = "dbo"):
        self.schema = schema

    def quote(self, identifier: str) -> str:
        return "[" + identifier.replace("]", "]]") + "]"

    def _qualified(self, table_name: str) -> str:
        return f"{self.quote(self.schema)}.{self.quote(table_name)}"

    def identity_query(self, table_name: str, column_name: str) -> TextClause:
        return text(
            "SELECT c.is_identity FROM sys.columns c "
            "JOIN sys.tables t ON c.object_id = t.object_id "
            "WHERE t.name = :table_name AND c.name = :column_name"
        ).bindparams(table_name=table_name, column_name=column_name)

    def enable_explicit_identity(self, table_name: str, column_name: str) -> List[TextClause]:
        return [text(f"SET IDENTITY_INSERT {self._qualified(table_name)} ON")]

    def disable_explicit_identity(self, table_name: str, column_name: str) -> List[TextClause]:
        return [text(f"SET IDENTITY_INSERT {self._qualified(table_name)} OFF")]


IDENTITY_DIALECTS = {
    PostgresIdentity.name: PostgresIdentity,
    SqlServerIdentity.name: SqlServerIdentity,
}


def identity_dialect_for(dialect_name: str) -> Optional[IdentityDialect]:
    """Identity handling for a SQLAlchemy dialect name, or None if unsupported"""
    dialect_class = IDENTITY_DIALECTS.get(dialect_name)
    if dialect_class is None:
        logger.debug(f"No identity-insert support for dialect {dialect_name}")
        return None
    return dialect_class()
