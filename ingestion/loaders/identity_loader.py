"""
Load transformed records into destination tables whose primary keys are
identity (auto-numbered) columns.

Records carry their source keys, so a plain insert into a
``GENERATED ALWAYS`` / ``IDENTITY`` column is refused by the destination.
The loader tries the plain insert first and, only when the refusal is an
identity conflict on a real identity column, repeats it inside a
transaction that temporarily allows explicit key values.
"""

from typing import Dict, Iterable, List, Optional, Tuple, Type
from sqlalchemy.ext.asyncio import AsyncSession
from models.base import Base
from models import analytics  # noqa: F401  registers the destination tables
from schemas.records import Record
from ingestion.loaders.identity import IdentityDialect, identity_dialect_for, is_identity_conflict
from core.exceptions import LoadError, LoadIdentityConflict
import logging

logger = logging.getLogger(__name__)


def model_for_table(table_name: str, base=Base) -> Type:
    """ORM class mapped to ``table_name`` (case-insensitive)"""
    for mapper in base.registry.mappers:
        if mapper.class_.__tablename__.lower() == table_name.lower():
            return mapper.class_
    raise LoadError(
        f"No mapped model for table {table_name}",
        context={"table_name": table_name}
    )


class IdentityLoader:
    """
    Bulk insert with identity-insert fallback.

    The loader never commits part of a batch: either every record of a
    ``load_with_identity`` call is committed or none is.

    Attributes:
        db: Destination session, owned by the caller
        dialect: Identity handling for the destination; resolved from the
            session's bind when omitted
    """

    def __init__(self, session: AsyncSession, dialect: Optional[IdentityDialect] = None):
        self.db = session
        self._dialect = dialect
        self._identity_columns: Dict[Tuple[str, str], bool] = {}

    @property
    def dialect(self) -> Optional[IdentityDialect]:
        if self._dialect is None:
            self._dialect = identity_dialect_for(self.db.get_bind().dialect.name)
        return self._dialect

    async def load_with_identity(
        self,
        records: Iterable[Record],
        table_name: str,
        pk_column: str
    ) -> int:
        """
        Insert all records into ``table_name`` keeping their primary keys.

        Args:
            records: Records to insert
            table_name: Destination table
            pk_column: Primary key column holding the source keys

        Returns:
            Number of records loaded

        Raises:
            LoadError: If the records could not be committed
        """
        records = list(records)
        if not records:
            logger.info(f"No records to load into {table_name}")
            return 0

        model = model_for_table(table_name)
        context = {"table_name": table_name, "record_count": len(records)}

        try:
            self.db.add_all(self._to_entities(model, records))
            await self.db.commit()
        except BaseException as e:
            await self._rollback()
            if not isinstance(e, Exception):
                raise

            if not is_identity_conflict(e):
                raise LoadError(
                    f"Failed to load records into {table_name}",
                    context=context,
                    original_exception=e
                )

            conflict = LoadIdentityConflict(
                f"{table_name}.{pk_column} refused explicit key values",
                context=dict(context),
                original_exception=e
            )
            logger.warning(f"{conflict.message}; retrying with identity insert enabled")
            await self._load_with_identity_insert(model, records, table_name, pk_column, conflict)

        self.db.expunge_all()
        logger.info(f"Loaded {len(records)} records into {table_name}")
        return len(records)

    async def is_identity_column(self, table_name: str, column_name: str) -> bool:
        """Catalog lookup, cached for the lifetime of this loader"""
        key = (table_name, column_name)
        if key not in self._identity_columns:
            dialect = self.dialect
            if dialect is None:
                self._identity_columns[key] = False
            else:
                result = await self.db.execute(dialect.identity_query(table_name, column_name))
                self._identity_columns[key] = dialect.is_truthy(result.scalar())
                # End the read-only catalog transaction
                await self.db.rollback()
            logger.debug(f"{table_name}.{column_name} is_identity={self._identity_columns[key]}")
        return self._identity_columns[key]

    async def _load_with_identity_insert(
        self,
        model: Type,
        records: List[Record],
        table_name: str,
        pk_column: str,
        conflict: LoadIdentityConflict
    ):
        try:
            is_identity = await self.is_identity_column(table_name, pk_column)
        except BaseException as e:
            await self._rollback()
            if not isinstance(e, Exception):
                raise
            raise LoadError(
                f"Could not read identity metadata for {table_name}.{pk_column}",
                context=conflict.context,
                original_exception=e
            )

        if not is_identity:
            raise LoadError(
                f"Failed to load records into {table_name}",
                context=conflict.context,
                original_exception=conflict.original_exception
            )

        dialect = self.dialect
        try:
            for statement in dialect.enable_explicit_identity(table_name, pk_column):
                await self.db.execute(statement)

            self.db.add_all(self._to_entities(model, records))
            await self.db.flush()

            for statement in dialect.disable_explicit_identity(table_name, pk_column):
                await self.db.execute(statement)

            await self.db.commit()
        except BaseException as e:
            logger.error(f"Identity insert into {table_name} failed: {e!r}")
            await self._rollback()
            await self._disable_quietly(dialect, table_name, pk_column)
            if not isinstance(e, Exception):
                raise
            raise LoadError(
                f"Identity insert into {table_name} failed",
                context=conflict.context,
                original_exception=e
            )

        logger.info(f"Loaded {len(records)} records into {table_name} with explicit identity values")

    async def _disable_quietly(self, dialect: IdentityDialect, table_name: str, pk_column: str):
        """
        Restore the identity default after a failed batch.

        Runs after the rollback: connection-scoped settings such as SQL
        Server's ``IDENTITY_INSERT`` survive a rollback and must be turned
        off explicitly.
        """
        try:
            for statement in dialect.disable_explicit_identity(table_name, pk_column):
                await self.db.execute(statement)
        except Exception as e:
            logger.debug(f"Could not restore identity on {table_name}.{pk_column}: {str(e)}")
        try:
            await self._rollback()
        except Exception as e:
            logger.debug(f"Rollback after restoring identity on {table_name} failed: {str(e)}")

    async def _rollback(self):
        await self.db.rollback()
        self.db.expunge_all()

    @staticmethod
    def _to_entities(model: Type, records: List[Record]) -> list:
        return [model(**record.model_dump()) for record in records]
