"""
Relational source extractor running read-only queries
"""

from datetime import datetime
from typing import Callable, List, Optional, Type
import pandas as pd
from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from ingestion.base import Extractor, T
from models.base import SourceType
from core.exceptions import DatabaseExtractionError
import logging

logger = logging.getLogger(__name__)

QueryBuilder = Callable[[Select], Select]


def recent_rows(column, months: int, now: Optional[datetime] = None) -> QueryBuilder:
    """
    Build a query override keeping rows newer than ``now - months``, newest first.

    Example:
        recent_rows(ReviewRow.review_date, months=6)
    """
    cutoff = (pd.Timestamp(now or datetime.now()) - pd.DateOffset(months=months)).to_pydatetime()

    def build(statement: Select) -> Select:
        return statement.where(column >= cutoff).order_by(column.desc())

    return build


class DatabaseExtractor(Extractor[T]):
    """
    Extract records from a table of the relational source database.

    The query selects plain column rows rather than ORM entities, so nothing
    is tracked by the session, and the session is never committed.

    Attributes:
        model: ORM class mapped to the source table
        query_builder: Optional override applied to ``SELECT <columns> FROM <table>``
    """

    source_type = SourceType.DATABASE
    error_class = DatabaseExtractionError

    def __init__(
        self,
        name: str,
        record_type: Type[T],
        session_maker: async_sessionmaker[AsyncSession],
        model,
        query_builder: Optional[QueryBuilder] = None
    ):
        super().__init__(name=name, record_type=record_type)
        self.session_maker = session_maker
        self.model = model
        self.query_builder = query_builder

    def build_query(self) -> Select:
        """Base statement with the optional filter/ordering override applied"""
        statement = select(*self.model.__table__.columns)
        if self.query_builder is not None:
            statement = self.query_builder(statement)
        return statement

    async def fetch_records(self) -> List[T]:
        statement = self.build_query()
        table_name = self.model.__tablename__

        logger.info(f"Querying {table_name} for {self.name}")

        try:
            async with self.session_maker() as session:
                result = await session.execute(statement)
                rows = result.mappings().all()
                # Read-only: discard whatever transaction the query opened
                await session.rollback()
        except SQLAlchemyError as e:
            raise DatabaseExtractionError(
                self.name,
                f"Query against {table_name} failed",
                context={"model": table_name},
                original_exception=e
            )

        return self.validate_rows(rows)
