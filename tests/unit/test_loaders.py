"""
Unit tests for the identity-aware loader
"""

import asyncio
import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError
from core.exceptions import LoadError
from ingestion.loaders.identity import PostgresIdentity, SqlServerIdentity
from ingestion.loaders.identity_loader import IdentityLoader, model_for_table
from models.analytics import Customer as CustomerRow
from schemas.records import Customer


class DriverError(Exception):
    """Stand-in for a DB-API exception carrying a SQLSTATE"""

    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


def identity_error():
    return ProgrammingError(
        "INSERT INTO customers ...",
        {},
        DriverError('cannot insert a non-DEFAULT value into column "customer_id"', sqlstate="428C9"),
    )


def unique_violation():
    return IntegrityError(
        "INSERT INTO customers ...",
        {},
        DriverError("duplicate key value violates unique constraint", sqlstate="23505"),
    )


def mock_session(is_identity="YES"):
    """Session double: sync add_all/expunge_all, async everything else"""
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.flush = AsyncMock()

    catalog_result = MagicMock()
    catalog_result.scalar.return_value = is_identity
    session.execute = AsyncMock(return_value=catalog_result)
    return session


def executed_sql(session):
    return [str(call.args[0]) for call in session.execute.await_args_list]


@pytest.fixture
def customers():
    return [Customer(customer_id=i, first_name=f"C{i}") for i in (5, 7, 9)]


class TestModelResolution:

    def test_resolves_table_case_insensitively(self):
        assert model_for_table("Customers") is CustomerRow
        assert model_for_table("order_details").__tablename__ == "order_details"

    def test_unknown_table(self):
        with pytest.raises(LoadError):
            model_for_table("invoices")


class TestIdentityLoader:

    @pytest.mark.asyncio
    async def test_empty_input_is_noop(self):
        session = mock_session()
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        assert await loader.load_with_identity([], "customers", "customer_id") == 0
        session.add_all.assert_not_called()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_direct_insert(self, customers):
        session = mock_session()
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        loaded = await loader.load_with_identity(customers, "customers", "customer_id")

        assert loaded == 3
        entities = session.add_all.call_args.args[0]
        assert [entity.customer_id for entity in entities] == [5, 7, 9]
        assert isinstance(entities[0], CustomerRow)
        session.commit.assert_awaited_once()
        session.execute.assert_not_awaited()
        session.expunge_all.assert_called()

    @pytest.mark.asyncio
    async def test_identity_fallback_preserves_keys(self, customers):
        session = mock_session(is_identity="YES")
        session.commit.side_effect = [identity_error(), None]
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        loaded = await loader.load_with_identity(customers, "customers", "customer_id")

        assert loaded == 3
        statements = executed_sql(session)
        assert "information_schema.columns" in statements[0]
        assert "SET GENERATED BY DEFAULT" in statements[1]
        assert "SET GENERATED ALWAYS" in statements[2]
        assert "setval" in statements[3]

        retried = session.add_all.call_args_list[-1].args[0]
        assert [entity.customer_id for entity in retried] == [5, 7, 9]
        session.flush.assert_awaited_once()
        assert session.commit.await_count == 2

    @pytest.mark.asyncio
    async def test_fallback_failure_rolls_back_and_restores_identity(self, customers):
        session = mock_session(is_identity="YES")
        session.commit.side_effect = [identity_error()]
        session.flush.side_effect = unique_violation()
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        with pytest.raises(LoadError) as exc_info:
            await loader.load_with_identity(customers, "customers", "customer_id")

        statements = executed_sql(session)
        assert any("SET GENERATED ALWAYS" in sql for sql in statements)
        # Only the refused direct insert ever reached commit
        assert session.commit.await_count == 1
        # Direct failure, catalog read, fallback failure, after restoring identity
        assert session.rollback.await_count == 4
        assert isinstance(exc_info.value.original_exception, IntegrityError)

    @pytest.mark.asyncio
    async def test_identity_restored_after_rollback(self, customers):
        session = mock_session(is_identity=1)
        session.commit.side_effect = [identity_error()]
        session.flush.side_effect = unique_violation()

        events = []
        catalog_result = session.execute.return_value

        async def execute(statement):
            events.append(str(statement))
            return catalog_result

        async def rollback():
            events.append("ROLLBACK")

        session.execute.side_effect = execute
        session.rollback.side_effect = rollback
        loader = IdentityLoader(session, dialect=SqlServerIdentity())

        with pytest.raises(LoadError):
            await loader.load_with_identity(customers, "customers", "customer_id")

        assert events[-3:] == [
            "ROLLBACK",
            "SET IDENTITY_INSERT [dbo].[customers] OFF",
            "ROLLBACK",
        ]
        assert "SET IDENTITY_INSERT [dbo].[customers] ON" in events

    @pytest.mark.asyncio
    async def test_catalog_failure_raises_load_error(self, customers):
        session = mock_session()
        session.commit.side_effect = [identity_error()]
        session.execute.side_effect = OperationalError(
            "SELECT is_identity FROM ...", {}, Exception("server closed the connection")
        )
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        with pytest.raises(LoadError) as exc_info:
            await loader.load_with_identity(customers, "customers", "customer_id")

        assert isinstance(exc_info.value.original_exception, OperationalError)
        assert exc_info.value.context["table_name"] == "customers"
        assert session.commit.await_count == 1
        # Direct failure, failed catalog read
        assert session.rollback.await_count == 2

    @pytest.mark.asyncio
    async def test_catalog_cancellation_propagates(self, customers):
        session = mock_session()
        session.commit.side_effect = [identity_error()]
        session.execute.side_effect = asyncio.CancelledError()
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        with pytest.raises(asyncio.CancelledError):
            await loader.load_with_identity(customers, "customers", "customer_id")
        assert session.rollback.await_count == 2

    @pytest.mark.asyncio
    async def test_disable_failure_is_swallowed(self, customers):
        session = mock_session(is_identity="YES")
        session.commit.side_effect = [identity_error()]
        session.flush.side_effect = unique_violation()
        catalog_result = session.execute.return_value
        session.execute.side_effect = [
            catalog_result,            # catalog
            None,                      # enable
            RuntimeError("aborted"),   # best-effort disable
        ]
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        with pytest.raises(LoadError) as exc_info:
            await loader.load_with_identity(customers, "customers", "customer_id")

        assert isinstance(exc_info.value.original_exception, IntegrityError)

    @pytest.mark.asyncio
    async def test_non_identity_column_reraises(self, customers):
        session = mock_session(is_identity="NO")
        session.commit.side_effect = [identity_error()]
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        with pytest.raises(LoadError) as exc_info:
            await loader.load_with_identity(customers, "customers", "customer_id")

        assert session.execute.await_count == 1
        assert isinstance(exc_info.value.original_exception, ProgrammingError)
        assert session.commit.await_count == 1

    @pytest.mark.asyncio
    async def test_other_failures_raise_load_error(self, customers):
        session = mock_session()
        session.commit.side_effect = [unique_violation()]
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        with pytest.raises(LoadError) as exc_info:
            await loader.load_with_identity(customers, "customers", "customer_id")

        session.execute.assert_not_awaited()
        session.rollback.assert_awaited_once()
        assert exc_info.value.context["table_name"] == "customers"
        assert exc_info.value.context["record_count"] == 3

    @pytest.mark.asyncio
    async def test_cancellation_rolls_back(self, customers):
        session = mock_session()
        session.commit.side_effect = asyncio.CancelledError()
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        with pytest.raises(asyncio.CancelledError):
            await loader.load_with_identity(customers, "customers", "customer_id")
        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_identity_facts_cached(self):
        session = mock_session(is_identity="YES")
        loader = IdentityLoader(session, dialect=PostgresIdentity())

        assert await loader.is_identity_column("customers", "customer_id")
        assert await loader.is_identity_column("customers", "customer_id")
        assert session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_unsupported_dialect_has_no_identity_columns(self):
        session = mock_session()
        session.get_bind = MagicMock(return_value=MagicMock(dialect=MagicMock()))
        session.get_bind.return_value.dialect.name = "sqlite"
        loader = IdentityLoader(session)

        assert loader.dialect is None
        assert not await loader.is_identity_column("customers", "customer_id")
        session.execute.assert_not_awaited()


class TestLoaderAgainstSQLite:

    @pytest.mark.asyncio
    async def test_loads_explicit_keys(self, destination_session_maker, customers):
        async with destination_session_maker() as session:
            loaded = await IdentityLoader(session).load_with_identity(customers, "customers", "customer_id")

        assert loaded == 3
        async with destination_session_maker() as session:
            rows = (await session.execute(select(CustomerRow).order_by(CustomerRow.customer_id))).scalars().all()
        assert [(row.customer_id, row.first_name) for row in rows] == [(5, "C5"), (7, "C7"), (9, "C9")]

    @pytest.mark.asyncio
    async def test_duplicate_keys_commit_nothing(self, destination_session_maker):
        records = [Customer(customer_id=1, first_name="A"), Customer(customer_id=1, first_name="B")]

        async with destination_session_maker() as session:
            with pytest.raises(LoadError):
                await IdentityLoader(session).load_with_identity(records, "customers", "customer_id")

        async with destination_session_maker() as session:
            rows = (await session.execute(select(CustomerRow))).scalars().all()
        assert rows == []
