"""
Tests for failure scenarios and error handling
"""

import asyncio
import json
import httpx
import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy import select
from core.exceptions import StagingWriteError
from ingestion.runner import ETLRunner
from ingestion.staging import StagingStore
from models.analytics import Customer as CustomerRow
from models.base import OutcomeStatus, RunStatus
from schemas.records import Customer


def failing_transport(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.mark.asyncio
async def test_missing_csv_file_isolated(csv_sources, make_runner):
    """
    Test: one CSV file is missing, the other sources still stage and load
    """
    (csv_sources / "customers.csv").unlink()

    runner = make_runner()
    previous = json.dumps([{"CustomerID": 1, "FirstName": "Ana"}, {"CustomerID": 3, "FirstName": "Ben"}])
    (runner.staging.staging_path / "Customers_20240101_120000.json").write_text(previous, encoding="utf-8")

    run = await runner.run()

    assert run.status == RunStatus.SUCCEEDED
    assert run.source_outcomes["Customers"].status == OutcomeStatus.FAILED
    assert "customers.csv" in run.source_outcomes["Customers"].error
    assert run.source_outcomes["Products"].status == OutcomeStatus.SUCCESS
    assert run.failed_sources == ["Customers"]

    # Nothing new staged for Customers: the previous snapshot is still the latest
    assert [path.name for path in runner.staging.list_snapshots("Customers")] == [
        "Customers_20240101_120000.json"
    ]
    assert run.load_outcomes["customers"].record_count == 2
    assert run.load_outcomes["products"].record_count == 1


@pytest.mark.asyncio
async def test_database_source_failure_isolated(csv_sources, make_runner, destination_session_maker):
    """
    Test: the relational source query fails, CSV sources are unaffected
    """
    # The destination database has no reviews table
    runner = make_runner(source_session_maker=destination_session_maker)

    run = await runner.run()

    assert run.status == RunStatus.SUCCEEDED
    assert run.source_outcomes["Reviews"].status == OutcomeStatus.FAILED
    assert runner.staging.list_snapshots("Reviews") == []
    assert run.records_loaded == 7


@pytest.mark.asyncio
async def test_api_source_down_failure_logged(test_settings, csv_sources, make_runner):
    """
    Test: API source is down, the run logs the failure but doesn't crash
    """
    test_settings.API_BASE_URL = "https://api.example.com"

    async with httpx.AsyncClient(transport=httpx.MockTransport(failing_transport)) as client:
        runner = make_runner(http_client=client)
        run = await runner.run()

    assert run.status == RunStatus.SUCCEEDED
    assert run.source_outcomes["Comments"].status == OutcomeStatus.FAILED
    assert "Connection refused" in run.source_outcomes["Comments"].error
    assert run.source_outcomes["ApiReviews"].status == OutcomeStatus.SKIPPED
    assert runner.staging.list_snapshots("Comments") == []
    assert run.records_loaded == 7


@pytest.mark.asyncio
async def test_api_error_status_stages_nothing(test_settings, csv_sources, make_runner):
    """
    Test: a non-success status stages nothing for that endpoint only
    """
    test_settings.API_BASE_URL = "https://api.example.com"
    test_settings.API_REVIEWS_ENDPOINT = "/reviews"

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/reviews":
            return httpx.Response(200, json=[{"reviewId": 7, "rating": 4}])
        return httpx.Response(500, text="internal error")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        runner = make_runner(http_client=client)
        run = await runner.run()

    assert run.source_outcomes["Comments"].status == OutcomeStatus.FAILED
    assert run.source_outcomes["ApiReviews"].status == OutcomeStatus.SUCCESS
    assert run.source_outcomes["ApiReviews"].record_count == 1
    assert runner.staging.list_snapshots("Comments") == []
    assert len(runner.staging.list_snapshots("ApiReviews")) == 1


@pytest.mark.asyncio
async def test_staging_write_failure_fails_run_after_all_sources(csv_sources, make_runner):
    """
    Test: a staging write failure is fatal, but the other source groups finish first
    """
    original_save = StagingStore.save

    async def failing_save(self, source_name, records):
        if source_name == "Products":
            raise StagingWriteError("Disk full", context={"source_name": source_name})
        return await original_save(self, source_name, records)

    runner = make_runner()
    with patch.object(StagingStore, "save", failing_save):
        run = await runner.run()

    assert run.status == RunStatus.FAILED
    assert "Disk full" in run.error
    assert len(runner.staging.list_snapshots("Reviews")) == 1
    assert "transform" not in run.phase_timings
    assert run.completed_at is not None


@pytest.mark.asyncio
async def test_load_failure_leaves_records_pending(csv_sources, make_runner, destination_session_maker):
    """
    Test: the first failing table stops the load, the run still succeeds
    """
    async with destination_session_maker() as session:
        session.add(CustomerRow(customer_id=1, first_name="Existing"))
        await session.commit()

    run = await make_runner().run()

    assert run.status == RunStatus.SUCCEEDED
    assert run.load_pending
    assert run.records_loaded == 0
    assert run.records_pending == 2 + 1 + 2 + 2
    assert run.load_outcomes["customers"].status == OutcomeStatus.FAILED
    assert run.load_outcomes["products"].status == OutcomeStatus.PENDING
    assert run.load_outcomes["order_details"].record_count == 2

    # The failed batch committed nothing
    async with destination_session_maker() as session:
        rows = (await session.execute(select(CustomerRow))).scalars().all()
    assert [(row.customer_id, row.first_name) for row in rows] == [(1, "Existing")]


@pytest.mark.asyncio
async def test_malformed_staging_fails_run(make_runner):
    """
    Test: an unreadable staging snapshot aborts the run before anything is loaded
    """
    runner = make_runner()
    (runner.staging.staging_path / "Customers_20240101_120000.json").write_text("{broken", encoding="utf-8")

    run = await runner.run()

    assert run.status == RunStatus.FAILED
    assert "StagingReadError" in run.error
    assert await runner.staging.load("Customers_Transformed", Customer) == []
    assert run.load_outcomes == {}


@pytest.mark.asyncio
async def test_unexpected_error_fails_run(make_runner):
    runner = make_runner()

    with patch.object(ETLRunner, "transform_phase", AsyncMock(side_effect=RuntimeError("boom"))):
        run = await runner.run()

    assert run.status == RunStatus.FAILED
    assert "UnexpectedError" in run.error
    assert "boom" in run.error


@pytest.mark.asyncio
async def test_cancellation_propagates(make_runner):
    runner = make_runner()

    with patch.object(ETLRunner, "extract_phase", AsyncMock(side_effect=asyncio.CancelledError())):
        with pytest.raises(asyncio.CancelledError):
            await runner.run()
