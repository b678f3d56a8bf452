"""Tests for the fetch-then-aggregate pipeline."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from clinic_reports.errors import FetchFailure
from clinic_reports.pipeline import SOURCES, ReportPipeline, ReportSnapshot, aggregate_snapshot
from clinic_reports.records import ExpenseRecord


@pytest.fixture
def source(january_records):
    """A report source returning the January records."""
    mock = MagicMock()
    mock.fetch_treatment_report = AsyncMock(return_value=january_records["treatments"])
    mock.fetch_sales_report = AsyncMock(return_value=january_records["sales"])
    mock.fetch_field_trip_report = AsyncMock(return_value=[])
    mock.fetch_salary_report = AsyncMock(return_value=january_records["salaries"])
    mock.fetch_doctor_fee_report = AsyncMock(return_value=january_records["doctor_fees"])
    mock.fetch_expense_report = AsyncMock(return_value=january_records["expenses"])
    return mock


class TestPipelineRun:
    """Tests for ReportPipeline.run."""

    @pytest.mark.asyncio
    async def test_fetches_all_sources(self, source):
        pipeline = ReportPipeline(source)

        reports = await pipeline.run()

        assert reports.snapshot.counts() == {
            "treatments": 1,
            "sales": 1,
            "field_trips": 0,
            "salaries": 1,
            "doctor_fees": 1,
            "expenses": 1,
        }
        assert reports.monthly[0].profit == Decimal("300000")
        assert reports.yearly[0].year == 2024
        assert len(reports.doctor_fees) == 1
        assert pipeline.last_reports is reports

    @pytest.mark.asyncio
    async def test_failure_keeps_last_snapshot(self, source):
        pipeline = ReportPipeline(source)
        first = await pipeline.run()
        source.fetch_expense_report.side_effect = ConnectionError("connection reset")

        with pytest.raises(FetchFailure) as exc_info:
            await pipeline.run()

        assert exc_info.value.source == "expenses"
        assert isinstance(exc_info.value.cause, ConnectionError)
        assert pipeline.last_snapshot is first.snapshot
        assert pipeline.last_reports is first
        assert pipeline.get_status()["failed_cycles"] == 1

    @pytest.mark.asyncio
    async def test_first_failure_leaves_nothing(self, source):
        source.fetch_treatment_report.side_effect = RuntimeError("500")
        pipeline = ReportPipeline(source)

        with pytest.raises(FetchFailure):
            await pipeline.run()

        assert pipeline.last_snapshot is None
        assert pipeline.get_status()["has_snapshot"] is False


class TestSnapshot:
    """Tests for snapshots and their aggregates."""

    def test_empty_snapshot(self):
        snapshot = ReportSnapshot()

        assert snapshot.is_empty
        assert set(snapshot.counts()) == set(SOURCES)
        assert aggregate_snapshot(snapshot).is_empty

    def test_to_dict(self):
        snapshot = ReportSnapshot(
            expenses=(
                ExpenseRecord(id="e1", date=date(2024, 5, 2), category="Sewa", amount=Decimal("10")),
            )
        )

        data = aggregate_snapshot(snapshot).to_dict()

        assert data["counts"]["expenses"] == 1
        assert data["monthly"][0]["period"] == "2024-05"
        assert data["yearly"][0]["period_label"] == "Tahun 2024"
        assert data["doctor_fees"] == []
