"""Fetch-all-six-sources-then-aggregate pipeline."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol, TypeVar

import structlog

from clinic_reports.aggregation import (
    DoctorFeeAggregate,
    FinancialPeriodSummary,
    PersonFieldTripAggregate,
    compute_doctor_fee_aggregate,
    compute_field_trip_aggregate,
    compute_financial_summary,
    rollup_yearly,
)
from clinic_reports.errors import FetchFailure
from clinic_reports.records import (
    DoctorFeeRecord,
    ExpenseRecord,
    FieldTripSaleRecord,
    SalaryRecord,
    SaleRecord,
    TreatmentRecord,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SOURCES = ("treatments", "sales", "field_trips", "salaries", "doctor_fees", "expenses")


class ReportSource(Protocol):
    """Anything that can fetch the six report sources (see ClinicAPIClient)."""

    async def fetch_treatment_report(self) -> list[TreatmentRecord]: ...

    async def fetch_sales_report(self) -> list[SaleRecord]: ...

    async def fetch_field_trip_report(self) -> list[FieldTripSaleRecord]: ...

    async def fetch_salary_report(self) -> list[SalaryRecord]: ...

    async def fetch_doctor_fee_report(self) -> list[DoctorFeeRecord]: ...

    async def fetch_expense_report(self) -> list[ExpenseRecord]: ...


@dataclass(frozen=True)
class ReportSnapshot:
    """The six normalized record sets of one successful fetch."""

    treatments: tuple[TreatmentRecord, ...] = ()
    sales: tuple[SaleRecord, ...] = ()
    field_trips: tuple[FieldTripSaleRecord, ...] = ()
    salaries: tuple[SalaryRecord, ...] = ()
    doctor_fees: tuple[DoctorFeeRecord, ...] = ()
    expenses: tuple[ExpenseRecord, ...] = ()
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def counts(self) -> dict[str, int]:
        return {source: len(getattr(self, source)) for source in SOURCES}

    @property
    def is_empty(self) -> bool:
        return not any(self.counts().values())


@dataclass(frozen=True)
class AggregatedReports:
    """Report rows derived from one snapshot."""

    snapshot: ReportSnapshot
    doctor_fees: list[DoctorFeeAggregate]
    field_trip_participants: list[PersonFieldTripAggregate]
    monthly: list[FinancialPeriodSummary]
    yearly: list[FinancialPeriodSummary]

    @property
    def is_empty(self) -> bool:
        return not (self.doctor_fees or self.field_trip_participants or self.monthly)

    def to_dict(self) -> dict[str, Any]:
        return {
            "fetched_at": self.snapshot.fetched_at.isoformat(),
            "counts": self.snapshot.counts(),
            "doctor_fees": [row.to_dict() for row in self.doctor_fees],
            "field_trip_participants": [row.to_dict() for row in self.field_trip_participants],
            "monthly": [row.to_dict() for row in self.monthly],
            "yearly": [row.to_dict() for row in self.yearly],
        }


def aggregate_snapshot(snapshot: ReportSnapshot) -> AggregatedReports:
    """Run the standard rollups over a snapshot."""
    monthly = compute_financial_summary(
        snapshot.treatments,
        snapshot.sales,
        snapshot.field_trips,
        snapshot.salaries,
        snapshot.doctor_fees,
        snapshot.expenses,
    )
    return AggregatedReports(
        snapshot=snapshot,
        doctor_fees=compute_doctor_fee_aggregate(snapshot.doctor_fees, group_by_doctor=True),
        field_trip_participants=compute_field_trip_aggregate(snapshot.field_trips),
        monthly=monthly,
        yearly=rollup_yearly(monthly),
    )


async def _fetch(source: str, fetch: Callable[[], Awaitable[list[T]]]) -> tuple[T, ...]:
    try:
        return tuple(await fetch())
    except Exception as e:
        raise FetchFailure(source, e) from e


class ReportPipeline:
    """Fetches the six sources concurrently and aggregates them.

    A failed cycle raises :class:`FetchFailure` and leaves the last good
    snapshot and reports in place.
    """

    def __init__(self, source: ReportSource):
        self._source = source
        self._last_snapshot: ReportSnapshot | None = None
        self._last_reports: AggregatedReports | None = None
        self._failed_cycles = 0
        self._logger = logger.bind(component="report_pipeline")

    @property
    def last_snapshot(self) -> ReportSnapshot | None:
        return self._last_snapshot

    @property
    def last_reports(self) -> AggregatedReports | None:
        return self._last_reports

    async def fetch_snapshot(self) -> ReportSnapshot:
        """Fetch all six sources; any failure fails the whole fetch."""
        source = self._source
        (
            treatments,
            sales,
            field_trips,
            salaries,
            doctor_fees,
            expenses,
        ) = await asyncio.gather(
            _fetch("treatments", source.fetch_treatment_report),
            _fetch("sales", source.fetch_sales_report),
            _fetch("field_trips", source.fetch_field_trip_report),
            _fetch("salaries", source.fetch_salary_report),
            _fetch("doctor_fees", source.fetch_doctor_fee_report),
            _fetch("expenses", source.fetch_expense_report),
        )
        return ReportSnapshot(
            treatments=treatments,
            sales=sales,
            field_trips=field_trips,
            salaries=salaries,
            doctor_fees=doctor_fees,
            expenses=expenses,
        )

    async def run(self) -> AggregatedReports:
        """One refresh cycle: fetch, aggregate, then replace the last good result."""
        try:
            snapshot = await self.fetch_snapshot()
        except FetchFailure as e:
            self._failed_cycles += 1
            self._logger.warning(
                "refresh_fetch_failed",
                source=e.source,
                error=str(e.cause),
                keeping_snapshot=self._last_snapshot is not None,
            )
            raise

        reports = aggregate_snapshot(snapshot)
        self._last_snapshot = snapshot
        self._last_reports = reports
        self._logger.info("reports_aggregated", **snapshot.counts())
        return reports

    def get_status(self) -> dict[str, Any]:
        return {
            "has_snapshot": self._last_snapshot is not None,
            "fetched_at": (
                self._last_snapshot.fetched_at.isoformat() if self._last_snapshot else None
            ),
            "counts": self._last_snapshot.counts() if self._last_snapshot else {},
            "failed_cycles": self._failed_cycles,
        }
