"""Six-source monthly financial rollup and its yearly re-rollup."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from functools import reduce
from typing import Any

import structlog

from clinic_reports.aggregation.periods import format_month, format_year
from clinic_reports.records import (
    ZERO,
    DoctorFeeRecord,
    ExpenseRecord,
    FieldTripSaleRecord,
    SalaryRecord,
    SaleRecord,
    TreatmentRecord,
)

logger = structlog.get_logger(__name__)

HUNDRED = Decimal("100")

MONTHLY_VIEW = "monthly"
YEARLY_VIEW = "yearly"

_AMOUNT_FIELDS = (
    "treatment_income",
    "sales_income",
    "field_trip_income",
    "salary_expense",
    "doctor_fee_expense",
    "field_trip_expense",
    "other_expenses",
)


@dataclass(frozen=True)
class FinancialPeriodSummary:
    """Income and expense for one month, or for one year when ``month`` is None.

    Totals, profit and margin are derived from the constituent fields and are
    never stored.
    """

    year: int
    month: int | None = None
    treatment_income: Decimal = ZERO
    sales_income: Decimal = ZERO
    field_trip_income: Decimal = ZERO
    salary_expense: Decimal = ZERO
    doctor_fee_expense: Decimal = ZERO
    field_trip_expense: Decimal = ZERO
    other_expenses: Decimal = ZERO
    month_count: int = 1

    @property
    def total_income(self) -> Decimal:
        return self.treatment_income + self.sales_income + self.field_trip_income

    @property
    def total_expense(self) -> Decimal:
        return (
            self.salary_expense
            + self.doctor_fee_expense
            + self.field_trip_expense
            + self.other_expenses
        )

    @property
    def profit(self) -> Decimal:
        return self.total_income - self.total_expense

    @property
    def margin_percent(self) -> Decimal:
        if self.total_income == 0:
            return ZERO
        return self.profit / self.total_income * HUNDRED

    @property
    def period_key(self) -> str:
        if self.month is None:
            return str(self.year)
        return f"{self.year}-{self.month:02d}"

    @property
    def period_label(self) -> str:
        if self.month is None:
            return format_year(self.year)
        return format_month(self.year, self.month)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "period": self.period_key,
            "period_label": self.period_label,
            "year": self.year,
            "month": self.month,
            "month_count": self.month_count,
        }
        for name in _AMOUNT_FIELDS:
            data[name] = str(getattr(self, name))
        data.update(
            total_income=str(self.total_income),
            total_expense=str(self.total_expense),
            profit=str(self.profit),
            margin_percent=str(self.margin_percent),
        )
        return data


def _combine(left: FinancialPeriodSummary, right: FinancialPeriodSummary) -> FinancialPeriodSummary:
    """Add the amounts of ``right`` into ``left`` (keeping left's period)."""
    amounts = {name: getattr(left, name) + getattr(right, name) for name in _AMOUNT_FIELDS}
    return replace(left, month_count=left.month_count + right.month_count, **amounts)


def _month_key(value: date | None) -> tuple[int, int] | None:
    if value is None:
        return None
    return value.year, value.month


def _salary_key(record: SalaryRecord) -> tuple[int, int] | None:
    if record.year <= 0 or not 1 <= record.month <= 12:
        return None
    return record.year, record.month


def compute_financial_summary(
    treatments: Iterable[TreatmentRecord] = (),
    sales: Iterable[SaleRecord] = (),
    field_trips: Iterable[FieldTripSaleRecord] = (),
    salaries: Iterable[SalaryRecord] = (),
    doctor_fees: Iterable[DoctorFeeRecord] = (),
    expenses: Iterable[ExpenseRecord] = (),
) -> list[FinancialPeriodSummary]:
    """Build one summary per (year, month) observed in the inputs, newest first.

    Records without a usable date (or salary month/year) are left out.
    """
    contributions: list[tuple[tuple[int, int] | None, dict[str, Decimal]]] = []
    contributions.extend(
        (_month_key(r.date), {"treatment_income": r.nominal}) for r in treatments
    )
    contributions.extend(
        (_month_key(r.date), {"sales_income": r.total_amount}) for r in sales
    )
    contributions.extend(
        (
            _month_key(r.report_date),
            {
                "field_trip_income": r.total_amount,
                "field_trip_expense": r.total_participant_payout,
            },
        )
        for r in field_trips
    )
    contributions.extend(
        (_salary_key(r), {"salary_expense": r.total_salary}) for r in salaries
    )
    contributions.extend(
        (_month_key(r.date), {"doctor_fee_expense": r.final_fee}) for r in doctor_fees
    )
    contributions.extend(
        (_month_key(r.date), {"other_expenses": r.amount}) for r in expenses
    )

    buckets: dict[tuple[int, int], FinancialPeriodSummary] = {}
    skipped = 0
    for key, amounts in contributions:
        if key is None:
            skipped += 1
            continue
        single = FinancialPeriodSummary(year=key[0], month=key[1], **amounts)
        current = buckets.get(key)
        buckets[key] = single if current is None else _combine(current, single)

    if skipped:
        logger.debug("financial_records_without_period", skipped=skipped)

    return [buckets[key] for key in sorted(buckets, reverse=True)]


def rollup_yearly(monthly: Iterable[FinancialPeriodSummary]) -> list[FinancialPeriodSummary]:
    """Re-sum monthly rows into one row per year, newest first.

    Profit and margin of a yearly row come from its re-summed totals.
    """
    by_year: dict[int, list[FinancialPeriodSummary]] = {}
    for row in monthly:
        by_year.setdefault(row.year, []).append(row)

    rows = []
    for year in sorted(by_year, reverse=True):
        months = by_year[year]
        seed = replace(months[0], month=None)
        rows.append(reduce(_combine, months[1:], seed))
    return rows


def select_financial_view(
    monthly: Iterable[FinancialPeriodSummary],
    view: str = MONTHLY_VIEW,
    year: int | str | None = "all",
) -> list[FinancialPeriodSummary]:
    """Apply the year filter, then the monthly or yearly view.

    An empty list means there is no data for the selection.
    """
    if view not in (MONTHLY_VIEW, YEARLY_VIEW):
        raise ValueError(f"unknown financial view: {view!r}")

    rows = list(monthly)
    if year is not None and str(year).strip().lower() not in ("", "all"):
        wanted = str(year).strip()
        rows = [row for row in rows if str(row.year) == wanted]

    if view == YEARLY_VIEW:
        return rollup_yearly(rows)
    return rows


def grand_total(rows: Iterable[FinancialPeriodSummary]) -> FinancialPeriodSummary | None:
    """Sum all rows into a single footer row (``None`` for no rows).

    The footer carries the year of the first row.
    """
    rows = list(rows)
    if not rows:
        return None
    return reduce(_combine, rows[1:], replace(rows[0], month=None))

