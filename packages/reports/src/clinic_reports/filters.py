"""Per-report predicate chains over normalized records and report rows."""

from __future__ import annotations

import calendar
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, TypeVar

from clinic_reports.aggregation.doctor_fees import DoctorFeeAggregate
from clinic_reports.aggregation.field_trips import PersonFieldTripAggregate
from clinic_reports.aggregation.financial import FinancialPeriodSummary
from clinic_reports.normalizer import to_date
from clinic_reports.records import (
    DoctorFeeRecord,
    ExpenseRecord,
    FieldTripSaleRecord,
    SalaryRecord,
    SaleRecord,
    TreatmentRecord,
)

T = TypeVar("T")

ALL = "all"


@dataclass(frozen=True)
class ReportCriteria:
    """Active filter state of a report view.

    ``None``, ``""`` and ``"all"`` all mean "no filter" for a criterion.
    """

    start_date: date | str | None = None
    end_date: date | str | None = None
    name: str | None = None
    organization: str | None = None
    product: str | None = None
    location: str | None = None
    patient: str | None = None
    category: str | None = None
    status: str | None = None
    person_type: str | None = None
    month: int | str | None = None
    year: int | str | None = None
    min_amount: Decimal | int | float | str | None = None
    max_amount: Decimal | int | float | str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> ReportCriteria:
        """Build criteria from a plain dict, ignoring unknown keys."""
        if not data:
            return cls()
        known = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    def is_active(self, criterion: str) -> bool:
        return is_active(getattr(self, criterion))


@dataclass(frozen=True)
class FieldMap:
    """Which record attributes each criterion reads for one record kind."""

    date: Callable[[Any], date | None] | None = None
    period: Callable[[Any], tuple[int | None, int | None]] | None = None
    text: Mapping[str, Callable[[Any], str | None]] | None = None
    exact: Mapping[str, Callable[[Any], str | None]] | None = None
    amount: Callable[[Any], Decimal] | None = None


def _period_of(getter: Callable[[Any], date | None]) -> Callable[[Any], tuple[int | None, int | None]]:
    def period(record: Any) -> tuple[int | None, int | None]:
        value = getter(record)
        if value is None:
            return None, None
        return value.year, value.month

    return period


FIELD_MAPS: dict[type, FieldMap] = {
    TreatmentRecord: FieldMap(
        date=lambda r: r.date,
        period=_period_of(lambda r: r.date),
        text={"name": lambda r: r.doctor_name, "patient": lambda r: r.patient_name},
        exact={"status": lambda r: r.payment_status.value},
        amount=lambda r: r.nominal,
    ),
    SaleRecord: FieldMap(
        date=lambda r: r.date,
        period=_period_of(lambda r: r.date),
        text={"product": lambda r: r.product_name},
        exact={"category": lambda r: r.category},
        amount=lambda r: r.total_amount,
    ),
    FieldTripSaleRecord: FieldMap(
        date=lambda r: r.report_date,
        period=_period_of(lambda r: r.report_date),
        text={
            "organization": lambda r: r.organization,
            "location": lambda r: r.location,
            "product": lambda r: r.product_name,
        },
        amount=lambda r: r.total_amount,
    ),
    SalaryRecord: FieldMap(
        period=lambda r: (r.year, r.month),
        text={"name": lambda r: r.employee_name},
        amount=lambda r: r.total_salary,
    ),
    DoctorFeeRecord: FieldMap(
        date=lambda r: r.date,
        period=_period_of(lambda r: r.date),
        text={"name": lambda r: r.doctor_name},
        amount=lambda r: r.final_fee,
    ),
    ExpenseRecord: FieldMap(
        date=lambda r: r.date,
        period=_period_of(lambda r: r.date),
        text={"name": lambda r: r.description},
        exact={"category": lambda r: r.category},
        amount=lambda r: r.amount,
    ),
    PersonFieldTripAggregate: FieldMap(
        exact={"name": lambda r: r.name, "person_type": lambda r: r.role.value},
        amount=lambda r: r.total_amount,
    ),
    DoctorFeeAggregate: FieldMap(
        text={"name": lambda r: r.doctor_name},
        amount=lambda r: r.total_fee,
    ),
    FinancialPeriodSummary: FieldMap(
        period=lambda r: (r.year, r.month),
    ),
}

_EMPTY_MAP = FieldMap()


def is_active(value: Any) -> bool:
    """True unless the value is absent or the ``"all"`` sentinel."""
    if value is None:
        return False
    if isinstance(value, str):
        stripped = value.strip()
        return bool(stripped) and stripped.lower() != ALL
    return True


def parse_amount(value: Any) -> Decimal | None:
    if not is_active(value) or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


def normalize_month(value: Any) -> str | None:
    """Month as ``"01"``-``"12"``; ``None`` for anything else."""
    if not is_active(value):
        return None
    try:
        month = int(str(value).strip())
    except ValueError:
        return None
    if not 1 <= month <= 12:
        return None
    return f"{month:02d}"


def _matches_date(value: date | None, start: date | None, end: date | None) -> bool:
    if start is None and end is None:
        return True
    if value is None:
        return False
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    return True


def _matches_period(
    period: tuple[int | None, int | None], month: str | None, year: str | None
) -> bool:
    record_year, record_month = period
    if month is not None:
        if record_month is None or f"{record_month:02d}" != month:
            return False
    if year is not None:
        if record_year is None or str(record_year) != year:
            return False
    return True


def _build_predicate(field_map: FieldMap, criteria: ReportCriteria) -> Callable[[Any], bool]:
    checks: list[Callable[[Any], bool]] = []

    if field_map.date is not None:
        start = to_date(criteria.start_date) if is_active(criteria.start_date) else None
        end = to_date(criteria.end_date) if is_active(criteria.end_date) else None
        if start is not None or end is not None:
            get_date = field_map.date
            checks.append(lambda r: _matches_date(get_date(r), start, end))

    if field_map.period is not None:
        month = normalize_month(criteria.month)
        year = str(criteria.year).strip() if is_active(criteria.year) else None
        if month is not None or year is not None:
            get_period = field_map.period
            checks.append(lambda r: _matches_period(get_period(r), month, year))

    for criterion, getter in (field_map.text or {}).items():
        needle = getattr(criteria, criterion)
        if is_active(needle):
            lowered = str(needle).strip().lower()
            checks.append(
                lambda r, get=getter, text=lowered: text in (get(r) or "").lower()
            )

    for criterion, getter in (field_map.exact or {}).items():
        wanted = getattr(criteria, criterion)
        if is_active(wanted):
            expected = str(wanted).strip()
            checks.append(lambda r, get=getter, value=expected: (get(r) or "") == value)

    if field_map.amount is not None:
        low = parse_amount(criteria.min_amount)
        high = parse_amount(criteria.max_amount)
        get_amount = field_map.amount
        if low is not None:
            checks.append(lambda r: get_amount(r) >= low)
        if high is not None:
            checks.append(lambda r: get_amount(r) <= high)

    return lambda record: all(check(record) for check in checks)


def filter_records(
    records: Iterable[T], criteria: ReportCriteria | Mapping[str, Any] | None
) -> list[T]:
    """Keep the records matching every applicable criterion, in input order.

    Criteria that do not apply to a record kind are ignored.
    """
    if not isinstance(criteria, ReportCriteria):
        criteria = ReportCriteria.from_mapping(criteria)
    predicates: dict[type, Callable[[Any], bool]] = {}
    kept = []
    for record in records:
        kind = type(record)
        predicate = predicates.get(kind)
        if predicate is None:
            predicate = _build_predicate(FIELD_MAPS.get(kind, _EMPTY_MAP), criteria)
            predicates[kind] = predicate
        if predicate(record):
            kept.append(record)
    return kept


def criteria_for_current_month(today: date | None = None) -> ReportCriteria:
    """Default dashboard criteria: the whole of the current month."""
    today = today or date.today()
    last_day = calendar.monthrange(today.year, today.month)[1]
    return ReportCriteria(
        start_date=today.replace(day=1),
        end_date=today.replace(day=last_day),
        month=f"{today.month:02d}",
        year=str(today.year),
    )


def _sort_key(record: Any) -> tuple[bool, date]:
    field_map = FIELD_MAPS.get(type(record), _EMPTY_MAP)
    if field_map.date is not None:
        value = field_map.date(record)
        return value is not None, value or date.min
    if field_map.period is not None:
        year, month = field_map.period(record)
        if year and year > 0:
            return True, date(year, month if month and 1 <= month <= 12 else 1, 1)
    return False, date.min


def sort_newest_first(records: Sequence[T]) -> list[T]:
    """Sort by record date, newest first; undated records go last."""
    return sorted(records, key=_sort_key, reverse=True)
