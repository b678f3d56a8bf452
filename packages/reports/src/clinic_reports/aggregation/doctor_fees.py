"""Doctor fee grouping with period-range synthesis."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from clinic_reports.aggregation.periods import format_date_range, format_day
from clinic_reports.records import ZERO, DoctorFeeRecord


@dataclass(frozen=True)
class DoctorFeeAggregate:
    """Fees owed to one doctor over a period (or one day when ungrouped)."""

    doctor_name: str
    period_label: str
    treatment_fee: Decimal = ZERO
    sitting_fee: Decimal = ZERO
    record_count: int = 0
    has_treatments: bool = False
    doctor_id: str = ""
    first_date: date | None = None
    last_date: date | None = None

    @property
    def total_fee(self) -> Decimal:
        return self.treatment_fee + self.sitting_fee

    def to_dict(self) -> dict[str, Any]:
        return {
            "doctor_name": self.doctor_name,
            "doctor_id": self.doctor_id,
            "period_label": self.period_label,
            "treatment_fee": str(self.treatment_fee),
            "sitting_fee": str(self.sitting_fee),
            "total_fee": str(self.total_fee),
            "record_count": self.record_count,
            "has_treatments": self.has_treatments,
            "first_date": self.first_date.isoformat() if self.first_date else None,
            "last_date": self.last_date.isoformat() if self.last_date else None,
        }


def _single(record: DoctorFeeRecord) -> DoctorFeeAggregate:
    return DoctorFeeAggregate(
        doctor_name=record.doctor_name,
        doctor_id=record.doctor_id,
        period_label=format_day(record.date),
        treatment_fee=record.treatment_fee,
        sitting_fee=record.sitting_fee,
        record_count=1,
        has_treatments=record.has_treatments,
        first_date=record.date,
        last_date=record.date,
    )


def _doctor_total(records: list[DoctorFeeRecord]) -> DoctorFeeAggregate:
    """One row for all of a doctor's records, dated from the earliest to the latest."""
    dates = [record.date for record in records if record.date is not None]
    first_date = min(dates, default=None)
    last_date = max(dates, default=None)
    return DoctorFeeAggregate(
        doctor_name=records[0].doctor_name,
        doctor_id=next((r.doctor_id for r in records if r.doctor_id), ""),
        period_label=format_date_range(first_date, last_date),
        treatment_fee=sum((r.treatment_fee for r in records), ZERO),
        sitting_fee=sum((r.sitting_fee for r in records), ZERO),
        record_count=len(records),
        has_treatments=any(r.has_treatments for r in records),
        first_date=first_date,
        last_date=last_date,
    )


def compute_doctor_fee_aggregate(
    records: Iterable[DoctorFeeRecord], group_by_doctor: bool
) -> list[DoctorFeeAggregate]:
    """Aggregate doctor fee records for display.

    Ungrouped, every record becomes its own row, newest first. Grouped, there
    is one row per doctor name whose period label spans the earliest and
    latest date of that doctor's records; rows are ordered by total fee,
    highest first.
    """
    records = list(records)
    if not group_by_doctor:
        return sorted(
            (_single(record) for record in records),
            key=lambda row: (row.first_date is not None, row.first_date or date.min),
            reverse=True,
        )

    by_doctor: dict[str, list[DoctorFeeRecord]] = {}
    for record in records:
        by_doctor.setdefault(record.doctor_name, []).append(record)
    rows = [_doctor_total(group) for group in by_doctor.values()]
    return sorted(rows, key=lambda row: (-row.total_fee, row.doctor_name.lower()))


def total_doctor_fees(rows: Iterable[DoctorFeeAggregate]) -> Decimal:
    return sum((row.total_fee for row in rows), ZERO)
