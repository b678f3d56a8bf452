"""Field-trip fee and bonus accumulation per participant."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any

from clinic_reports.records import ZERO, FieldTripSaleRecord, PersonRole


@dataclass(frozen=True)
class PersonFieldTripAggregate:
    """Total fee (doctors) or bonus (employees) earned on field trips."""

    person_id: str
    name: str
    role: PersonRole
    label: str
    total_amount: Decimal = ZERO
    field_trip_count: int = 0
    event_dates: tuple[date, ...] = ()

    @property
    def average_amount(self) -> Decimal:
        if self.field_trip_count == 0:
            return ZERO
        return self.total_amount / self.field_trip_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "person_id": self.person_id,
            "name": self.name,
            "role": self.role.value,
            "label": self.label,
            "total_amount": str(self.total_amount),
            "field_trip_count": self.field_trip_count,
            "average_amount": str(self.average_amount),
            "event_dates": [value.isoformat() for value in self.event_dates],
        }


@dataclass(frozen=True)
class FieldTripTotals:
    """Footer totals of the field-trip report."""

    doctor_total: Decimal = ZERO
    employee_total: Decimal = ZERO
    doctor_count: int = 0
    employee_count: int = 0

    @property
    def grand_total(self) -> Decimal:
        return self.doctor_total + self.employee_total

    def to_dict(self) -> dict[str, Any]:
        return {
            "doctor_total": str(self.doctor_total),
            "employee_total": str(self.employee_total),
            "grand_total": str(self.grand_total),
            "doctor_count": self.doctor_count,
            "employee_count": self.employee_count,
        }


def _contributions(
    sales: Iterable[FieldTripSaleRecord],
) -> Iterator[tuple[PersonFieldTripAggregate, date | None]]:
    """One single-trip aggregate per participant per sale."""
    for sale in sales:
        for doctor in sale.participant_doctors:
            yield (
                PersonFieldTripAggregate(
                    person_id=doctor.id or doctor.name.lower(),
                    name=doctor.name,
                    role=PersonRole.DOCTOR,
                    label=doctor.specialization or "GP",
                    total_amount=doctor.fee,
                    field_trip_count=1,
                ),
                sale.report_date,
            )
        for employee in sale.participant_employees:
            yield (
                PersonFieldTripAggregate(
                    person_id=employee.id or employee.name.lower(),
                    name=employee.name,
                    role=PersonRole.EMPLOYEE,
                    label=employee.position or "Staff",
                    total_amount=employee.bonus,
                    field_trip_count=1,
                ),
                sale.report_date,
            )


def compute_field_trip_aggregate(
    sales: Iterable[FieldTripSaleRecord],
) -> list[PersonFieldTripAggregate]:
    """Accumulate participant fees and bonuses across field-trip sales.

    Doctors and employees are bucketed by id. The name and label seen first
    for an id are kept. Rows list doctors before employees, each group sorted
    by name.
    """
    buckets: dict[tuple[PersonRole, str], PersonFieldTripAggregate] = {}
    for single, event_date in _contributions(sales):
        key = (single.role, single.person_id)
        dates = (event_date,) if event_date is not None else ()
        current = buckets.get(key)
        if current is None:
            buckets[key] = replace(single, event_dates=dates)
            continue
        buckets[key] = replace(
            current,
            total_amount=current.total_amount + single.total_amount,
            field_trip_count=current.field_trip_count + 1,
            event_dates=current.event_dates + dates,
        )

    role_order = {PersonRole.DOCTOR: 0, PersonRole.EMPLOYEE: 1}
    return sorted(
        buckets.values(),
        key=lambda row: (role_order[row.role], row.name.lower(), row.person_id),
    )


def field_trip_totals(rows: Iterable[PersonFieldTripAggregate]) -> FieldTripTotals:
    totals = FieldTripTotals()
    for row in rows:
        if row.role is PersonRole.DOCTOR:
            totals = replace(
                totals,
                doctor_total=totals.doctor_total + row.total_amount,
                doctor_count=totals.doctor_count + 1,
            )
        else:
            totals = replace(
                totals,
                employee_total=totals.employee_total + row.total_amount,
                employee_count=totals.employee_count + 1,
            )
    return totals
