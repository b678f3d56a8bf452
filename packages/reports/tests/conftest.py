"""Pytest configuration and fixtures."""

import os
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("CLINIC_API_TOKEN", "test-token")
os.environ.setdefault("CLINIC_API_URL", "http://localhost:8000")

from clinic_reports.records import (  # noqa: E402
    DoctorFeeRecord,
    ExpenseRecord,
    FieldTripDoctor,
    FieldTripEmployee,
    FieldTripSaleRecord,
    SalaryRecord,
    SaleRecord,
    TreatmentRecord,
)


class FakeClock:
    """Clock returning a settable time."""

    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def set_date(self, value: date, hour: int = 9) -> None:
        self.current = datetime(value.year, value.month, value.day, hour)


def make_doctor_fee(
    doctor_name: str = "drg. A",
    day: date | None = date(2024, 1, 5),
    treatment_fee: str = "70000",
    sitting_fee: str = "30000",
    has_treatments: bool = True,
    record_id: str | None = None,
) -> DoctorFeeRecord:
    return DoctorFeeRecord(
        id=record_id or f"{doctor_name}_{day}",
        doctor_name=doctor_name,
        date=day,
        treatment_fee=Decimal(treatment_fee),
        sitting_fee=Decimal(sitting_fee),
        has_treatments=has_treatments,
    )


def make_field_trip(
    sale_id: str = "ft-1",
    sale_date: date | None = date(2024, 3, 1),
    event_date: date | None = None,
    doctors: tuple[FieldTripDoctor, ...] = (),
    employees: tuple[FieldTripEmployee, ...] = (),
    total_amount: str = "1000000",
    organization: str = "SD Negeri 1",
) -> FieldTripSaleRecord:
    return FieldTripSaleRecord(
        id=sale_id,
        sale_date=sale_date,
        event_date=event_date,
        organization=organization,
        location="Bandung",
        total_amount=Decimal(total_amount),
        participant_doctors=doctors,
        participant_employees=employees,
    )


@pytest.fixture
def without_api_token(monkeypatch):
    """Environment with no CLINIC_API_TOKEN and fresh config caches."""
    from clinic_reports.config import get_profile_settings, get_settings, load_clinic_profile

    caches = (get_settings, get_profile_settings, load_clinic_profile)
    monkeypatch.delenv("CLINIC_API_TOKEN", raising=False)
    for cached in caches:
        cached.cache_clear()
    yield
    for cached in caches:
        cached.cache_clear()


@pytest.fixture
def fake_clock():
    """Clock fixed at 2024-02-01 09:00."""
    return FakeClock(datetime(2024, 2, 1, 9))


@pytest.fixture
def fast_sleep():
    """Sleep replacement that records delays instead of waiting."""
    return AsyncMock(return_value=None)


@pytest.fixture
def january_records():
    """One record of every kind in January 2024."""
    return {
        "treatments": [
            TreatmentRecord(
                id="t1",
                date=date(2024, 1, 10),
                patient_name="Budi",
                doctor_name="drg. A",
                nominal=Decimal("1000000"),
                calculated_fee=Decimal("300000"),
            )
        ],
        "sales": [
            SaleRecord(
                id="s1_item_0",
                date=date(2024, 1, 11),
                product_name="Sikat Gigi",
                category="Perawatan",
                total_amount=Decimal("500000"),
            )
        ],
        "field_trips": [],
        "salaries": [
            SalaryRecord(
                id="g1",
                employee_name="Siti",
                month=1,
                year=2024,
                base_salary=Decimal("700000"),
                bonus=Decimal("50000"),
                holiday_allowance=Decimal("50000"),
            )
        ],
        "doctor_fees": [
            make_doctor_fee(day=date(2024, 1, 10), treatment_fee="250000", sitting_fee="50000")
        ],
        "expenses": [
            ExpenseRecord(
                id="e1",
                date=date(2024, 1, 20),
                category="Operasional",
                description="Listrik",
                amount=Decimal("100000"),
            )
        ],
    }


@pytest.fixture
def doctor_fee():
    """Factory for DoctorFeeRecord."""
    return make_doctor_fee


@pytest.fixture
def field_trip():
    """Factory for FieldTripSaleRecord."""
    return make_field_trip
