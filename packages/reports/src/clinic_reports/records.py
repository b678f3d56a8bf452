"""Canonical record kinds for the six report sources.

Records are produced by :mod:`clinic_reports.normalizer` and are read-only
from then on. Money is always ``Decimal`` so that totals are exact sums of
their parts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum

ZERO = Decimal("0")


class PaymentStatus(str, Enum):
    """Payment status of a treatment."""

    PAID = "Lunas"
    DOWN_PAYMENT = "DP"
    OTHER = "other"

    @classmethod
    def from_raw(cls, value: str | None) -> PaymentStatus:
        if not value:
            return cls.OTHER
        normalized = value.strip().lower()
        if normalized == "lunas":
            return cls.PAID
        if normalized == "dp":
            return cls.DOWN_PAYMENT
        return cls.OTHER


class PersonRole(str, Enum):
    """Participant kind on a field trip."""

    DOCTOR = "doctor"
    EMPLOYEE = "employee"


@dataclass(frozen=True)
class TreatmentRecord:
    """A medical treatment performed on a patient."""

    id: str
    date: date | None
    patient_name: str
    doctor_name: str
    treatment_name: str = "Tindakan"
    nominal: Decimal = ZERO
    calculated_fee: Decimal = ZERO
    payment_status: PaymentStatus = PaymentStatus.OTHER
    payment_status_label: str = ""
    shift: str = ""


@dataclass(frozen=True)
class SaleRecord:
    """A single product line from a clinic sale."""

    id: str
    date: date | None
    product_name: str
    category: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = ZERO
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    total_amount: Decimal = ZERO
    notes: str = ""


@dataclass(frozen=True)
class FieldTripDoctor:
    id: str
    name: str
    specialization: str = "GP"
    fee: Decimal = ZERO


@dataclass(frozen=True)
class FieldTripEmployee:
    id: str
    name: str
    position: str = "Staff"
    bonus: Decimal = ZERO


@dataclass(frozen=True)
class FieldTripSaleRecord:
    """A field-trip package sold to an organization."""

    id: str
    sale_date: date | None
    organization: str
    location: str
    total_amount: Decimal = ZERO
    event_date: date | None = None
    product_name: str = ""
    participant_doctors: tuple[FieldTripDoctor, ...] = field(default_factory=tuple)
    participant_employees: tuple[FieldTripEmployee, ...] = field(default_factory=tuple)

    @property
    def report_date(self) -> date | None:
        """Date used for bucketing: the event date, else the sale date."""
        return self.event_date or self.sale_date

    @property
    def total_doctor_fees(self) -> Decimal:
        return sum((doctor.fee for doctor in self.participant_doctors), ZERO)

    @property
    def total_employee_bonuses(self) -> Decimal:
        return sum((employee.bonus for employee in self.participant_employees), ZERO)

    @property
    def total_participant_payout(self) -> Decimal:
        return self.total_doctor_fees + self.total_employee_bonuses


@dataclass(frozen=True)
class SalaryRecord:
    """Monthly salary slip of an employee."""

    id: str
    employee_name: str
    month: int
    year: int
    base_salary: Decimal = ZERO
    bonus: Decimal = ZERO
    holiday_allowance: Decimal = ZERO

    @property
    def total_salary(self) -> Decimal:
        return self.base_salary + self.bonus + self.holiday_allowance


@dataclass(frozen=True)
class DoctorFeeRecord:
    """Fee owed to a doctor for one working day."""

    id: str
    doctor_name: str
    date: date | None
    doctor_id: str = ""
    shift: str = ""
    treatment_fee: Decimal = ZERO
    sitting_fee: Decimal = ZERO
    has_treatments: bool = False
    treatment_count: int = 0

    @property
    def final_fee(self) -> Decimal:
        return self.treatment_fee + self.sitting_fee


@dataclass(frozen=True)
class ExpenseRecord:
    """An operating expense."""

    id: str
    date: date | None
    category: str
    description: str = ""
    amount: Decimal = ZERO
    notes: str = ""


Record = (
    TreatmentRecord
    | SaleRecord
    | FieldTripSaleRecord
    | SalaryRecord
    | DoctorFeeRecord
    | ExpenseRecord
)
