"""Raw API payloads to canonical records.

The clinic API returns loosely shaped JSON: legacy field names, numbers as
strings, optional fields missing altogether. Everything here is total: a bad
or missing numeric becomes zero and a bad date becomes ``None``; nothing
raises for a record of the documented shape.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from clinic_reports.records import (
    ZERO,
    DoctorFeeRecord,
    ExpenseRecord,
    FieldTripDoctor,
    FieldTripEmployee,
    FieldTripSaleRecord,
    PaymentStatus,
    SalaryRecord,
    SaleRecord,
    TreatmentRecord,
)

logger = structlog.get_logger(__name__)

# Field priority for the amount charged on a treatment. totalTindakan comes
# first because it already includes the admin fee and medication.
TREATMENT_NOMINAL_KEYS = (
    "totalTindakan",
    "totalNominal",
    "subtotal",
    "nominal",
    "amount",
    "totalAmount",
    "price",
    "total",
)

DEFAULT_SHIFT = "09:00-15:00"
NO_TREATMENT_SHIFT = "Tidak ada tindakan"

_WHITESPACE = re.compile(r"\s+")


def to_decimal(value: Any, field_name: str = "") -> Decimal:
    """Parse a money/quantity value; anything unparseable is zero."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        logger.debug("numeric_field_defaulted", field=field_name, value=repr(value))
        return ZERO
    if not parsed.is_finite():
        logger.debug("numeric_field_defaulted", field=field_name, value=repr(value))
        return ZERO
    return parsed


def to_date(value: Any) -> date | None:
    """Parse an ISO date or datetime string into a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.debug("date_field_defaulted", value=text)
        return None


def to_int(value: Any, default: int = 0) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _first_present(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _first_text(raw: Mapping[str, Any], keys: Iterable[str], default: str = "") -> str:
    for key in keys:
        text = _text(raw.get(key))
        if text:
            return text
    return default


def normalize_doctor_key(name: str) -> str:
    """Comparison key for doctor names (case and whitespace insensitive)."""
    return _WHITESPACE.sub(" ", name.strip().lower())


def display_doctor_name(name: str) -> str:
    return _WHITESPACE.sub(" ", name.strip())


# === Treatments ===


def _treatment_name(raw: Mapping[str, Any]) -> str:
    types = raw.get("treatmentTypes")
    if isinstance(types, list) and types:
        names = [
            _first_text(item, ("name", "treatmentName", "type"))
            for item in types
            if isinstance(item, Mapping)
        ]
        names = [name for name in names if name]
        if names:
            return ", ".join(names)
    return _first_text(raw, ("treatmentType", "treatmentName", "description"), "Tindakan")


def normalize_treatment(raw: Mapping[str, Any]) -> TreatmentRecord:
    """Normalize one raw treatment."""
    status_label = _text(raw.get("paymentStatus"), "Belum Lunas")
    return TreatmentRecord(
        id=_text(raw.get("id")),
        date=to_date(_first_present(raw, ("date", "tanggal"))),
        patient_name=_text(raw.get("patientName")),
        doctor_name=display_doctor_name(
            _first_text(raw, ("doctorName", "doctor_name", "doctor"))
        ),
        treatment_name=_treatment_name(raw),
        nominal=to_decimal(_first_present(raw, TREATMENT_NOMINAL_KEYS), "nominal"),
        calculated_fee=to_decimal(
            _first_present(raw, ("calculatedFee", "fee")), "calculatedFee"
        ),
        payment_status=PaymentStatus.from_raw(status_label),
        payment_status_label=status_label,
        shift=_text(raw.get("shift")),
    )


# === Sales ===


def normalize_sale(raw: Mapping[str, Any]) -> list[SaleRecord]:
    """Flatten one raw sale into one record per item.

    The sale-level discount is spread over the items in proportion to each
    item's subtotal.
    """
    sale_id = _text(raw.get("id"))
    sale_date = to_date(_first_present(raw, ("date", "tanggal")))
    notes = _first_text(raw, ("notes", "catatan"))
    items = raw.get("items") or raw.get("produk") or []
    sale_discount = to_decimal(raw.get("discount"), "discount")

    if not isinstance(items, list) or not items:
        total = to_decimal(_first_present(raw, ("total", "jumlah_total")), "total")
        subtotal = to_decimal(raw.get("subtotal"), "subtotal") or total
        return [
            SaleRecord(
                id=sale_id,
                date=sale_date,
                product_name="Penjualan Umum",
                category="Umum",
                quantity=Decimal("1"),
                unit_price=total,
                subtotal=subtotal,
                discount_amount=sale_discount,
                total_amount=total,
                notes=notes,
            )
        ]

    sale_subtotal = to_decimal(_first_present(raw, ("subtotal", "total")), "subtotal")
    records: list[SaleRecord] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            continue
        quantity = to_decimal(_first_present(item, ("quantity", "jumlah")), "quantity")
        if quantity == ZERO:
            quantity = Decimal("1")
        unit_price = to_decimal(
            _first_present(item, ("pricePerUnit", "harga", "price")), "pricePerUnit"
        )
        item_subtotal = quantity * unit_price
        discount = (
            item_subtotal / sale_subtotal * sale_discount if sale_subtotal > 0 else ZERO
        )
        item_total = item_subtotal - discount
        records.append(
            SaleRecord(
                id=f"{sale_id}_item_{index}",
                date=sale_date,
                product_name=_first_text(
                    item, ("productName", "nama", "name"), "Produk Tidak Diketahui"
                ),
                category=_first_text(item, ("category", "kategori"), "Umum"),
                quantity=quantity,
                unit_price=unit_price,
                subtotal=item_subtotal,
                discount_amount=discount,
                total_amount=item_total if item_total > 0 else item_subtotal,
                notes=notes or _text(item.get("notes")),
            )
        )
    return records


# === Field trips ===


def _participant_doctors(raw: Any) -> tuple[FieldTripDoctor, ...]:
    if not isinstance(raw, list):
        return ()
    doctors = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        doctors.append(
            FieldTripDoctor(
                id=_first_text(item, ("id", "doctorId")),
                name=_first_text(item, ("name", "doctorName"), "Unknown Doctor"),
                specialization=_text(item.get("specialization"), "GP"),
                fee=to_decimal(item.get("fee"), "fee"),
            )
        )
    return tuple(doctors)


def _participant_employees(raw: Any) -> tuple[FieldTripEmployee, ...]:
    if not isinstance(raw, list):
        return ()
    employees = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        employees.append(
            FieldTripEmployee(
                id=_first_text(item, ("id", "employeeId")),
                name=_first_text(item, ("name", "employeeName"), "Unknown Employee"),
                position=_text(item.get("position"), "Staff"),
                bonus=to_decimal(item.get("bonus"), "bonus"),
            )
        )
    return tuple(employees)


def normalize_field_trip_sale(raw: Mapping[str, Any]) -> FieldTripSaleRecord:
    """Normalize one raw field-trip sale."""
    return FieldTripSaleRecord(
        id=_text(raw.get("id")),
        sale_date=to_date(_first_present(raw, ("saleDate", "date", "created_at"))),
        event_date=to_date(raw.get("eventDate")),
        organization=_first_text(raw, ("organization", "customerName")),
        location=_text(raw.get("location")),
        product_name=_text(raw.get("productName"), "Field Trip Product"),
        total_amount=to_decimal(
            _first_present(raw, ("totalAmount", "finalAmount")), "totalAmount"
        ),
        participant_doctors=_participant_doctors(
            raw.get("selectedDoctors") or raw.get("participantDoctors")
        ),
        participant_employees=_participant_employees(
            raw.get("selectedEmployees") or raw.get("participantEmployees")
        ),
    )


# === Salaries ===


def normalize_salary(raw: Mapping[str, Any]) -> SalaryRecord:
    """Normalize one salary slip; the total is always recomputed."""
    return SalaryRecord(
        id=_text(raw.get("id")),
        employee_name=_first_text(raw, ("employeeName", "name")),
        month=to_int(raw.get("month")),
        year=to_int(raw.get("year")),
        base_salary=to_decimal(raw.get("baseSalary"), "baseSalary"),
        bonus=to_decimal(raw.get("bonus"), "bonus"),
        holiday_allowance=to_decimal(raw.get("holidayAllowance"), "holidayAllowance"),
    )


# === Expenses ===


def normalize_expense(raw: Mapping[str, Any]) -> ExpenseRecord:
    return ExpenseRecord(
        id=_text(raw.get("id")),
        date=to_date(raw.get("date")),
        category=_text(raw.get("category")),
        description=_first_text(raw, ("description", "name")),
        amount=to_decimal(raw.get("amount"), "amount"),
        notes=_text(raw.get("notes")),
    )


# === Doctor fees ===


def normalize_doctor_fee(raw: Mapping[str, Any]) -> DoctorFeeRecord:
    """Normalize an already-combined doctor fee row."""
    doctor_name = display_doctor_name(
        _first_text(raw, ("doctorName", "doctor", "doctor_name"))
    )
    fee_date = to_date(raw.get("date"))
    return DoctorFeeRecord(
        id=_text(raw.get("id")) or f"{normalize_doctor_key(doctor_name)}_{fee_date or ''}",
        doctor_id=_text(raw.get("doctorId")),
        doctor_name=doctor_name,
        date=fee_date,
        shift=_text(raw.get("shift")),
        treatment_fee=to_decimal(raw.get("treatmentFee"), "treatmentFee"),
        sitting_fee=to_decimal(raw.get("sittingFee"), "sittingFee"),
        has_treatments=bool(raw.get("hasTreatments", False)),
        treatment_count=to_int(raw.get("treatmentCount")),
    )


def _shift_label(shifts: list[str]) -> str:
    if not shifts:
        return DEFAULT_SHIFT
    if len(shifts) == 1:
        return shifts[0]
    return f"{shifts[0]} (+{len(shifts) - 1} shift lain)"


def build_doctor_fee_records(
    treatments: Iterable[Mapping[str, Any]],
    sitting_fees: Iterable[Mapping[str, Any]],
    sitting_fee_settings: Iterable[Mapping[str, Any]] = (),
    default_sitting_fee: Decimal = ZERO,
) -> list[DoctorFeeRecord]:
    """Combine treatments and sitting fees into one record per doctor per day.

    Shift is ignored for grouping. The sitting fee of a doctor/day is the
    highest one recorded, else the doctor's configured default, else
    ``default_sitting_fee``. Days with a sitting fee but no treatments become
    standalone records.
    """
    settings_by_doctor: dict[str, Decimal] = {}
    display_names: dict[str, str] = {}
    for setting in sitting_fee_settings:
        name = _first_text(setting, ("doctorName", "doctor_name", "doctor"))
        if not name:
            continue
        key = normalize_doctor_key(name)
        settings_by_doctor[key] = to_decimal(
            _first_present(setting, ("amount", "jumlah")), "amount"
        )
        display_names.setdefault(key, display_doctor_name(name))

    sitting_by_day: dict[tuple[str, date | None], Decimal] = {}
    for fee in sitting_fees:
        name = _first_text(fee, ("doctorName", "doctor_name", "doctor"), "Unknown")
        key = normalize_doctor_key(name)
        display_names.setdefault(key, display_doctor_name(name))
        day = to_date(_first_present(fee, ("date", "tanggal")))
        amount = to_decimal(
            _first_present(fee, ("amount", "uang_duduk", "sittingFee")), "amount"
        )
        current = sitting_by_day.get((key, day))
        if current is None or amount > current:
            sitting_by_day[(key, day)] = amount

    groups: dict[tuple[str, date | None], dict[str, Any]] = {}
    for treatment in treatments:
        name = _first_text(treatment, ("doctorName", "doctor_name", "doctor"), "Unknown")
        key = normalize_doctor_key(name)
        day = to_date(_first_present(treatment, ("date", "tanggal")))
        group = groups.setdefault(
            (key, day),
            {
                "doctor_name": display_doctor_name(name),
                "doctor_id": _text(treatment.get("doctorId")),
                "treatment_fee": ZERO,
                "count": 0,
                "shifts": [],
            },
        )
        group["treatment_fee"] += to_decimal(
            _first_present(treatment, ("calculatedFee", "fee")), "calculatedFee"
        )
        group["count"] += 1
        shift = _text(treatment.get("shift"), DEFAULT_SHIFT)
        if shift not in group["shifts"]:
            group["shifts"].append(shift)

    records: list[DoctorFeeRecord] = []
    for (key, day), group in groups.items():
        sitting = sitting_by_day.get((key, day)) or settings_by_doctor.get(key) or default_sitting_fee
        records.append(
            DoctorFeeRecord(
                id=f"{key}_{day or ''}",
                doctor_id=group["doctor_id"],
                doctor_name=group["doctor_name"],
                date=day,
                shift=_shift_label(group["shifts"]),
                treatment_fee=group["treatment_fee"],
                sitting_fee=sitting,
                has_treatments=True,
                treatment_count=group["count"],
            )
        )

    for (key, day), amount in sitting_by_day.items():
        if (key, day) in groups or amount <= 0:
            continue
        records.append(
            DoctorFeeRecord(
                id=f"{key}_{day or ''}",
                doctor_name=display_names.get(key, "Unknown"),
                date=day,
                shift=NO_TREATMENT_SHIFT,
                sitting_fee=amount,
                has_treatments=False,
            )
        )

    records.sort(key=lambda record: record.date or date.min, reverse=True)
    logger.debug(
        "doctor_fee_records_built",
        records=len(records),
        with_treatments=len(groups),
    )
    return records
