"""Tests for field-trip fee and bonus accumulation."""

from datetime import date
from decimal import Decimal

from clinic_reports.aggregation import (
    PersonFieldTripAggregate,
    compute_field_trip_aggregate,
    field_trip_totals,
)
from clinic_reports.records import FieldTripDoctor, FieldTripEmployee, PersonRole


def _doctor(person_id, fee, name="drg. A", specialization="GP"):
    return FieldTripDoctor(id=person_id, name=name, specialization=specialization, fee=Decimal(fee))


def _employee(person_id, bonus, name="Siti", position="Perawat"):
    return FieldTripEmployee(id=person_id, name=name, position=position, bonus=Decimal(bonus))


class TestAccumulation:
    """Tests for per-person accumulation."""

    def test_same_doctor_on_two_trips(self, field_trip):
        sales = [
            field_trip(sale_id="ft1", doctors=(_doctor("d1", "200000"),)),
            field_trip(sale_id="ft2", doctors=(_doctor("d1", "150000"),)),
        ]

        rows = compute_field_trip_aggregate(sales)

        assert len(rows) == 1
        assert rows[0].person_id == "d1"
        assert rows[0].total_amount == Decimal("350000")
        assert rows[0].field_trip_count == 2
        assert rows[0].average_amount == Decimal("175000")

    def test_event_date_preferred_over_sale_date(self, field_trip):
        sales = [
            field_trip(
                sale_date=date(2024, 3, 1),
                event_date=date(2024, 3, 15),
                employees=(_employee("e1", "50000"),),
            ),
            field_trip(sale_date=date(2024, 4, 2), employees=(_employee("e1", "50000"),)),
        ]

        rows = compute_field_trip_aggregate(sales)

        assert rows[0].event_dates == (date(2024, 3, 15), date(2024, 4, 2))

    def test_first_seen_name_wins(self, field_trip):
        sales = [
            field_trip(doctors=(_doctor("d1", "100", name="drg. Ani", specialization="Ortho"),)),
            field_trip(doctors=(_doctor("d1", "100", name="DRG ANI", specialization="GP"),)),
        ]

        row = compute_field_trip_aggregate(sales)[0]

        assert row.name == "drg. Ani"
        assert row.label == "Ortho"

    def test_doctors_before_employees_alphabetical(self, field_trip):
        sales = [
            field_trip(
                doctors=(_doctor("d2", "1", name="drg. Zaki"), _doctor("d1", "1", name="drg. budi")),
                employees=(_employee("e1", "1", name="Andi"),),
            )
        ]

        rows = compute_field_trip_aggregate(sales)

        assert [(r.role, r.name) for r in rows] == [
            (PersonRole.DOCTOR, "drg. budi"),
            (PersonRole.DOCTOR, "drg. Zaki"),
            (PersonRole.EMPLOYEE, "Andi"),
        ]

    def test_no_participation_no_row(self, field_trip):
        """Test that a sale without participants yields no rows."""
        assert compute_field_trip_aggregate([field_trip()]) == []

    def test_rederived_from_scratch(self, field_trip):
        sales = [field_trip(doctors=(_doctor("d1", "100"),))]

        first = compute_field_trip_aggregate(sales)
        second = compute_field_trip_aggregate(sales)

        assert first == second
        assert second[0].field_trip_count == 1


class TestAverages:
    """Tests for average correctness."""

    def test_average_times_count_equals_total(self, field_trip):
        sales = [
            field_trip(sale_id=f"ft{i}", doctors=(_doctor("d1", str(fee)),))
            for i, fee in enumerate([100000, 250000, 125000])
        ]

        row = compute_field_trip_aggregate(sales)[0]

        assert abs(row.average_amount * row.field_trip_count - row.total_amount) < Decimal("0.01")

    def test_zero_count_average_is_zero(self):
        row = PersonFieldTripAggregate(
            person_id="x", name="X", role=PersonRole.EMPLOYEE, label="Staff"
        )

        assert row.average_amount == Decimal("0")


class TestTotals:
    """Tests for the report footer totals."""

    def test_totals(self, field_trip):
        rows = compute_field_trip_aggregate(
            [
                field_trip(
                    doctors=(_doctor("d1", "200000"),),
                    employees=(_employee("e1", "50000"), _employee("e2", "25000", name="Rina")),
                )
            ]
        )

        totals = field_trip_totals(rows)

        assert totals.doctor_total == Decimal("200000")
        assert totals.employee_total == Decimal("75000")
        assert totals.grand_total == Decimal("275000")
        assert totals.employee_count == 2
        assert totals.to_dict()["grand_total"] == "275000"
