"""Tests for the filter engine."""

from datetime import date
from decimal import Decimal

import pytest

from clinic_reports.aggregation import compute_field_trip_aggregate, compute_financial_summary
from clinic_reports.filters import (
    ReportCriteria,
    criteria_for_current_month,
    filter_records,
    is_active,
    normalize_month,
    sort_newest_first,
)
from clinic_reports.records import (
    FieldTripDoctor,
    FieldTripEmployee,
    PaymentStatus,
    SalaryRecord,
    SaleRecord,
    TreatmentRecord,
)


def _treatment(record_id, day, doctor="drg. A", nominal="100000", status=PaymentStatus.PAID):
    return TreatmentRecord(
        id=record_id,
        date=day,
        patient_name="Budi",
        doctor_name=doctor,
        nominal=Decimal(nominal),
        payment_status=status,
    )


@pytest.fixture
def treatments():
    return [
        _treatment("t1", date(2024, 1, 5)),
        _treatment("t2", date(2024, 1, 20), doctor="drg. Bunga", nominal="300000"),
        _treatment("t3", date(2024, 2, 1), status=PaymentStatus.DOWN_PAYMENT),
        _treatment("t4", None, nominal="50000"),
    ]


class TestSentinels:
    """Tests for the "all" sentinel and month normalization."""

    def test_is_active(self):
        assert not is_active(None)
        assert not is_active("")
        assert not is_active("all")
        assert not is_active(" ALL ")
        assert is_active("drg. A")
        assert is_active(0)

    def test_normalize_month(self):
        assert normalize_month("1") == "01"
        assert normalize_month(12) == "12"
        assert normalize_month("13") is None
        assert normalize_month("all") is None


class TestDateRange:
    """Tests for inclusive date bounds."""

    def test_inclusive_bounds(self, treatments):
        criteria = ReportCriteria(start_date="2024-01-05", end_date="2024-01-20")

        result = filter_records(treatments, criteria)

        assert [r.id for r in result] == ["t1", "t2"]

    def test_open_end(self, treatments):
        result = filter_records(treatments, ReportCriteria(start_date=date(2024, 1, 6)))

        assert [r.id for r in result] == ["t2", "t3"]

    def test_unparseable_bound_is_ignored(self, treatments):
        result = filter_records(treatments, ReportCriteria(start_date="bukan tanggal"))

        assert result == treatments

    def test_no_criteria_keeps_everything(self, treatments):
        assert filter_records(treatments, None) == treatments


class TestPredicates:
    """Tests for text, categorical and amount predicates."""

    def test_name_substring_is_case_insensitive(self, treatments):
        result = filter_records(treatments, ReportCriteria(name="BUNGA"))

        assert [r.id for r in result] == ["t2"]

    def test_status_exact_match(self, treatments):
        result = filter_records(treatments, ReportCriteria(status="DP"))

        assert [r.id for r in result] == ["t3"]

    def test_amount_range_inclusive(self, treatments):
        result = filter_records(
            treatments, ReportCriteria(min_amount="100000", max_amount=Decimal("300000"))
        )

        assert [r.id for r in result] == ["t1", "t2", "t3"]

    def test_unparseable_amount_is_ignored(self, treatments):
        result = filter_records(treatments, ReportCriteria(min_amount="banyak"))

        assert result == treatments

    def test_month_and_year(self, treatments):
        result = filter_records(treatments, ReportCriteria(month=1, year="2024"))

        assert [r.id for r in result] == ["t1", "t2"]

    def test_irrelevant_criteria_are_ignored(self):
        """Test that a patient filter does not apply to sales."""
        sales = [SaleRecord(id="s1", date=date(2024, 1, 1), product_name="Sikat", category="Umum")]

        assert filter_records(sales, ReportCriteria(patient="Budi")) == sales

    def test_category_all_disables(self):
        sales = [
            SaleRecord(id="s1", date=date(2024, 1, 1), product_name="Sikat", category="Umum"),
            SaleRecord(id="s2", date=date(2024, 1, 1), product_name="Obat", category="Farmasi"),
        ]

        assert filter_records(sales, ReportCriteria(category="all")) == sales
        assert [s.id for s in filter_records(sales, {"category": "Farmasi"})] == ["s2"]

    def test_salary_month_filter_uses_slip_period(self):
        salaries = [
            SalaryRecord(id="g1", employee_name="Siti", month=1, year=2024),
            SalaryRecord(id="g2", employee_name="Siti", month=2, year=2024),
        ]

        result = filter_records(salaries, ReportCriteria(month="02"))

        assert [s.id for s in result] == ["g2"]


class TestAggregateRows:
    """Tests for filtering aggregated rows."""

    def test_participant_name_is_exact(self, field_trip):
        rows = compute_field_trip_aggregate(
            [
                field_trip(
                    doctors=(FieldTripDoctor(id="d1", name="drg. Ani", fee=Decimal("1")),),
                    employees=(FieldTripEmployee(id="e1", name="Ani", bonus=Decimal("1")),),
                )
            ]
        )

        result = filter_records(rows, ReportCriteria(name="Ani"))

        assert [r.person_id for r in result] == ["e1"]

    def test_person_type(self, field_trip):
        rows = compute_field_trip_aggregate(
            [
                field_trip(
                    doctors=(FieldTripDoctor(id="d1", name="drg. Ani", fee=Decimal("1")),),
                    employees=(FieldTripEmployee(id="e1", name="Ani", bonus=Decimal("1")),),
                )
            ]
        )

        result = filter_records(rows, ReportCriteria(person_type="doctor"))

        assert [r.person_id for r in result] == ["d1"]

    def test_financial_rows_by_year(self, january_records):
        monthly = compute_financial_summary(**january_records)

        assert filter_records(monthly, ReportCriteria(year=2024)) == monthly
        assert filter_records(monthly, ReportCriteria(year=2023)) == []


class TestProperties:
    """Tests for stable order and idempotence."""

    def test_filter_is_idempotent(self, treatments):
        criteria = ReportCriteria(start_date="2024-01-01", name="drg", min_amount=60000)

        once = filter_records(treatments, criteria)
        twice = filter_records(once, criteria)

        assert once == twice

    def test_preserves_input_order(self, treatments):
        reversed_input = list(reversed(treatments))

        result = filter_records(reversed_input, ReportCriteria(year="2024"))

        assert [r.id for r in result] == ["t3", "t2", "t1"]


class TestHelpers:
    """Tests for default criteria and sorting."""

    def test_criteria_for_current_month(self):
        criteria = criteria_for_current_month(date(2024, 2, 14))

        assert criteria.start_date == date(2024, 2, 1)
        assert criteria.end_date == date(2024, 2, 29)
        assert criteria.month == "02"
        assert criteria.year == "2024"

    def test_sort_newest_first(self, treatments):
        result = sort_newest_first(treatments)

        assert [r.id for r in result] == ["t3", "t2", "t1", "t4"]

    def test_from_mapping_ignores_unknown_keys(self):
        criteria = ReportCriteria.from_mapping({"name": "drg. A", "groupByDoctor": True})

        assert criteria == ReportCriteria(name="drg. A")
