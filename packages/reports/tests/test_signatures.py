"""Tests for the signature resolver."""

from datetime import date
from decimal import Decimal

import pytest

from clinic_reports.aggregation import compute_doctor_fee_aggregate, compute_field_trip_aggregate
from clinic_reports.config.clinic import DEFAULT_PROFILE, ClinicProfile, Signatory
from clinic_reports.filters import ReportCriteria
from clinic_reports.records import FieldTripDoctor, FieldTripEmployee, SalaryRecord
from clinic_reports.signatures import ReportType, default_signatures, resolve_signatories

OWNER = DEFAULT_PROFILE.owner
ADMIN = DEFAULT_PROFILE.administrator


@pytest.fixture
def field_trip_rows(field_trip):
    return compute_field_trip_aggregate(
        [
            field_trip(
                doctors=(
                    FieldTripDoctor(id="d1", name="drg. Ani", specialization="Ortho", fee=Decimal("1")),
                ),
                employees=(
                    FieldTripEmployee(id="e1", name="Andi", position="Perawat", bonus=Decimal("1")),
                    FieldTripEmployee(id="e2", name="Siti", position="Admin", bonus=Decimal("1")),
                ),
            )
        ]
    )


class TestDefault:
    """Tests for the default owner/administrator block."""

    def test_no_filters(self, field_trip_rows):
        block = resolve_signatories("field_trip", None, field_trip_rows, profile=DEFAULT_PROFILE)

        assert block.left.name == OWNER.name
        assert block.right.name == ADMIN.name
        assert block.left.caption == "Mengetahui"

    def test_all_sentinels(self, field_trip_rows):
        block = resolve_signatories(
            ReportType.FIELD_TRIP,
            ReportCriteria(name="all", person_type="all"),
            field_trip_rows,
            profile=DEFAULT_PROFILE,
        )

        assert block == default_signatures(DEFAULT_PROFILE)

    def test_non_recipient_report_ignores_name(self):
        block = resolve_signatories(
            ReportType.FINANCIAL, ReportCriteria(name="drg. Ani"), [], profile=DEFAULT_PROFILE
        )

        assert block == default_signatures(DEFAULT_PROFILE)

    def test_custom_profile(self):
        profile = ClinicProfile(
            name="Klinik",
            owner=Signatory(name="dr. Pemilik", role="Pemilik"),
            administrator=Signatory(name="Admin", role="Admin"),
        )

        block = resolve_signatories(ReportType.SALES, {}, [], profile=profile)

        assert block.left.name == "dr. Pemilik"
        assert block.right.name == "Admin"

    def test_unknown_report_type_rejected(self):
        with pytest.raises(ValueError):
            resolve_signatories("payroll", None, [], profile=DEFAULT_PROFILE)


class TestNamedPerson:
    """Tests for a name filter selecting the recipient."""

    def test_employee_named_in_field_trip(self, field_trip_rows):
        """Test that the named employee signs left even when not the first row."""
        block = resolve_signatories(
            ReportType.FIELD_TRIP, {"name": "Siti"}, field_trip_rows, profile=DEFAULT_PROFILE
        )

        assert block.left.name == "Siti"
        assert block.left.role == "Admin"
        assert block.left.caption == "Bonus Diterima"
        assert block.right == Signatory(name=OWNER.name, role=OWNER.role, caption="Dibuat Oleh")

    def test_named_doctor_in_doctor_fees(self, doctor_fee):
        rows = compute_doctor_fee_aggregate([doctor_fee(doctor_name="drg. A")], True)

        block = resolve_signatories(
            ReportType.DOCTOR_FEES, ReportCriteria(name="drg. A"), rows, profile=DEFAULT_PROFILE
        )

        assert block.left.name == "drg. A"
        assert block.left.role == "Dokter"
        assert block.left.caption == "Fee Diterima"
        assert block.right.name == OWNER.name

    def test_named_person_without_rows_falls_back(self):
        block = resolve_signatories(
            ReportType.DOCTOR_FEES, ReportCriteria(name="drg. Baru"), [], profile=DEFAULT_PROFILE
        )

        assert block == default_signatures(DEFAULT_PROFILE)

    def test_partial_name_uses_the_only_containing_row(self, doctor_fee):
        """Test that a partial name prints the full name of the single matching row."""
        rows = compute_doctor_fee_aggregate(
            [doctor_fee(doctor_name="drg. Ani"), doctor_fee(doctor_name="drg. Budi")], True
        )

        block = resolve_signatories(
            ReportType.DOCTOR_FEES, ReportCriteria(name="an"), rows, profile=DEFAULT_PROFILE
        )

        assert block.left.name == "drg. Ani"
        assert block.left.caption == "Fee Diterima"
        assert block.right.name == OWNER.name

    def test_ambiguous_partial_name_falls_back(self, field_trip_rows):
        """Test that a partial name found in several rows gives the default block."""
        block = resolve_signatories(
            ReportType.FIELD_TRIP, ReportCriteria(name="A"), field_trip_rows, profile=DEFAULT_PROFILE
        )

        assert block == default_signatures(DEFAULT_PROFILE)

    def test_case_insensitive_exact_match(self, field_trip_rows):
        block = resolve_signatories(
            ReportType.FIELD_TRIP, ReportCriteria(name="siti"), field_trip_rows, profile=DEFAULT_PROFILE
        )

        assert block.left.name == "Siti"

    def test_salary_recipient(self):
        rows = [SalaryRecord(id="g1", employee_name="Siti", month=1, year=2024)]

        block = resolve_signatories(
            ReportType.SALARY, ReportCriteria(name="Siti"), rows, profile=DEFAULT_PROFILE
        )

        assert block.left.name == "Siti"
        assert block.left.caption == "Gaji Diterima"
        assert block.right.name == OWNER.name


class TestRoleType:
    """Tests for a role-type filter without a name."""

    def test_first_employee(self, field_trip_rows):
        block = resolve_signatories(
            ReportType.FIELD_TRIP,
            ReportCriteria(person_type="employee"),
            field_trip_rows,
            profile=DEFAULT_PROFILE,
        )

        assert block.left.name == "Andi"
        assert block.right.name == OWNER.name

    def test_first_doctor(self, field_trip_rows):
        block = resolve_signatories(
            ReportType.FIELD_TRIP,
            ReportCriteria(person_type="doctor"),
            field_trip_rows,
            profile=DEFAULT_PROFILE,
        )

        assert block.left.name == "drg. Ani"
        assert block.left.caption == "Fee Diterima"

    def test_no_row_of_role_falls_back(self, field_trip_rows):
        doctors_only = [r for r in field_trip_rows if r.role.value == "doctor"]

        block = resolve_signatories(
            ReportType.FIELD_TRIP,
            ReportCriteria(person_type="employee"),
            doctors_only,
            profile=DEFAULT_PROFILE,
        )

        assert block == default_signatures(DEFAULT_PROFILE)


class TestPurity:
    """Tests that the result depends only on the inputs."""

    def test_repeated_calls_identical(self, field_trip_rows):
        criteria = ReportCriteria(name="Siti")

        first = resolve_signatories(ReportType.FIELD_TRIP, criteria, field_trip_rows, DEFAULT_PROFILE)
        resolve_signatories(ReportType.FIELD_TRIP, ReportCriteria(name="Andi"), field_trip_rows, DEFAULT_PROFILE)
        second = resolve_signatories(ReportType.FIELD_TRIP, criteria, field_trip_rows, DEFAULT_PROFILE)

        assert first == second

    def test_to_dict(self):
        data = default_signatures(DEFAULT_PROFILE).to_dict()

        assert data["left"]["name"] == OWNER.name
        assert data["right"]["caption"] == "Operator Input"
        assert set(data["left"]) == {"name", "role", "caption"}


def test_dates_irrelevant_to_signatures(doctor_fee):
    rows = compute_doctor_fee_aggregate(
        [doctor_fee(day=date(2024, 1, 5)), doctor_fee(day=date(2024, 2, 5))], True
    )

    block = resolve_signatories(ReportType.DOCTOR_FEES, None, rows, DEFAULT_PROFILE)

    assert block == default_signatures(DEFAULT_PROFILE)


def test_resolves_without_api_token(without_api_token):
    """Test that the bundled profile is used when no API token is configured."""
    block = resolve_signatories(ReportType.FINANCIAL, {}, [])

    assert block.left.name == OWNER.name
    assert block.right.name == ADMIN.name
