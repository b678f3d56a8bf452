"""Choice of the sign-off parties printed on exported reports."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from clinic_reports.aggregation.doctor_fees import DoctorFeeAggregate
from clinic_reports.aggregation.field_trips import PersonFieldTripAggregate
from clinic_reports.config.clinic import ClinicProfile, Signatory, load_clinic_profile
from clinic_reports.filters import ReportCriteria, is_active
from clinic_reports.records import DoctorFeeRecord, PersonRole, SalaryRecord

ACKNOWLEDGED_CAPTION = "Mengetahui"
OPERATOR_CAPTION = "Operator Input"
PREPARED_BY_CAPTION = "Dibuat Oleh"


class ReportType(str, Enum):
    DOCTOR_FEES = "doctor_fees"
    FIELD_TRIP = "field_trip"
    SALARY = "salary"
    FINANCIAL = "financial"
    TREATMENTS = "treatments"
    SALES = "sales"
    EXPENSES = "expenses"


# Reports that pay someone: caption under the recipient per role
_RECIPIENT_CAPTIONS = {
    ReportType.DOCTOR_FEES: {PersonRole.DOCTOR: "Fee Diterima"},
    ReportType.FIELD_TRIP: {
        PersonRole.DOCTOR: "Fee Diterima",
        PersonRole.EMPLOYEE: "Bonus Diterima",
    },
    ReportType.SALARY: {PersonRole.EMPLOYEE: "Gaji Diterima"},
}


@dataclass(frozen=True)
class SignatureBlock:
    """Left and right signatories of a printed report."""

    left: Signatory
    right: Signatory

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {"left": self.left.to_dict(), "right": self.right.to_dict()}


@dataclass(frozen=True)
class _Person:
    name: str
    role: PersonRole
    label: str


def _person_of(row: Any) -> _Person | None:
    if isinstance(row, PersonFieldTripAggregate):
        return _Person(row.name, row.role, row.label)
    if isinstance(row, (DoctorFeeAggregate, DoctorFeeRecord)):
        return _Person(row.doctor_name, PersonRole.DOCTOR, "Dokter")
    if isinstance(row, SalaryRecord):
        return _Person(row.employee_name, PersonRole.EMPLOYEE, "Karyawan")
    return None


def _named_person(query: str, people: Sequence[_Person]) -> _Person | None:
    """The one person a name filter points at, or None when it is ambiguous or unmatched.

    Exact and case-insensitive matches win; otherwise the query must be
    contained in exactly one distinct name.
    """
    query = query.strip()
    folded = query.casefold()
    exact = next((p for p in people if p.name == query), None)
    if exact is None:
        exact = next((p for p in people if p.name.casefold() == folded), None)
    if exact is not None:
        return exact

    containing: dict[str, _Person] = {}
    for person in people:
        if folded in person.name.casefold():
            containing.setdefault(person.name, person)
    if len(containing) == 1:
        return next(iter(containing.values()))
    return None


def _recipient(report_type: ReportType, person: _Person, profile: ClinicProfile) -> SignatureBlock:
    captions = _RECIPIENT_CAPTIONS.get(report_type, {})
    caption = captions.get(person.role, "Fee Diterima")
    return SignatureBlock(
        left=Signatory(name=person.name, role=person.label, caption=caption),
        right=replace(profile.owner, caption=PREPARED_BY_CAPTION),
    )


def default_signatures(profile: ClinicProfile | None = None) -> SignatureBlock:
    profile = profile or load_clinic_profile()
    return SignatureBlock(
        left=replace(profile.owner, caption=ACKNOWLEDGED_CAPTION),
        right=replace(profile.administrator, caption=OPERATOR_CAPTION),
    )


def resolve_signatories(
    report_type: ReportType | str,
    filters: ReportCriteria | Mapping[str, Any] | None,
    rows: Sequence[Any],
    profile: ClinicProfile | None = None,
) -> SignatureBlock:
    """Pick the two signatories of a printed report.

    - No person filter: owner (left) and administrator (right).
    - A name filter: the person it selects as recipient (left), owner (right).
      A partial name counts when exactly one row contains it; an unmatched or
      ambiguous name gives the default block.
    - A role-type filter without a name: the first row of that role as
      recipient, owner on the right; default block when no row has the role.

    The result depends only on the arguments.
    """
    report_type = ReportType(report_type)
    criteria = filters if isinstance(filters, ReportCriteria) else ReportCriteria.from_mapping(filters)
    profile = profile or load_clinic_profile()

    if report_type not in _RECIPIENT_CAPTIONS:
        return default_signatures(profile)

    people = [person for person in (_person_of(row) for row in rows) if person is not None]

    if is_active(criteria.name):
        person = _named_person(str(criteria.name), people)
        if person is None:
            return default_signatures(profile)
        return _recipient(report_type, person, profile)

    if is_active(criteria.person_type):
        try:
            wanted = PersonRole(str(criteria.person_type).strip())
        except ValueError:
            return default_signatures(profile)
        first = next((p for p in people if p.role is wanted), None)
        if first is not None:
            return _recipient(report_type, first, profile)

    return default_signatures(profile)
