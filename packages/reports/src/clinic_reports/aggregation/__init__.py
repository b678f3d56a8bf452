"""Aggregators that turn filtered records into report rows."""

from clinic_reports.aggregation.doctor_fees import (
    DoctorFeeAggregate,
    compute_doctor_fee_aggregate,
    total_doctor_fees,
)
from clinic_reports.aggregation.field_trips import (
    FieldTripTotals,
    PersonFieldTripAggregate,
    compute_field_trip_aggregate,
    field_trip_totals,
)
from clinic_reports.aggregation.financial import (
    MONTHLY_VIEW,
    YEARLY_VIEW,
    FinancialPeriodSummary,
    compute_financial_summary,
    grand_total,
    rollup_yearly,
    select_financial_view,
)

__all__ = [
    "DoctorFeeAggregate",
    "compute_doctor_fee_aggregate",
    "total_doctor_fees",
    "PersonFieldTripAggregate",
    "FieldTripTotals",
    "compute_field_trip_aggregate",
    "field_trip_totals",
    "FinancialPeriodSummary",
    "compute_financial_summary",
    "rollup_yearly",
    "select_financial_view",
    "grand_total",
    "MONTHLY_VIEW",
    "YEARLY_VIEW",
]
