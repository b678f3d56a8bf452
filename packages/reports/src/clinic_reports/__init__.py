"""Clinic reports - financial aggregation engine and monthly refresh scheduler."""

__version__ = "0.1.0"

from clinic_reports.aggregation import (
    DoctorFeeAggregate,
    FinancialPeriodSummary,
    PersonFieldTripAggregate,
    compute_doctor_fee_aggregate,
    compute_field_trip_aggregate,
    compute_financial_summary,
    rollup_yearly,
    select_financial_view,
)
from clinic_reports.clients import ClinicAPIClient
from clinic_reports.config import configure_logging, get_settings
from clinic_reports.errors import FetchFailure, RefreshExhausted, ReportError
from clinic_reports.filters import ReportCriteria, filter_records
from clinic_reports.pipeline import AggregatedReports, ReportPipeline, ReportSnapshot
from clinic_reports.scheduler import (
    HealthStatus,
    RefreshPhase,
    RefreshScheduler,
    RetryPolicy,
)
from clinic_reports.signatures import ReportType, SignatureBlock, resolve_signatories

__all__ = [
    # Version
    "__version__",
    # Aggregation
    "DoctorFeeAggregate",
    "PersonFieldTripAggregate",
    "FinancialPeriodSummary",
    "compute_doctor_fee_aggregate",
    "compute_field_trip_aggregate",
    "compute_financial_summary",
    "rollup_yearly",
    "select_financial_view",
    # Filters & signatures
    "ReportCriteria",
    "filter_records",
    "ReportType",
    "SignatureBlock",
    "resolve_signatories",
    # Pipeline & scheduler
    "ClinicAPIClient",
    "ReportPipeline",
    "ReportSnapshot",
    "AggregatedReports",
    "RefreshScheduler",
    "RetryPolicy",
    "RefreshPhase",
    "HealthStatus",
    # Errors
    "ReportError",
    "FetchFailure",
    "RefreshExhausted",
    # Config
    "get_settings",
    "configure_logging",
]
