"""Data-access clients for the clinic reports engine."""

from clinic_reports.clients.clinic_api import (
    AuthenticationError,
    ClinicAPIClient,
    ClinicAPIError,
)

__all__ = [
    "ClinicAPIClient",
    "ClinicAPIError",
    "AuthenticationError",
]
