"""Configuration module for the clinic reports engine."""

from clinic_reports.config.clinic import (
    ClinicProfile,
    Signatory,
    load_clinic_profile,
)
from clinic_reports.config.logging import configure_logging
from clinic_reports.config.settings import (
    FlatSettings,
    ProfileSettings,
    get_profile_settings,
    get_settings,
)

__all__ = [
    "FlatSettings",
    "get_settings",
    "ProfileSettings",
    "get_profile_settings",
    "configure_logging",
    "ClinicProfile",
    "Signatory",
    "load_clinic_profile",
]
