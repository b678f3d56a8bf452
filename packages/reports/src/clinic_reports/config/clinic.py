"""Clinic profile loader (clinic name and fixed sign-off parties)."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from clinic_reports.config.settings import get_profile_settings

DEFAULT_PROFILE_PATH = Path(__file__).resolve().parent / "clinic.yaml"


@dataclass(frozen=True)
class Signatory:
    """A named party printed in a report's sign-off block."""

    name: str
    role: str
    caption: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "role": self.role, "caption": self.caption}


@dataclass(frozen=True)
class ClinicProfile:
    """Organization-wide constants used on printed reports."""

    name: str
    owner: Signatory
    administrator: Signatory


DEFAULT_PROFILE = ClinicProfile(
    name="Falasifah Dental Clinic",
    owner=Signatory(name="drg. Falasifah", role="Owner/Co-owner"),
    administrator=Signatory(name="Ade Mardiansyah Eka Putra", role="Administrator"),
)


def _parse_signatory(item: Any, field_name: str) -> Signatory:
    if not isinstance(item, dict):
        raise ValueError(f"{field_name} must be a mapping with name and role")
    name = item.get("name")
    role = item.get("role")
    if not name or not role:
        raise ValueError(f"{field_name} requires name and role")
    return Signatory(name=str(name).strip(), role=str(role).strip())


def parse_clinic_profile(data: Any) -> ClinicProfile:
    """Build a ClinicProfile from parsed YAML data."""
    if data is None:
        return DEFAULT_PROFILE
    if not isinstance(data, dict):
        raise ValueError("clinic profile must be a mapping")

    clinic = data.get("clinic", data)
    if not isinstance(clinic, dict):
        raise ValueError("clinic profile 'clinic' must be a mapping")

    signatories = clinic.get("signatories") or {}
    if not isinstance(signatories, dict):
        raise ValueError("clinic profile 'signatories' must be a mapping")

    owner = (
        _parse_signatory(signatories["owner"], "signatories.owner")
        if "owner" in signatories
        else DEFAULT_PROFILE.owner
    )
    administrator = (
        _parse_signatory(signatories["administrator"], "signatories.administrator")
        if "administrator" in signatories
        else DEFAULT_PROFILE.administrator
    )

    return ClinicProfile(
        name=str(clinic.get("name") or DEFAULT_PROFILE.name),
        owner=owner,
        administrator=administrator,
    )


def load_clinic_profile_from(path: Path) -> ClinicProfile:
    """Load a clinic profile from a YAML file, falling back to defaults."""
    if not path.exists():
        return DEFAULT_PROFILE
    raw = path.read_text(encoding="utf-8")
    return parse_clinic_profile(yaml.safe_load(raw))


@lru_cache
def load_clinic_profile() -> ClinicProfile:
    """Load the configured clinic profile (cached)."""
    configured = get_profile_settings().clinic_profile_path
    path = Path(configured) if configured else DEFAULT_PROFILE_PATH
    return load_clinic_profile_from(path)
