"""Period labels printed on aggregated rows."""

from __future__ import annotations

from datetime import date

MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "Mei",
    "Jun",
    "Jul",
    "Agt",
    "Sep",
    "Okt",
    "Nov",
    "Des",
)

RANGE_SEPARATOR = " – "


def format_day(value: date | None) -> str:
    """Return a label like ``5 Jan 2024``."""
    if value is None:
        return "-"
    return f"{value.day} {MONTH_ABBREVIATIONS[value.month - 1]} {value.year}"


def format_date_range(start: date | None, end: date | None) -> str:
    """Return ``5 Jan 2024`` or ``5 Jan – 7 Jan 2024`` for a span of days.

    The year is printed once when both ends share it.
    """
    if start is None or end is None:
        return format_day(start or end)
    if start == end:
        return format_day(start)
    if start.year == end.year:
        head = f"{start.day} {MONTH_ABBREVIATIONS[start.month - 1]}"
    else:
        head = format_day(start)
    return f"{head}{RANGE_SEPARATOR}{format_day(end)}"


def format_month(year: int, month: int) -> str:
    """Return a label like ``Jan/2024``."""
    return f"{MONTH_ABBREVIATIONS[month - 1]}/{year}"


def format_year(year: int) -> str:
    return f"Tahun {year}"
