"""Refresh notifications for dashboard clients."""

from clinic_reports.events.publisher import EventPublisher, get_publisher, stop_publisher
from clinic_reports.events.types import (
    MANUAL_RETRY_ACTION,
    EventType,
    RefreshEvent,
    ReportEvent,
    error_event,
    refresh_failed,
    refresh_retrying,
    refresh_started,
    refresh_succeeded,
    reports_updated,
    scheduler_started,
    scheduler_stopped,
)

__all__ = [
    "EventPublisher",
    "get_publisher",
    "stop_publisher",
    "EventType",
    "ReportEvent",
    "RefreshEvent",
    "MANUAL_RETRY_ACTION",
    "scheduler_started",
    "scheduler_stopped",
    "refresh_started",
    "refresh_succeeded",
    "refresh_retrying",
    "refresh_failed",
    "reports_updated",
    "error_event",
]
