"""Event type definitions for WebSocket publishing.

These events are published to connected dashboard clients so they can show
refresh progress, prompt for a manual retry, and reload report data.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

MANUAL_RETRY_ACTION = "manual_retry"


class EventType(str, Enum):
    """Types of events published by the report service."""

    # Scheduler lifecycle
    SCHEDULER_STARTED = "scheduler.started"
    SCHEDULER_STOPPED = "scheduler.stopped"

    # Refresh cycle
    REFRESH_STARTED = "refresh.started"
    REFRESH_SUCCEEDED = "refresh.succeeded"
    REFRESH_RETRYING = "refresh.retrying"
    REFRESH_FAILED = "refresh.failed"

    # Report data
    REPORTS_UPDATED = "reports.updated"

    # Errors
    ERROR = "error"


@dataclass
class ReportEvent:
    """Base event structure for all report service events."""

    event_type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: UUID = field(default_factory=uuid4)
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary for JSON transmission."""
        return {
            "id": str(self.event_id),
            "type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


@dataclass
class RefreshEvent(ReportEvent):
    """Event for one step of a refresh cycle."""

    trigger: str = "auto"
    attempt: int = 0
    max_attempts: int = 0
    health: str = ""
    error: str | None = None
    action: str | None = None
    retry_in_seconds: float | None = None
    duration_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["refresh"] = {
            "trigger": self.trigger,
            "attempt": self.attempt,
            "max_attempts": self.max_attempts,
            "health": self.health,
            "error": self.error,
            "action": self.action,
            "retry_in_seconds": self.retry_in_seconds,
            "duration_ms": self.duration_ms,
        }
        return base


# === Event Factory Functions ===


def scheduler_started(poll_interval_seconds: float, max_retries: int) -> ReportEvent:
    return ReportEvent(
        event_type=EventType.SCHEDULER_STARTED,
        data={
            "poll_interval_seconds": poll_interval_seconds,
            "max_retries": max_retries,
        },
    )


def scheduler_stopped(total_refreshes: int) -> ReportEvent:
    return ReportEvent(
        event_type=EventType.SCHEDULER_STOPPED,
        data={"total_refreshes": total_refreshes},
    )


def refresh_started(trigger: str, attempt: int, max_attempts: int) -> RefreshEvent:
    return RefreshEvent(
        event_type=EventType.REFRESH_STARTED,
        trigger=trigger,
        attempt=attempt,
        max_attempts=max_attempts,
    )


def refresh_succeeded(
    trigger: str,
    attempt: int,
    duration_ms: float,
    summary: dict[str, Any] | None = None,
) -> RefreshEvent:
    """Create a success event; ``summary`` carries per-source record counts."""
    return RefreshEvent(
        event_type=EventType.REFRESH_SUCCEEDED,
        trigger=trigger,
        attempt=attempt,
        health="healthy",
        duration_ms=duration_ms,
        data=summary or {},
    )


def refresh_retrying(
    attempt: int, max_attempts: int, delay_seconds: float, error: str
) -> RefreshEvent:
    return RefreshEvent(
        event_type=EventType.REFRESH_RETRYING,
        trigger="auto",
        attempt=attempt,
        max_attempts=max_attempts,
        health="warning",
        error=error,
        retry_in_seconds=delay_seconds,
    )


def refresh_failed(
    trigger: str,
    attempts: int,
    error: str,
    health: str,
) -> RefreshEvent:
    """Create a final failure event offering a manual retry."""
    return RefreshEvent(
        event_type=EventType.REFRESH_FAILED,
        trigger=trigger,
        attempt=attempts,
        max_attempts=attempts,
        health=health,
        error=error,
        action=MANUAL_RETRY_ACTION,
    )


def reports_updated(counts: dict[str, int]) -> ReportEvent:
    return ReportEvent(event_type=EventType.REPORTS_UPDATED, data={"counts": counts})


def error_event(message: str, details: dict[str, Any] | None = None) -> ReportEvent:
    return ReportEvent(
        event_type=EventType.ERROR,
        data={"message": message, "details": details or {}},
    )
