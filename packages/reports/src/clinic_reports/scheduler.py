"""Calendar-driven refresh scheduler with retry policy and health tracking.

Once per day the scheduler checks whether a new calendar month has started
since the last successful refresh. If so it runs the report pipeline, retrying
with a linear backoff. After the last failed attempt health turns critical
and a failure event offering a manual retry is published.
"""

import asyncio
import contextlib
import json
import os
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

import structlog

from clinic_reports.config import get_settings
from clinic_reports.config.logging import bind_refresh_context, clear_refresh_context
from clinic_reports.errors import RefreshExhausted
from clinic_reports.events.types import (
    ReportEvent,
    error_event,
    refresh_failed,
    refresh_retrying,
    refresh_started,
    refresh_succeeded,
    scheduler_started,
    scheduler_stopped,
)
from clinic_reports.pipeline import AggregatedReports

logger = structlog.get_logger(__name__)

LAST_REFRESH_KEY = "lastMonthlyRefresh"
LAST_CHECK_KEY = "lastRefreshCheck"

Pipeline = Callable[[], Awaitable[Any]]
AutoRefreshCallback = Callable[[Any], Any]
Sleep = Callable[[float], Awaitable[Any]]


class RefreshPhase(str, Enum):
    """States of the refresh state machine."""

    IDLE = "idle"
    CHECKING = "checking"
    REFRESHING = "refreshing"
    SUCCESS = "success"
    FAILED = "failed"
    RETRYING = "retrying"
    FAILED_FINAL = "failed_final"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class RefreshTrigger(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


@dataclass(frozen=True)
class RetryPolicy:
    """How many automatic attempts a cycle gets and how long to wait between them."""

    max_retries: int = 3
    base_delay_seconds: float = 2.0

    def delay_for(self, retry_count: int) -> float:
        """Delay before the next attempt after ``retry_count`` failures."""
        return retry_count * self.base_delay_seconds

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            max_retries=settings.refresh_max_retries,
            base_delay_seconds=settings.refresh_retry_delay_seconds,
        )


# === Ports ===


class PersistentState(Protocol):
    """Local key-value store for scheduling state."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryState:
    """Process-local state, for tests and one-shot runs."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class JsonFileState:
    """State persisted as a flat JSON object in a local file."""

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._values = self._load()

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("refresh_state_unreadable", path=str(self._path), error=str(e))
            return {}
        if not isinstance(data, dict):
            logger.warning("refresh_state_unreadable", path=str(self._path), error="not an object")
            return {}
        return {str(key): str(value) for key, value in data.items()}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._values, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self._path)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Local wall-clock time; month boundaries follow the clinic's calendar."""

    def now(self) -> datetime:
        return datetime.now()


# === State ===


@dataclass
class RefreshState:
    """Scheduler state; only the two dates are persisted."""

    last_refresh_at: datetime | None = None
    last_checked_on: date | None = None
    retry_count: int = 0
    health: HealthStatus = HealthStatus.HEALTHY
    last_error: str | None = None
    phase: RefreshPhase = RefreshPhase.IDLE
    total_refreshes: int = 0
    consecutive_failures: int = 0
    total_duration_ms: float = 0.0
    last_exhausted: RefreshExhausted | None = field(default=None, repr=False)

    @property
    def average_duration_ms(self) -> float:
        if self.total_refreshes == 0:
            return 0.0
        return self.total_duration_ms / self.total_refreshes

    def to_dict(self) -> dict[str, Any]:
        return {
            "last_refresh_at": self.last_refresh_at.isoformat() if self.last_refresh_at else None,
            "last_checked_on": self.last_checked_on.isoformat() if self.last_checked_on else None,
            "retry_count": self.retry_count,
            "health": self.health.value,
            "last_error": self.last_error,
            "phase": self.phase.value,
            "total_refreshes": self.total_refreshes,
            "consecutive_failures": self.consecutive_failures,
            "average_duration_ms": self.average_duration_ms,
        }


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning("refresh_state_invalid_timestamp", value=value)
        return None


def _parse_date(value: str | None) -> date | None:
    parsed = _parse_datetime(value)
    return parsed.date() if parsed else None


def is_refresh_due(today: date, last_refresh_at: datetime | None) -> bool:
    """True on the 1st of a month later than the last successful refresh.

    With no refresh on record a refresh is always due.
    """
    if last_refresh_at is None:
        return True
    if today.day != 1:
        return False
    return (today.year, today.month) > (last_refresh_at.year, last_refresh_at.month)


class RefreshScheduler:
    """Decides when to refresh the reports and runs the refresh cycles.

    Only one refresh runs at a time. A daily check or a manual trigger that
    arrives while a cycle (including its retry waits) is in flight is skipped.
    """

    def __init__(
        self,
        pipeline: Pipeline,
        state_store: PersistentState | None = None,
        clock: Clock | None = None,
        policy: RetryPolicy | None = None,
        poll_interval_seconds: float | None = None,
        publish: Callable[[ReportEvent], None] | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._pipeline = pipeline
        self._store = state_store if state_store is not None else InMemoryState()
        self._clock = clock or SystemClock()
        self._policy = policy or RetryPolicy.from_settings()
        self._poll_interval = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else get_settings().refresh_poll_interval_seconds
        )
        self._publish = publish
        self._sleep = sleep

        self._state = RefreshState(
            last_refresh_at=_parse_datetime(self._store.get(LAST_REFRESH_KEY)),
            last_checked_on=_parse_date(self._store.get(LAST_CHECK_KEY)),
        )
        # Day checked by this process; a restart checks again
        self._checked_today: date | None = None
        self._callbacks: list[AutoRefreshCallback] = []
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._is_running = False

        self._logger = logger.bind(component="refresh_scheduler")

    @property
    def state(self) -> RefreshState:
        """A copy of the current state."""
        return replace(self._state)

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def is_refreshing(self) -> bool:
        return self._lock.locked()

    @property
    def is_running(self) -> bool:
        return self._is_running

    def on_auto_refresh(self, callback: AutoRefreshCallback) -> None:
        """Register a callback receiving the pipeline result of each automatic refresh.

        Callbacks may be plain functions or coroutine functions.
        """
        self._callbacks.append(callback)

    def remove_auto_refresh_callback(self, callback: AutoRefreshCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _emit(self, event: ReportEvent) -> None:
        if self._publish is None:
            return
        try:
            self._publish(event)
        except Exception as e:
            self._logger.error("event_publish_failed", event_type=event.event_type.value, error=str(e))

    def _set_phase(self, phase: RefreshPhase) -> None:
        self._state.phase = phase
        self._logger.debug("refresh_phase_changed", phase=phase.value)

    # === Checks ===

    async def check_and_refresh(self) -> bool:
        """Run the daily check, refreshing when a new month has begun.

        Returns True if an automatic cycle ran (successfully or not).
        """
        today = self._clock.now().date()
        if self._state.last_checked_on == today and self._checked_today == today:
            return False
        if self._lock.locked():
            self._logger.info("refresh_check_skipped", reason="refresh_in_flight")
            return False

        self._set_phase(RefreshPhase.CHECKING)
        self._state.last_checked_on = today
        self._checked_today = today
        self._store.set(LAST_CHECK_KEY, today.isoformat())

        if not is_refresh_due(today, self._state.last_refresh_at):
            self._logger.debug("refresh_not_due", today=today.isoformat())
            self._set_phase(RefreshPhase.IDLE)
            return False

        self._logger.info(
            "monthly_refresh_due",
            today=today.isoformat(),
            last_refresh_at=(
                self._state.last_refresh_at.isoformat() if self._state.last_refresh_at else None
            ),
        )
        await self._run_auto_cycle()
        return True

    # === Cycles ===

    async def _attempt(self, trigger: RefreshTrigger) -> tuple[bool, Any]:
        """One pipeline call with success or failure bookkeeping."""
        attempt = self._state.retry_count + 1 if trigger is RefreshTrigger.AUTO else 1
        max_attempts = self._policy.max_retries if trigger is RefreshTrigger.AUTO else 1

        self._set_phase(RefreshPhase.REFRESHING)
        self._emit(refresh_started(trigger.value, attempt, max_attempts))
        started = time.monotonic()

        try:
            result = await self._pipeline()
        except Exception as e:
            self._state.last_error = str(e) or type(e).__name__
            self._state.consecutive_failures += 1
            if trigger is RefreshTrigger.AUTO:
                self._state.retry_count += 1
                self._state.health = HealthStatus.WARNING
            self._set_phase(RefreshPhase.FAILED)
            self._logger.warning(
                "refresh_attempt_failed",
                attempt=attempt,
                max_attempts=max_attempts,
                error=self._state.last_error,
            )
            return False, None

        duration_ms = (time.monotonic() - started) * 1000
        now = self._clock.now()
        self._store.set(LAST_REFRESH_KEY, now.isoformat())
        self._state.last_refresh_at = now
        if trigger is RefreshTrigger.AUTO:
            self._state.retry_count = 0
        self._state.health = HealthStatus.HEALTHY
        self._state.last_error = None
        self._state.last_exhausted = None
        self._state.consecutive_failures = 0
        self._state.total_refreshes += 1
        self._state.total_duration_ms += duration_ms
        self._set_phase(RefreshPhase.SUCCESS)

        summary = result.snapshot.counts() if isinstance(result, AggregatedReports) else None
        self._emit(refresh_succeeded(trigger.value, attempt, duration_ms, summary))
        self._logger.info("refresh_succeeded", attempt=attempt, duration_ms=round(duration_ms, 1))
        return True, result

    def _give_up(self, trigger: RefreshTrigger, attempts: int) -> None:
        exhausted = RefreshExhausted(attempts, self._state.last_error)
        self._state.health = HealthStatus.CRITICAL
        self._state.last_exhausted = exhausted
        if trigger is RefreshTrigger.AUTO:
            self._state.retry_count = 0
        self._set_phase(RefreshPhase.FAILED_FINAL)
        self._emit(
            refresh_failed(
                trigger.value,
                attempts,
                self._state.last_error or "unknown error",
                self._state.health.value,
            )
        )
        self._logger.error("refresh_exhausted", attempts=attempts, error=str(exhausted))
        self._set_phase(RefreshPhase.IDLE)

    async def _notify(self, result: Any) -> None:
        for callback in list(self._callbacks):
            try:
                outcome = callback(result)
                if asyncio.iscoroutine(outcome):
                    await outcome
            except Exception as e:
                self._logger.error("auto_refresh_callback_failed", error=str(e))
                self._emit(error_event("auto_refresh_callback_failed", {"error": str(e)}))

    async def _run_auto_cycle(self) -> bool:
        async with self._lock:
            bind_refresh_context(cycle_id=uuid4().hex[:8], trigger=RefreshTrigger.AUTO.value)
            try:
                while True:
                    ok, result = await self._attempt(RefreshTrigger.AUTO)
                    if ok:
                        await self._notify(result)
                        self._set_phase(RefreshPhase.IDLE)
                        return True

                    if self._state.retry_count < self._policy.max_retries:
                        delay = self._policy.delay_for(self._state.retry_count)
                        self._set_phase(RefreshPhase.RETRYING)
                        self._emit(
                            refresh_retrying(
                                self._state.retry_count,
                                self._policy.max_retries,
                                delay,
                                self._state.last_error or "",
                            )
                        )
                        self._logger.info(
                            "refresh_retry_scheduled",
                            retry_count=self._state.retry_count,
                            delay_seconds=delay,
                        )
                        await self._sleep(delay)
                        continue

                    self._give_up(RefreshTrigger.AUTO, self._state.retry_count)
                    return False
            finally:
                clear_refresh_context("cycle_id", "trigger")

    async def trigger_manual_refresh(self) -> bool:
        """Refresh now, bypassing the date check.

        A single attempt that leaves the automatic retry counter alone.
        Returns False when the attempt failed or another refresh is in flight.
        """
        if self._lock.locked():
            self._logger.info("manual_refresh_skipped", reason="refresh_in_flight")
            return False

        async with self._lock:
            bind_refresh_context(cycle_id=uuid4().hex[:8], trigger=RefreshTrigger.MANUAL.value)
            try:
                ok, _ = await self._attempt(RefreshTrigger.MANUAL)
                if ok:
                    self._set_phase(RefreshPhase.IDLE)
                    return True
                self._give_up(RefreshTrigger.MANUAL, 1)
                return False
            finally:
                clear_refresh_context("cycle_id", "trigger")

    # === Loop ===

    async def run(self, max_polls: int | None = None) -> None:
        """Check now, then again every poll interval until stopped.

        Args:
            max_polls: Optional number of checks after which the loop ends.
        """
        self._is_running = True
        polls = 0
        self._logger.info("refresh_loop_starting", poll_interval_seconds=self._poll_interval)
        try:
            while self._is_running:
                await self.check_and_refresh()
                polls += 1
                if max_polls is not None and polls >= max_polls:
                    break
                await self._sleep(self._poll_interval)
        finally:
            self._is_running = False
            self._logger.info("refresh_loop_ended", polls=polls)

    async def start(self) -> None:
        """Start the poll loop as a background task."""
        if self._task is not None and not self._task.done():
            self._logger.warning("scheduler_already_running")
            return
        self._emit(scheduler_started(self._poll_interval, self._policy.max_retries))
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop the poll loop, cancelling any wait or in-flight refresh."""
        self._is_running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        self._set_phase(RefreshPhase.IDLE)
        self._emit(scheduler_stopped(self._state.total_refreshes))

    def get_status(self) -> dict[str, Any]:
        """Get current scheduler status."""
        return {
            "is_running": self._is_running,
            "is_refreshing": self.is_refreshing,
            "poll_interval_seconds": self._poll_interval,
            "max_retries": self._policy.max_retries,
            "retry_delay_seconds": self._policy.base_delay_seconds,
            "auto_refresh_callbacks": len(self._callbacks),
            **self._state.to_dict(),
        }
