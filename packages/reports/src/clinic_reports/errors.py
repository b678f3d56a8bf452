"""Report pipeline and refresh errors."""

from __future__ import annotations


class ReportError(Exception):
    """Base exception for report pipeline errors."""


class FetchFailure(ReportError):
    """One of the six source fetches failed; the whole cycle is aborted."""

    def __init__(self, source: str, cause: BaseException):
        super().__init__(f"Fetching {source} failed: {cause}")
        self.source = source
        self.cause = cause


class RefreshExhausted(ReportError):
    """Automatic refresh attempts ran out; a manual retry is required."""

    def __init__(self, attempts: int, last_error: str | None):
        super().__init__(
            f"Refresh failed after {attempts} attempt(s): {last_error or 'unknown error'}"
        )
        self.attempts = attempts
        self.last_error = last_error
