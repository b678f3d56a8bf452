"""Structured logging for the report engine and its refresh cycles.

Every line carries ``service="clinic_reports"``. Lines emitted inside a
refresh cycle also carry the ``cycle_id`` and ``trigger`` bound by the
scheduler, so one month's attempts can be followed across retries.
"""

import logging
import sys
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from clinic_reports.config.settings import get_settings

SERVICE_NAME = "clinic_reports"

# Transport libraries log every request/frame at INFO
CHATTY_LOGGERS = ("httpx", "httpcore", "websockets")

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


def add_service_name(_logger: WrappedLogger, _method: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(
    level: LogLevel | None = None,
    format: Literal["json", "console"] | None = None,
) -> None:
    """Configure structlog over stdlib logging.

    Args:
        level: Log level. Read from ``LOG_LEVEL`` when omitted.
        format: ``json`` for log shippers, ``console`` for a terminal. Read
            from ``LOG_FORMAT`` when omitted.
    """
    if level is None or format is None:
        settings = get_settings()
        level = level or settings.log_level
        format = format or settings.log_format

    numeric_level = getattr(logging, level)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            add_service_name,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_refresh_context(**fields: Any) -> None:
    """Attach fields to every log line emitted during the current refresh cycle."""
    structlog.contextvars.bind_contextvars(**fields)


def clear_refresh_context(*keys: str) -> None:
    """Drop refresh-cycle fields bound by bind_refresh_context."""
    structlog.contextvars.unbind_contextvars(*keys)
