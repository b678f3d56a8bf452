"""Tests for logging configuration."""

import logging

import pytest
import structlog

from clinic_reports.config.logging import (
    CHATTY_LOGGERS,
    SERVICE_NAME,
    add_service_name,
    bind_refresh_context,
    clear_refresh_context,
    configure_logging,
)


@pytest.fixture
def restore_logging():
    """Undo global structlog and library logger changes after a test."""
    yield
    structlog.reset_defaults()
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_service_name_added(self):
        event = add_service_name(None, "info", {"event": "refresh_succeeded"})

        assert event["service"] == SERVICE_NAME

    def test_service_name_not_overwritten(self):
        event = add_service_name(None, "info", {"event": "x", "service": "other"})

        assert event["service"] == "other"

    def test_json_pipeline(self, restore_logging):
        configure_logging("INFO", "json")

        processors = structlog.get_config()["processors"]
        assert add_service_name in processors
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)

    def test_transport_loggers_quieted(self, restore_logging):
        configure_logging("DEBUG", "console")

        for name in CHATTY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_error_level_kept_for_transport_loggers(self, restore_logging):
        configure_logging("ERROR", "console")

        assert logging.getLogger("httpx").level == logging.ERROR

    def test_explicit_arguments_need_no_settings(self, without_api_token, restore_logging):
        configure_logging("INFO", "console")

        assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)


class TestRefreshContext:
    """Tests for refresh-cycle context binding."""

    def test_bind_and_clear(self):
        bind_refresh_context(cycle_id="abc123", trigger="auto")
        try:
            bound = structlog.contextvars.get_contextvars()
            assert bound["cycle_id"] == "abc123"
            assert bound["trigger"] == "auto"
        finally:
            clear_refresh_context("cycle_id", "trigger")

        assert "cycle_id" not in structlog.contextvars.get_contextvars()
