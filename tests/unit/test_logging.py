"""
Unit Tests - Logging Configuration
"""
import io
import json
import logging

import pytest
import structlog

from manufacturing_analytics.config import get_settings
from manufacturing_analytics.config.logging import configure_logging


@pytest.fixture
def log_stream(monkeypatch):
    """Configure JSON logging into a buffer, restoring the root logger afterwards"""
    monkeypatch.setenv("LOG_FORMAT", "json")
    get_settings.cache_clear()
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level

    stream = io.StringIO()
    yield stream

    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()
    get_settings.cache_clear()


def events(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


class TestConfigureLogging:
    """Tests for configure_logging"""

    def test_events_carry_service_context(self, log_stream):
        configure_logging("INFO", stream=log_stream)
        settings = get_settings()

        structlog.get_logger("tests.pipeline").info("Fact load completed", rows_loaded=3)

        event = events(log_stream)[-1]
        assert event["event"] == "Fact load completed"
        assert event["rows_loaded"] == 3
        assert event["level"] == "info"
        assert event["service"] == settings.app_name
        assert event["environment"] == settings.app_env
        assert event["version"] == settings.version

    def test_stdlib_records_are_rendered_too(self, log_stream):
        configure_logging("INFO", stream=log_stream)

        logging.getLogger("uvicorn.error").warning("Worker restarted")

        event = events(log_stream)[-1]
        assert event["event"] == "Worker restarted"
        assert event["logger"] == "uvicorn.error"
        assert event["service"] == get_settings().app_name

    def test_level_filters_events(self, log_stream):
        configure_logging("WARNING", stream=log_stream)

        structlog.get_logger("tests.pipeline").info("hidden")
        structlog.get_logger("tests.pipeline").warning("shown")

        assert [event["event"] for event in events(log_stream)] == ["shown"]

    def test_unknown_level_falls_back_to_info(self, log_stream):
        handler = configure_logging("chatty", stream=log_stream)

        assert handler.level == logging.INFO
