"""Tests for structlog configuration and context helpers."""

import structlog

from mailspine.core import logging as mail_logging
from mailspine.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    unbind_context,
)


class TestConfigureLogging:
    def test_json_renderer(self):
        configure_logging(level="DEBUG", json_format=True)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert structlog.contextvars.merge_contextvars in processors

    def test_console_renderer(self):
        configure_logging(level="INFO", json_format=False)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_service_metadata(self):
        configure_logging(json_format=True, service="mail-spine-test")
        event = mail_logging._add_service_metadata(None, "info", {"event": "x"})
        assert event["service.name"] == "mail-spine-test"

    def test_ecs_field_names(self):
        event = mail_logging._elasticsearch_compatible(
            None, "info", {"event": "x", "timestamp": "t", "level": "info"}
        )
        assert event == {"event": "x", "@timestamp": "t", "log.level": "info"}


class TestContext:
    def test_log_context_binds_and_unbinds(self):
        with LogContext(job_id="job-1"):
            assert structlog.contextvars.get_contextvars()["job_id"] == "job-1"
        assert "job_id" not in structlog.contextvars.get_contextvars()

    def test_unbind_context(self):
        bind_context(request_id="r1", job_id="j1")
        unbind_context("request_id")
        assert structlog.contextvars.get_contextvars() == {"job_id": "j1"}

    def test_clear_context(self):
        bind_context(request_id="r1")
        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
