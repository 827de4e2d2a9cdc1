"""Tests for tickgate.core.logging."""

import pytest
import structlog

from tickgate.core.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


@pytest.fixture
def restore_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    @pytest.mark.parametrize("json_format", [True, False])
    def test_configures_structlog(self, restore_structlog, json_format):
        configure_logging(level="DEBUG", json_format=json_format, service="billing-worker")

        assert structlog.is_configured()
        get_logger("tests").info("configured", json_format=json_format)

    def test_service_metadata(self, restore_structlog):
        from tickgate.core import logging as tg_logging

        configure_logging(level="INFO", json_format=True, service="billing-worker")

        event_dict = tg_logging._add_service_metadata(None, "info", {"event": "x"})
        assert event_dict["service.name"] == "billing-worker"

    def test_elasticsearch_field_names(self):
        from tickgate.core import logging as tg_logging

        event_dict = tg_logging._elasticsearch_compatible(
            None, "info", {"timestamp": "t", "level": "info", "event": "x"}
        )

        assert event_dict == {"@timestamp": "t", "log.level": "info", "event": "x"}


class TestLogContext:
    def test_bind_and_unbind(self):
        bind_context(worker_id="worker-3", task_key="digest")
        unbind_context("task_key")

        assert structlog.contextvars.get_contextvars() == {"worker_id": "worker-3"}

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_scoped_context(self):
        with LogContext(task_key="digest"):
            assert structlog.contextvars.get_contextvars()["task_key"] == "digest"

        assert "task_key" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_async_scoped_context(self):
        async with LogContext(task_key="digest"):
            assert structlog.contextvars.get_contextvars()["task_key"] == "digest"

        assert "task_key" not in structlog.contextvars.get_contextvars()
