"""Tests for structured logging setup."""

from __future__ import annotations

import asyncio
import json
import logging

import pytest
import structlog

from grid_monitor import __version__
from grid_monitor.config.schema import LoggingConfig
from grid_monitor.logging.context import source_context
from grid_monitor.logging.structured import SERVICE_NAME, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _last_record(path) -> dict:
    for handler in logging.getLogger().handlers:
        handler.flush()
    return json.loads(path.read_text().strip().splitlines()[-1])


class TestSetupLogging:
    def test_json_lines_carry_source_and_service(self, tmp_path, restore_root_logger) -> None:
        log_file = tmp_path / "logs" / "monitor.log"
        setup_logging(LoggingConfig(level="DEBUG", format="json", file=str(log_file)))

        with source_context("grid_state"):
            logging.getLogger("grid_monitor.test").info("grid_state changed: %s", "off")

        record = _last_record(log_file)
        assert record["event"] == "grid_state changed: off"
        assert record["source"] == "grid_state"
        assert record["service"] == SERVICE_NAME
        assert record["version"] == __version__
        assert record["level"] == "info"
        assert record["logger"] == "grid_monitor.test"

    def test_source_is_dropped_after_the_block(self, tmp_path, restore_root_logger) -> None:
        log_file = tmp_path / "monitor.log"
        setup_logging(LoggingConfig(format="json", file=str(log_file)))

        with source_context("outage"):
            pass
        logging.getLogger("grid_monitor.test").warning("after")

        assert "source" not in _last_record(log_file)

    async def test_source_does_not_leak_between_tasks(self, tmp_path, restore_root_logger) -> None:
        log_file = tmp_path / "monitor.log"
        setup_logging(LoggingConfig(format="json", file=str(log_file)))
        entered = asyncio.Event()
        release = asyncio.Event()

        async def tagged():
            with source_context("outage"):
                entered.set()
                await release.wait()

        task = asyncio.create_task(tagged())
        await entered.wait()
        logging.getLogger("grid_monitor.test").warning("from another task")
        release.set()
        await task

        assert "source" not in _last_record(log_file)

    def test_exception_rendered_as_text(self, tmp_path, restore_root_logger) -> None:
        log_file = tmp_path / "monitor.log"
        setup_logging(LoggingConfig(format="json", file=str(log_file)))
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logging.getLogger("grid_monitor.test").exception("poll failed")

        record = _last_record(log_file)
        assert "RuntimeError: boom" in record["exception"]

    def test_level_and_quiet_libraries(self, restore_root_logger) -> None:
        setup_logging(LoggingConfig(level="warning", format="console"))
        assert logging.getLogger().level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
