"""Tests for opswatch/core/logging.py."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator

import pytest
import structlog

from opswatch.core.config import LoggingConfig
from opswatch.core.logging import setup_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:
    def test_level_from_config(self) -> None:
        setup_logging(LoggingConfig(level="debug", format="console"))
        assert logging.getLogger().level == logging.DEBUG
        assert len(logging.getLogger().handlers) == 1

    def test_level_override(self) -> None:
        setup_logging(LoggingConfig(level="DEBUG"), level="error")
        assert logging.getLogger().level == logging.ERROR

    def test_unknown_level_falls_back_to_info(self) -> None:
        setup_logging(LoggingConfig(level="chatty"))
        assert logging.getLogger().level == logging.INFO

    def test_chatty_loggers_quieted(self) -> None:
        setup_logging(LoggingConfig(level="DEBUG"))
        assert logging.getLogger("aiohttp.access").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingConfig(level="INFO", format="json"))
        structlog.get_logger("opswatch.test").info("alert_fired", alert_id="a1")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "alert_fired"
        assert event["alert_id"] == "a1"
        assert event["level"] == "info"
        assert event["logger"] == "opswatch.test"

    def test_stdlib_records_share_renderer(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(LoggingConfig(level="INFO", format="json"))
        logging.getLogger("aiohttp.server").warning("bad request")

        event = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert event["event"] == "bad request"
        assert event["level"] == "warning"
