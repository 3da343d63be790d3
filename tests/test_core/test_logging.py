"""Tests for setup_logging — handler wiring, quiet loggers, alert decision file."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from pricewatch.core.config import LoggingConfig
from pricewatch.core.logging import ALERT_LOG, setup_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    alert_log = logging.getLogger(ALERT_LOG)
    for handler in list(alert_log.handlers):
        alert_log.removeHandler(handler)
        handler.close()
    alert_log.propagate = True
    for name in LoggingConfig().quiet_loggers:
        logging.getLogger(name).setLevel(logging.NOTSET)
    structlog.reset_defaults()


class TestSetupLogging:
    def test_single_root_handler(self) -> None:
        cfg = LoggingConfig(level="DEBUG")
        setup_logging(config=cfg)
        setup_logging(config=cfg)

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.DEBUG

    def test_level_override_and_fallback(self) -> None:
        setup_logging(level="warning", config=LoggingConfig())
        assert logging.getLogger().level == logging.WARNING

        setup_logging(config=LoggingConfig(level="LOUD"))
        assert logging.getLogger().level == logging.INFO

    def test_http_clients_quieted(self) -> None:
        setup_logging(config=LoggingConfig(level="INFO"))
        assert logging.getLogger("httpx").level == logging.WARNING

        setup_logging(config=LoggingConfig(level="ERROR"))
        assert logging.getLogger("httpx").level == logging.ERROR

    def test_alert_log_propagates_without_file(self) -> None:
        setup_logging(config=LoggingConfig())
        alert_log = logging.getLogger(ALERT_LOG)
        assert alert_log.propagate is True
        assert alert_log.handlers == []


class TestAlertLogFile:
    def test_decisions_written_as_json_lines(self, tmp_path: Path) -> None:
        path = tmp_path / "alerts.jsonl"
        setup_logging(config=LoggingConfig(alert_log_path=str(path)))

        structlog.get_logger(ALERT_LOG).info("alert", alert_id="a1", status="sent")

        [line] = path.read_text(encoding="utf-8").splitlines()
        record = json.loads(line)
        assert record["event"] == "alert"
        assert record["alert_id"] == "a1"
        assert record["logger"] == ALERT_LOG
        assert record["level"] == "info"
        assert "timestamp" in record
        assert logging.getLogger(ALERT_LOG).propagate is False
