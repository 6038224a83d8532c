"""Tests for the structlog-backed logging setup."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from feedserver.core.logging_config import configure_logging


def _emit(log_level: str, message: str, *args) -> str:
    configure_logging(log_level)
    buffer = StringIO()
    root = logging.getLogger()
    saved = []
    for handler in root.handlers:
        if hasattr(handler, "stream"):
            saved.append((handler, handler.stream))
            handler.stream = buffer

    logging.getLogger("feedserver.tests").warning(message, *args)

    for handler, stream in saved:
        handler.flush()
        handler.stream = stream
    return buffer.getvalue()


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_json_output() -> None:
    line = _emit("INFO", "feed %s: %s", "1", "HTTP 404").strip()
    record = json.loads(line)

    assert record["event"] == "feed 1: HTTP 404"
    assert record["level"] == "warning"
    assert record["logger"] == "feedserver.tests"
    assert "timestamp" in record


def test_console_output_in_debug() -> None:
    out = _emit("DEBUG", "feed %s retry", "2")
    assert "feed 2 retry" in out
    with pytest.raises(json.JSONDecodeError):
        json.loads(out)


def test_single_handler_after_reconfigure() -> None:
    configure_logging("INFO")
    configure_logging("INFO")
    assert len(logging.getLogger().handlers) == 1


def test_noisy_libraries_quieted() -> None:
    configure_logging("INFO")
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("apscheduler").level == logging.WARNING
