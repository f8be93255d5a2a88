"""Tests for structured logging."""

import json
import logging
import sys

import pytest

from chatterm.logging_config import JSONFormatter, setup_logging


@pytest.fixture(autouse=True)
def restore_handlers():
    logger = logging.getLogger("chatterm")
    saved = list(logger.handlers)
    yield
    for handler in logger.handlers:
        if handler not in saved:
            handler.close()
    logger.handlers[:] = saved


class TestJSONFormatter:
    def test_basic_fields(self):
        record = logging.LogRecord("chatterm.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "chatterm.test"
        assert entry["message"] == "hello world"
        assert "timestamp" in entry

    def test_extra_fields(self):
        record = logging.LogRecord("chatterm.api", logging.WARNING, __file__, 1, "retry", (), None)
        record.status_code = 503
        record.attempt = 2
        record.unrelated = "dropped"
        entry = json.loads(JSONFormatter().format(record))
        assert entry["status_code"] == 503
        assert entry["attempt"] == 2
        assert "unrelated" not in entry

    def test_exception_text(self):
        try:
            raise ValueError("bad thing")
        except ValueError:
            record = logging.LogRecord("chatterm", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
        entry = json.loads(JSONFormatter().format(record))
        assert entry["exception"] == "bad thing"


class TestSetupLogging:
    def test_writes_json_lines(self, tmp_path):
        log_file = tmp_path / "logs" / "chatterm.log"
        setup_logging(log_file=log_file)
        logging.getLogger("chatterm.storage").info("opened", extra={"resource_kind": "file_handle"})
        for handler in logging.getLogger("chatterm").handlers:
            handler.flush()

        lines = log_file.read_text().splitlines()
        entry = json.loads(lines[-1])
        assert entry["logger"] == "chatterm.storage"
        assert entry["resource_kind"] == "file_handle"

    def test_idempotent(self, tmp_path):
        setup_logging(log_file=tmp_path / "a.log")
        setup_logging(verbose=True, log_file=tmp_path / "b.log")
        handlers = logging.getLogger("chatterm").handlers
        assert len(handlers) == 2
        assert handlers[1].level == logging.WARNING
