"""Tests for logging setup and formatters."""

import json
import logging
from logging.handlers import RotatingFileHandler

import pytest

from earshot.utils.logging import (
    ColoredFormatter,
    JSONFormatter,
    setup_logging,
    setup_logging_from_config,
)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


def make_record(message="Recording started", level=logging.INFO):
    return logging.LogRecord("listener", level, __file__, 10, message, None, None)


class TestFormatters:
    def test_json_formatter(self):
        payload = json.loads(JSONFormatter().format(make_record()))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "listener"
        assert payload["message"] == "Recording started"
        assert payload["timestamp"].endswith("Z")
        assert "thread" in payload

    def test_json_formatter_includes_exception(self):
        try:
            raise RuntimeError("interpreter crashed")
        except RuntimeError:
            import sys
            record = make_record(level=logging.ERROR)
            record.exc_info = sys.exc_info()
        payload = json.loads(JSONFormatter().format(record))
        assert "interpreter crashed" in payload["exception"]

    def test_colored_formatter_restores_levelname(self):
        record = make_record(level=logging.WARNING)
        output = ColoredFormatter("%(levelname)s %(message)s").format(record)
        assert "\033[33m" in output
        assert record.levelname == "WARNING"


class TestSetup:
    def test_console_handler_uses_stderr(self):
        import sys

        setup_logging(level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert root.handlers[0].stream is sys.stderr

    def test_file_handler_writes_json(self, tmp_path):
        log_file = tmp_path / "logs" / "earshot.log"
        setup_logging(level="INFO", log_file=str(log_file), console_enabled=False)

        logging.getLogger("listener").info("Model loaded successfully")
        for handler in logging.getLogger().handlers:
            handler.flush()

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], RotatingFileHandler)
        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["message"] == "Model loaded successfully"

    def test_from_config_verbose_forces_debug(self):
        setup_logging_from_config({"logging": {"level": "WARNING"}}, verbose=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_from_config_level(self):
        setup_logging_from_config({"logging": {"level": "warning", "format": "json"}})
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, JSONFormatter)
