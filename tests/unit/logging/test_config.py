"""Tests for configure_logging."""

import json
import logging
from logging.handlers import RotatingFileHandler

import pytest

from veq.config.models import LoggingConfig
from veq.logging import JSONFormatter, WorkerContextFilter, configure_logging


@pytest.fixture(autouse=True)
def restore_root():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestConfigureLogging:
    """Tests for root logger setup."""

    def test_stderr_by_default(self):
        """Without a file a single stderr handler is installed."""
        configure_logging(LoggingConfig(level="debug"))
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert type(handler) is logging.StreamHandler
        assert any(isinstance(f, WorkerContextFilter) for f in handler.filters)

    def test_file_with_json(self, temp_dir):
        """A log file gets a rotating handler with the JSON formatter."""
        log_file = temp_dir / "logs" / "veq.log"
        configure_logging(LoggingConfig(file=log_file, format="json"))
        root = logging.getLogger()
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert isinstance(handler, RotatingFileHandler)
        assert isinstance(handler.formatter, JSONFormatter)

        logging.getLogger("veq.test").info("hello")
        handler.flush()
        record = json.loads(log_file.read_text().splitlines()[-1])
        assert record["message"] == "hello"

    def test_file_and_stderr(self, temp_dir):
        """include_stderr keeps the stderr handler next to the file."""
        configure_logging(
            LoggingConfig(file=temp_dir / "veq.log", include_stderr=True)
        )
        assert len(logging.getLogger().handlers) == 2

    def test_unwritable_file_falls_back(self, temp_dir, capsys):
        """An unusable log path warns and logs to stderr instead."""
        blocker = temp_dir / "blocker"
        blocker.write_text("")
        configure_logging(LoggingConfig(file=blocker / "veq.log"))
        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert type(handlers[0]) is logging.StreamHandler
        assert "cannot open log file" in capsys.readouterr().err

    def test_replaces_existing_handlers(self):
        """Calling twice does not stack handlers."""
        configure_logging(LoggingConfig())
        configure_logging(LoggingConfig())
        assert len(logging.getLogger().handlers) == 1
