"""
Tests for logging setup.
"""

import logging
from pathlib import Path

import pytest

from gearbox.core.observability.logging_config import _parse_level, setup_logging


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestParseLevel:
    def test_names(self):
        assert _parse_level("debug") == logging.DEBUG
        assert _parse_level("ERROR") == logging.ERROR

    def test_unknown_falls_back(self):
        assert _parse_level("chatty") == logging.WARNING
        assert _parse_level(None) == logging.WARNING


class TestSetupLogging:
    def test_console_handler(self):
        setup_logging(level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_idempotent(self):
        setup_logging(level="WARNING")
        setup_logging(level="WARNING")
        assert len(logging.getLogger().handlers) == 1

    def test_file_handler_with_own_level(self, tmp_path: Path):
        log_file = tmp_path / "gearbox.log"
        setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2

        logging.getLogger("gearbox.test").debug("hello file")
        for handler in root.handlers:
            handler.flush()
        assert "hello file" in log_file.read_text()

    def test_file_parent_created(self, tmp_path: Path):
        log_file = tmp_path / "logs" / "nested" / "gearbox.log"
        setup_logging(level="ERROR", log_file=str(log_file))
        logging.getLogger("gearbox.test").error("boom")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "boom" in log_file.read_text()

    def test_debug_console_shows_location(self):
        setup_logging(level="DEBUG")
        [handler] = logging.getLogger().handlers
        assert "%(lineno)d" in handler.formatter._fmt

    def test_warning_console_is_bare(self):
        setup_logging(level="WARNING")
        [handler] = logging.getLogger().handlers
        assert handler.formatter._fmt == "%(message)s"
