"""Tests for process logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from rig_architect.logging_config import FlushingStreamHandler, get_logger, setup_process_logging


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetup:
    def test_console_and_file(self, tmp_path):
        root = setup_process_logging("architect", log_dir=tmp_path / "logs")
        assert [type(h) for h in root.handlers] == [FlushingStreamHandler, RotatingFileHandler]

        get_logger("rig_architect.test").warning("hello from test")
        for h in root.handlers:
            h.flush()
        text = (tmp_path / "logs" / "architect.log").read_text()
        assert "hello from test" in text
        assert "[architect] [WARNING] rig_architect.test:" in text

    def test_console_only_without_log_dir(self):
        root = setup_process_logging("architect")
        assert [type(h) for h in root.handlers] == [FlushingStreamHandler]

    def test_unusable_log_dir_keeps_console(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        root = setup_process_logging("architect", log_dir=blocker / "logs")
        assert [type(h) for h in root.handlers] == [FlushingStreamHandler]

    def test_level(self):
        root = setup_process_logging("architect", level=logging.DEBUG)
        assert root.level == logging.DEBUG

    def test_replaces_existing_handlers(self):
        setup_process_logging("architect")
        root = setup_process_logging("architect")
        assert len(root.handlers) == 1
