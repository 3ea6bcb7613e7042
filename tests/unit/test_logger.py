"""
Unit tests for the logging setup.
"""

import logging

import pytest

from shieldcore.utils.logger import LOG_FILE, get_logger, setup_logging, wallet_logger


@pytest.fixture
def restore_logging():
    yield
    setup_logging(logging.INFO, force=True)


class TestLogging:
    """Tests for setup_logging and the wallet adapter."""

    def test_namespace(self):
        assert get_logger("sync").name == "shieldcore.sync"

    def test_level_by_name(self, restore_logging):
        root = setup_logging("debug", force=True)
        assert root.level == logging.DEBUG

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            setup_logging("chatty", force=True)

    def test_second_call_is_noop_without_force(self, restore_logging):
        root = setup_logging("WARNING", force=True)
        setup_logging("DEBUG")
        assert root.level == logging.WARNING

    def test_file_handler(self, tmp_path, restore_logging):
        setup_logging("INFO", log_dir=tmp_path / "logs", force=True)
        get_logger("test").info("written to file")
        for handler in logging.getLogger("shieldcore").handlers:
            handler.flush()
        assert "written to file" in (tmp_path / "logs" / LOG_FILE).read_text(encoding="utf-8")

    def test_wallet_prefix(self, caplog):
        log = wallet_logger("session", "abcdef0123456789")
        with caplog.at_level(logging.INFO, logger="shieldcore.session"):
            log.info("opened")
        assert "[wallet abcdef01] opened" in caplog.text
