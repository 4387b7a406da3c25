"""
Tests for logging setup
"""

import logging

from moolabot.utils.logger_setup import setup_logging


def test_creates_log_file_and_replaces_handlers(tmp_path):
    log_file = tmp_path / "nested" / "bot.log"
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level

    try:
        setup_logging("debug", str(log_file))
        logger = setup_logging("debug", str(log_file))
        logger.info("hello moola")

        assert len(root.handlers) == 2
        assert root.level == logging.DEBUG
        assert logging.getLogger("discord.gateway").level == logging.WARNING
        for handler in root.handlers:
            handler.flush()
        assert "hello moola" in log_file.read_text(encoding='utf-8')
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
