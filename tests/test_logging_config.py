"""Tests for quantguard.logging_config."""

import logging

from rich.logging import RichHandler

from quantguard.logging_config import get_logger, setup_logging


class TestSetupLogging:
    def test_levels(self):
        assert setup_logging(verbose=True).level == logging.DEBUG
        assert setup_logging(quiet=True).level == logging.ERROR
        assert setup_logging().level == logging.WARNING

    def test_rich_handler_installed_once(self):
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)
        assert not logger.propagate

    def test_log_file(self, tmp_path):
        path = tmp_path / "quantguard.log"
        logger = setup_logging(verbose=True, log_file=str(path))
        get_logger("stats.pbo").debug("enumerating")
        for handler in logger.handlers:
            handler.flush()
        assert "quantguard.stats.pbo - DEBUG - enumerating" in path.read_text()
        for handler in logger.handlers[1:]:
            handler.close()
        setup_logging()


class TestGetLogger:
    def test_namespaced(self):
        assert get_logger("rules.engine").name == "quantguard.rules.engine"
        assert get_logger("quantguard.flow").name == "quantguard.flow"
        assert get_logger().name == "quantguard"
