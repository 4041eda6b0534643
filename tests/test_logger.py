"""Unit tests for core.logger."""

import logging

from adaptive_trader.core.logger import ROOT_LOGGER, resolve_level, setup_logging


def test_resolve_level():
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(" warning ") == logging.WARNING
    assert resolve_level(logging.ERROR) == logging.ERROR
    assert resolve_level("loud") == logging.INFO


def test_file_handler_and_reconfiguration(tmp_path):
    log_dir = tmp_path / "logs"
    package_logger = setup_logging("debug", log_dir, "run.log")
    package_logger = setup_logging("DEBUG", log_dir, "run.log")
    assert package_logger.name == ROOT_LOGGER
    assert len(package_logger.handlers) == 2

    logging.getLogger("adaptive_trader.regime").debug("regime %s", "ranging")
    for handler in package_logger.handlers:
        handler.flush()
    assert "| adaptive_trader.regime | regime ranging" in (log_dir / "run.log").read_text(encoding="utf-8")

    console_only = setup_logging("WARNING")
    assert console_only.level == logging.WARNING
    assert len(console_only.handlers) == 1
    setup_logging("INFO")
