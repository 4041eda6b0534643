"""
Logging for the engine and the automation loops: console always, plus a rotating file
when both log_dir and log_file are set. Module loggers live under "adaptive_trader.<area>".
"""

from __future__ import annotations
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER = "adaptive_trader"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def resolve_level(level: Union[str, int]) -> int:
    """'debug', 'INFO' or a logging constant; unknown names fall back to INFO."""
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).strip().upper(), logging.INFO)


def setup_logging(
    level: Union[str, int] = "INFO",
    log_dir: Optional[Path] = None,
    log_file: Optional[str] = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Configure the package logger. Calling it again closes and replaces the previous
    handlers, so a backtest after a paper session does not print every line twice.
    """
    package_logger = logging.getLogger(ROOT_LOGGER)
    package_logger.setLevel(resolve_level(level))
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    package_logger.addHandler(console)

    if log_dir and log_file:
        path = Path(log_dir) / log_file
        path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        rotating.setFormatter(formatter)
        package_logger.addHandler(rotating)

    return package_logger
