"""
Logging for smclearn.

Every module logs through get_logger(__name__), which hands out plain
children of the "smclearn" logger. Only the root is configured: the runner
calls setup_logger() once and the console (and optional rotating file)
handlers then cover extraction progress, iteration metrics and model
insights from every module. The root does not propagate, so messages never
reach handlers installed on the Python root logger.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


ROOT_LOGGER_NAME = "smclearn"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_loggers = {}


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    log_file: Optional[str] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure a top-level logger once and cache it.

    Later calls with the same name return the cached logger unchanged, so a
    second call cannot add a log file.

    Args:
        name: Logger name, normally "smclearn"
        log_file: Rotating log file, e.g. logs/learn_loop.log (optional)
        level: Level for the logger and its handlers
        max_bytes: Size at which the log file rotates
        backup_count: Rotated files kept

    Returns:
        The configured logger
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    if logger.handlers:
        logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    _loggers[name] = logger
    return logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Module logger. Names under "smclearn." are left unconfigured and reach
    the root's handlers; any other name is set up as its own top-level logger.
    """
    if name in _loggers:
        return _loggers[name]
    if name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return setup_logger(name)
