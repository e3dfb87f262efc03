"""Structured logging for crcalc.

Log lines carry the thread name, since evaluations run on ``crcalc-eval``
worker threads and a cancelled thread may keep logging after its caller
has returned.
"""

import logging
import sys
from datetime import datetime
from typing import Optional

from .config import LOG_LEVEL

ROOT_LOGGER = "crcalc"


class StructuredFormatter(logging.Formatter):
    """``timestamp [LEVEL] logger (thread): message`` lines."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds")
        line = f"{timestamp} [{record.levelname}] {record.name} ({record.threadName}): {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _handler(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(StructuredFormatter())
    return handler


def setup_logging(level: str = LOG_LEVEL, log_file: Optional[str] = None) -> logging.Logger:
    """Route ``crcalc.*`` loggers to stderr and, optionally, a file.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Level name; unknown names fall back to WARNING
        log_file: Optional path that also receives every record

    Returns:
        The package's root logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.addHandler(_handler(logging.StreamHandler(sys.stderr)))
    if log_file:
        logger.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8")))
    logger.propagate = False
    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger for a module, e.g. ``get_logger("cr")`` is ``crcalc.cr``."""
    if name == ROOT_LOGGER:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def safe_log(module_name: str, level: str, message: str, *args, exc_info: bool = False) -> None:
    """Log from a worker thread; a closed stream or bad format must not abort the evaluation."""
    logger = get_logger(module_name)
    log_func = getattr(logger, level.lower(), logger.info)
    try:
        log_func(message, *args, exc_info=exc_info)
    except (OSError, ValueError, TypeError):
        pass
