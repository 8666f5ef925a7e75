"""Logging configuration for the web app."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | int = logging.INFO, logger_name: str = "app") -> logging.Logger:
    """Configure the application logger with consistent formatting.

    Idempotent: a logger that already has handlers is returned unchanged.

    Args:
        level: Logging level name or number (default INFO).
        logger_name: Root of the logger hierarchy to configure.

    Returns:
        Configured logger.
    """
    logger = logging.getLogger(logger_name)

    if logger.handlers:
        return logger

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)

    return logger
