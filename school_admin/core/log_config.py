"""Logging setup for the school admin service."""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOGGER_NAME = "school_admin"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure the package logger once and return it.

    Module loggers (``logging.getLogger(__name__)``) live under ``school_admin``
    and propagate here, so a single stderr handler covers the whole service.
    """
    log = logging.getLogger(LOGGER_NAME)
    log.setLevel((level or "INFO").upper())
    if log.handlers:
        return log

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    log.addHandler(handler)
    return log
