"""Process-wide logging setup and the get_logger helper used across marketchat."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from marketchat.config import get_settings

LOGGER_ROOT = "marketchat"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class LoggingConfig:
    """Configure the marketchat logger tree once; repeated construction is harmless."""

    _configured = False

    def __init__(self, level: Optional[str] = None) -> None:
        level_name = (level or get_settings().log_level or "INFO").upper()
        root = logging.getLogger(LOGGER_ROOT)
        root.setLevel(getattr(logging, level_name, logging.INFO))
        if LoggingConfig._configured:
            return

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        LoggingConfig._configured = True


def configure_logging(level: Optional[str] = None) -> None:
    LoggingConfig(level)


def get_logger(name: str) -> logging.Logger:
    """Return a child of the marketchat logger, e.g. get_logger("change_feed")."""
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")
