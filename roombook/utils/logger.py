"""Process-wide logging setup."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from roombook.utils.config import get_settings


_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None, force: bool = False) -> None:
    """Configure the root logger once from ``Settings.log_level``/``log_format``.

    ``force`` re-applies the configuration, e.g. after tests swap settings.
    """

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED and not force:
        return

    settings = get_settings()
    resolved_level = (level or settings.log_level).upper()

    logging.basicConfig(
        level=resolved_level,
        format=settings.log_format,
        stream=sys.stdout,
        force=force,
    )
    # uvicorn access lines duplicate the controller-level logs
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring logging on first use."""
    configure_logging()
    return logging.getLogger(name)
