from __future__ import annotations

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Parent of every module logger created with getLogger(__name__) in this package.
PACKAGE_LOGGER = __name__.rpartition(".common.")[0]


def setup_logging(level: str | int = logging.INFO, *, name: Optional[str] = None) -> logging.Logger:
    """Configure and return the package logger (idempotent)."""
    logger = logging.getLogger(name or PACKAGE_LOGGER)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
