from __future__ import annotations

import os
import sys

from loguru import logger

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Replace loguru's default sink with a single stderr sink.

    Safe to call more than once; only the first call installs the sink.
    """
    global _configured
    if _configured:
        return
    logger.remove()
    logger.add(sys.stderr, level=level or LOG_LEVEL, format=LOG_FORMAT, backtrace=False)
    _configured = True
