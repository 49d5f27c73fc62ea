"""Logging configuration using loguru.

Intercepts stdlib logging so that uvicorn, httpx, sse-starlette, pydantic-ai,
etc. all flow through loguru with a unified format.  The ``chat`` CLI command
reuses the same setup, so server and client output look alike.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable

from loguru import logger

_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "sse_starlette", "mcp")

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class _InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru, preserving the caller location."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging-module frames so loguru reports the real call-site
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", *, quiet: Iterable[str] = _NOISY_LOGGERS) -> None:
    """Make loguru the only sink and route stdlib logging into it.

    Call once at process start.  Loggers named in *quiet* are raised to
    WARNING.
    """
    level = level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level, format=_FORMAT)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging initialised (level={})", level)
