"""Console logging for the typed_rows package.

The library itself only creates module loggers under ``typed_rows``; nothing
is printed until :func:`configure_logging` attaches a handler. The level
comes from the argument, the ``TYPED_ROWS_LOG_LEVEL`` environment variable,
or WARNING, in that order.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from typing import TextIO

LOG_LEVEL_ENV = "TYPED_ROWS_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"
PACKAGE_LOGGER = "typed_rows"


class HumanFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = False) -> None:
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        if self.use_color:
            color = self.COLORS.get(record.levelname, "")
            level = f"{color}{record.levelname:8}{self.RESET}"
        else:
            level = f"{record.levelname:8}"

        message = f"[{timestamp}] {level} | {record.name:28} | {record.getMessage()}"
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


def resolve_level(level: str | int | None = None) -> int:
    """Turn a level name, number or None into a logging level number."""
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(level: str | int | None = None, stream: TextIO | None = None) -> logging.Logger:
    """Attach a console handler to the package logger.

    Calling this again replaces the handler installed by the previous call.

    Args:
        level: Log level name or number. Defaults to the environment variable.
        stream: Output stream. Defaults to stderr.

    Returns:
        The ``typed_rows`` package logger.
    """
    stream = stream if stream is not None else sys.stderr
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(resolve_level(level))

    for handler in logger.handlers[:]:
        if getattr(handler, "_typed_rows_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(HumanFormatter(use_color=hasattr(stream, "isatty") and stream.isatty()))
    handler._typed_rows_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger


def set_log_level(level: str | int) -> None:
    """Change the package log level at runtime."""
    logging.getLogger(PACKAGE_LOGGER).setLevel(resolve_level(level))
