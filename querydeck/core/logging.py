"""
Logging configuration for the workspace engine.
"""

import logging
import re
import sys
from typing import Optional

from querydeck.config import settings

# ANSI Color Codes
BLUE = "\033[0;34m"
CYAN = "\033[0;36m"
YELLOW = "\033[1;33m"
RED = "\033[0;31m"
BOLD_RED = "\033[1;31m"
RESET = "\033[0m"

LEVEL_COLORS = {
    logging.DEBUG: BLUE,
    logging.INFO: RESET,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: BOLD_RED,
}

# Longest statement text written to a single log line
STATEMENT_LOG_CHARS = 200


def statement_preview(statement: str) -> str:
    """Collapse whitespace and cut a statement down for a log line."""
    flat = " ".join(statement.split())
    if len(flat) <= STATEMENT_LOG_CHARS:
        return flat
    return flat[:STATEMENT_LOG_CHARS] + "..."


class ColoredFormatter(logging.Formatter):
    """Colors records by level and highlights outcome and statement keywords."""

    FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    DATE_FMT = "%Y-%m-%d %H:%M:%S"

    # (pattern, color); patterns are matched on word boundaries
    HIGHLIGHTS = [
        ("FAILED", RED),
        ("Exception", RED),
        ("timed out", YELLOW),
        ("SELECT|INSERT|UPDATE|DELETE", CYAN),
    ]

    def __init__(self) -> None:
        super().__init__(datefmt=self.DATE_FMT)
        self._formatters = {
            levelno: logging.Formatter(
                color + self.FMT + (RESET if color != RESET else ""),
                datefmt=self.DATE_FMT,
            )
            for levelno, color in LEVEL_COLORS.items()
        }
        self._highlights = [
            (re.compile(rf"\b(?:{pattern})\b"), color)
            for pattern, color in self.HIGHLIGHTS
        ]

    def level_color(self, levelno: int) -> str:
        for threshold in sorted(LEVEL_COLORS, reverse=True):
            if levelno >= threshold:
                return LEVEL_COLORS[threshold]
        return RESET

    def format(self, record: logging.LogRecord) -> str:
        formatter = self._formatters.get(record.levelno)
        if formatter is None:
            formatter = logging.Formatter(self.FMT, datefmt=self.DATE_FMT)
        formatted_message = formatter.format(record)

        level_color = self.level_color(record.levelno)
        for pattern, color in self._highlights:
            formatted_message = pattern.sub(
                lambda match: f"{color}{match.group(0)}{RESET}{level_color}",
                formatted_message,
            )
        return formatted_message


class UvicornAccessFilter(logging.Filter):
    """
    Filter to downgrade noisy polling/streaming endpoints to DEBUG level.
    """

    QUIET_PATHS = {
        "/health",
        "/events",  # SSE tab update stream
    }

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if '"GET ' in message and any(path in message for path in self.QUIET_PATHS):
            record.levelno = logging.DEBUG
            record.levelname = "DEBUG"
        return True


def setup_logging(name: Optional[str] = None) -> logging.Logger:
    """
    Configure the root handler, uvicorn loggers and library log levels.

    Args:
        name: Logger name. If None, returns the ``querydeck`` logger.

    Returns:
        Configured logger instance.
    """
    log_level = logging.DEBUG if settings.debug_mode else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter())

    logging.basicConfig(level=log_level, handlers=[handler], force=True)
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        log_obj = logging.getLogger(logger_name)
        log_obj.handlers = [handler]
        log_obj.propagate = False
    logging.getLogger("uvicorn.access").addFilter(UvicornAccessFilter())

    # Backend calls are logged by the executor's callers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return logging.getLogger(name or "querydeck")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
