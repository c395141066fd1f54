"""Core utilities module."""

from .logging import setup_logging, get_logger
from .sql_utils import Dialect, TableRef, apply_auto_limit
from .values import CellValue, ValueKind, format_sql_value

__all__ = [
    "setup_logging",
    "get_logger",
    "Dialect",
    "TableRef",
    "apply_auto_limit",
    "CellValue",
    "ValueKind",
    "format_sql_value",
]
