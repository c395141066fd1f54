"""
Cell value classification and SQL literal formatting.

Result cells arrive from the backend as plain JSON-ish Python values. Every
consumer (literal formatting, edit coercion, sorting) classifies them through
CellValue first so the handling for each kind lives in one place.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

from querydeck.core.sql_utils import Dialect, quote_literal


class ValueKind(str, Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True)
class CellValue:
    """A runtime cell value tagged with its kind."""

    kind: ValueKind
    value: Any = None

    @classmethod
    def of(cls, raw: Any) -> "CellValue":
        if raw is None:
            return cls(ValueKind.NULL)
        # bool is a subclass of int, check it first
        if isinstance(raw, bool):
            return cls(ValueKind.BOOL, raw)
        if isinstance(raw, int):
            return cls(ValueKind.NUMBER, raw)
        if isinstance(raw, (float, Decimal)):
            if _is_finite(raw):
                return cls(ValueKind.NUMBER, raw)
            return cls(ValueKind.TEXT, _non_finite_text(raw))
        if isinstance(raw, str):
            return cls(ValueKind.TEXT, raw)
        if isinstance(raw, (dict, list, tuple)):
            return cls(ValueKind.JSON, raw)
        if isinstance(raw, (datetime, date, time)):
            return cls(ValueKind.TEXT, raw.isoformat())
        if isinstance(raw, bytes):
            try:
                return cls(ValueKind.TEXT, raw.decode("utf-8"))
            except UnicodeDecodeError:
                return cls(ValueKind.TEXT, raw.hex())
        return cls(ValueKind.TEXT, str(raw))

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    def text(self) -> str:
        """Plain display text, used for case-insensitive comparisons."""
        if self.kind is ValueKind.NULL:
            return "null"
        if self.kind is ValueKind.BOOL:
            return "true" if self.value else "false"
        if self.kind is ValueKind.NUMBER:
            return number_text(self.value)
        if self.kind is ValueKind.JSON:
            return json_text(self.value)
        return self.value


def _is_finite(value: float | Decimal) -> bool:
    if isinstance(value, Decimal):
        return value.is_finite()
    return math.isfinite(value)


def _non_finite_text(value: float | Decimal) -> str:
    if isinstance(value, Decimal):
        if value.is_nan():
            return "NaN"
        return "-Infinity" if value.is_signed() else "Infinity"
    if math.isnan(value):
        return "NaN"
    return "Infinity" if value > 0 else "-Infinity"


def number_text(value: int | float | Decimal) -> str:
    if isinstance(value, float):
        # 30.0 -> "30", keeps literals identical to what the grid displays
        if value.is_integer() and abs(value) < 1e16:
            return str(int(value))
        return repr(value)
    return str(value)


def json_text(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def format_sql_value(raw: Any, dialect: Dialect) -> str:
    """
    Render a runtime value as a SQL literal for the given dialect.

    Args:
        raw: Cell value (None, bool, number, str, or structured value).
        dialect: Target dialect; only affects boolean rendering.

    Returns:
        SQL literal text.
    """
    cell = CellValue.of(raw)

    if cell.kind is ValueKind.NULL:
        return "NULL"
    if cell.kind is ValueKind.BOOL:
        if dialect is Dialect.MSSQL:
            return "1" if cell.value else "0"
        return "TRUE" if cell.value else "FALSE"
    if cell.kind is ValueKind.NUMBER:
        return number_text(cell.value)
    if cell.kind is ValueKind.JSON:
        # Best effort, not guaranteed to round-trip through the column type
        return quote_literal(json_text(cell.value))
    return quote_literal(cell.value)


def serialize_value(value: Any) -> Any:
    """
    Serialize a cell value to be JSON-compatible for API responses.
    """
    if value is None or isinstance(value, (str, int, bool)):
        return value
    if isinstance(value, (float, Decimal)):
        if not _is_finite(value):
            return _non_finite_text(value)
        return float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value.hex()
    if isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): serialize_value(v) for k, v in value.items()}
    return str(value)
