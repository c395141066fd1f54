"""
Mutation statement synthesis from edits made on displayed rows.

No schema or primary-key metadata is available, so a row is identified by
an equality predicate over every displayed column. If the table holds
duplicate rows, UPDATE and DELETE affect all of them. Columns whose stored
value differs from what the client observed (float rounding, truncated
text) will make the predicate match nothing.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Sequence

from querydeck.core.sql_utils import Dialect, TableRef
from querydeck.core.values import CellValue, ValueKind, format_sql_value


class SynthesisSkip(Exception):
    """Raised when there is nothing to synthesize; the action is dropped."""


def build_where_clause(
    row: Sequence[Any],
    columns: Sequence[str],
    dialect: Dialect,
) -> str:
    """
    Build a full-row equality predicate.

    Args:
        row: Row values in column order.
        columns: Column names.
        dialect: Target dialect for literal formatting.

    Returns:
        Predicate text such as ``name = 'Alice' AND nickname IS NULL``.
    """
    if not columns:
        raise SynthesisSkip("Row has no columns to match on")
    if len(row) != len(columns):
        raise ValueError(
            f"Row has {len(row)} values for {len(columns)} columns"
        )

    conditions = []
    for column, value in zip(columns, row):
        if value is None:
            conditions.append(f"{column} IS NULL")
        else:
            conditions.append(f"{column} = {format_sql_value(value, dialect)}")
    return " AND ".join(conditions)


def _parse_number(text: str) -> int | float | None:
    stripped = text.strip()
    if "_" in stripped:
        return None
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        parsed = float(stripped)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def coerce_edit_value(original: Any, new_raw: Any) -> Any:
    """
    Infer the typed value for an edited cell from the original cell's kind.

    The edit widget only produces text, so the target type comes from the
    value being replaced: numeric cells take numbers (blank means NULL),
    boolean cells take true/false/1/0, everything else stays text.
    """
    if not isinstance(new_raw, str):
        return new_raw

    kind = CellValue.of(original).kind
    if kind is ValueKind.NUMBER:
        if not new_raw.strip():
            return None
        parsed = _parse_number(new_raw)
        return new_raw if parsed is None else parsed

    if kind is ValueKind.BOOL:
        lowered = new_raw.strip().lower()
        if lowered in ("true", "1"):
            return True
        if lowered in ("false", "0"):
            return False

    return new_raw


def build_update(
    table_ref: TableRef,
    row: Sequence[Any],
    columns: Sequence[str],
    column_index: int,
    new_raw: Any,
    dialect: Dialect,
) -> str:
    if not 0 <= column_index < len(columns):
        raise ValueError(f"Column index {column_index} out of range")

    where_clause = build_where_clause(row, columns, dialect)
    value = coerce_edit_value(row[column_index], new_raw)
    formatted = format_sql_value(value, dialect)
    return (
        f"UPDATE {table_ref.render()} SET {columns[column_index]} = {formatted} "
        f"WHERE {where_clause}"
    )


def build_delete(
    table_ref: TableRef,
    row: Sequence[Any],
    columns: Sequence[str],
    dialect: Dialect,
) -> str:
    where_clause = build_where_clause(row, columns, dialect)
    return f"DELETE FROM {table_ref.render()} WHERE {where_clause}"


def build_insert(
    table_ref: TableRef,
    draft: Mapping[str, Any],
    dialect: Dialect,
) -> str:
    """
    Build an INSERT from a draft row.

    Only populated columns are listed; the rest are left to column defaults
    rather than forced to NULL.
    """
    if not draft:
        raise SynthesisSkip("Draft row is empty")

    columns = list(draft.keys())
    values = ", ".join(format_sql_value(draft[col], dialect) for col in columns)
    return (
        f"INSERT INTO {table_ref.render()} ({', '.join(columns)}) VALUES ({values})"
    )
