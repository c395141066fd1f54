"""
Display-time sorting of a materialized result window.

Stored rows are never reordered; the grid asks for a sorted view on every
render so that appended pages stay in fetch order underneath.
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Optional, Sequence

from querydeck.core.values import CellValue, ValueKind
from querydeck.workspace.models import SortDirection, SortState


def _same_value(a: CellValue, b: CellValue) -> bool:
    if a.kind is not b.kind:
        return False
    if a.kind is ValueKind.NULL:
        return True
    return a.value == b.value


def compare_cells(a: Any, b: Any, direction: SortDirection) -> int:
    """
    Compare two cell values for sorting.

    NULL always sorts last, whatever the direction. Two numbers compare
    numerically; everything else compares as case-insensitive text.
    """
    left = CellValue.of(a)
    right = CellValue.of(b)

    if _same_value(left, right):
        return 0
    if left.is_null:
        return 1
    if right.is_null:
        return -1

    sign = 1 if direction is SortDirection.ASC else -1
    if left.kind is ValueKind.NUMBER and right.kind is ValueKind.NUMBER:
        return sign * ((left.value > right.value) - (left.value < right.value))

    left_text = left.text().lower()
    right_text = right.text().lower()
    return sign * ((left_text > right_text) - (left_text < right_text))


def sort_rows(
    rows: Sequence[Sequence[Any]],
    columns: Sequence[str],
    sort_state: Optional[SortState],
) -> list[Sequence[Any]]:
    """
    Return rows ordered by the sort state, leaving the input untouched.

    Python's sort is stable, so ties keep their fetch order. An unknown
    sort column yields the rows unchanged.
    """
    if sort_state is None:
        return list(rows)
    try:
        index = list(columns).index(sort_state.column)
    except ValueError:
        return list(rows)

    direction = sort_state.direction
    key = cmp_to_key(lambda a, b: compare_cells(a[index], b[index], direction))
    return sorted(rows, key=key)


def next_sort_state(current: Optional[SortState], column: str) -> SortState:
    """Advance the header click cycle: ascending first, then toggle."""
    if (
        current is not None
        and current.column == column
        and current.direction is SortDirection.ASC
    ):
        return SortState(column=column, direction=SortDirection.DESC)
    return SortState(column=column, direction=SortDirection.ASC)
