from decimal import Decimal

from querydeck.workspace.models import SortDirection, SortState
from querydeck.workspace.sorting import compare_cells, next_sort_state, sort_rows

COLUMNS = ["n", "label"]


def test_no_sort_state_is_identity():
    rows = [(2, "b"), (1, "a")]
    assert sort_rows(rows, COLUMNS, None) == rows


def test_stable_for_ties():
    rows = [(1, "b"), (1, "a")]
    state = SortState("n", SortDirection.ASC)
    assert sort_rows(rows, COLUMNS, state) == [(1, "b"), (1, "a")]
    assert sort_rows(sort_rows(rows, COLUMNS, state), COLUMNS, state) == [(1, "b"), (1, "a")]


def test_nulls_sort_last_in_both_directions():
    rows = [(None, "x"), (2, "y"), (10, "z")]
    asc = sort_rows(rows, COLUMNS, SortState("n", SortDirection.ASC))
    desc = sort_rows(rows, COLUMNS, SortState("n", SortDirection.DESC))
    assert [r[0] for r in asc] == [2, 10, None]
    assert [r[0] for r in desc] == [10, 2, None]


def test_numbers_compare_numerically():
    rows = [(10, ""), (9, ""), (100, "")]
    result = sort_rows(rows, COLUMNS, SortState("n"))
    assert [r[0] for r in result] == [9, 10, 100]


def test_text_is_case_insensitive():
    rows = [(1, "banana"), (2, "Apple"), (3, "cherry")]
    result = sort_rows(rows, COLUMNS, SortState("label", SortDirection.DESC))
    assert [r[1] for r in result] == ["cherry", "banana", "Apple"]


def test_input_rows_are_not_mutated():
    rows = [(2, "b"), (1, "a")]
    sort_rows(rows, COLUMNS, SortState("n"))
    assert rows == [(2, "b"), (1, "a")]


def test_unknown_column_leaves_order():
    rows = [(2, "b"), (1, "a")]
    assert sort_rows(rows, COLUMNS, SortState("missing")) == rows


def test_compare_equal_values():
    assert compare_cells("a", "a", SortDirection.DESC) == 0
    assert compare_cells(None, None, SortDirection.ASC) == 0


def test_sort_cycle():
    first = next_sort_state(None, "n")
    assert first == SortState("n", SortDirection.ASC)
    second = next_sort_state(first, "n")
    assert second == SortState("n", SortDirection.DESC)
    assert next_sort_state(second, "n") == SortState("n", SortDirection.ASC)
    assert next_sort_state(second, "label") == SortState("label", SortDirection.ASC)


def test_non_finite_decimals_sort_as_text():
    rows = [(Decimal("NaN"), "a"), (Decimal("2"), "b"), (Decimal("NaN"), "c")]
    result = sort_rows(rows, COLUMNS, SortState("n"))
    assert [r[1] for r in result] == ["b", "a", "c"]
