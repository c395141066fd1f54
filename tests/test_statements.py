import pytest

from querydeck.core.sql_utils import Dialect, TableRef
from querydeck.workspace.statements import (
    SynthesisSkip,
    build_delete,
    build_insert,
    build_update,
    build_where_clause,
    coerce_edit_value,
)

COLUMNS = ["name", "nickname", "age"]
ROW = ["Alice", None, 30]
USERS = TableRef("users", "public")


def test_where_clause_matches_full_row():
    assert (
        build_where_clause(ROW, COLUMNS, Dialect.POSTGRES)
        == "name = 'Alice' AND nickname IS NULL AND age = 30"
    )


def test_where_clause_needs_columns():
    with pytest.raises(SynthesisSkip):
        build_where_clause([], [], Dialect.POSTGRES)


def test_where_clause_rejects_width_mismatch():
    with pytest.raises(ValueError):
        build_where_clause(["Alice"], COLUMNS, Dialect.POSTGRES)


def test_update_coerces_number_from_original_kind():
    sql = build_update(USERS, ["Bob", None, 42], COLUMNS, 2, "43", Dialect.POSTGRES)
    assert sql == (
        "UPDATE public.users SET age = 43 "
        "WHERE name = 'Bob' AND nickname IS NULL AND age = 42"
    )


def test_update_keeps_text_for_text_cells():
    sql = build_update(USERS, ["Bob", None, 42], COLUMNS, 0, "123", Dialect.POSTGRES)
    assert sql.startswith("UPDATE public.users SET name = '123' WHERE")


def test_update_boolean_for_mssql():
    sql = build_update(
        TableRef("flags"), [1, True], ["id", "enabled"], 1, "false", Dialect.MSSQL
    )
    assert sql == "UPDATE flags SET enabled = 0 WHERE id = 1 AND enabled = 1"


def test_update_rejects_bad_column_index():
    with pytest.raises(ValueError):
        build_update(USERS, ROW, COLUMNS, 3, "x", Dialect.POSTGRES)


@pytest.mark.parametrize(
    "original,raw,expected",
    [
        (42, "43", 43),
        (42, " 4.5 ", 4.5),
        (42, "", None),
        (42, "abc", "abc"),
        (42, "1_000", "1_000"),
        (42, "inf", "inf"),
        (True, "0", False),
        (False, "TRUE", True),
        (True, "maybe", "maybe"),
        ("text", "43", "43"),
        (None, "43", "43"),
        (42, 7, 7),
    ],
)
def test_coerce_edit_value(original, raw, expected):
    assert coerce_edit_value(original, raw) == expected


def test_blank_numeric_edit_sets_null():
    sql = build_update(USERS, ["Bob", None, 42], COLUMNS, 2, "", Dialect.POSTGRES)
    assert "SET age = NULL" in sql


def test_delete():
    assert build_delete(USERS, ROW, COLUMNS, Dialect.POSTGRES) == (
        "DELETE FROM public.users WHERE name = 'Alice' AND nickname IS NULL AND age = 30"
    )


def test_insert_only_lists_populated_columns():
    sql = build_insert(USERS, {"name": "O'Hara", "age": "7"}, Dialect.POSTGRES)
    assert sql == "INSERT INTO public.users (name, age) VALUES ('O''Hara', '7')"


def test_empty_insert_is_skipped():
    with pytest.raises(SynthesisSkip):
        build_insert(USERS, {}, Dialect.POSTGRES)
