import pytest

from querydeck.core.sql_utils import (
    Dialect,
    TableRef,
    apply_auto_limit,
    build_count_query,
    build_window_query,
    is_auto_limit_candidate,
)


class TestAutoLimit:
    def test_appends_limit(self):
        assert (
            apply_auto_limit("  select * from users  ", 100, Dialect.POSTGRES)
            == "select * from users LIMIT 100"
        )

    def test_wraps_for_mssql(self):
        assert (
            apply_auto_limit("SELECT * FROM users", 100, Dialect.MSSQL)
            == "SELECT TOP 100 * FROM (SELECT * FROM users) AS subqb"
        )

    def test_strips_trailing_semicolons(self):
        assert (
            apply_auto_limit("SELECT 1;;", 10, Dialect.MYSQL) == "SELECT 1 LIMIT 10"
        )

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT * FROM users LIMIT 5",
            "select * from users limit 5",
            "SELECT TOP 5 * FROM users",
            "select top 5 * from users",
            "UPDATE users SET a = 1",
            "WITH x AS (SELECT 1) SELECT * FROM x",
            "SELECT 1; DELETE FROM users",
            "SELECT * FROM users -- all of them",
        ],
    )
    @pytest.mark.parametrize("dialect", [Dialect.POSTGRES, Dialect.MSSQL])
    def test_leaves_ineligible_statements_alone(self, sql, dialect):
        assert apply_auto_limit(sql, 100, dialect) == sql

    def test_disabled_when_limit_not_positive(self):
        assert apply_auto_limit("SELECT 1", 0, Dialect.POSTGRES) == "SELECT 1"

    def test_candidate_check(self):
        assert is_auto_limit_candidate("SELECT a FROM b")
        assert not is_auto_limit_candidate("")


class TestTableRef:
    def test_render_with_schema(self):
        assert TableRef("users", "public").render() == "public.users"

    @pytest.mark.parametrize("schema", ["*", "", None])
    def test_all_schemas_is_dropped(self, schema):
        assert TableRef("users", schema).render() == "users"

    def test_parse(self):
        assert TableRef.parse("dbo.orders") == TableRef("orders", "dbo")
        assert TableRef.parse("orders") == TableRef("orders")

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            TableRef(" ")


class TestWindowQueries:
    def test_limit_offset(self):
        ref = TableRef("users")
        assert (
            build_window_query(ref, Dialect.POSTGRES, 50, 100)
            == "SELECT * FROM users LIMIT 50 OFFSET 100"
        )
        assert (
            build_window_query(ref, Dialect.MYSQL, 50)
            == "SELECT * FROM users LIMIT 50 OFFSET 0"
        )

    def test_mssql_offset_fetch(self):
        assert build_window_query(TableRef("users", "dbo"), Dialect.MSSQL, 50, 0) == (
            "SELECT * FROM dbo.users ORDER BY (SELECT NULL) "
            "OFFSET 0 ROWS FETCH NEXT 50 ROWS ONLY"
        )

    def test_rejects_bad_bounds(self):
        with pytest.raises(ValueError):
            build_window_query(TableRef("users"), Dialect.POSTGRES, 0)
        with pytest.raises(ValueError):
            build_window_query(TableRef("users"), Dialect.POSTGRES, 10, -1)

    def test_count(self):
        assert build_count_query(TableRef("users")) == "SELECT COUNT(*) AS count FROM users"


def test_unknown_dialect_falls_back_to_postgres():
    assert Dialect.parse("oracle") is Dialect.POSTGRES
    assert Dialect.parse(None) is Dialect.POSTGRES
    assert Dialect.parse("PostgreSQL") is Dialect.POSTGRES
    assert Dialect.parse("MSSQL") is Dialect.MSSQL
