import pytest

from querydeck.core.sql_utils import Dialect, TableRef
from querydeck.workspace.backends import ExecutionError, QueryResult
from querydeck.workspace.models import Pagination, ResultWindow
from querydeck.workspace.windows import (
    ResultWindowManager,
    extend_window,
    parse_count,
    window_from_result,
)

PEOPLE = TableRef("people")


async def test_open_window_loads_count_then_first_page(executor, people_table):
    executor.on("people", people_table)
    windows = ResultWindowManager(executor)

    window = await windows.open_window("pg", PEOPLE, Dialect.POSTGRES, 50)

    assert executor.statements == [
        "SELECT COUNT(*) AS count FROM people",
        "SELECT * FROM people LIMIT 50 OFFSET 0",
    ]
    assert window.columns == ("id", "name")
    assert window.row_count == 50
    assert window.total_row_count == 120
    assert window.pagination == Pagination(limit=50, offset=0, has_more=True)


async def test_count_failure_does_not_block_data(executor, people_table):
    executor.on("people", people_table)
    executor.on("COUNT(*)", ExecutionError("permission denied"))
    windows = ResultWindowManager(executor)

    window = await windows.open_window("pg", PEOPLE, Dialect.POSTGRES, 50)

    assert window.total_row_count is None
    assert window.row_count == 50


async def test_page_failure_propagates(executor):
    executor.on("LIMIT", ExecutionError("relation does not exist"))
    windows = ResultWindowManager(executor)

    with pytest.raises(ExecutionError):
        await windows.open_window("pg", PEOPLE, Dialect.POSTGRES, 50)


async def test_next_window_appends(executor, people_table):
    executor.on("people", people_table)
    windows = ResultWindowManager(executor)
    window = await windows.open_window("ms", PEOPLE, Dialect.MSSQL, 50)

    window = await windows.next_window("ms", PEOPLE, Dialect.MSSQL, window)
    assert window.row_count == 100
    assert window.pagination.offset == 50
    assert window.pagination.has_more

    window = await windows.next_window("ms", PEOPLE, Dialect.MSSQL, window)
    assert window.row_count == 120
    assert [row[0] for row in window.rows] == list(range(1, 121))
    assert not window.pagination.has_more
    assert executor.statements[-1].endswith("OFFSET 100 ROWS FETCH NEXT 50 ROWS ONLY")


def test_extend_window_rejects_ragged_page():
    window = ResultWindow(
        columns=("a", "b"), rows=((1, 2),), pagination=Pagination(limit=1)
    )
    page = QueryResult(columns=["a"], rows=[[3]])
    with pytest.raises(ExecutionError):
        extend_window(window, page, 1)


def test_extend_window_needs_pagination():
    window = window_from_result(QueryResult(columns=["a"], rows=[[1]]))
    with pytest.raises(ValueError):
        extend_window(window, QueryResult(columns=["a"], rows=[[2]]), 1)


@pytest.mark.parametrize(
    "rows,expected",
    [
        ([[42]], 42),
        ([["42"]], 42),
        ([[True]], None),
        ([["many"]], None),
        ([[None]], None),
        ([], None),
    ],
)
def test_parse_count(rows, expected):
    columns = ["count"] if rows else []
    assert parse_count(QueryResult(columns=columns, rows=rows)) == expected
