"""
Windowed loading of table rows for browse tabs.

A window starts with the first page of a table plus a best-effort total
row count, and grows by appending further pages ("load more"). Windows are
immutable; every operation returns a new one.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional

from querydeck.core.logging import get_logger
from querydeck.core.sql_utils import (
    Dialect,
    TableRef,
    build_count_query,
    build_window_query,
)
from querydeck.workspace.backends import ExecutionError, QueryExecutor, QueryResult
from querydeck.workspace.models import Pagination, ResultWindow

logger = get_logger(__name__)


def _materialize_rows(rows: list[list[Any]], width: int) -> tuple[tuple[Any, ...], ...]:
    for index, row in enumerate(rows):
        if len(row) != width:
            raise ExecutionError(
                f"Malformed query result: row {index} has {len(row)} values "
                f"for {width} columns"
            )
    return tuple(tuple(row) for row in rows)


def window_from_result(
    result: QueryResult,
    pagination: Optional[Pagination] = None,
    total_row_count: Optional[int] = None,
) -> ResultWindow:
    """Materialize an executor result, enforcing one value per column."""
    return ResultWindow(
        columns=tuple(result.columns),
        rows=_materialize_rows(result.rows, len(result.columns)),
        pagination=pagination,
        total_row_count=total_row_count,
    )


def extend_window(
    window: ResultWindow,
    page: QueryResult,
    new_offset: int,
) -> ResultWindow:
    """Append a fetched page to a window and advance its pagination."""
    if window.pagination is None:
        raise ValueError("Window has no pagination to extend")

    limit = window.pagination.limit
    columns = window.columns or tuple(page.columns)
    appended = _materialize_rows(page.rows, len(columns))
    return replace(
        window,
        columns=columns,
        rows=window.rows + appended,
        pagination=Pagination(
            limit=limit,
            offset=new_offset,
            has_more=len(page.rows) == limit,
            is_loading=False,
        ),
    )


def parse_count(result: QueryResult) -> Optional[int]:
    if not result.rows or not result.rows[0]:
        return None
    raw: Any = result.rows[0][0]
    if isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class ResultWindowManager:
    def __init__(self, executor: QueryExecutor) -> None:
        self._executor = executor

    async def fetch_count(self, connection_id: str, table_ref: TableRef) -> Optional[int]:
        """Total rows in the table, or None when the count cannot be fetched."""
        try:
            result = await self._executor.execute(
                connection_id, build_count_query(table_ref)
            )
        except Exception as e:
            logger.warning(f"Row count failed for {table_ref}: {e}")
            return None
        count = parse_count(result)
        if count is None:
            logger.warning(f"Row count for {table_ref} returned no usable value")
        return count

    async def fetch_page(
        self,
        connection_id: str,
        table_ref: TableRef,
        dialect: Dialect,
        limit: int,
        offset: int,
    ) -> QueryResult:
        sql = build_window_query(table_ref, dialect, limit, offset)
        logger.debug(f"Fetching window: {sql}")
        return await self._executor.execute(connection_id, sql)

    async def open_window(
        self,
        connection_id: str,
        table_ref: TableRef,
        dialect: Dialect,
        page_size: int,
    ) -> ResultWindow:
        """
        Load the first page of a table.

        The count runs first and never fails the load. Errors from the page
        fetch propagate to the caller.
        """
        total = await self.fetch_count(connection_id, table_ref)
        page = await self.fetch_page(connection_id, table_ref, dialect, page_size, 0)
        pagination = Pagination(
            limit=page_size,
            offset=0,
            has_more=len(page.rows) == page_size,
            is_loading=False,
        )
        return window_from_result(page, pagination=pagination, total_row_count=total)

    async def next_window(
        self,
        connection_id: str,
        table_ref: TableRef,
        dialect: Dialect,
        window: ResultWindow,
    ) -> ResultWindow:
        """Fetch the page after the window and return the extended window."""
        if window.pagination is None:
            raise ValueError("Window has no pagination to extend")
        new_offset = window.pagination.offset + window.pagination.limit
        page = await self.fetch_page(
            connection_id, table_ref, dialect, window.pagination.limit, new_offset
        )
        return extend_window(window, page, new_offset)
