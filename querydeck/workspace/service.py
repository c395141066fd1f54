"""
Tab session manager for the query workspace.

Owns the ordered list of tabs, each tab's execution state machine, and routes
run/browse/sort/edit intents to the statement, window and sort helpers.

Tabs are immutable snapshots. Every state change goes through ``_apply``,
which swaps in a new snapshot by tab id and publishes it on the event bus.
A result arriving for a tab that was closed in the meantime finds no tab to
apply to and is dropped.

Runs on a single event loop: there is never an await between checking the
``EXECUTING`` guard and setting it, so one tab cannot start two executes
while different tabs execute concurrently.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional, Sequence
from uuid import uuid4

from querydeck.config import settings
from querydeck.core.event_bus import TabEventBus, tab_event_bus
from querydeck.core.logging import get_logger, statement_preview
from querydeck.core.sql_utils import (
    Dialect,
    TableRef,
    apply_auto_limit,
    build_select_all,
    build_window_query,
)
from querydeck.core.values import serialize_value
from querydeck.workspace.backends import (
    ConnectionRegistry,
    ConnectionStatus,
    ExecutionError,
    QueryExecutor,
)
from querydeck.workspace.models import (
    ExecutionState,
    MutationOutcome,
    PaginationResponse,
    ResultWindowResponse,
    SortState,
    Tab,
    TableRefModel,
    TabMode,
    TabResponse,
    TabSummary,
    WorkspaceResponse,
)
from querydeck.workspace.sorting import next_sort_state, sort_rows
from querydeck.workspace.statements import (
    SynthesisSkip,
    build_delete,
    build_insert,
    build_update,
)
from querydeck.workspace.windows import ResultWindowManager, window_from_result

logger = get_logger(__name__)


class WorkspaceManager:
    def __init__(
        self,
        executor: QueryExecutor,
        registry: ConnectionRegistry,
        *,
        auto_limit: Optional[int] = None,
        page_size: Optional[int] = None,
        event_bus: Optional[TabEventBus] = None,
    ) -> None:
        self._executor = executor
        self._registry = registry
        self._windows = ResultWindowManager(executor)
        self.auto_limit = settings.auto_limit if auto_limit is None else auto_limit
        self.page_size = settings.page_size if page_size is None else page_size
        if self.page_size <= 0:
            raise ValueError("Page size must be positive")
        self.workspace_id = f"ws-{uuid4().hex[:12]}"
        self._event_bus = tab_event_bus if event_bus is None else event_bus
        self._tabs: list[Tab] = []
        self._active_tab_id: Optional[str] = None
        self._active_connection_id: Optional[str] = None

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def tabs(self) -> tuple[Tab, ...]:
        return tuple(self._tabs)

    @property
    def active_tab_id(self) -> Optional[str]:
        return self._active_tab_id

    @property
    def active_connection_id(self) -> Optional[str]:
        return self._active_connection_id

    @property
    def event_bus(self) -> TabEventBus:
        return self._event_bus

    def get_tab(self, tab_id: str) -> Optional[Tab]:
        index = self._index_of(tab_id)
        return self._tabs[index] if index is not None else None

    def _index_of(self, tab_id: str) -> Optional[int]:
        for index, tab in enumerate(self._tabs):
            if tab.id == tab_id:
                return index
        return None

    def _apply(self, tab_id: str, **changes: Any) -> Optional[Tab]:
        """Replace a tab's snapshot. Returns None when the tab no longer exists."""
        index = self._index_of(tab_id)
        if index is None:
            return None
        updated = replace(self._tabs[index], **changes)
        self._tabs[index] = updated
        self._publish("updated", updated.id, updated)
        return updated

    def _publish(self, event: str, tab_id: str, tab: Optional[Tab] = None) -> None:
        data: dict[str, Any] = {
            "event": event,
            "workspace_id": self.workspace_id,
            "tab_id": tab_id,
            "active_tab_id": self._active_tab_id,
        }
        if tab is not None:
            data["tab"] = self._as_summary(tab).model_dump(mode="json")
        self._event_bus.publish(self.workspace_id, data)

    # -------------------------------------------------------------------------
    # Tab list
    # -------------------------------------------------------------------------

    def create_tab(
        self,
        title: str = "New Query",
        statement_text: str = "",
        connection_id: Optional[str] = None,
        mode: TabMode = TabMode.QUERY,
        table_ref: Optional[TableRef] = None,
    ) -> str:
        """Append a tab and make it active. Returns the new tab id."""
        tab = Tab(
            id=str(uuid4()),
            title=title,
            statement_text=statement_text,
            connection_id=connection_id or self._active_connection_id,
            mode=TabMode(mode),
            table_ref=table_ref,
        )
        self._tabs.append(tab)
        self._active_tab_id = tab.id
        logger.debug(f"Opened {tab.mode.value} tab {tab.id} ({title})")
        self._publish("opened", tab.id, tab)
        return tab.id

    def new_query_from_table(self, connection_id: Optional[str], table_ref: TableRef) -> str:
        return self.create_tab(
            title=f"Query: {table_ref.name}",
            statement_text=build_select_all(table_ref),
            connection_id=connection_id,
            mode=TabMode.QUERY,
        )

    def close_tab(self, tab_id: str) -> bool:
        index = self._index_of(tab_id)
        if index is None:
            return False
        del self._tabs[index]
        if self._active_tab_id == tab_id:
            self._active_tab_id = self._tabs[-1].id if self._tabs else None
        self._publish("closed", tab_id)
        return True

    def close_all_tabs(self) -> int:
        closed = [tab.id for tab in self._tabs]
        self._tabs = []
        self._active_tab_id = None
        for tab_id in closed:
            self._publish("closed", tab_id)
        return len(closed)

    def close_tabs_right_of(self, tab_id: str) -> int:
        index = self._index_of(tab_id)
        if index is None:
            return 0
        removed = self._tabs[index + 1 :]
        self._tabs = self._tabs[: index + 1]
        if any(tab.id == self._active_tab_id for tab in removed):
            self._active_tab_id = tab_id
        for tab in removed:
            self._publish("closed", tab.id)
        return len(removed)

    def set_active_tab(self, tab_id: str) -> bool:
        if self._index_of(tab_id) is None:
            return False
        self._active_tab_id = tab_id
        self._publish("activated", tab_id)
        return True

    def set_active_connection(self, connection_id: Optional[str]) -> None:
        self._active_connection_id = connection_id

    def update_statement(self, tab_id: str, statement_text: str) -> bool:
        return self._apply(tab_id, statement_text=statement_text) is not None

    def set_sort(self, tab_id: str, column: str) -> Optional[SortState]:
        """Advance the tab's sort cycle for a column. Stored rows are not touched."""
        tab = self.get_tab(tab_id)
        if tab is None:
            return None
        sort_state = next_sort_state(tab.sort_state, column)
        self._apply(tab_id, sort_state=sort_state)
        return sort_state

    def display_rows(self, tab_id: str) -> list[Sequence[Any]]:
        tab = self.get_tab(tab_id)
        if tab is None or tab.result_window is None:
            return []
        window = tab.result_window
        return sort_rows(window.rows, window.columns, tab.sort_state)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def _resolve_connection(self, tab: Tab) -> Optional[str]:
        connection_id = tab.connection_id or self._active_connection_id
        if connection_id is None:
            logger.debug(f"Tab {tab.id} has no connection, ignoring")
            return None
        status = self._registry.status_of(connection_id)
        if status is not ConnectionStatus.CONNECTED:
            logger.debug(
                f"Connection {connection_id} is {status.value if status else 'unknown'}, "
                f"ignoring request for tab {tab.id}"
            )
            return None
        return connection_id

    def _begin_execution(self, tab_id: str) -> Optional[tuple[Tab, str, Dialect]]:
        """
        Claim the tab's single execution slot.

        Returns the tab, its connection and dialect, or None when the tab is
        gone, has no usable connection, or is already executing.
        """
        tab = self.get_tab(tab_id)
        if tab is None:
            return None
        connection_id = self._resolve_connection(tab)
        if connection_id is None:
            return None
        if tab.execution_state is ExecutionState.EXECUTING:
            logger.debug(f"Tab {tab_id} is already executing, ignoring")
            return None
        tab = self._apply(tab_id, execution_state=ExecutionState.EXECUTING, error_message=None)
        return tab, connection_id, self._registry.dialect_of(connection_id)

    def _record_failure(self, tab_id: str, statement: str, exc: Exception) -> None:
        message = str(exc).strip() or exc.__class__.__name__
        if isinstance(exc, ExecutionError):
            logger.error(f"Query FAILED: {statement_preview(statement)} - {message}")
        else:
            logger.exception(f"Unexpected error executing: {statement_preview(statement)}")
        if self._apply(tab_id, execution_state=ExecutionState.ERROR, error_message=message) is None:
            logger.debug(f"Tab {tab_id} closed before its failure arrived")

    async def run_query(self, tab_id: str) -> None:
        """
        Execute a tab's statement and install the result window.

        Query tabs get the auto-limit rewrite. Browse tabs bound to a table
        reload their first window instead, so pagination stays consistent.
        Failures are recorded on the tab, never raised.
        """
        tab = self.get_tab(tab_id)
        if tab is None:
            return
        if tab.mode is TabMode.BROWSE and tab.table_ref is not None:
            await self.reload_table(tab_id)
            return

        claim = self._begin_execution(tab_id)
        if claim is None:
            return
        tab, connection_id, dialect = claim

        statement = tab.statement_text
        if tab.mode is TabMode.QUERY:
            statement = apply_auto_limit(statement, self.auto_limit, dialect)

        logger.info(f"Executing on {connection_id}: {statement_preview(statement)}")
        try:
            result = await self._executor.execute(connection_id, statement)
            window = window_from_result(result)
        except Exception as e:
            self._record_failure(tab_id, statement, e)
            return

        if self._apply(tab_id, execution_state=ExecutionState.IDLE, result_window=window) is None:
            logger.debug(f"Tab {tab_id} closed before its result arrived")
            return
        logger.info(f"Query returned {window.row_count} row(s) for tab {tab_id}")

    # -------------------------------------------------------------------------
    # Table browsing
    # -------------------------------------------------------------------------

    async def open_table(
        self,
        connection_id: str,
        table_ref: TableRef,
        page_size: Optional[int] = None,
    ) -> Optional[str]:
        """
        Open (or re-activate) a browse tab for a table and load its first window.

        Returns the tab id, or None when the connection cannot be used.
        """
        for tab in self._tabs:
            if (
                tab.mode is TabMode.BROWSE
                and tab.table_ref == table_ref
                and tab.connection_id == connection_id
            ):
                self.set_active_tab(tab.id)
                return tab.id

        if self._registry.status_of(connection_id) is not ConnectionStatus.CONNECTED:
            logger.warning(f"Cannot open {table_ref}: connection {connection_id} is not connected")
            return None

        size = page_size or self.page_size
        dialect = self._registry.dialect_of(connection_id)
        tab_id = self.create_tab(
            title=table_ref.name,
            statement_text=build_window_query(table_ref, dialect, size, 0),
            connection_id=connection_id,
            mode=TabMode.BROWSE,
            table_ref=table_ref,
        )
        await self.reload_table(tab_id, page_size=size)
        return tab_id

    async def add_row_from_table(
        self,
        connection_id: str,
        table_ref: TableRef,
    ) -> Optional[str]:
        """Open (or re-activate) the table's browse tab and start a draft row on it."""
        tab_id = await self.open_table(connection_id, table_ref)
        if tab_id is None:
            return None
        tab = self.get_tab(tab_id)
        if tab is not None and tab.draft_row is None:
            self.begin_draft(tab_id)
        return tab_id

    async def reload_table(self, tab_id: str, page_size: Optional[int] = None) -> None:
        """Replace a browse tab's window with a fresh first page and row count."""
        tab = self.get_tab(tab_id)
        if tab is None or tab.table_ref is None:
            return
        if page_size is None:
            window = tab.result_window
            if window is not None and window.pagination is not None:
                page_size = window.pagination.limit
            else:
                page_size = self.page_size

        claim = self._begin_execution(tab_id)
        if claim is None:
            return
        tab, connection_id, dialect = claim
        table_ref = tab.table_ref

        logger.info(f"Loading {table_ref} on {connection_id} ({page_size} rows per page)")
        try:
            window = await self._windows.open_window(
                connection_id, table_ref, dialect, page_size
            )
        except Exception as e:
            self._record_failure(tab_id, tab.statement_text, e)
            return

        if self._apply(tab_id, execution_state=ExecutionState.IDLE, result_window=window) is None:
            logger.debug(f"Tab {tab_id} closed before its table data arrived")

    async def load_more(self, tab_id: str) -> bool:
        """
        Append the next page to a browse tab's window.

        No-op while a page is already loading, when the last page came back
        short, or while the tab is executing. A failed fetch only clears the
        loading flag. Returns True when rows were appended.
        """
        tab = self.get_tab(tab_id)
        if tab is None or tab.table_ref is None or tab.result_window is None:
            return False
        window = tab.result_window
        pagination = window.pagination
        if pagination is None or pagination.is_loading or not pagination.has_more:
            return False
        if tab.execution_state is ExecutionState.EXECUTING:
            return False
        connection_id = self._resolve_connection(tab)
        if connection_id is None:
            return False

        loading = replace(window, pagination=replace(pagination, is_loading=True))
        self._apply(tab_id, result_window=loading)
        dialect = self._registry.dialect_of(connection_id)

        try:
            extended = await self._windows.next_window(
                connection_id, tab.table_ref, dialect, window
            )
        except Exception as e:
            logger.warning(f"Load more failed for tab {tab_id}: {e}")
            current = self.get_tab(tab_id)
            if current is not None and current.result_window is loading:
                self._apply(tab_id, result_window=window)
            return False

        # A reload may have replaced the window while the page was in flight
        current = self.get_tab(tab_id)
        if current is None or current.result_window is not loading:
            logger.debug(f"Discarding stale page for tab {tab_id}")
            return False
        self._apply(tab_id, result_window=extended)
        logger.debug(
            f"Tab {tab_id} now holds {extended.row_count} row(s), has_more={extended.pagination.has_more}"
        )
        return True

    # -------------------------------------------------------------------------
    # Row editing
    # -------------------------------------------------------------------------

    def _edit_target(self, tab_id: str) -> Optional[tuple[Tab, Dialect]]:
        tab = self.get_tab(tab_id)
        if tab is None or tab.table_ref is None:
            return None
        connection_id = self._resolve_connection(tab)
        if connection_id is None:
            return None
        return tab, self._registry.dialect_of(connection_id)

    async def _execute_mutation(self, tab_id: str, statement: str) -> bool:
        claim = self._begin_execution(tab_id)
        if claim is None:
            return False
        _, connection_id, _ = claim

        logger.info(f"Executing mutation on {connection_id}: {statement_preview(statement)}")
        try:
            await self._executor.execute(connection_id, statement)
        except Exception as e:
            self._record_failure(tab_id, statement, e)
            return False

        if self._apply(tab_id, execution_state=ExecutionState.IDLE) is None:
            return True
        # The backend is authoritative; re-fetch instead of patching rows locally
        await self.run_query(tab_id)
        return True

    async def update_cell(
        self,
        tab_id: str,
        row: Sequence[Any],
        column_index: int,
        new_value: Any,
    ) -> MutationOutcome:
        target = self._edit_target(tab_id)
        if target is None or target[0].result_window is None:
            return MutationOutcome()
        tab, dialect = target
        try:
            statement = build_update(
                tab.table_ref,
                row,
                tab.result_window.columns,
                column_index,
                new_value,
                dialect,
            )
        except SynthesisSkip as e:
            logger.debug(f"Update skipped for tab {tab_id}: {e}")
            return MutationOutcome()
        applied = await self._execute_mutation(tab_id, statement)
        return MutationOutcome(statement=statement, applied=applied)

    async def delete_row(self, tab_id: str, row: Sequence[Any]) -> MutationOutcome:
        target = self._edit_target(tab_id)
        if target is None or target[0].result_window is None:
            return MutationOutcome()
        tab, dialect = target
        try:
            statement = build_delete(tab.table_ref, row, tab.result_window.columns, dialect)
        except SynthesisSkip as e:
            logger.debug(f"Delete skipped for tab {tab_id}: {e}")
            return MutationOutcome()
        applied = await self._execute_mutation(tab_id, statement)
        return MutationOutcome(statement=statement, applied=applied)

    def begin_draft(self, tab_id: str) -> bool:
        tab = self.get_tab(tab_id)
        if tab is None or tab.table_ref is None:
            return False
        return self._apply(tab_id, draft_row={}) is not None

    def set_draft_value(self, tab_id: str, column: str, value: str) -> bool:
        tab = self.get_tab(tab_id)
        if tab is None or tab.draft_row is None:
            return False
        return self._apply(tab_id, draft_row={**tab.draft_row, column: value}) is not None

    def cancel_draft(self, tab_id: str) -> bool:
        tab = self.get_tab(tab_id)
        if tab is None or tab.draft_row is None:
            return False
        return self._apply(tab_id, draft_row=None) is not None

    async def save_draft(self, tab_id: str) -> MutationOutcome:
        """
        Insert the tab's draft row.

        The draft survives while the tab is busy executing; it is discarded
        once the insert is handed to the backend. An empty draft is dropped
        without touching the backend.
        """
        tab = self.get_tab(tab_id)
        if tab is None or tab.draft_row is None:
            return MutationOutcome()
        target = self._edit_target(tab_id)
        if target is None:
            return MutationOutcome()
        _, dialect = target

        draft = tab.draft_row
        try:
            statement = build_insert(tab.table_ref, draft, dialect)
        except SynthesisSkip as e:
            logger.debug(f"Insert skipped for tab {tab_id}: {e}")
            self._apply(tab_id, draft_row=None)
            return MutationOutcome()
        if tab.execution_state is ExecutionState.EXECUTING:
            logger.debug(f"Tab {tab_id} is executing, keeping its draft")
            return MutationOutcome()

        # No await between here and claiming the execution slot
        self._apply(tab_id, draft_row=None)
        applied = await self._execute_mutation(tab_id, statement)
        return MutationOutcome(statement=statement, applied=applied)

    # -------------------------------------------------------------------------
    # Responses
    # -------------------------------------------------------------------------

    def _as_summary(self, tab: Tab) -> TabSummary:
        window = tab.result_window
        return TabSummary(
            id=tab.id,
            title=tab.title,
            mode=tab.mode,
            connection_id=tab.connection_id,
            execution_state=tab.execution_state,
            error_message=tab.error_message,
            table=TableRefModel.from_ref(tab.table_ref) if tab.table_ref else None,
            sort_column=tab.sort_state.column if tab.sort_state else None,
            sort_direction=tab.sort_state.direction if tab.sort_state else None,
            row_count=window.row_count if window else None,
            total_row_count=window.total_row_count if window else None,
            draft_row=dict(tab.draft_row) if tab.draft_row is not None else None,
            is_active=tab.id == self._active_tab_id,
        )

    def describe(self, tab_id: str) -> Optional[TabResponse]:
        """Full tab snapshot with rows in display order."""
        tab = self.get_tab(tab_id)
        if tab is None:
            return None
        summary = self._as_summary(tab)
        result = None
        window = tab.result_window
        if window is not None:
            pagination = None
            if window.pagination is not None:
                pagination = PaginationResponse(
                    limit=window.pagination.limit,
                    offset=window.pagination.offset,
                    has_more=window.pagination.has_more,
                    is_loading=window.pagination.is_loading,
                )
            result = ResultWindowResponse(
                columns=list(window.columns),
                rows=[
                    [serialize_value(value) for value in row]
                    for row in sort_rows(window.rows, window.columns, tab.sort_state)
                ],
                pagination=pagination,
                total_row_count=window.total_row_count,
            )
        return TabResponse(
            **summary.model_dump(),
            statement_text=tab.statement_text,
            result=result,
        )

    def overview(self) -> WorkspaceResponse:
        return WorkspaceResponse(
            active_tab_id=self._active_tab_id,
            active_connection_id=self._active_connection_id,
            tabs=[self._as_summary(tab) for tab in self._tabs],
        )

    def executing_count(self) -> int:
        return sum(
            1 for tab in self._tabs if tab.execution_state is ExecutionState.EXECUTING
        )
