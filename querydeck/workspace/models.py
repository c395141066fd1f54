from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from querydeck.core.sql_utils import TableRef


class TabMode(str, Enum):
    QUERY = "query"
    BROWSE = "browse"


class ExecutionState(str, Enum):
    IDLE = "idle"
    EXECUTING = "executing"
    ERROR = "error"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortState:
    column: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class Pagination:
    limit: int
    offset: int = 0
    has_more: bool = True
    is_loading: bool = False


@dataclass(frozen=True)
class ResultWindow:
    columns: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...]
    pagination: Optional[Pagination] = None
    total_row_count: Optional[int] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class Tab:
    id: str
    title: str
    statement_text: str
    connection_id: Optional[str]
    mode: TabMode
    execution_state: ExecutionState = ExecutionState.IDLE
    result_window: Optional[ResultWindow] = None
    error_message: Optional[str] = None
    sort_state: Optional[SortState] = None
    table_ref: Optional[TableRef] = None
    # column -> pending text, only while authoring an insert
    draft_row: Optional[dict[str, str]] = field(default=None)


@dataclass(frozen=True)
class MutationOutcome:
    statement: Optional[str] = None
    applied: bool = False


# =============================================================================
# API MODELS
# =============================================================================


class TableRefModel(BaseModel):
    name: str = Field(description="Table name")
    schema_name: str | None = Field(
        default=None,
        alias="schema",
        description="Schema qualifier; '*' or empty means all schemas",
    )

    model_config = {"populate_by_name": True}

    def to_ref(self) -> TableRef:
        return TableRef(name=self.name, schema=self.schema_name)

    @classmethod
    def from_ref(cls, ref: TableRef) -> "TableRefModel":
        return cls(name=ref.name, schema=ref.schema)


class CreateTabRequest(BaseModel):
    title: str = Field(default="New Query", description="Tab title")
    statement_text: str = Field(default="", description="Initial statement text")
    connection_id: str | None = Field(
        default=None,
        description="Connection to run against; defaults to the active connection",
    )
    mode: TabMode = Field(default=TabMode.QUERY, description="Query or browse tab")
    table: TableRefModel | None = Field(
        default=None, description="Table reference for browse tabs"
    )
    auto_run: bool = Field(
        default=False, description="Execute immediately after opening"
    )


class OpenTableRequest(BaseModel):
    connection_id: str = Field(description="Connection owning the table")
    table: TableRefModel = Field(description="Table to browse")
    page_size: int | None = Field(
        default=None, gt=0, description="Rows per window (defaults to PAGE_SIZE)"
    )


class StatementRequest(BaseModel):
    statement_text: str = Field(description="Replacement statement text")


class SortRequest(BaseModel):
    column: str = Field(description="Column header that was activated")


class CellEditRequest(BaseModel):
    row: list[Any] = Field(description="Displayed row values, in column order")
    column_index: int = Field(ge=0, description="Index of the edited column")
    value: Any = Field(description="Raw text entered by the user")


class RowRequest(BaseModel):
    row: list[Any] = Field(description="Displayed row values, in column order")


class DraftValueRequest(BaseModel):
    column: str = Field(description="Column being populated")
    value: str = Field(description="Pending value text")


class ConnectionRequest(BaseModel):
    dialect: str = Field(description="Dialect name, e.g. postgres or mssql")
    status: str = Field(default="connected", description="Connection status")


class PaginationResponse(BaseModel):
    limit: int
    offset: int
    has_more: bool
    is_loading: bool


class ResultWindowResponse(BaseModel):
    columns: list[str]
    rows: list[list[Any]] = Field(description="Rows in display (sorted) order")
    pagination: PaginationResponse | None = None
    total_row_count: int | None = None


class TabSummary(BaseModel):
    id: str
    title: str
    mode: TabMode
    connection_id: str | None
    execution_state: ExecutionState
    error_message: str | None = None
    table: TableRefModel | None = None
    sort_column: str | None = None
    sort_direction: SortDirection | None = None
    row_count: int | None = Field(default=None, description="Rows currently loaded")
    total_row_count: int | None = Field(default=None, description="Rows in the table")
    draft_row: dict[str, str] | None = None
    is_active: bool = False


class TabResponse(TabSummary):
    statement_text: str
    result: ResultWindowResponse | None = None


class WorkspaceResponse(BaseModel):
    active_tab_id: str | None
    active_connection_id: str | None
    tabs: list[TabSummary]


class MutationResponse(BaseModel):
    statement: str | None = Field(
        default=None, description="Synthesized statement, None when skipped"
    )
    applied: bool = Field(description="Whether the backend accepted the statement")
    tab: TabResponse | None = None


class HealthResponse(BaseModel):
    status: str
    tabs: int
    executing: int
    subscribers: int = Field(default=0, description="Open event streams")
