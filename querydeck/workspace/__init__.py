"""Tabbed query workspace: sessions, result windows, statement synthesis."""

from .backends import (
    ConnectionStatus,
    ExecutionError,
    HttpQueryExecutor,
    InMemoryConnectionRegistry,
    QueryResult,
)
from .models import ExecutionState, SortDirection, SortState, Tab, TabMode
from .service import WorkspaceManager
from .statements import SynthesisSkip

__all__ = [
    "ConnectionStatus",
    "ExecutionError",
    "HttpQueryExecutor",
    "InMemoryConnectionRegistry",
    "QueryResult",
    "ExecutionState",
    "SortDirection",
    "SortState",
    "Tab",
    "TabMode",
    "WorkspaceManager",
    "SynthesisSkip",
]
