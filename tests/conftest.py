import asyncio
import re
from typing import Any, Callable, Optional, Union

import pytest

from querydeck.core.sql_utils import Dialect
from querydeck.workspace.backends import (
    ConnectionStatus,
    InMemoryConnectionRegistry,
    QueryResult,
)
from querydeck.workspace.service import WorkspaceManager

Outcome = Union[QueryResult, Exception, Callable[[str], QueryResult]]

_WINDOW_RE = re.compile(
    r"LIMIT (?P<limit>\d+) OFFSET (?P<offset>\d+)"
    r"|OFFSET (?P<ms_offset>\d+) ROWS FETCH NEXT (?P<ms_limit>\d+) ROWS ONLY"
)


class FakeTable:
    """Serves COUNT and windowed SELECT statements from an in-memory row list."""

    def __init__(self, columns: list[str], rows: list[list[Any]]):
        self.columns = columns
        self.rows = rows

    def __call__(self, statement: str) -> QueryResult:
        if "COUNT(*)" in statement.upper():
            return QueryResult(columns=["count"], rows=[[len(self.rows)]])
        match = _WINDOW_RE.search(statement)
        if match is None:
            return QueryResult(columns=self.columns, rows=self.rows)
        limit = int(match.group("limit") or match.group("ms_limit"))
        offset = int(match.group("offset") or match.group("ms_offset"))
        return QueryResult(columns=self.columns, rows=self.rows[offset : offset + limit])


class FakeExecutor:
    """
    Records every statement and answers from scripted outcomes.

    Outcomes are matched by case-insensitive substring, most recently added
    first. Set ``gate`` to hold every call until the event is set.
    """

    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self._outcomes: list[tuple[str, Outcome]] = []
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()

    def on(self, fragment: str, outcome: Outcome) -> "FakeExecutor":
        self._outcomes.append((fragment.upper(), outcome))
        return self

    @property
    def statements(self) -> list[str]:
        return [statement for _, statement in self.calls]

    async def execute(self, connection_id: str, statement_text: str) -> QueryResult:
        self.calls.append((connection_id, statement_text))
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        upper = statement_text.upper()
        for fragment, outcome in reversed(self._outcomes):
            if fragment in upper:
                if isinstance(outcome, Exception):
                    raise outcome
                if callable(outcome):
                    return outcome(statement_text)
                return outcome
        return QueryResult()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def registry() -> InMemoryConnectionRegistry:
    registry = InMemoryConnectionRegistry()
    registry.register("pg", Dialect.POSTGRES)
    registry.register("ms", Dialect.MSSQL)
    registry.register("down", Dialect.POSTGRES, ConnectionStatus.DISCONNECTED)
    return registry


@pytest.fixture
def manager(executor, registry) -> WorkspaceManager:
    return WorkspaceManager(executor, registry, auto_limit=100, page_size=50)


@pytest.fixture
def people_table() -> FakeTable:
    return FakeTable(
        ["id", "name"],
        [[i, f"person {i}"] for i in range(1, 121)],
    )


@pytest.fixture
def make_table() -> Callable[[list[str], list[list[Any]]], FakeTable]:
    return FakeTable
