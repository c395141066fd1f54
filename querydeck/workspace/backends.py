"""
Collaborator interfaces consumed by the workspace engine.

The engine never talks to a database driver directly. It needs a query
executor (statement text in, columns/rows out) and a connection registry
(status and dialect per connection id). Concrete implementations here:
an in-memory registry and an executor that forwards statements to a query
backend service over HTTP.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError, model_validator

from querydeck.config import settings
from querydeck.core.logging import get_logger
from querydeck.core.sql_utils import Dialect

logger = get_logger(__name__)


class ExecutionError(Exception):
    """The backend rejected or failed a statement."""


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class QueryResult(BaseModel):
    columns: list[str] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_row_widths(self) -> "QueryResult":
        width = len(self.columns)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(
                    f"Row {index} has {len(row)} values for {width} columns"
                )
        return self


class QueryExecutor(Protocol):
    async def execute(self, connection_id: str, statement_text: str) -> QueryResult:
        """Run one statement; raise ExecutionError on failure."""
        ...


class ConnectionRegistry(Protocol):
    def status_of(self, connection_id: str) -> ConnectionStatus | None:
        """Status of a known connection, or None when the id is unknown."""
        ...

    def dialect_of(self, connection_id: str) -> Dialect:
        ...


# =============================================================================
# IN-MEMORY REGISTRY
# =============================================================================


@dataclass
class RegisteredConnection:
    connection_id: str
    dialect: Dialect
    status: ConnectionStatus


class InMemoryConnectionRegistry:
    """Connection registry kept in process, fed by the connection layer."""

    def __init__(self) -> None:
        self._connections: dict[str, RegisteredConnection] = {}

    def register(
        self,
        connection_id: str,
        dialect: Dialect | str,
        status: ConnectionStatus = ConnectionStatus.CONNECTED,
    ) -> RegisteredConnection:
        entry = RegisteredConnection(
            connection_id=connection_id,
            dialect=Dialect.parse(dialect),
            status=ConnectionStatus(status),
        )
        self._connections[connection_id] = entry
        logger.debug(
            f"Registered connection {connection_id} ({entry.dialect.value}, {entry.status.value})"
        )
        return entry

    def set_status(self, connection_id: str, status: ConnectionStatus) -> None:
        entry = self._connections.get(connection_id)
        if entry is None:
            raise KeyError(connection_id)
        entry.status = ConnectionStatus(status)

    def forget(self, connection_id: str) -> bool:
        return self._connections.pop(connection_id, None) is not None

    def connections(self) -> list[RegisteredConnection]:
        return list(self._connections.values())

    def status_of(self, connection_id: str) -> ConnectionStatus | None:
        entry = self._connections.get(connection_id)
        return entry.status if entry else None

    def dialect_of(self, connection_id: str) -> Dialect:
        entry = self._connections.get(connection_id)
        return entry.dialect if entry else Dialect.POSTGRES


# =============================================================================
# HTTP EXECUTOR
# =============================================================================


class HttpQueryExecutor:
    """
    Forward statements to a query backend service.

    POST ``{base_url}/execute`` with ``{"connection_id", "sql"}``; the backend
    answers ``{"columns": [...], "rows": [[...]]}`` or ``{"error": "..."}``.
    Transport failures and 5xx answers are retried with a linear backoff.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout_seconds: float | None = None,
        retry_attempts: int | None = None,
        retry_base_delay_seconds: float | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.timeout_seconds = float(
            timeout_seconds if timeout_seconds is not None else settings.query_timeout
        )
        self.retry_attempts = max(
            1,
            retry_attempts
            if retry_attempts is not None
            else settings.backend_retry_attempts,
        )
        self.retry_base_delay_seconds = (
            retry_base_delay_seconds
            if retry_base_delay_seconds is not None
            else settings.backend_retry_delay
        )
        key = api_key if api_key is not None else settings.backend_api_key
        self._headers = {"Authorization": f"Bearer {key}"} if key else {}
        self._transport = transport

    async def execute(self, connection_id: str, statement_text: str) -> QueryResult:
        url = f"{self.base_url}/execute"
        payload = {"connection_id": connection_id, "sql": statement_text}
        timeout = httpx.Timeout(self.timeout_seconds)

        async with httpx.AsyncClient(
            timeout=timeout, follow_redirects=True, transport=self._transport
        ) as client:
            response: httpx.Response | None = None
            for attempt in range(1, self.retry_attempts + 1):
                try:
                    response = await client.post(
                        url, json=payload, headers=self._headers
                    )
                except httpx.TimeoutException as exc:
                    raise ExecutionError(
                        f"Query timed out after {self.timeout_seconds:g} seconds"
                    ) from exc
                except httpx.HTTPError as exc:
                    if attempt < self.retry_attempts:
                        await asyncio.sleep(self.retry_base_delay_seconds * attempt)
                        continue
                    exc_message = str(exc).strip()
                    detail = f"Query backend unavailable ({exc.__class__.__name__})"
                    if exc_message:
                        detail = f"{detail}: {exc_message}"
                    raise ExecutionError(detail) from exc

                if response.status_code >= 500 and attempt < self.retry_attempts:
                    await asyncio.sleep(self.retry_base_delay_seconds * attempt)
                    continue
                break

        if response is None:
            raise ExecutionError("Query backend unavailable (no response)")

        data = self._decode(response)
        if response.status_code >= 400 or data.get("error"):
            message = data.get("error") or data.get("detail") or response.text[:256]
            raise ExecutionError(str(message) or f"HTTP {response.status_code}")

        try:
            return QueryResult.model_validate(data)
        except ValidationError as exc:
            raise ExecutionError(f"Malformed query result: {exc.errors()[0]['msg']}") from exc

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
