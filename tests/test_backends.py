import json

import httpx
import pytest

from querydeck.core.sql_utils import Dialect
from querydeck.workspace.backends import (
    ConnectionStatus,
    ExecutionError,
    HttpQueryExecutor,
    InMemoryConnectionRegistry,
    QueryResult,
)


def _executor(handler, **kwargs) -> HttpQueryExecutor:
    kwargs.setdefault("retry_base_delay_seconds", 0)
    return HttpQueryExecutor(
        "http://backend.test/",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


async def test_execute_posts_statement_and_parses_result():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"columns": ["id"], "rows": [[1], [2]]})

    result = await _executor(handler, api_key="secret").execute("pg", "SELECT 1")

    assert result == QueryResult(columns=["id"], rows=[[1], [2]])
    assert str(seen[0].url) == "http://backend.test/execute"
    assert json.loads(seen[0].content) == {"connection_id": "pg", "sql": "SELECT 1"}
    assert seen[0].headers["Authorization"] == "Bearer secret"


async def test_backend_error_message_is_surfaced():
    def handler(request):
        return httpx.Response(400, json={"error": 'syntax error at or near "SELEC"'})

    with pytest.raises(ExecutionError, match="syntax error"):
        await _executor(handler).execute("pg", "SELEC 1")


async def test_error_field_on_success_status():
    def handler(request):
        return httpx.Response(200, json={"error": "permission denied"})

    with pytest.raises(ExecutionError, match="permission denied"):
        await _executor(handler).execute("pg", "SELECT 1")


async def test_null_error_field_is_not_an_error():
    def handler(request):
        return httpx.Response(200, json={"columns": [], "rows": [], "error": None})

    assert await _executor(handler).execute("pg", "DELETE FROM t") == QueryResult()


async def test_server_errors_are_retried():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) == 1:
            return httpx.Response(503, text="starting")
        return httpx.Response(200, json={"columns": ["n"], "rows": [[1]]})

    result = await _executor(handler, retry_attempts=2).execute("pg", "SELECT 1")
    assert result.rows == [[1]]
    assert len(attempts) == 2


async def test_transport_failure_after_retries():
    attempts = []

    def handler(request):
        attempts.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ExecutionError, match="Query backend unavailable"):
        await _executor(handler, retry_attempts=3).execute("pg", "SELECT 1")
    assert len(attempts) == 3


async def test_timeout_is_not_retried():
    attempts = []

    def handler(request):
        attempts.append(request)
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ExecutionError, match="timed out after 5 seconds"):
        await _executor(handler, timeout_seconds=5, retry_attempts=3).execute("pg", "SELECT 1")
    assert len(attempts) == 1


async def test_ragged_rows_are_rejected():
    def handler(request):
        return httpx.Response(200, json={"columns": ["a", "b"], "rows": [[1]]})

    with pytest.raises(ExecutionError, match="Malformed query result"):
        await _executor(handler).execute("pg", "SELECT 1")


class TestRegistry:
    def test_register_and_lookup(self):
        registry = InMemoryConnectionRegistry()
        registry.register("a", "sqlserver")
        assert registry.status_of("a") is ConnectionStatus.CONNECTED
        assert registry.dialect_of("a") is Dialect.MSSQL

    def test_unknown_connection(self):
        registry = InMemoryConnectionRegistry()
        assert registry.status_of("missing") is None
        assert registry.dialect_of("missing") is Dialect.POSTGRES

    def test_set_status_and_forget(self):
        registry = InMemoryConnectionRegistry()
        registry.register("a", Dialect.MYSQL)
        registry.set_status("a", ConnectionStatus.ERROR)
        assert registry.status_of("a") is ConnectionStatus.ERROR
        assert registry.forget("a")
        assert not registry.forget("a")
        with pytest.raises(KeyError):
            registry.set_status("a", ConnectionStatus.CONNECTED)
