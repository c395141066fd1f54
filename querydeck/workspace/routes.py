"""
Workspace API routes.

One endpoint per user intent. Every endpoint answers with a fresh snapshot
of the affected tab so a client never has to reconcile partial updates.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import StreamingResponse

from querydeck.config import settings
from querydeck.core.logging import get_logger
from querydeck.core.sql_utils import Dialect
from querydeck.workspace.backends import ConnectionStatus, InMemoryConnectionRegistry
from querydeck.workspace.models import (
    CellEditRequest,
    ConnectionRequest,
    CreateTabRequest,
    DraftValueRequest,
    HealthResponse,
    MutationOutcome,
    MutationResponse,
    OpenTableRequest,
    RowRequest,
    SortRequest,
    StatementRequest,
    Tab,
    TabMode,
    TabResponse,
    WorkspaceResponse,
)
from querydeck.workspace.service import WorkspaceManager

logger = get_logger(__name__)

# Seconds between keep-alive comments on the event stream
EVENT_STREAM_HEARTBEAT = 15.0


def create_router(
    manager: WorkspaceManager,
    registry: InMemoryConnectionRegistry,
    api_key: str | None = None,
) -> APIRouter:
    token = (settings.api_key if api_key is None else api_key).strip()

    def _authorize(
        authorization: str | None = Header(default=None, alias="Authorization"),
    ) -> None:
        if not token:
            return
        value = (authorization or "").strip()
        if not value.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Missing API key")
        if value[7:] != token:
            raise HTTPException(status_code=403, detail="Invalid API key")

    router = APIRouter(tags=["Workspace"], dependencies=[Depends(_authorize)])

    def _require_tab(tab_id: str) -> Tab:
        tab = manager.get_tab(tab_id)
        if tab is None:
            raise HTTPException(status_code=404, detail=f"Tab not found: {tab_id}")
        return tab

    def _require_table_tab(tab_id: str) -> Tab:
        tab = _require_tab(tab_id)
        if tab.table_ref is None:
            raise HTTPException(
                status_code=409,
                detail="Rows can only be edited in a tab bound to a table",
            )
        return tab

    def _snapshot(tab_id: str) -> TabResponse:
        response = manager.describe(tab_id)
        if response is None:
            raise HTTPException(status_code=404, detail=f"Tab not found: {tab_id}")
        return response

    def _mutation_response(tab_id: str, outcome: MutationOutcome) -> MutationResponse:
        return MutationResponse(
            statement=outcome.statement,
            applied=outcome.applied,
            tab=manager.describe(tab_id),
        )

    # -------------------------------------------------------------------------
    # Tabs
    # -------------------------------------------------------------------------

    @router.get("/tabs", response_model=WorkspaceResponse)
    async def list_tabs() -> WorkspaceResponse:
        return manager.overview()

    @router.post("/tabs", response_model=TabResponse)
    async def create_tab(request: CreateTabRequest) -> TabResponse:
        table_ref = request.table.to_ref() if request.table else None
        if request.mode is TabMode.BROWSE and table_ref is None:
            raise HTTPException(status_code=400, detail="Browse tabs need a table")
        tab_id = manager.create_tab(
            title=request.title,
            statement_text=request.statement_text,
            connection_id=request.connection_id,
            mode=request.mode,
            table_ref=table_ref,
        )
        if request.auto_run or request.mode is TabMode.BROWSE:
            await manager.run_query(tab_id)
        return _snapshot(tab_id)

    @router.delete("/tabs")
    async def close_all_tabs() -> dict[str, Any]:
        return {"closed": manager.close_all_tabs()}

    @router.get("/tabs/{tab_id}", response_model=TabResponse)
    async def get_tab(tab_id: str) -> TabResponse:
        return _snapshot(tab_id)

    @router.delete("/tabs/{tab_id}")
    async def close_tab(tab_id: str) -> dict[str, Any]:
        if not manager.close_tab(tab_id):
            raise HTTPException(status_code=404, detail=f"Tab not found: {tab_id}")
        return {"closed": 1, "active_tab_id": manager.active_tab_id}

    @router.post("/tabs/{tab_id}/close-right")
    async def close_tabs_right(tab_id: str) -> dict[str, Any]:
        _require_tab(tab_id)
        closed = manager.close_tabs_right_of(tab_id)
        return {"closed": closed, "active_tab_id": manager.active_tab_id}

    @router.post("/tabs/{tab_id}/activate", response_model=TabResponse)
    async def activate_tab(tab_id: str) -> TabResponse:
        _require_tab(tab_id)
        manager.set_active_tab(tab_id)
        return _snapshot(tab_id)

    @router.put("/tabs/{tab_id}/statement", response_model=TabResponse)
    async def update_statement(tab_id: str, request: StatementRequest) -> TabResponse:
        _require_tab(tab_id)
        manager.update_statement(tab_id, request.statement_text)
        return _snapshot(tab_id)

    @router.post("/tabs/{tab_id}/run", response_model=TabResponse)
    async def run_tab(tab_id: str) -> TabResponse:
        _require_tab(tab_id)
        await manager.run_query(tab_id)
        return _snapshot(tab_id)

    @router.post("/tabs/{tab_id}/sort", response_model=TabResponse)
    async def sort_tab(tab_id: str, request: SortRequest) -> TabResponse:
        _require_tab(tab_id)
        manager.set_sort(tab_id, request.column)
        return _snapshot(tab_id)

    @router.post("/tabs/{tab_id}/load-more", response_model=TabResponse)
    async def load_more(tab_id: str) -> TabResponse:
        _require_tab(tab_id)
        await manager.load_more(tab_id)
        return _snapshot(tab_id)

    # -------------------------------------------------------------------------
    # Row editing
    # -------------------------------------------------------------------------

    @router.post("/tabs/{tab_id}/cells", response_model=MutationResponse)
    async def update_cell(tab_id: str, request: CellEditRequest) -> MutationResponse:
        _require_table_tab(tab_id)
        try:
            outcome = await manager.update_cell(
                tab_id, request.row, request.column_index, request.value
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _mutation_response(tab_id, outcome)

    @router.post("/tabs/{tab_id}/rows/delete", response_model=MutationResponse)
    async def delete_row(tab_id: str, request: RowRequest) -> MutationResponse:
        _require_table_tab(tab_id)
        try:
            outcome = await manager.delete_row(tab_id, request.row)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _mutation_response(tab_id, outcome)

    @router.post("/tabs/{tab_id}/draft", response_model=TabResponse)
    async def begin_draft(tab_id: str) -> TabResponse:
        _require_table_tab(tab_id)
        manager.begin_draft(tab_id)
        return _snapshot(tab_id)

    @router.put("/tabs/{tab_id}/draft", response_model=TabResponse)
    async def set_draft_value(tab_id: str, request: DraftValueRequest) -> TabResponse:
        _require_table_tab(tab_id)
        if not manager.set_draft_value(tab_id, request.column, request.value):
            raise HTTPException(status_code=409, detail="No draft row in progress")
        return _snapshot(tab_id)

    @router.delete("/tabs/{tab_id}/draft", response_model=TabResponse)
    async def cancel_draft(tab_id: str) -> TabResponse:
        _require_tab(tab_id)
        manager.cancel_draft(tab_id)
        return _snapshot(tab_id)

    @router.post("/tabs/{tab_id}/draft/save", response_model=MutationResponse)
    async def save_draft(tab_id: str) -> MutationResponse:
        _require_table_tab(tab_id)
        outcome = await manager.save_draft(tab_id)
        return _mutation_response(tab_id, outcome)

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    @router.post("/tables/open", response_model=TabResponse)
    async def open_table(request: OpenTableRequest) -> TabResponse:
        tab_id = await manager.open_table(
            request.connection_id, request.table.to_ref(), request.page_size
        )
        if tab_id is None:
            raise HTTPException(
                status_code=409,
                detail=f"Connection is not available: {request.connection_id}",
            )
        return _snapshot(tab_id)

    @router.post("/tables/query", response_model=TabResponse)
    async def new_query_from_table(request: OpenTableRequest) -> TabResponse:
        tab_id = manager.new_query_from_table(
            request.connection_id, request.table.to_ref()
        )
        return _snapshot(tab_id)

    @router.post("/tables/add-row", response_model=TabResponse)
    async def add_row_from_table(request: OpenTableRequest) -> TabResponse:
        tab_id = await manager.add_row_from_table(
            request.connection_id, request.table.to_ref()
        )
        if tab_id is None:
            raise HTTPException(
                status_code=409,
                detail=f"Connection is not available: {request.connection_id}",
            )
        return _snapshot(tab_id)

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    @router.put("/connections/{connection_id}")
    async def register_connection(
        connection_id: str, request: ConnectionRequest
    ) -> dict[str, Any]:
        try:
            status = ConnectionStatus(request.status.lower())
        except ValueError:
            raise HTTPException(
                status_code=400, detail=f"Unknown connection status: {request.status}"
            )
        entry = registry.register(connection_id, Dialect.parse(request.dialect), status)
        logger.info(
            f"Connection {connection_id} registered ({entry.dialect.value}, {entry.status.value})"
        )
        return {
            "connection_id": entry.connection_id,
            "dialect": entry.dialect.value,
            "status": entry.status.value,
        }

    @router.delete("/connections/{connection_id}")
    async def forget_connection(connection_id: str) -> dict[str, Any]:
        if not registry.forget(connection_id):
            raise HTTPException(
                status_code=404, detail=f"Connection not found: {connection_id}"
            )
        if manager.active_connection_id == connection_id:
            manager.set_active_connection(None)
        return {"success": True}

    @router.post("/connections/{connection_id}/activate", response_model=WorkspaceResponse)
    async def activate_connection(connection_id: str) -> WorkspaceResponse:
        if registry.status_of(connection_id) is None:
            raise HTTPException(
                status_code=404, detail=f"Connection not found: {connection_id}"
            )
        manager.set_active_connection(connection_id)
        return manager.overview()

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    @router.get("/events")
    async def stream_events() -> StreamingResponse:
        channel = manager.workspace_id
        queue = manager.event_bus.subscribe(channel)
        logger.debug(f"Event stream opened for workspace {channel}")

        async def event_generator():
            try:
                while True:
                    try:
                        data = await asyncio.wait_for(
                            queue.get(), timeout=EVENT_STREAM_HEARTBEAT
                        )
                    except asyncio.TimeoutError:
                        yield ": keep-alive\n\n"
                        continue
                    yield f"event: {data['event']}\ndata: {json.dumps(data)}\n\n"
            finally:
                manager.event_bus.unsubscribe(channel, queue)
                logger.debug(f"Event stream closed for workspace {channel}")

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return router


def create_health_router(manager: WorkspaceManager) -> APIRouter:
    router = APIRouter(tags=["Health"])

    @router.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            tabs=len(manager.tabs),
            executing=manager.executing_count(),
            subscribers=manager.event_bus.subscriber_count(manager.workspace_id),
        )

    return router
