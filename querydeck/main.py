"""
QueryDeck - Tabbed Query Workspace API
======================================

Main application entry point.

Usage:
    uvicorn querydeck.main:app --host 0.0.0.0 --port 8300 --reload

    Or run directly:
    python -m querydeck.main
"""

from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from querydeck import __version__
from querydeck.config import settings
from querydeck.core.logging import setup_logging
from querydeck.workspace.backends import HttpQueryExecutor, InMemoryConnectionRegistry
from querydeck.workspace.routes import create_health_router, create_router
from querydeck.workspace.service import WorkspaceManager

# Load environment variables
load_dotenv()

# Set up logging
logger = setup_logging("querydeck")


def create_app(
    manager: Optional[WorkspaceManager] = None,
    registry: Optional[InMemoryConnectionRegistry] = None,
    api_key: Optional[str] = None,
) -> FastAPI:
    registry = registry or InMemoryConnectionRegistry()
    if manager is None:
        manager = WorkspaceManager(HttpQueryExecutor(), registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Async lifespan handler for startup/shutdown."""
        logger.info(f"Starting QueryDeck v{__version__} (workspace {manager.workspace_id})")
        logger.info(
            f"Auto-limit {manager.auto_limit or 'disabled'}, page size {manager.page_size}, "
            f"backend {settings.backend_url}"
        )
        yield
        closed = manager.close_all_tabs()
        logger.info(f"Shutting down QueryDeck ({closed} open tab(s) discarded)")

    application = FastAPI(
        title="QueryDeck",
        description="Tabbed query workspace: run, browse and edit table data",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    origins = settings.allowed_origins.split(",") if settings.allowed_origins != "*" else ["*"]
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(create_health_router(manager))
    application.include_router(create_router(manager, registry, api_key=api_key))
    application.state.manager = manager
    application.state.registry = registry
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "querydeck.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug_mode
    )
