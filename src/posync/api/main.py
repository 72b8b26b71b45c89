"""FastAPI application factory."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from posync.api.routes import sync as sync_routes
from posync.sync.orchestrator import SyncOrchestrator


def create_app(orchestrator: Optional[SyncOrchestrator] = None) -> FastAPI:
    """Build and return the FastAPI app.

    Args:
        orchestrator: Injected orchestrator. When omitted, one is built from
            settings on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.orchestrator is None:
            from posync.bootstrap import build_orchestrator
            app.state.orchestrator = build_orchestrator()
        yield

    app = FastAPI(
        title="POS Sync API",
        description="Local/remote store synchronization for POS terminals",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])

    return app


# Module-level app instance for uvicorn
app = create_app()
