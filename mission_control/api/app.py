"""
FastAPI application for Mission Control

Serves the query/mutation surface used by the notification daemon and
dashboards, read-only board views, and the agent-run webhook.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mission_control.engine import roster
from mission_control.engine.errors import (
    InvalidStateError,
    NotFoundError,
    SkillMismatchError,
    UnauthorizedError,
)
from mission_control.engine.models import MissionConfig
from mission_control.engine.store import Store

from .routes import rpc_router, views_router, webhook_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the mission database unless a store was injected."""
    from .config import config

    if app.state.mission_config is None:
        app.state.mission_config = config.mission_config()

    owned = app.state.store is None
    if owned:
        db_path = config.database_path()
        logger.info("Opening mission database %s", db_path)
        app.state.store = Store.open(db_path)
        roster.initialize_system(app.state.store, app.state.mission_config)
    yield
    if owned:
        app.state.store.close()
        app.state.store = None


def _error_handler(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


def create_app(
    store: Store | None = None,
    mission_config: MissionConfig | None = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        store: Open store to serve; opened from config on startup when None
        mission_config: Roster and work-cycle settings; loaded on startup when None
    """
    app = FastAPI(
        title="Mission Control API",
        description="Task board, agent work cycle and notification queue",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.mission_config = mission_config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Engine errors; the most specific registered class wins
    app.add_exception_handler(NotFoundError, _error_handler(404))
    app.add_exception_handler(InvalidStateError, _error_handler(409))
    app.add_exception_handler(SkillMismatchError, _error_handler(409))
    app.add_exception_handler(UnauthorizedError, _error_handler(403))
    app.add_exception_handler(ValueError, _error_handler(400))

    app.include_router(rpc_router, prefix="/api")
    app.include_router(views_router, prefix="/api/v1")
    app.include_router(webhook_router, prefix="/api/v1")

    @app.get("/api/v1/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


app = create_app()
