"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, workspace
error handlers, a lifespan that attaches the shared workspace store, and the
v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response

from src.app.config import get_settings
from src.app.core.monitoring import MetricsMiddleware, get_metrics_response
from src.app.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.app.api.v1.router import router as v1_router
from src.app.api.v1.workspace import register_exception_handlers
from src.app.workspace.store import InMemoryWorkspaceStore


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: configure logging and attach the workspace store."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    if getattr(app.state, "workspace_store", None) is None:
        app.state.workspace_store = InMemoryWorkspaceStore()

    log.info(
        "app.started",
        environment=settings.ENVIRONMENT.value,
        store=type(app.state.workspace_store).__name__,
    )

    yield

    log.info("app.shutdown")
    app.state.workspace_store = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Relationship Workspace API",
        version="0.1.0",
        description="Accounts, contacts and tasks with batch import, export and bulk actions",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    register_exception_handlers(app)

    # Include v1 API router (health, workspace)
    app.include_router(v1_router)

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
