"""Request logging and structlog setup for the workspace service.

Each request gets a request_id, returned as X-Request-ID and bound into
structlog's context variables for the lifetime of the request. Workspace
events logged while serving it (import.row_failed, bulk.delete_failed,
selection.account_cleared, ...) therefore carry the same request_id as the
closing request_completed entry.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.app.config import Environment, get_settings

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def configure_structlog() -> None:
    """JSON output in production, console output everywhere else."""
    settings = get_settings()

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.ENVIRONMENT == Environment.production:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _route_template(request: Request) -> str:
    """Matched route path (e.g. /api/v1/workspace/accounts), else the raw path."""
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log one request_completed (or request_error) entry per request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = str(uuid.uuid4())
        start_time = time.monotonic()

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception:
                logger.error(
                    "request_error",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=round((time.monotonic() - start_time) * 1000, 2),
                )
                raise

            response.headers[REQUEST_ID_HEADER] = request_id

            if response.status_code >= 500:
                log = logger.error
            elif response.status_code >= 400:
                log = logger.warning
            else:
                log = logger.info
            log(
                "request_completed",
                method=request.method,
                path=request.url.path,
                route=_route_template(request),
                status_code=response.status_code,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            )

        return response
