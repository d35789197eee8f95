"""Prometheus metrics for HTTP traffic and workspace batch operations.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- Workspace counters: import rows, bulk items, automatic selection clears
- track_batch(): Context manager timing one import or bulk run
- get_metrics_response(): Response for the /metrics route
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Workspace Metrics ────────────────────────────────────────────────────────

import_rows_total = Counter(
    "workspace_import_rows_total",
    "Import rows processed",
    ["outcome"],
)

bulk_items_total = Counter(
    "workspace_bulk_items_total",
    "Items processed by bulk actions",
    ["action", "outcome"],
)

selection_clears_total = Counter(
    "workspace_selection_clears_total",
    "Selections cleared because the entity vanished or moved",
    ["scope"],
)

batch_duration_seconds = Histogram(
    "workspace_batch_duration_seconds",
    "Duration of import and bulk runs in seconds",
    ["kind"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0),
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        endpoint = request.url.path

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Batch Timing Helper ──────────────────────────────────────────────────────


@asynccontextmanager
async def track_batch(kind: str) -> AsyncGenerator[None, None]:
    """Time one batch run (import, bulk_delete, bulk_export).

    Usage:
        async with track_batch("import"):
            report = await pipeline.run(text)
    """
    start_time = time.perf_counter()
    try:
        yield
    finally:
        batch_duration_seconds.labels(kind=kind).observe(time.perf_counter() - start_time)


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
