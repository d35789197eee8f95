"""Health check endpoints.

Provides liveness (/health) and readiness (/health/ready) checks. The only
dependency is the workspace store held on app.state.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.app.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check.

    No dependencies are checked -- just that the server is running.
    """
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check: the workspace store is attached and can produce a snapshot.

    Returns 200 when ready, 503 otherwise.
    """
    checks: dict = {"store": "ok"}
    store = getattr(request.app.state, "workspace_store", None)
    if store is None:
        checks["store"] = "missing"
    else:
        try:
            checks["snapshot_version"] = store.snapshot().version
        except Exception as e:
            checks["store"] = "error"
            checks["store_error"] = str(e)

    ready = checks["store"] == "ok"
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
