"""FastAPI dependency injection for the shared workspace store.

The store lives on app.state and is shared by every request. Each request
gets its own short-lived WorkspaceSession over it, closed when the response
is sent.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status

from src.app.workspace.session import WorkspaceSession
from src.app.workspace.store import WorkspaceStore


def get_store(request: Request) -> WorkspaceStore:
    """Retrieve the WorkspaceStore from app.state, 503 if not available."""
    store = getattr(request.app.state, "workspace_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Workspace store not initialized",
        )
    return store


async def get_session(
    store: WorkspaceStore = Depends(get_store),
) -> AsyncGenerator[WorkspaceSession, None]:
    """Open a request-scoped session subscribed to the shared store."""
    session = WorkspaceSession(store)
    try:
        yield session
    finally:
        session.close()
