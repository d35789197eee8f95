"""Workspace persistence layer -- the write interface and its backends.

Provides the abstract WorkspaceStore interface with one concrete implementation:
- InMemoryWorkspaceStore: process-local backend delivering snapshots to
  subscribers after every write

Any durable backend implements the same ABC; the workspace never reaches past it.
"""

from src.app.workspace.store.adapter import SnapshotListener, WorkspaceStore
from src.app.workspace.store.memory import InMemoryWorkspaceStore

__all__ = [
    "InMemoryWorkspaceStore",
    "SnapshotListener",
    "WorkspaceStore",
]
