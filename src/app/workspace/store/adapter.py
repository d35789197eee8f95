"""Workspace store abstract base class -- the narrow write interface the workspace consumes.

Every persistence backend implements this ABC. Writes are addressed by named
collection: top-level collections (accounts, tasks) use create/update/delete,
child collections (contacts under an account, meetings under a contact) use
the *_child variants scoped by parent id.

Backends deliver a fresh WorkspaceSnapshot to every subscriber after each
change. Snapshot versions increase monotonically so consumers can drop a
delivery that is older than one they already rendered.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from src.app.workspace.schemas import CollectionName, WorkspaceSnapshot

SnapshotListener = Callable[[WorkspaceSnapshot], None]


class WorkspaceStore(ABC):
    """Abstract interface for workspace persistence.

    All write methods raise WriteFailure when the backend rejects the call.

    Methods:
        create: Create a top-level record, return its id.
        update: Partial-merge update of a top-level record.
        delete: Delete a top-level record, cascading to its dependents.
        create_child: Create a child record under a parent, return its id.
        update_child: Partial-merge update of a child record.
        delete_child: Delete a child record, cascading to its dependents.
        snapshot: Return the current authoritative snapshot.
        subscribe: Register a snapshot listener, return an unsubscribe callable.
    """

    @abstractmethod
    async def create(self, collection: CollectionName, fields: dict[str, Any]) -> str:
        """Create a top-level record, return its id."""
        ...

    @abstractmethod
    async def update(
        self, collection: CollectionName, record_id: str, fields: dict[str, Any]
    ) -> None:
        """Merge the given fields into an existing top-level record."""
        ...

    @abstractmethod
    async def delete(self, collection: CollectionName, record_id: str) -> None:
        """Delete a top-level record and its dependents."""
        ...

    @abstractmethod
    async def create_child(
        self, collection: CollectionName, parent_id: str, fields: dict[str, Any]
    ) -> str:
        """Create a child record under parent_id, return its id."""
        ...

    @abstractmethod
    async def update_child(
        self,
        collection: CollectionName,
        parent_id: str,
        child_id: str,
        fields: dict[str, Any],
    ) -> None:
        """Merge the given fields into a child record."""
        ...

    @abstractmethod
    async def delete_child(
        self, collection: CollectionName, parent_id: str, child_id: str
    ) -> None:
        """Delete a child record and its dependents."""
        ...

    @abstractmethod
    def snapshot(self) -> WorkspaceSnapshot:
        """Return the current authoritative snapshot."""
        ...

    @abstractmethod
    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot listener. Returns a callable that unsubscribes it."""
        ...
