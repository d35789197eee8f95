"""Error taxonomy for workspace operations.

- RecordValidationError: a row or payload is missing required data. Batch
  operations record it in their report instead of raising.
- RecordNotFoundError: an entity id does not resolve in the current snapshot.
  The reconciler never raises it; it is surfaced to callers only for explicit
  lookups such as selecting an unknown id.
- WriteFailure: the store rejected a create/update/delete. Guarded single
  edits re-raise it after the in-flight flag clears; batches convert it to a
  report entry and continue.
- BulkActionNotConfirmedError: a bulk delete was requested without an explicit
  confirmation.
"""

from __future__ import annotations


class WorkspaceError(Exception):
    """Base class for all workspace errors."""


class RecordValidationError(WorkspaceError):
    """Raised when a record is missing required fields."""

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        self.fields = fields or []
        super().__init__(message)


class RecordNotFoundError(WorkspaceError):
    """Raised when an id does not resolve against the current snapshot."""

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class WriteFailure(WorkspaceError):
    """Raised when the backing store rejects a write.

    Attributes:
        collection: Collection the write targeted.
        operation: One of create, update, delete, create_child, update_child,
            delete_child.
        reason: Human-readable cause reported by the store.
    """

    def __init__(self, collection: str, operation: str, reason: str) -> None:
        self.collection = collection
        self.operation = operation
        self.reason = reason
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"{self.operation} on {self.collection} failed: {self.reason}"


class BulkActionNotConfirmedError(WorkspaceError):
    """Raised when a destructive bulk action lacks explicit confirmation."""
