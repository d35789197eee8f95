"""Mutation guard -- suppresses reconciliation of a session's own in-flight writes.

While a local write is outstanding the store may deliver a transient snapshot
that does not yet reflect the write. The guard raises the session's
write_in_flight flag before the write is issued and clears it when the write
settles, success or failure, so the reconciler can skip that snapshot.

The flag is a plain bool. All access happens on a single event loop thread
with one write outstanding at a time, so no lock is needed.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

import structlog

if TYPE_CHECKING:
    from src.app.workspace.schemas import Account, Contact

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class SessionState:
    """Ephemeral per-session state: the open detail view and the in-flight flag.

    Attributes:
        selected_account: Account shown in the detail view, or None.
        selected_contact: Contact shown within that account, or None.
        write_in_flight: True while a guarded write is outstanding and its
            transient snapshot has not yet been consumed by the reconciler.
    """

    selected_account: Account | None = None
    selected_contact: Contact | None = None
    write_in_flight: bool = False

    @property
    def selected_account_id(self) -> str | None:
        return self.selected_account.id if self.selected_account else None

    @property
    def selected_contact_id(self) -> str | None:
        return self.selected_contact.id if self.selected_contact else None


class MutationGuard:
    """Wraps writes so the reconciler ignores the snapshot they produce.

    Usage:
        async with guard.guarding("update_account"):
            await store.update(CollectionName.ACCOUNTS, account_id, fields)

        contact_id = await guard.run("create_contact", lambda: store.create_child(...))

    Args:
        state: The session state whose write_in_flight flag is managed.
        on_settled: Optional callback invoked after every guarded write
            settles, once the flag is clear.
    """

    def __init__(
        self,
        state: SessionState,
        on_settled: Callable[[], None] | None = None,
    ) -> None:
        self._state = state
        self._on_settled = on_settled
        self.guarded_writes = 0

    @property
    def active(self) -> bool:
        return self._state.write_in_flight

    def consume(self) -> None:
        """Clear the flag after the reconciler skipped one snapshot."""
        self._state.write_in_flight = False

    @asynccontextmanager
    async def guarding(self, operation: str) -> AsyncGenerator[None, None]:
        """Hold the in-flight flag for the duration of the block.

        The flag is cleared in a finally clause, so an exception raised by the
        write cannot leave it stuck. The exception itself propagates unchanged.
        """
        self._state.write_in_flight = True
        self.guarded_writes += 1
        try:
            yield
        except Exception as exc:
            logger.warning(
                "guard.write_failed",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise
        finally:
            self._state.write_in_flight = False
            if self._on_settled is not None:
                self._on_settled()

    async def run(self, operation: str, write: Callable[[], Awaitable[T]]) -> T:
        """Issue one write under the guard and return its result."""
        async with self.guarding(operation):
            return await write()
