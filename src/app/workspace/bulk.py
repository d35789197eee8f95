"""Bulk selection and the actions that run over it.

BulkSelection is a selection-mode flag plus an insertion-ordered id set.
BulkActionExecutor applies one action to the whole set:

- delete: requires a confirmation callback to return True before any write is
  issued. Deletes run one at a time, each under the session's mutation guard,
  with a fixed pause between calls. A failed item is logged and counted as not
  deleted; the remaining items still run. There is no cancellation once
  confirmed.
- export: read-and-format over the selected subset of the current snapshot,
  preserving collection order. No writes.

After either action completes the selection is cleared and selection mode
exits. A declined confirmation leaves the selection untouched.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterable
from datetime import date
from functools import partial
from typing import Union

import structlog

from src.app.core.monitoring import bulk_items_total, track_batch
from src.app.workspace.csv_io import export_filename, render_accounts_csv, render_contacts_csv
from src.app.workspace.guard import MutationGuard
from src.app.workspace.lookup import LookupIndex
from src.app.workspace.schemas import Account, BulkDeleteReport, CollectionName, ExportFile
from src.app.workspace.store.adapter import WorkspaceStore

logger = structlog.get_logger(__name__)

ConfirmCallback = Callable[[int], Union[bool, Awaitable[bool]]]
Sleeper = Callable[[float], Awaitable[None]]

MIXED_EXPORT_DOMAIN = "accounts"


# ── Selection ───────────────────────────────────────────────────────────────


class BulkSelection:
    """Selection mode flag plus the ordered set of selected ids."""

    def __init__(self) -> None:
        self.active = False
        self._ids: dict[str, None] = {}

    @property
    def ids(self) -> list[str]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._ids

    def toggle_mode(self) -> bool:
        """Enter or leave selection mode. Either way the set starts empty."""
        self.active = not self.active
        self._ids.clear()
        return self.active

    def toggle(self, record_id: str) -> bool:
        """Flip one id. Returns True if it is now selected."""
        if record_id in self._ids:
            del self._ids[record_id]
            return False
        self._ids[record_id] = None
        return True

    def select_all(self, record_ids: Iterable[str]) -> None:
        """Select every id of the (already filtered) visible list."""
        for record_id in record_ids:
            self._ids[record_id] = None

    def deselect_all(self) -> None:
        self._ids.clear()

    def finish(self) -> None:
        """Clear the set and leave selection mode after an action completes."""
        self._ids.clear()
        self.active = False


# ── Executor ────────────────────────────────────────────────────────────────


class BulkActionExecutor:
    """Runs delete and export over a BulkSelection.

    Args:
        store: Store receiving the deletes.
        guard: The session's mutation guard; each delete runs under it.
        index_provider: Returns a LookupIndex over the current snapshot.
        pause_seconds: Fixed pause between consecutive deletes.
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        store: WorkspaceStore,
        guard: MutationGuard,
        index_provider: Callable[[], LookupIndex],
        pause_seconds: float = 0.05,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._store = store
        self._guard = guard
        self._index_provider = index_provider
        self._pause_seconds = pause_seconds
        self._sleep = sleep

    async def delete_accounts(
        self, selection: BulkSelection, confirm: ConfirmCallback
    ) -> BulkDeleteReport:
        """Delete every selected account after an explicit confirmation.

        Args:
            selection: Selected account ids, deleted in selection order.
            confirm: Called once with the number of selected items. Must
                return (or resolve to) True for anything to run.

        Returns:
            BulkDeleteReport with attempted and deleted counts. When the
            confirmation is declined, ``confirmed`` is False and both counts
            are zero.
        """
        account_ids = selection.ids
        decision = confirm(len(account_ids))
        if inspect.isawaitable(decision):
            decision = await decision
        if not decision:
            logger.info("bulk.delete_declined", selected=len(account_ids))
            return BulkDeleteReport(confirmed=False)

        report = BulkDeleteReport(attempted=len(account_ids))
        logger.info("bulk.delete_started", selected=len(account_ids))

        async with track_batch("bulk_delete"):
            for position, account_id in enumerate(account_ids):
                if position > 0:
                    await self._sleep(self._pause_seconds)
                try:
                    await self._guard.run(
                        "bulk_delete",
                        partial(self._store.delete, CollectionName.ACCOUNTS, account_id),
                    )
                    report.deleted += 1
                    bulk_items_total.labels(action="delete", outcome="success").inc()
                except Exception as exc:
                    bulk_items_total.labels(action="delete", outcome="failed").inc()
                    logger.error(
                        "bulk.delete_item_failed",
                        account_id=account_id,
                        error=str(exc),
                    )

        selection.finish()
        logger.info(
            "bulk.delete_completed",
            attempted=report.attempted,
            deleted=report.deleted,
        )
        return report

    def export_accounts(self, selection: BulkSelection, today: date | None = None) -> ExportFile:
        """Render the selected accounts as CSV, in collection order."""
        index = self._index_provider()
        accounts = [a for a in index.accounts_by_id.values() if a.id in selection]
        content, row_count = render_accounts_csv(accounts)

        selection.finish()
        bulk_items_total.labels(action="export", outcome="success").inc(row_count)
        logger.info("bulk.accounts_exported", rows=row_count)
        return ExportFile(
            filename=export_filename(export_domain(accounts), today),
            content=content,
            row_count=row_count,
        )

    def export_contacts(self, selection: BulkSelection, today: date | None = None) -> ExportFile:
        """Render the selected contacts with their parent company."""
        index = self._index_provider()
        refs = [ref for ref in index.contacts_by_id.values() if ref.contact.id in selection]
        content, row_count = render_contacts_csv(refs)

        selection.finish()
        bulk_items_total.labels(action="export", outcome="success").inc(row_count)
        logger.info("bulk.contacts_exported", rows=row_count)
        return ExportFile(
            filename=export_filename("contacts", today),
            content=content,
            row_count=row_count,
        )


def export_domain(accounts: list[Account]) -> str:
    """Collection label shared by every account, or ``accounts`` when mixed."""
    kinds = {a.account_type for a in accounts}
    if len(kinds) == 1:
        return kinds.pop().collection_label
    return MIXED_EXPORT_DOMAIN
