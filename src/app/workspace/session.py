"""Workspace session -- one user's view over a shared WorkspaceStore.

The session wires the per-user pieces together:

    store.subscribe() -> LookupIndex.build() -> SelectionReconciler.reconcile()

and exposes the write operations a detail view issues. Every write except
top-level account creation goes through the MutationGuard. When a guarded write
settles after the reconciler skipped its snapshot, the session re-reconciles
against store.snapshot() so the selection converges on the latest state.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import structlog

from src.app.config import Settings, get_settings
from src.app.workspace.bulk import BulkActionExecutor, BulkSelection
from src.app.workspace.duplicates import DuplicateDetector
from src.app.workspace.errors import RecordNotFoundError
from src.app.workspace.guard import MutationGuard, SessionState
from src.app.workspace.importer import BatchImportPipeline, ProgressCallback
from src.app.workspace.lookup import ContactRef, LookupIndex
from src.app.workspace.notices import NoticeBoard
from src.app.workspace.schemas import (
    Account,
    AccountCreate,
    AccountType,
    Assignment,
    CollectionName,
    Contact,
    ContactCreate,
    ContactDuplicateGroup,
    DuplicateGroup,
    MeetingCreate,
    Note,
    Task,
    TaskCreate,
    WorkspaceSnapshot,
)
from src.app.workspace.selection import ReconcileOutcome, SelectionReconciler
from src.app.workspace.store.adapter import WorkspaceStore

logger = structlog.get_logger(__name__)


class WorkspaceSession:
    """Per-user session state plus guarded access to the shared store.

    Args:
        store: Backing store shared by every session.
        settings: Application settings. Defaults to get_settings().
        clock: Monotonic clock for notice expiry, injectable for tests.
    """

    def __init__(
        self,
        store: WorkspaceStore,
        settings: Settings | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self.state = SessionState()
        self.notices = NoticeBoard(self._settings.NOTICE_TTL_SECONDS, clock or time.monotonic)
        self.guard = MutationGuard(self.state, on_settled=self._settle)
        self.reconciler = SelectionReconciler(self.state, self.guard, self.notices)
        self.selection = BulkSelection()
        self.last_outcome = ReconcileOutcome.IDLE

        snapshot = store.snapshot()
        self._snapshot = snapshot
        self._index = LookupIndex.build(snapshot.accounts, snapshot.version)
        self._unsubscribe = store.subscribe(self._on_snapshot)

    # ── Snapshot handling ───────────────────────────────────────────────────

    @property
    def snapshot(self) -> WorkspaceSnapshot:
        return self._snapshot

    @property
    def index(self) -> LookupIndex:
        return self._index

    def close(self) -> None:
        """Stop receiving snapshots."""
        self._unsubscribe()

    def _on_snapshot(self, snapshot: WorkspaceSnapshot) -> None:
        if snapshot.version >= self._snapshot.version:
            self._snapshot = snapshot
            self._index = LookupIndex.build(snapshot.accounts, snapshot.version)
        self.last_outcome = self.reconciler.reconcile(snapshot, self._index)

    def _settle(self) -> None:
        if not self.reconciler.skipped_since_settle:
            return
        self.reconciler.skipped_since_settle = False
        logger.debug("session.resync_after_write", version=self._snapshot.version)
        self._on_snapshot(self._store.snapshot())

    # ── Reads and selection ─────────────────────────────────────────────────

    def accounts(self, account_type: AccountType | None = None) -> list[Account]:
        """Accounts in collection order, optionally limited to one variant."""
        accounts = self._index.accounts_by_id.values()
        if account_type is None:
            return list(accounts)
        return [a for a in accounts if a.account_type == account_type]

    def require_account(self, account_id: str) -> Account:
        account = self._index.get_account(account_id)
        if account is None:
            raise RecordNotFoundError("account", account_id)
        return account

    def require_contact(self, contact_id: str) -> ContactRef:
        ref = self._index.get_contact(contact_id)
        if ref is None:
            raise RecordNotFoundError("contact", contact_id)
        return ref

    def stored_account(self, account_id: str) -> Account:
        """Read an account straight from the store, ahead of snapshot delivery."""
        account = next((a for a in self._store.snapshot().accounts if a.id == account_id), None)
        if account is None:
            raise RecordNotFoundError("account", account_id)
        return account

    def require_task(self, task_id: str) -> Task:
        task = next((t for t in self._snapshot.tasks if t.id == task_id), None)
        if task is None:
            raise RecordNotFoundError("task", task_id)
        return task

    def linked_tasks(self, account_id: str) -> list[Task]:
        """Tasks linked to an account whose links still resolve."""
        return [
            t
            for t in self._snapshot.tasks
            if t.account_id == account_id and self._index.task_links_valid(t)
        ]

    def select_account(self, account_id: str) -> Account:
        account = self.require_account(account_id)
        self.state.selected_account = account
        self.state.selected_contact = None
        return account

    def select_contact(self, contact_id: str) -> Contact:
        """Open a contact; its parent account becomes the selected account."""
        ref = self.require_contact(contact_id)
        self.state.selected_account = ref.parent
        self.state.selected_contact = ref.contact
        return ref.contact

    def close_contact(self) -> None:
        self.state.selected_contact = None

    def clear_selection(self) -> None:
        self.state.selected_account = None
        self.state.selected_contact = None

    # ── Account writes ──────────────────────────────────────────────────────

    async def create_account(self, payload: AccountCreate) -> str:
        """Create a top-level account. Not guarded: the new account is not selected."""
        account_id = await self._store.create(CollectionName.ACCOUNTS, payload.model_dump())
        logger.info("session.account_created", account_id=account_id, company=payload.company)
        return account_id

    async def update_account(self, account_id: str, fields: dict[str, Any]) -> None:
        await self.guard.run(
            "update_account",
            lambda: self._store.update(CollectionName.ACCOUNTS, account_id, fields),
        )

    async def delete_account(self, account_id: str) -> None:
        await self.guard.run(
            "delete_account",
            lambda: self._store.delete(CollectionName.ACCOUNTS, account_id),
        )

    async def add_account_note(
        self,
        account_id: str,
        text: str,
        user_id: str | None = None,
        user_name: str | None = None,
    ) -> None:
        account = self.require_account(account_id)
        note = Note(text=text, user_id=user_id, user_name=user_name)
        notes = [n.model_dump() for n in [*account.notes, note]]
        await self.update_account(account_id, {"notes": notes})

    async def assign_account(
        self, account_id: str, assignee_id: str | None, assignee_name: str | None = None
    ) -> None:
        assignment = Assignment(assignee_id=assignee_id, assignee_name=assignee_name)
        await self.update_account(account_id, {"assignment": assignment.model_dump()})

    # ── Contact writes ──────────────────────────────────────────────────────

    async def create_contact(self, account_id: str, payload: ContactCreate) -> str:
        return await self.guard.run(
            "create_contact",
            lambda: self._store.create_child(
                CollectionName.CONTACTS, account_id, payload.model_dump()
            ),
        )

    async def update_contact(self, contact_id: str, fields: dict[str, Any]) -> None:
        ref = self.require_contact(contact_id)
        await self.guard.run(
            "update_contact",
            lambda: self._store.update_child(
                CollectionName.CONTACTS, ref.parent.id, contact_id, fields
            ),
        )

    async def move_contact(self, contact_id: str, target_account_id: str) -> None:
        """Re-parent a contact. Task links to it from the old account are cleared."""
        self.require_account(target_account_id)
        await self.update_contact(contact_id, {"account_id": target_account_id})

    async def delete_contact(self, contact_id: str) -> None:
        ref = self.require_contact(contact_id)
        await self.guard.run(
            "delete_contact",
            lambda: self._store.delete_child(CollectionName.CONTACTS, ref.parent.id, contact_id),
        )

    async def add_contact_note(
        self,
        contact_id: str,
        text: str,
        user_id: str | None = None,
        user_name: str | None = None,
    ) -> None:
        contact = self.require_contact(contact_id).contact
        note = Note(text=text, user_id=user_id, user_name=user_name)
        notes = [n.model_dump() for n in [*contact.notes, note]]
        await self.update_contact(contact_id, {"notes": notes})

    async def assign_contact(
        self, contact_id: str, assignee_id: str | None, assignee_name: str | None = None
    ) -> None:
        assignment = Assignment(assignee_id=assignee_id, assignee_name=assignee_name)
        await self.update_contact(contact_id, {"assignment": assignment.model_dump()})

    async def log_meeting(self, contact_id: str, payload: MeetingCreate) -> str:
        self.require_contact(contact_id)
        return await self.guard.run(
            "log_meeting",
            lambda: self._store.create_child(
                CollectionName.MEETINGS, contact_id, payload.model_dump()
            ),
        )

    # ── Task writes ─────────────────────────────────────────────────────────

    async def create_task(self, payload: TaskCreate) -> str:
        return await self.guard.run(
            "create_task",
            lambda: self._store.create(CollectionName.TASKS, payload.model_dump()),
        )

    async def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        await self.guard.run(
            "update_task",
            lambda: self._store.update(CollectionName.TASKS, task_id, fields),
        )

    async def assign_task(
        self, task_id: str, assignee_id: str | None, assignee_name: str | None = None
    ) -> None:
        self.require_task(task_id)
        assignment = Assignment(assignee_id=assignee_id, assignee_name=assignee_name)
        await self.update_task(task_id, {"assignment": assignment.model_dump()})

    async def delete_task(self, task_id: str) -> None:
        await self.guard.run(
            "delete_task",
            lambda: self._store.delete(CollectionName.TASKS, task_id),
        )

    # ── Batch operations ────────────────────────────────────────────────────

    def detect_duplicates(self, account_type: AccountType | None = None) -> list[DuplicateGroup]:
        return DuplicateDetector.find_account_duplicates(self.accounts(account_type))

    def detect_contact_duplicates(self) -> list[ContactDuplicateGroup]:
        contacts = [ref.contact for ref in self._index.contacts_by_id.values()]
        return DuplicateDetector.find_contact_duplicates(contacts)

    def import_pipeline(
        self,
        account_type: AccountType | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchImportPipeline:
        """Build a single-run import pipeline bound to this session's guard."""
        return BatchImportPipeline(
            store=self._store,
            guard=self.guard,
            index_provider=lambda: self._index,
            account_type=account_type or AccountType(self._settings.DEFAULT_ACCOUNT_TYPE),
            yield_interval=self._settings.IMPORT_YIELD_INTERVAL,
            on_progress=on_progress,
        )

    def bulk_executor(self) -> BulkActionExecutor:
        return BulkActionExecutor(
            store=self._store,
            guard=self.guard,
            index_provider=lambda: self._index,
            pause_seconds=self._settings.BULK_DELETE_PAUSE_SECONDS,
        )
