"""In-memory workspace store -- reference backend for tests and single-process deployments.

Holds accounts (with their contacts, meetings and notes) and tasks in
insertion-ordered dicts. Every successful write bumps the snapshot version and
delivers the new snapshot to subscribers synchronously, before the write
returns to its caller. Entity models are frozen, so writes rebuild the
affected records instead of mutating them.

Cascade rules:
- Deleting an account removes its contacts, their meetings, its notes and
  every task that references the account.
- Deleting a contact clears contact references on tasks.
- Moving a contact (update_child with a new account_id) clears contact
  references on tasks that still point at the old account.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from typing import Any

import structlog
from pydantic import ValidationError

from src.app.workspace.errors import WriteFailure
from src.app.workspace.schemas import (
    Account,
    CollectionName,
    Contact,
    Meeting,
    Task,
    WorkspaceSnapshot,
)
from src.app.workspace.store.adapter import SnapshotListener, WorkspaceStore

logger = structlog.get_logger(__name__)

_TOP_LEVEL = {CollectionName.ACCOUNTS, CollectionName.TASKS}
_CHILDREN = {CollectionName.CONTACTS, CollectionName.MEETINGS}


def _new_id() -> str:
    return str(uuid.uuid4())


def _merge(model: Any, fields: dict[str, Any], **pinned: Any) -> dict[str, Any]:
    """Shallow-merge partial fields over a model's current values."""
    data = model.model_dump()
    data.update(fields)
    data.update(pinned)
    return data


class InMemoryWorkspaceStore(WorkspaceStore):
    """WorkspaceStore held entirely in process memory.

    Args:
        accounts: Optional initial accounts.
        tasks: Optional initial tasks.
    """

    def __init__(
        self,
        accounts: list[Account] | None = None,
        tasks: list[Task] | None = None,
    ) -> None:
        self._accounts: dict[str, Account] = {a.id: a for a in accounts or []}
        self._tasks: dict[str, Task] = {t.id: t for t in tasks or []}
        self._version = 0
        self._listeners: list[SnapshotListener] = []

    # ── Snapshots ───────────────────────────────────────────────────────────

    def snapshot(self) -> WorkspaceSnapshot:
        return WorkspaceSnapshot(
            version=self._version,
            accounts=list(self._accounts.values()),
            tasks=list(self._tasks.values()),
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _publish(self) -> None:
        self._version += 1
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                logger.error(
                    "memory_store.listener_error",
                    version=snapshot.version,
                    error=str(exc),
                )

    # ── Top-level writes ────────────────────────────────────────────────────

    async def create(self, collection: CollectionName, fields: dict[str, Any]) -> str:
        await asyncio.sleep(0)
        self._require(collection, _TOP_LEVEL, "create")
        record_id = _new_id()

        if collection == CollectionName.ACCOUNTS:
            account = self._validate(Account, collection, "create", {**fields, "id": record_id})
            self._accounts[record_id] = account
        else:
            task = self._validate(Task, collection, "create", {**fields, "id": record_id})
            self._check_task_links(task, "create")
            self._tasks[record_id] = task

        logger.info("memory_store.created", collection=collection.value, record_id=record_id)
        self._publish()
        return record_id

    async def update(
        self, collection: CollectionName, record_id: str, fields: dict[str, Any]
    ) -> None:
        await asyncio.sleep(0)
        self._require(collection, _TOP_LEVEL, "update")

        if collection == CollectionName.ACCOUNTS:
            current = self._get_account(record_id, "update")
            self._accounts[record_id] = self._validate(
                Account, collection, "update", _merge(current, fields, id=record_id)
            )
        else:
            current_task = self._tasks.get(record_id)
            if current_task is None:
                raise WriteFailure(collection.value, "update", f"task not found: {record_id}")
            task = self._validate(
                Task, collection, "update", _merge(current_task, fields, id=record_id)
            )
            self._check_task_links(task, "update")
            self._tasks[record_id] = task

        logger.info("memory_store.updated", collection=collection.value, record_id=record_id)
        self._publish()

    async def delete(self, collection: CollectionName, record_id: str) -> None:
        await asyncio.sleep(0)
        self._require(collection, _TOP_LEVEL, "delete")

        if collection == CollectionName.ACCOUNTS:
            self._get_account(record_id, "delete")
            del self._accounts[record_id]
            orphaned = [t.id for t in self._tasks.values() if t.account_id == record_id]
            for task_id in orphaned:
                del self._tasks[task_id]
            logger.info(
                "memory_store.account_deleted",
                record_id=record_id,
                cascaded_tasks=len(orphaned),
            )
        else:
            if record_id not in self._tasks:
                raise WriteFailure(collection.value, "delete", f"task not found: {record_id}")
            del self._tasks[record_id]
            logger.info("memory_store.task_deleted", record_id=record_id)

        self._publish()

    # ── Child writes ────────────────────────────────────────────────────────

    async def create_child(
        self, collection: CollectionName, parent_id: str, fields: dict[str, Any]
    ) -> str:
        await asyncio.sleep(0)
        self._require(collection, _CHILDREN, "create_child")
        child_id = _new_id()

        if collection == CollectionName.CONTACTS:
            account = self._get_account(parent_id, "create_child")
            contact = self._validate(
                Contact,
                collection,
                "create_child",
                {**fields, "id": child_id, "account_id": parent_id},
            )
            self._accounts[parent_id] = account.model_copy(
                update={"contacts": [*account.contacts, contact]}
            )
        else:
            account, contact = self._get_contact_anywhere(parent_id, "create_child")
            meeting = self._validate(
                Meeting,
                collection,
                "create_child",
                {**fields, "id": child_id, "contact_id": parent_id},
            )
            self._replace_contact(
                account, contact.model_copy(update={"meetings": [*contact.meetings, meeting]})
            )

        logger.info(
            "memory_store.child_created",
            collection=collection.value,
            parent_id=parent_id,
            child_id=child_id,
        )
        self._publish()
        return child_id

    async def update_child(
        self,
        collection: CollectionName,
        parent_id: str,
        child_id: str,
        fields: dict[str, Any],
    ) -> None:
        await asyncio.sleep(0)
        self._require(collection, _CHILDREN, "update_child")

        if collection == CollectionName.CONTACTS:
            account = self._get_account(parent_id, "update_child")
            contact = self._find_contact(account, child_id, "update_child")
            target_id = fields.get("account_id", parent_id)
            if target_id != parent_id:
                self._move_contact(account, contact, target_id, fields)
            else:
                updated = self._validate(
                    Contact,
                    collection,
                    "update_child",
                    _merge(contact, fields, id=child_id, account_id=parent_id),
                )
                self._replace_contact(account, updated)
        else:
            account, contact = self._get_contact_anywhere(parent_id, "update_child")
            meeting = next((m for m in contact.meetings if m.id == child_id), None)
            if meeting is None:
                raise WriteFailure(
                    collection.value, "update_child", f"meeting not found: {child_id}"
                )
            updated_meeting = self._validate(
                Meeting,
                collection,
                "update_child",
                _merge(meeting, fields, id=child_id, contact_id=parent_id),
            )
            meetings = [updated_meeting if m.id == child_id else m for m in contact.meetings]
            self._replace_contact(account, contact.model_copy(update={"meetings": meetings}))

        logger.info(
            "memory_store.child_updated",
            collection=collection.value,
            parent_id=parent_id,
            child_id=child_id,
        )
        self._publish()

    async def delete_child(
        self, collection: CollectionName, parent_id: str, child_id: str
    ) -> None:
        await asyncio.sleep(0)
        self._require(collection, _CHILDREN, "delete_child")

        if collection == CollectionName.CONTACTS:
            account = self._get_account(parent_id, "delete_child")
            self._find_contact(account, child_id, "delete_child")
            self._accounts[parent_id] = account.model_copy(
                update={"contacts": [c for c in account.contacts if c.id != child_id]}
            )
            self._clear_task_contact_refs(child_id)
        else:
            account, contact = self._get_contact_anywhere(parent_id, "delete_child")
            if not any(m.id == child_id for m in contact.meetings):
                raise WriteFailure(
                    collection.value, "delete_child", f"meeting not found: {child_id}"
                )
            meetings = [m for m in contact.meetings if m.id != child_id]
            self._replace_contact(account, contact.model_copy(update={"meetings": meetings}))

        logger.info(
            "memory_store.child_deleted",
            collection=collection.value,
            parent_id=parent_id,
            child_id=child_id,
        )
        self._publish()

    # ── Helpers ─────────────────────────────────────────────────────────────

    @staticmethod
    def _require(
        collection: CollectionName, allowed: set[CollectionName], operation: str
    ) -> None:
        if collection not in allowed:
            raise WriteFailure(
                collection.value, operation, "collection does not support this operation"
            )

    @staticmethod
    def _validate(model_cls: type, collection: CollectionName, operation: str, data: dict) -> Any:
        try:
            return model_cls.model_validate(data)
        except ValidationError as exc:
            raise WriteFailure(collection.value, operation, str(exc)) from exc

    def _get_account(self, account_id: str, operation: str) -> Account:
        account = self._accounts.get(account_id)
        if account is None:
            raise WriteFailure(
                CollectionName.ACCOUNTS.value, operation, f"account not found: {account_id}"
            )
        return account

    @staticmethod
    def _find_contact(account: Account, contact_id: str, operation: str) -> Contact:
        contact = next((c for c in account.contacts if c.id == contact_id), None)
        if contact is None:
            raise WriteFailure(
                CollectionName.CONTACTS.value,
                operation,
                f"contact {contact_id} not found under account {account.id}",
            )
        return contact

    def _get_contact_anywhere(self, contact_id: str, operation: str) -> tuple[Account, Contact]:
        for account in self._accounts.values():
            for contact in account.contacts:
                if contact.id == contact_id:
                    return account, contact
        raise WriteFailure(
            CollectionName.MEETINGS.value, operation, f"contact not found: {contact_id}"
        )

    def _replace_contact(self, account: Account, contact: Contact) -> None:
        contacts = [contact if c.id == contact.id else c for c in account.contacts]
        self._accounts[account.id] = account.model_copy(update={"contacts": contacts})

    def _move_contact(
        self, source: Account, contact: Contact, target_id: str, fields: dict[str, Any]
    ) -> None:
        target = self._get_account(target_id, "update_child")
        moved = self._validate(
            Contact,
            CollectionName.CONTACTS,
            "update_child",
            _merge(contact, fields, id=contact.id, account_id=target_id),
        )
        self._accounts[source.id] = source.model_copy(
            update={"contacts": [c for c in source.contacts if c.id != contact.id]}
        )
        self._accounts[target_id] = target.model_copy(
            update={"contacts": [*target.contacts, moved]}
        )
        self._clear_task_contact_refs(contact.id, keep_account_id=target_id)
        logger.info(
            "memory_store.contact_moved",
            contact_id=contact.id,
            from_account_id=source.id,
            to_account_id=target_id,
        )

    def _clear_task_contact_refs(self, contact_id: str, keep_account_id: str | None = None) -> None:
        for task in list(self._tasks.values()):
            if task.contact_id != contact_id:
                continue
            if keep_account_id is not None and task.account_id == keep_account_id:
                continue
            self._tasks[task.id] = task.model_copy(update={"contact_id": None})

    def _check_task_links(self, task: Task, operation: str) -> None:
        if task.contact_id is not None and task.account_id is None:
            raise WriteFailure(
                CollectionName.TASKS.value, operation, "contact link requires an account link"
            )
        if task.account_id is None:
            return
        account = self._accounts.get(task.account_id)
        if account is None:
            raise WriteFailure(
                CollectionName.TASKS.value, operation, f"account not found: {task.account_id}"
            )
        if task.contact_id is not None and not any(
            c.id == task.contact_id for c in account.contacts
        ):
            raise WriteFailure(
                CollectionName.TASKS.value,
                operation,
                f"contact {task.contact_id} does not belong to account {task.account_id}",
            )
