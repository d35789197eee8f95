"""Pydantic schemas for the relationship workspace -- entities, payloads, reports.

Defines all structured types for accounts and their dependents:
- Enums: AccountType, Priority, TaskStatus, CollectionName
- Entities: Note, Assignment, Meeting, Contact, Task, Account (with a tagged
  union of variant details), WorkspaceSnapshot
- Write payloads: AccountCreate, ContactCreate, MeetingCreate, TaskCreate
- Batch results: ImportRowError, ImportReport, BulkDeleteReport, ExportFile,
  DuplicateGroup, ContactDuplicateGroup

Entity models are frozen. A snapshot handed to listeners is never mutated;
updates always build a new model from a merged dict.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class AccountType(str, Enum):
    """Account variant. The collection label doubles as the export domain."""

    INVESTOR = "investor"
    CUSTOMER = "customer"
    PARTNER = "partner"

    @property
    def collection_label(self) -> str:
        return f"{self.value}s"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TaskStatus(str, Enum):
    TODO = "Todo"
    DONE = "Done"


class CollectionName(str, Enum):
    """Named collections exposed by the write interface."""

    ACCOUNTS = "accounts"
    CONTACTS = "contacts"  # children of an account
    MEETINGS = "meetings"  # children of a contact
    TASKS = "tasks"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Entities ────────────────────────────────────────────────────────────────


class Note(BaseModel):
    """Timestamped free-text note on an account or contact."""

    model_config = ConfigDict(frozen=True)

    text: str
    timestamp: datetime = Field(default_factory=_utcnow)
    user_id: str | None = None
    user_name: str | None = None


class Assignment(BaseModel):
    """Assignee id plus the display name cached at assignment time."""

    model_config = ConfigDict(frozen=True)

    assignee_id: str | None = None
    assignee_name: str | None = None


class Meeting(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    contact_id: str
    title: str
    attendees: str = ""
    summary: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)


class Contact(BaseModel):
    """A person attached to exactly one account (account_id is a back-reference)."""

    model_config = ConfigDict(frozen=True)

    id: str
    account_id: str
    name: str
    email: str
    phone: str = ""
    title: str = ""
    assignment: Assignment = Field(default_factory=Assignment)
    meetings: list[Meeting] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)


class InvestorDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["investor"] = "investor"
    check_size: float | None = None
    stage: str | None = None


class CustomerDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["customer"] = "customer"
    deal_value: float | None = None
    deal_stage: str | None = None


class PartnerDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["partner"] = "partner"
    opportunity: str | None = None
    partner_type: str | None = None


AccountDetails = Annotated[
    Union[InvestorDetails, CustomerDetails, PartnerDetails],
    Field(discriminator="kind"),
]


def default_details(account_type: AccountType) -> InvestorDetails | CustomerDetails | PartnerDetails:
    """Return an empty variant payload for the given account type."""
    if account_type == AccountType.INVESTOR:
        return InvestorDetails()
    if account_type == AccountType.PARTNER:
        return PartnerDetails()
    return CustomerDetails()


class Account(BaseModel):
    """Company-level record: common fields plus exactly one variant payload."""

    model_config = ConfigDict(frozen=True)

    id: str
    company: str = Field(min_length=1)
    status: str = "Active"
    priority: Priority = Priority.MEDIUM
    next_action: str | None = None
    next_action_date: str | None = None  # YYYY-MM-DD
    next_action_time: str | None = None  # HH:MM
    assignment: Assignment = Field(default_factory=Assignment)
    contacts: list[Contact] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    details: AccountDetails = Field(default_factory=CustomerDetails)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def account_type(self) -> AccountType:
        return AccountType(self.details.kind)


class Task(BaseModel):
    """Independently owned task with weak, id-only links to account/contact."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.TODO
    account_id: str | None = None
    contact_id: str | None = None
    assignment: Assignment = Field(default_factory=Assignment)
    due_date: str | None = None  # YYYY-MM-DD


class WorkspaceSnapshot(BaseModel):
    """One authoritative view of the collection as delivered by the store."""

    model_config = ConfigDict(frozen=True)

    version: int = 0
    accounts: list[Account] = Field(default_factory=list)
    tasks: list[Task] = Field(default_factory=list)


# ── Write Payloads ──────────────────────────────────────────────────────────


class AccountCreate(BaseModel):
    """Schema for creating a new account."""

    company: str = Field(min_length=1)
    status: str = "Active"
    priority: Priority = Priority.MEDIUM
    next_action: str | None = None
    next_action_date: str | None = None
    next_action_time: str | None = None
    details: AccountDetails = Field(default_factory=CustomerDetails)


class ContactCreate(BaseModel):
    """Schema for creating a contact under an account."""

    name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    phone: str = ""
    title: str = ""


class MeetingCreate(BaseModel):
    title: str
    attendees: str = ""
    summary: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)


class TaskCreate(BaseModel):
    """Schema for creating a task. Links are validated against the snapshot."""

    text: str = Field(min_length=1)
    priority: Priority = Priority.MEDIUM
    account_id: str | None = None
    contact_id: str | None = None
    due_date: str | None = None


# ── Batch Results ───────────────────────────────────────────────────────────


class ImportRowError(BaseModel):
    """One failed import row: 1-based file line, reason, raw row values."""

    row: int
    error: str
    data: dict[str, Any] = Field(default_factory=dict)


class ImportReport(BaseModel):
    """Outcome of a batch import.

    Partial failure is not an error condition -- callers must inspect the
    counts rather than rely on an exception.
    """

    success_count: int = 0
    failed_count: int = 0
    errors: list[ImportRowError] = Field(default_factory=list)
    cancelled: bool = False


class BulkDeleteReport(BaseModel):
    """Aggregate outcome of a bulk delete. No per-item error list."""

    attempted: int = 0
    deleted: int = 0
    confirmed: bool = True


class ExportFile(BaseModel):
    """Rendered CSV export ready for download."""

    filename: str
    content: str
    row_count: int = 0


class DuplicateGroup(BaseModel):
    """Accounts that probably describe the same company. For human review only."""

    accounts: list[Account]


class ContactDuplicateGroup(BaseModel):
    contacts: list[Contact]
