"""O(1) lookup maps derived from one account collection snapshot.

The index is rebuilt wholesale on every snapshot change and never patched
incrementally. Collections are expected to hold a few hundred records, so a
full rebuild per change is cheap and removes a whole class of stale-entry bugs.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from src.app.workspace.schemas import Account, AccountType, Contact, Task


def normalize_company(name: str) -> str:
    """Key used for exact case-insensitive company matching."""
    return name.strip().lower()


@dataclass(frozen=True)
class ContactRef:
    """A contact together with the account that currently holds it."""

    contact: Contact
    parent: Account


@dataclass(frozen=True)
class LookupIndex:
    """Read-only id maps over one snapshot.

    Attributes:
        accounts_by_id: Account id -> Account.
        contacts_by_id: Contact id -> ContactRef(contact, parent account).
        accounts_by_company: Normalized company name -> first Account with it.
        version: Snapshot version the index was built from.
    """

    accounts_by_id: Mapping[str, Account] = field(default_factory=lambda: MappingProxyType({}))
    contacts_by_id: Mapping[str, ContactRef] = field(
        default_factory=lambda: MappingProxyType({})
    )
    accounts_by_company: Mapping[str, tuple[Account, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    version: int = 0

    @classmethod
    def build(cls, accounts: Iterable[Account], version: int = 0) -> LookupIndex:
        """Build all maps in a single pass over accounts and their contacts."""
        by_id: dict[str, Account] = {}
        contacts: dict[str, ContactRef] = {}
        by_company: dict[str, list[Account]] = {}

        for account in accounts:
            by_id[account.id] = account
            by_company.setdefault(normalize_company(account.company), []).append(account)
            for contact in account.contacts:
                contacts[contact.id] = ContactRef(contact=contact, parent=account)

        return cls(
            accounts_by_id=MappingProxyType(by_id),
            contacts_by_id=MappingProxyType(contacts),
            accounts_by_company=MappingProxyType(
                {name: tuple(matches) for name, matches in by_company.items()}
            ),
            version=version,
        )

    def get_account(self, account_id: str) -> Account | None:
        return self.accounts_by_id.get(account_id)

    def get_contact(self, contact_id: str) -> ContactRef | None:
        return self.contacts_by_id.get(contact_id)

    def find_account_by_company(
        self, company: str, account_type: AccountType | None = None
    ) -> Account | None:
        """Return the first account whose company matches case-insensitively.

        Args:
            company: Company name as typed by the user or read from a file.
            account_type: Restrict matches to one variant when given.
        """
        for account in self.accounts_by_company.get(normalize_company(company), ()):
            if account_type is None or account.account_type == account_type:
                return account
        return None

    def task_links_valid(self, task: Task) -> bool:
        """Re-resolve a task's weak links against this snapshot.

        A task with no links is valid. A contact link is valid only when the
        contact currently belongs to the task's linked account.
        """
        if task.account_id is None:
            return task.contact_id is None
        if task.account_id not in self.accounts_by_id:
            return False
        if task.contact_id is None:
            return True
        ref = self.contacts_by_id.get(task.contact_id)
        return ref is not None and ref.parent.id == task.account_id
