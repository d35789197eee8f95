"""Probable-duplicate detection for accounts and contacts.

Both detectors make a single pass with a processed set: each unprocessed
record starts a group, later unprocessed records that match join it and are
marked processed, and only groups with two or more members are emitted.
Comparisons are O(n^2), which is fine for collections of a few hundred records
scanned on explicit request.

Account names match when their normalized forms are equal or one contains the
other. Containment over-matches short names (a one-letter company matches any
name containing that letter). The groups are shown to a human for review and
nothing is merged automatically.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from typing import TypeVar

import structlog

from src.app.workspace.schemas import Account, Contact, ContactDuplicateGroup, DuplicateGroup

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[^\w\s]")
_NON_DIGIT = re.compile(r"\D")


def normalize_name(name: str) -> str:
    """Lower-case, trim, and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", name.strip().lower())


def names_match(left: str, right: str) -> bool:
    """Equality or substring containment of normalized names."""
    a, b = normalize_name(left), normalize_name(right)
    return a == b or a in b or b in a


def _group(items: Sequence[T], key: Callable[[T], str], is_match: Callable[[T, T], bool]) -> list[list[T]]:
    groups: list[list[T]] = []
    processed: set[str] = set()

    for index, item in enumerate(items):
        if key(item) in processed:
            continue
        processed.add(key(item))
        group = [item]

        for other in items[index + 1 :]:
            if key(other) in processed:
                continue
            if is_match(item, other):
                group.append(other)
                processed.add(key(other))

        if len(group) > 1:
            groups.append(group)

    return groups


class DuplicateDetector:
    """Groups probable duplicates for human review.

    This class is stateless. Collections are passed per call.
    """

    @staticmethod
    def find_account_duplicates(accounts: Sequence[Account]) -> list[DuplicateGroup]:
        """Group accounts whose company names match after normalization."""
        groups = _group(
            accounts,
            key=lambda a: a.id,
            is_match=lambda a, b: names_match(a.company, b.company),
        )
        logger.info(
            "duplicates.accounts_scanned",
            account_count=len(accounts),
            group_count=len(groups),
        )
        return [DuplicateGroup(accounts=group) for group in groups]

    @staticmethod
    def find_contact_duplicates(contacts: Sequence[Contact]) -> list[ContactDuplicateGroup]:
        """Group contacts sharing an email, a phone number, or a matching name.

        Emails are compared case-insensitively without punctuation, phones by
        their digits only, and names by punctuation-stripped equality or
        containment. A name that is empty once stripped matches nothing.
        """
        groups = _group(contacts, key=lambda c: c.id, is_match=_contacts_match)
        logger.info(
            "duplicates.contacts_scanned",
            contact_count=len(contacts),
            group_count=len(groups),
        )
        return [ContactDuplicateGroup(contacts=group) for group in groups]


def _strip_punctuation(value: str) -> str:
    return _PUNCTUATION.sub("", value.strip().lower())


def _contacts_match(a: Contact, b: Contact) -> bool:
    if a.email and b.email and _strip_punctuation(a.email) == _strip_punctuation(b.email):
        return True

    if a.phone and b.phone:
        digits_a, digits_b = _NON_DIGIT.sub("", a.phone), _NON_DIGIT.sub("", b.phone)
        if digits_a and digits_a == digits_b:
            return True

    name_a, name_b = _strip_punctuation(a.name), _strip_punctuation(b.name)
    if not name_a or not name_b:
        return False
    return name_a == name_b or name_a in name_b or name_b in name_a
