"""Delimited-text parsing for imports and CSV rendering for exports.

Import format: UTF-8, comma-separated, header row required. Recognized
headers are name, email, phone, title and company, matched case-insensitively;
other columns are carried in the raw row but otherwise ignored. Rows end at
CR, LF or CRLF only; other Unicode line separators stay inside a field. Lines
are split on every comma -- quoted fields containing commas are NOT handled.
Blank lines are skipped, but row numbers always refer to the physical line in
the file (the header is line 1).

Export format: a fixed header row, text columns (contact email and phone
included) wrapped in double quotes with embedded quotes doubled, rows joined
with newlines.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date

from src.app.workspace.lookup import ContactRef
from src.app.workspace.schemas import Account

IMPORT_FIELDS: tuple[str, ...] = ("name", "email", "phone", "title", "company")
REQUIRED_IMPORT_FIELDS: tuple[str, ...] = ("name", "email")

ACCOUNT_EXPORT_HEADERS: tuple[str, ...] = (
    "company",
    "status",
    "priority",
    "contacts",
    "next_action",
    "next_action_date",
)
CONTACT_EXPORT_HEADERS: tuple[str, ...] = ("name", "email", "phone", "title", "company")

MULTI_VALUE_SEPARATOR = "; "

_BOM = "\ufeff"
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


# ── Import Parsing ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ParsedRow:
    """One data row.

    Attributes:
        line: 1-based physical line number in the source file.
        fields: Recognized fields, each present (empty string when missing).
        raw: Every column keyed by its lower-cased header.
    """

    line: int
    fields: dict[str, str]
    raw: dict[str, str]


@dataclass(frozen=True)
class ParsedFile:
    headers: list[str] = field(default_factory=list)
    rows: list[ParsedRow] = field(default_factory=list)


def parse_delimited(text: str, delimiter: str = ",") -> ParsedFile:
    """Split delimited text into header-keyed rows.

    Args:
        text: Full file content, already decoded.
        delimiter: Column separator.

    Returns:
        ParsedFile with lower-cased, trimmed headers and one ParsedRow per
        non-blank data line. Empty when the file has no header row.
    """
    if text.startswith(_BOM):
        text = text[len(_BOM) :]

    headers: list[str] = []
    rows: list[ParsedRow] = []

    for line_number, line in enumerate(_LINE_BREAK.split(text), start=1):
        if not line.strip():
            continue
        values = [v.strip() for v in line.split(delimiter)]
        if not headers:
            headers = [v.lower() for v in values]
            continue
        raw = {header: values[i] if i < len(values) else "" for i, header in enumerate(headers)}
        fields = {name: raw.get(name, "") for name in IMPORT_FIELDS}
        rows.append(ParsedRow(line=line_number, fields=fields, raw=raw))

    return ParsedFile(headers=headers, rows=rows)


def decode_upload(content: bytes) -> str:
    """Decode uploaded bytes as UTF-8. Raises UnicodeDecodeError on bad input."""
    return content.decode("utf-8")


def import_template() -> str:
    """Header plus sample rows users can fill in."""
    return "\n".join(
        [
            ",".join(IMPORT_FIELDS),
            "John Doe,john@example.com,555-1234,CEO,Acme Corp",
            "Jane Smith,jane@example.com,555-5678,CTO,Tech Inc",
        ]
    )


# ── Export Rendering ────────────────────────────────────────────────────────


def quote(value: str | None) -> str:
    """Wrap a text field in quotes, doubling any embedded quote characters."""
    return '"' + (value or "").replace('"', '""') + '"'


def account_row(account: Account) -> str:
    contact_names = MULTI_VALUE_SEPARATOR.join(c.name for c in account.contacts)
    return ",".join(
        [
            quote(account.company),
            quote(account.status),
            account.priority.value,
            quote(contact_names),
            quote(account.next_action),
            account.next_action_date or "",
        ]
    )


def contact_row(ref: ContactRef) -> str:
    contact = ref.contact
    return ",".join(
        [
            quote(contact.name),
            quote(contact.email),
            quote(contact.phone),
            quote(contact.title),
            quote(ref.parent.company),
        ]
    )


def render_accounts_csv(accounts: Iterable[Account]) -> tuple[str, int]:
    """Render accounts as CSV. Returns (content, data row count)."""
    lines = [",".join(ACCOUNT_EXPORT_HEADERS)]
    lines.extend(account_row(a) for a in accounts)
    return "\n".join(lines), len(lines) - 1


def render_contacts_csv(refs: Sequence[ContactRef]) -> tuple[str, int]:
    """Render contacts (with their parent company) as CSV."""
    lines = [",".join(CONTACT_EXPORT_HEADERS)]
    lines.extend(contact_row(r) for r in refs)
    return "\n".join(lines), len(refs)


def export_filename(domain: str, today: date | None = None) -> str:
    """``<domain>_export_<ISO-date>.csv``"""
    day = today or date.today()
    return f"{domain}_export_{day.isoformat()}.csv"
