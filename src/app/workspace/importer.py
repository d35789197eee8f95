"""Batch contact import: delimited text -> contacts under resolved parent accounts.

Rows are processed sequentially in file order, each write awaited before the
next row starts:

    parse_delimited() -> validate(name, email) -> resolve parent account
    -> guarded create_child(contacts)

A failing row is recorded in the ImportReport and the run continues. Partial
failure is a normal outcome, not an exception.

Parent resolution order for a non-blank company:
1. Exact case-insensitive match in the current snapshot (same account type).
2. The in-run cache of accounts this pipeline already created.
3. Create a new account (unguarded top-level creation) and cache its id.

The cache is keyed by normalized company name, so two rows naming the same new
company create exactly one account even if the store has not yet delivered a
snapshot containing the first.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from src.app.core.monitoring import import_rows_total, track_batch
from src.app.workspace.csv_io import (
    REQUIRED_IMPORT_FIELDS,
    ParsedRow,
    decode_upload,
    parse_delimited,
)
from src.app.workspace.errors import RecordValidationError, WriteFailure
from src.app.workspace.guard import MutationGuard
from src.app.workspace.lookup import LookupIndex, normalize_company
from src.app.workspace.schemas import (
    AccountType,
    CollectionName,
    ContactCreate,
    ImportReport,
    ImportRowError,
    default_details,
)
from src.app.workspace.store.adapter import WorkspaceStore

logger = structlog.get_logger(__name__)

NO_DATA_ERROR = "No valid data found in CSV file"
MISSING_FIELDS_ERROR = "Missing required fields (name, email)"
NO_COMPANY_ERROR = "No company specified"

ProgressCallback = Callable[[float], None]


class BatchImportPipeline:
    """Imports contacts from delimited text, creating parent accounts as needed.

    One pipeline instance handles one run; the in-run parent cache and the
    progress counter belong to that run.

    Args:
        store: Store receiving account and contact writes.
        guard: The importing session's mutation guard. Contact creation runs
            under it so the session does not reconcile against transient
            snapshots.
        index_provider: Returns a LookupIndex over the current snapshot. Called
            once per row so earlier writes in the run are visible.
        account_type: Variant given to newly created parent accounts. Existing
            parents only match within this variant.
        yield_interval: Rows between cooperative yields to the event loop.
        on_progress: Optional callback receiving the progress fraction after
            every row.
    """

    def __init__(
        self,
        store: WorkspaceStore,
        guard: MutationGuard,
        index_provider: Callable[[], LookupIndex],
        account_type: AccountType = AccountType.CUSTOMER,
        yield_interval: int = 1,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._store = store
        self._guard = guard
        self._index_provider = index_provider
        self._account_type = account_type
        self._yield_interval = max(1, yield_interval)
        self._on_progress = on_progress
        self._created_parents: dict[str, str] = {}
        self._cancelled = False
        self._processed = 0
        self._total = 0

    @property
    def progress(self) -> float:
        """Rows processed / total rows, 0.0 before the run starts."""
        if self._total == 0:
            return 0.0
        return self._processed / self._total

    def cancel(self) -> None:
        """Stop before the next row. Rows already written stay written."""
        self._cancelled = True

    # ── Entry points ────────────────────────────────────────────────────────

    async def run_bytes(self, content: bytes) -> ImportReport:
        """Decode an uploaded file as UTF-8 and import it."""
        try:
            text = decode_upload(content)
        except UnicodeDecodeError as exc:
            logger.warning("import.decode_failed", error=str(exc))
            return ImportReport(
                errors=[ImportRowError(row=0, error=f"Failed to read CSV file: {exc.reason}")]
            )
        return await self.run(text)

    async def run(self, text: str) -> ImportReport:
        """Import every data row of ``text``.

        Returns:
            ImportReport with success/failure counts and one error entry per
            failed row. An empty or header-only file yields a single row-0
            error and zero counts.
        """
        parsed = parse_delimited(text)
        if not parsed.rows:
            logger.info("import.no_data")
            return ImportReport(errors=[ImportRowError(row=0, error=NO_DATA_ERROR)])

        report = ImportReport()
        self._total = len(parsed.rows)
        self._processed = 0

        logger.info(
            "import.started",
            rows=self._total,
            account_type=self._account_type.value,
            headers=parsed.headers,
        )

        async with track_batch("import"):
            for index, row in enumerate(parsed.rows):
                if self._cancelled:
                    report.cancelled = True
                    logger.info("import.cancelled", processed=self._processed, total=self._total)
                    break

                try:
                    await self._import_row(row)
                    report.success_count += 1
                    import_rows_total.labels(outcome="success").inc()
                except Exception as exc:
                    report.failed_count += 1
                    report.errors.append(ImportRowError(row=row.line, error=str(exc), data=row.raw))
                    import_rows_total.labels(outcome="failed").inc()
                    logger.warning(
                        "import.row_failed",
                        row=row.line,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )

                self._processed += 1
                if self._on_progress is not None:
                    self._on_progress(self.progress)

                if (index + 1) % self._yield_interval == 0:
                    await asyncio.sleep(0)

        logger.info(
            "import.completed",
            success=report.success_count,
            failed=report.failed_count,
            created_accounts=len(self._created_parents),
            cancelled=report.cancelled,
        )
        return report

    # ── Per-row steps ───────────────────────────────────────────────────────

    async def _import_row(self, row: ParsedRow) -> None:
        fields = row.fields
        if any(not fields[name] for name in REQUIRED_IMPORT_FIELDS):
            raise RecordValidationError(MISSING_FIELDS_ERROR, list(REQUIRED_IMPORT_FIELDS))

        parent_id = await self._resolve_parent(fields["company"])

        payload = ContactCreate(
            name=fields["name"],
            email=fields["email"],
            phone=fields["phone"],
            title=fields["title"],
        )
        await self._guard.run(
            "import_contact",
            lambda: self._store.create_child(
                CollectionName.CONTACTS, parent_id, payload.model_dump()
            ),
        )

    async def _resolve_parent(self, company: str) -> str:
        if not company:
            raise RecordValidationError(NO_COMPANY_ERROR, ["company"])

        existing = self._index_provider().find_account_by_company(company, self._account_type)
        if existing is not None:
            return existing.id

        key = normalize_company(company)
        cached = self._created_parents.get(key)
        if cached is not None:
            return cached

        try:
            account_id = await self._store.create(
                CollectionName.ACCOUNTS,
                {
                    "company": company,
                    "details": default_details(self._account_type).model_dump(),
                },
            )
        except WriteFailure as exc:
            raise WriteFailure(
                CollectionName.ACCOUNTS.value,
                "create",
                f"could not create account for {company!r}: {exc.reason}",
            ) from exc

        self._created_parents[key] = account_id
        logger.info("import.account_created", company=company, account_id=account_id)
        return account_id
