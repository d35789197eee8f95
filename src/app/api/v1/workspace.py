"""REST API endpoints for the relationship workspace.

Thin JSON/CSV layer over a request-scoped WorkspaceSession: account listing
and creation, duplicate review, contact import and template, CSV export, and
confirmed bulk delete. Authentication is handled outside this service.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from src.app.api.deps import get_session
from src.app.workspace.bulk import BulkSelection
from src.app.workspace.csv_io import import_template
from src.app.workspace.errors import (
    BulkActionNotConfirmedError,
    RecordNotFoundError,
    RecordValidationError,
    WorkspaceError,
    WriteFailure,
)
from src.app.workspace.schemas import (
    Account,
    AccountCreate,
    AccountType,
    BulkDeleteReport,
    ContactDuplicateGroup,
    DuplicateGroup,
    ImportReport,
)
from src.app.workspace.session import WorkspaceSession

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/workspace", tags=["workspace"])

CSV_MEDIA_TYPE = "text/csv"
TEMPLATE_FILENAME = "contacts_import_template.csv"


# ── Request Schemas ──────────────────────────────────────────────────────────


class ExportAccountsRequest(BaseModel):
    """Accounts to export. Omitting account_ids exports every listed account."""

    account_ids: list[str] | None = None
    account_type: AccountType | None = None


class BulkDeleteRequest(BaseModel):
    """Request body for a bulk account delete. confirm must be true."""

    account_ids: list[str] = Field(default_factory=list)
    confirm: bool = False


# ── Error Mapping ────────────────────────────────────────────────────────────

_STATUS_BY_ERROR: dict[type[WorkspaceError], int] = {
    BulkActionNotConfirmedError: status.HTTP_400_BAD_REQUEST,
    RecordNotFoundError: status.HTTP_404_NOT_FOUND,
    RecordValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    WriteFailure: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


async def _workspace_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status_code = _STATUS_BY_ERROR.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.warning(
        "workspace_api.error",
        path=request.url.path,
        status_code=status_code,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    """Map workspace errors raised by endpoints to HTTP responses."""
    app.add_exception_handler(WorkspaceError, _workspace_error_handler)


# ── Helpers ──────────────────────────────────────────────────────────────────


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=CSV_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ── Account Endpoints ────────────────────────────────────────────────────────


@router.get("/accounts", response_model=list[Account])
async def list_accounts(
    account_type: AccountType | None = Query(default=None),
    session: WorkspaceSession = Depends(get_session),
) -> list[Account]:
    """List accounts in collection order, optionally filtered by variant."""
    return session.accounts(account_type)


@router.post("/accounts", response_model=Account, status_code=201)
async def create_account(
    body: AccountCreate,
    session: WorkspaceSession = Depends(get_session),
) -> Account:
    """Create a new account."""
    account_id = await session.create_account(body)
    return session.stored_account(account_id)


@router.get("/duplicates", response_model=list[DuplicateGroup])
async def list_duplicates(
    account_type: AccountType | None = Query(default=None),
    session: WorkspaceSession = Depends(get_session),
) -> list[DuplicateGroup]:
    """Groups of accounts whose company names probably refer to the same company."""
    return session.detect_duplicates(account_type)


@router.get("/duplicates/contacts", response_model=list[ContactDuplicateGroup])
async def list_contact_duplicates(
    session: WorkspaceSession = Depends(get_session),
) -> list[ContactDuplicateGroup]:
    """Groups of contacts sharing an email, a phone number, or a matching name."""
    return session.detect_contact_duplicates()


# ── Import Endpoints ─────────────────────────────────────────────────────────


@router.get("/imports/template")
async def download_import_template() -> Response:
    """CSV header plus sample rows for contact import."""
    return _csv_response(import_template(), TEMPLATE_FILENAME)


@router.post("/imports/contacts", response_model=ImportReport)
async def import_contacts(
    request: Request,
    account_type: AccountType | None = Query(default=None),
    session: WorkspaceSession = Depends(get_session),
) -> ImportReport:
    """Import contacts from a CSV request body.

    The body is the raw file content. Rows that fail are listed in the
    report; the request itself succeeds.
    """
    content = await request.body()
    pipeline = session.import_pipeline(account_type=account_type)
    return await pipeline.run_bytes(content)


# ── Export / Bulk Endpoints ──────────────────────────────────────────────────


@router.post("/exports/accounts")
async def export_accounts(
    body: ExportAccountsRequest,
    session: WorkspaceSession = Depends(get_session),
) -> Response:
    """Export accounts as CSV with a download filename."""
    selection = BulkSelection()
    if body.account_ids is None:
        selection.select_all(a.id for a in session.accounts(body.account_type))
    else:
        selection.select_all(body.account_ids)

    export = session.bulk_executor().export_accounts(selection)
    return _csv_response(export.content, export.filename)


@router.post("/bulk/delete", response_model=BulkDeleteReport)
async def bulk_delete_accounts(
    body: BulkDeleteRequest,
    session: WorkspaceSession = Depends(get_session),
) -> BulkDeleteReport:
    """Delete the listed accounts one at a time. Requires confirm=true."""
    if not body.confirm:
        raise BulkActionNotConfirmedError(
            f"Deleting {len(body.account_ids)} accounts requires confirm=true"
        )

    selection = BulkSelection()
    selection.toggle_mode()
    selection.select_all(body.account_ids)
    return await session.bulk_executor().delete_accounts(selection, lambda count: body.confirm)
