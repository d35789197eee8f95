"""Shared test fixtures for the workspace.

Provides:
- Entity factories (make_account, make_contact)
- A seeded InMemoryWorkspaceStore and a WorkspaceSession over it
- Test settings with zero bulk-delete pause
- An async HTTP client over a minimal app with the workspace router
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncGenerator, Iterator
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.app.config import Settings
from src.app.workspace.schemas import (
    Account,
    Contact,
    InvestorDetails,
    PartnerDetails,
    CustomerDetails,
)
from src.app.workspace.session import WorkspaceSession
from src.app.workspace.store import InMemoryWorkspaceStore


# ── Factories ────────────────────────────────────────────────────────────────


def make_contact(account_id: str, name: str = "Jane Roe", **overrides: Any) -> Contact:
    data: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "account_id": account_id,
        "name": name,
        "email": f"{name.split()[0].lower()}@example.com",
    }
    data.update(overrides)
    return Contact(**data)


def make_account(
    company: str = "Acme Inc",
    contacts: list[str] | None = None,
    kind: str = "customer",
    **overrides: Any,
) -> Account:
    account_id = overrides.pop("id", str(uuid.uuid4()))
    details = {
        "investor": InvestorDetails,
        "customer": CustomerDetails,
        "partner": PartnerDetails,
    }[kind]()
    return Account(
        id=account_id,
        company=company,
        contacts=[make_contact(account_id, name) for name in contacts or []],
        details=details,
        **overrides,
    )


# ── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def settings() -> Settings:
    """Settings with no bulk pause so tests run fast."""
    return Settings(BULK_DELETE_PAUSE_SECONDS=0.0, IMPORT_YIELD_INTERVAL=1)


@pytest.fixture
def acme() -> Account:
    return make_account("Acme Inc", contacts=["Jane Roe", "John Doe"])


@pytest.fixture
def globex() -> Account:
    return make_account("Globex", contacts=["Hank Scorpio"])


@pytest.fixture
def store(acme: Account, globex: Account) -> InMemoryWorkspaceStore:
    return InMemoryWorkspaceStore(accounts=[acme, globex])


@pytest.fixture
def session(store: InMemoryWorkspaceStore, settings: Settings) -> Iterator[WorkspaceSession]:
    workspace_session = WorkspaceSession(store, settings=settings)
    yield workspace_session
    workspace_session.close()


def _make_test_app(store: InMemoryWorkspaceStore | None) -> FastAPI:
    """Minimal FastAPI app with the workspace router and error handlers."""
    from src.app.api.v1.router import router
    from src.app.api.v1.workspace import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router)
    app.state.workspace_store = store
    return app


@pytest_asyncio.fixture
async def client_and_store(
    store: InMemoryWorkspaceStore,
) -> AsyncGenerator[tuple[AsyncClient, InMemoryWorkspaceStore], None]:
    """HTTP client over a test app sharing the seeded store."""
    app = _make_test_app(store)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, store
