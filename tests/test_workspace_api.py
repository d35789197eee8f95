"""Integration tests for workspace API endpoints.

Uses the seeded InMemoryWorkspaceStore on app.state and httpx AsyncClient
over ASGITransport. Tests listing, creation, duplicates, import, export and
bulk delete, plus the health and metrics routes.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.app.api.v1.router import router
from src.app.api.v1.workspace import register_exception_handlers
from src.app.workspace.store import InMemoryWorkspaceStore

BASE = "/api/v1/workspace"


# ── Accounts ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_list_accounts(client_and_store):
    """GET /accounts -> 200 with accounts in collection order."""
    client, store = client_and_store

    response = await client.get(f"{BASE}/accounts")

    assert response.status_code == 200
    assert [a["company"] for a in response.json()] == ["Acme Inc", "Globex"]


@pytest.mark.asyncio
async def test_create_and_filter_by_type(client_and_store):
    """POST /accounts -> 201; ?account_type filters by variant."""
    client, store = client_and_store

    response = await client.post(
        f"{BASE}/accounts",
        json={"company": "Sequoia", "details": {"kind": "investor", "stage": "Seed"}},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["company"] == "Sequoia"
    assert data["details"]["kind"] == "investor"

    response = await client.get(f"{BASE}/accounts", params={"account_type": "investor"})
    assert [a["company"] for a in response.json()] == ["Sequoia"]


@pytest.mark.asyncio
async def test_create_account_when_snapshot_delivery_lags():
    """POST /accounts -> 201 even before the store notifies subscribers."""

    class DeferredDeliveryStore(InMemoryWorkspaceStore):
        def _publish(self) -> None:
            self._version += 1

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router)
    app.state.workspace_store = DeferredDeliveryStore()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post(f"{BASE}/accounts", json={"company": "Initech"})

    assert response.status_code == 201
    assert response.json()["company"] == "Initech"


@pytest.mark.asyncio
async def test_create_account_requires_company(client_and_store):
    """POST /accounts with an empty company -> 422."""
    client, store = client_and_store

    response = await client.post(f"{BASE}/accounts", json={"company": ""})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_duplicates(client_and_store):
    """GET /duplicates -> groups of probable duplicates."""
    client, store = client_and_store
    await client.post(f"{BASE}/accounts", json={"company": "acme inc "})

    response = await client.get(f"{BASE}/duplicates")

    assert response.status_code == 200
    groups = response.json()
    assert len(groups) == 1
    assert len(groups[0]["accounts"]) == 2


@pytest.mark.asyncio
async def test_contact_duplicates(client_and_store):
    """GET /duplicates/contacts -> [] when every contact is distinct."""
    client, store = client_and_store

    response = await client.get(f"{BASE}/duplicates/contacts")

    assert response.status_code == 200
    assert response.json() == []


# ── Import ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_import_template(client_and_store):
    """GET /imports/template -> CSV attachment."""
    client, store = client_and_store

    response = await client.get(f"{BASE}/imports/template")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "contacts_import_template.csv" in response.headers["content-disposition"]
    assert response.text.splitlines()[0] == "name,email,phone,title,company"


@pytest.mark.asyncio
async def test_import_contacts_partial_failure(client_and_store):
    """POST /imports/contacts -> 200 with a mixed report."""
    client, store = client_and_store
    body = (
        "name,email,phone,title,company\n"
        "Ann Lee,ann@initech.com,,,Initech\n"
        "No Email,,,,Initech\n"
        "Bob Ray,bob@initech.com,,,initech\n"
    )

    response = await client.post(
        f"{BASE}/imports/contacts",
        content=body.encode("utf-8"),
        headers={"content-type": "text/csv"},
    )

    assert response.status_code == 200
    report = response.json()
    assert report["success_count"] == 2
    assert report["failed_count"] == 1
    assert report["errors"][0]["row"] == 3
    initech = [a for a in store.snapshot().accounts if a.company == "Initech"]
    assert len(initech) == 1
    assert len(initech[0].contacts) == 2


@pytest.mark.asyncio
async def test_import_empty_body(client_and_store):
    """POST /imports/contacts with no rows -> row-0 error."""
    client, store = client_and_store

    response = await client.post(f"{BASE}/imports/contacts", content=b"")

    assert response.status_code == 200
    assert response.json()["errors"][0]["row"] == 0


# ── Export ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_export_selected_accounts(client_and_store, acme):
    """POST /exports/accounts -> CSV with Content-Disposition filename."""
    client, store = client_and_store

    response = await client.post(f"{BASE}/exports/accounts", json={"account_ids": [acme.id]})

    assert response.status_code == 200
    assert "customers_export_" in response.headers["content-disposition"]
    lines = response.text.split("\n")
    assert len(lines) == 2
    assert lines[1].startswith('"Acme Inc","Active",Medium,"Jane Roe; John Doe"')


@pytest.mark.asyncio
async def test_export_all_accounts(client_and_store):
    """POST /exports/accounts without ids exports every account."""
    client, store = client_and_store

    response = await client.post(f"{BASE}/exports/accounts", json={})

    assert len(response.text.split("\n")) == 3


# ── Bulk Delete ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_bulk_delete_requires_confirm(client_and_store, acme):
    """POST /bulk/delete with confirm=false -> 400 and nothing deleted."""
    client, store = client_and_store

    response = await client.post(f"{BASE}/bulk/delete", json={"account_ids": [acme.id]})

    assert response.status_code == 400
    assert "confirm" in response.json()["detail"]
    assert len(store.snapshot().accounts) == 2


@pytest.mark.asyncio
async def test_bulk_delete(client_and_store, acme):
    """POST /bulk/delete with confirm=true -> aggregate report."""
    client, store = client_and_store

    response = await client.post(
        f"{BASE}/bulk/delete",
        json={"account_ids": [acme.id, "ghost"], "confirm": True},
    )

    assert response.status_code == 200
    assert response.json() == {"attempted": 2, "deleted": 1, "confirmed": True}
    assert [a.company for a in store.snapshot().accounts] == ["Globex"]


# ── Health / Availability ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client_and_store):
    client, store = client_and_store

    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"

    response = await client.get("/health/ready")
    assert response.status_code == 200
    assert response.json()["checks"]["store"] == "ok"


@pytest.mark.asyncio
async def test_workspace_api_503_when_not_initialized():
    """app.state.workspace_store = None -> 503."""
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router)
    app.state.workspace_store = None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get(f"{BASE}/accounts")
        assert response.status_code == 503
        assert "not initialized" in response.json()["detail"]

        response = await client.get("/health/ready")
        assert response.status_code == 503
