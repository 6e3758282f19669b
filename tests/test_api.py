"""Tests for the HTTP API."""
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient, ASGITransport

from shuttle_wallet.main import create_app, status_code_for
from shuttle_wallet.utils.exceptions import (
    ConcurrentModificationError,
    CorruptDocumentError,
    StoreUnavailableError,
    UserNotFoundError,
)

API_BASE_URL = "http://test"


@pytest.fixture
def fake_dispatcher():
    dispatcher = AsyncMock()
    dispatcher.send_weekly_report = AsyncMock(return_value=True)
    return dispatcher


@pytest.fixture
async def test_app(store, lock_client, fake_dispatcher):
    """App wired to the per-test store, with its lifespan running."""
    app = create_app(store=store, lock_client=lock_client, dispatcher=fake_dispatcher, create_tables=False)
    async with app.router.lifespan_context(app):
        yield app


@pytest.fixture
async def client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url=API_BASE_URL) as http_client:
        yield http_client


async def _create_user(client, name="Mint", initial_balance="100"):
    response = await client.post(
        "/users", json={"name": name, "credential": "pw", "initial_balance": initial_balance}
    )
    assert response.status_code == 201
    return response.json()


def test_error_kinds_map_to_status_codes():
    assert status_code_for(UserNotFoundError("x")) == 404
    assert status_code_for(CorruptDocumentError("x")) == 400
    assert status_code_for(ConcurrentModificationError("x")) == 409
    assert status_code_for(StoreUnavailableError("x")) == 503


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"
    assert data["locks"] == "memory"
    assert data["user_directory"]["subscribed"] is True


@pytest.mark.asyncio
async def test_create_and_list_users(client):
    created = await _create_user(client)

    assert created["name"] == "Mint"
    assert Decimal(created["balance"]) == Decimal("100")
    assert created["role"] == "member"
    assert "credential" not in created
    assert "credential_hash" not in created

    response = await client.get("/users")
    assert response.status_code == 200
    assert [u["id"] for u in response.json()] == [created["id"]]


@pytest.mark.asyncio
async def test_top_up_and_deduct(client):
    user = await _create_user(client, initial_balance="50")

    response = await client.post(f"/users/{user['id']}/top-up", json={"amount": "25", "description": "Cash"})
    assert response.status_code == 200
    assert Decimal(response.json()["new_balance"]) == Decimal("75")

    response = await client.post(f"/users/{user['id']}/deduct", json={"amount": "100", "description": "Session"})
    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["previous_balance"]) == Decimal("75")
    assert Decimal(data["new_balance"]) == Decimal("-25")

    history = (await client.get(f"/users/{user['id']}/transactions")).json()
    assert history["count"] == 2
    assert [Decimal(t["amount"]) for t in history["transactions"]] == [Decimal("-100"), Decimal("25")]
    assert history["transactions"][0]["timestamp"].endswith("Z")

    audit = (await client.get(f"/users/{user['id']}/audit")).json()
    assert audit["is_consistent"] is True


@pytest.mark.asyncio
async def test_invalid_amount_is_400(client):
    user = await _create_user(client)

    response = await client.post(f"/users/{user['id']}/top-up", json={"amount": "0"})

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidArgumentError"


@pytest.mark.asyncio
async def test_malformed_amount_is_422(client):
    user = await _create_user(client)

    response = await client.post(f"/users/{user['id']}/top-up", json={"amount": "lots"})

    assert response.status_code == 422
    assert response.json()["detail"] == "Request validation failed"


@pytest.mark.asyncio
async def test_amount_beyond_storable_range_is_400(client):
    user = await _create_user(client)

    response = await client.post(f"/users/{user['id']}/top-up", json={"amount": "10000000000"})

    assert response.status_code == 400
    assert response.json()["error"] == "InvalidArgumentError"


@pytest.mark.asyncio
async def test_overlong_user_name_is_422(client):
    user = await _create_user(client)

    response = await client.post(
        f"/users/{user['id']}/top-up", json={"amount": "10", "user_name": "x" * 101}
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_user_is_404(client):
    response = await client.post("/users/nobody/deduct", json={"amount": "10"})
    assert response.status_code == 404

    response = await client.delete("/users/nobody")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_user_keeps_history(client):
    user = await _create_user(client)
    await client.post(f"/users/{user['id']}/top-up", json={"amount": "10"})

    response = await client.delete(f"/users/{user['id']}")
    assert response.status_code == 204

    assert (await client.get("/users")).json() == []
    everything = (await client.get("/transactions")).json()
    assert everything["count"] == 1
    assert everything["transactions"][0]["user_id"] == user["id"]


@pytest.mark.asyncio
async def test_update_credential(client):
    user = await _create_user(client)

    response = await client.put(f"/users/{user['id']}/credential", json={"credential": "new"})

    assert response.status_code == 204


@pytest.mark.asyncio
async def test_transaction_limit_must_be_positive(client):
    response = await client.get("/transactions", params={"limit": 0})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_weekly_report_flow(client, fake_dispatcher):
    response = await client.put("/reports/running-balance", json={"running_balance": "-400"})
    assert response.status_code == 200
    assert Decimal(response.json()["running_balance"]) == Decimal("-400")

    payload = {
        "week_start": "2025-11-10",
        "session_count": 2,
        "total_players": 24,
        "court_cost": "1200",
        "shuttlecock_cost": "300",
        "base_price": "100",
    }
    response = await client.post("/reports/weekly", json=payload)
    assert response.status_code == 201
    report = response.json()
    assert report["week_id"] == "2025-W46"
    assert Decimal(report["gross_profit"]) == Decimal("-1500")
    assert Decimal(report["running_balance"]) == Decimal("-1900")
    assert Decimal(report["price_adjustment"]) == Decimal("-475")
    assert Decimal(report["recommended_price"]) == Decimal("575")

    response = await client.post("/reports/weekly", json=payload)
    assert response.status_code == 400

    reports = (await client.get("/reports/weekly")).json()
    assert [r["week_id"] for r in reports] == ["2025-W46"]

    balance = (await client.get("/reports/running-balance")).json()
    assert Decimal(balance["running_balance"]) == Decimal("-1900")


@pytest.mark.asyncio
async def test_weekly_report_without_costs_is_400(client):
    response = await client.post("/reports/weekly", json={"week_start": "2025-11-10", "court_cost": "100"})

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_weekly_report_can_skip_notification(client, fake_dispatcher):
    payload = {"week_start": "2025-11-10", "court_cost": "0", "shuttlecock_cost": "0"}

    response = await client.post("/reports/weekly", params={"notify": "false"}, json=payload)

    assert response.status_code == 201
    fake_dispatcher.send_weekly_report.assert_not_called()
