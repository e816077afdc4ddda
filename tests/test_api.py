"""HTTP surface: routing, status codes and the error body shape."""

import httpx
import pytest

from dialorder.database import get_db
from dialorder.main import app, get_provider_factory
from dialorder.models import RestaurantStatus
from dialorder.services.tenant import TenantResolver
from tests.helpers import CALLER_PHONE, RESTAURANT_ID, RESTAURANT_PHONE, burger_selection


@pytest.fixture
async def client(session_maker, mock_factory):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider_factory] = lambda: mock_factory
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def start_call(client) -> dict:
    response = await client.post(
        "/inbound",
        json={"to_number": RESTAURANT_PHONE, "from_number": CALLER_PHONE},
    )
    assert response.status_code == 200
    return response.json()


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["database"] == "healthy"
    assert set(body["providers"]) == {"toast", "clover"}


async def test_inbound_registers_call(client, seeded):
    body = await start_call(client)

    assert body["restaurant_id"] == RESTAURANT_ID
    assert body["restaurant_name"] == "Sample Diner"
    assert body["call_id"]


async def test_inbound_unknown_number(client, seeded):
    response = await client.post(
        "/inbound",
        json={"to_number": "+19999999999", "from_number": CALLER_PHONE},
    )

    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": "no restaurant for dialed number",
        "error_code": "not_found",
        "details": {"to_number": "+19999999999"},
    }


async def test_inactive_restaurant_forbidden(client, db, seeded):
    await TenantResolver(db).set_status(RESTAURANT_ID, RestaurantStatus.INACTIVE)

    response = await client.post(
        "/inbound",
        json={"to_number": RESTAURANT_PHONE, "from_number": CALLER_PHONE},
    )

    assert response.status_code == 403
    assert response.json()["error_code"] == "forbidden"


async def test_menu_and_search(client, seeded):
    menu = await client.get("/tools/menu", params={"restaurant_id": RESTAURANT_ID})
    search = await client.post(
        "/tools/search_menu",
        json={"restaurant_id": RESTAURANT_ID, "query": "fries"},
    )

    assert menu.status_code == 200
    assert menu.json()["version"] == 1
    assert len(menu.json()["menu"]["items"]) == 4
    assert search.status_code == 200
    assert [r["id"] for r in search.json()["results"]] == ["item-fries"]


async def test_order_flow_over_http(client, seeded, mock_factory):
    call = await start_call(client)

    draft = await client.post(
        "/tools/draft_order",
        json={
            "restaurant_id": RESTAURANT_ID,
            "call_id": call["call_id"],
            "selections": [burger_selection()],
            "pickup_name": "Sam",
        },
    )
    assert draft.status_code == 200
    order_id = draft.json()["order_id"]
    assert draft.json()["draft_summary"]["subtotal_cents"] == 2398

    priced = await client.post(
        "/tools/price_order",
        json={"restaurant_id": RESTAURANT_ID, "order_id": order_id},
    )
    assert priced.status_code == 200
    assert priced.json()["totals"] == {"subtotal_cents": 2398, "tax_cents": 0, "total_cents": 2398}

    payload = {"restaurant_id": RESTAURANT_ID, "order_id": order_id, "client_order_id": "k1"}
    first = await client.post("/tools/submit_order", json=payload)
    second = await client.post("/tools/submit_order", json=payload)

    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json()["confirmation_text"] == "Order submitted to restaurant."
    assert second.json()["confirmation_text"] == "Order already submitted."
    assert second.json()["provider_order_id"] == first.json()["provider_order_id"]
    assert mock_factory.submissions == 1

    repriced = await client.post(
        "/tools/price_order",
        json={"restaurant_id": RESTAURANT_ID, "order_id": order_id},
    )
    assert repriced.status_code == 409
    assert repriced.json()["error_code"] == "conflict"


async def test_invalid_selections_listed(client, seeded):
    call = await start_call(client)

    response = await client.post(
        "/tools/draft_order",
        json={
            "restaurant_id": RESTAURANT_ID,
            "call_id": call["call_id"],
            "selections": [
                {"item_id": "item-classic-burger", "quantity": 1},
                {"item_id": "item-nope", "quantity": 1},
            ],
        },
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error_code"] == "validation_failed"
    assert len(body["details"]["errors"]) == 2


async def test_request_schema_errors_are_422(client, seeded):
    response = await client.post(
        "/tools/submit_order",
        json={"restaurant_id": RESTAURANT_ID, "order_id": "x"},
    )

    assert response.status_code == 422


async def test_credentials_upsert_hides_secrets(client, seeded):
    response = await client.put(
        f"/admin/restaurants/{RESTAURANT_ID}/credentials/toast",
        json={"external_ref": "guid-1", "client_id": "cid", "client_secret": "shh"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["provider"] == "toast"
    assert body["has_access_token"] is False
    assert "client_secret" not in body


async def test_credentials_for_unknown_provider_rejected(client, seeded):
    response = await client.put(
        f"/admin/restaurants/{RESTAURANT_ID}/credentials/square",
        json={"external_ref": "loc-1"},
    )

    assert response.status_code == 422


async def test_menu_sync_in_mock_mode_is_misconfigured(client, seeded):
    response = await client.post(f"/admin/restaurants/{RESTAURANT_ID}/menu/sync")

    assert response.status_code == 500
    assert response.json()["error_code"] == "misconfigured"
