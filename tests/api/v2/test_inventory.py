"""
Tests for the inventory API endpoints (/api/v2/inventory).

Items are created through the API (POST) so every test exercises the same
path a client would, including the INITIAL movement for opening stock.
"""
import pytest

from tests.factories import FinancialsUpdateFactory, InventoryItemFactory

INVENTORY_PREFIX = "/api/v2/inventory"
MISSING_ID = "00000000-0000-0000-0000-000000000000"


async def _create(client, **overrides):
    response = await client.post(INVENTORY_PREFIX, json=InventoryItemFactory(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_item(client):
    payload = InventoryItemFactory(quantity=12, min_stock_level=3, cost="40.00", price="50.00")

    response = await client.post(INVENTORY_PREFIX, json=payload)

    assert response.status_code == 201
    data = response.json()
    assert data["sku"] == payload["sku"]
    assert data["quantity"] == 12
    assert data["stock_status"] == "normal"
    assert data["margin"] == "25.00"
    assert data["margin_category"] == "medium"


@pytest.mark.asyncio
async def test_create_duplicate_sku(client):
    item = await _create(client)

    response = await client.post(INVENTORY_PREFIX, json=InventoryItemFactory(sku=item["sku"]))

    assert response.status_code == 409
    assert response.headers["content-type"] == "application/problem+json"
    assert response.json()["code"] == "RES_002"


@pytest.mark.asyncio
async def test_create_rejects_negative_quantity(client):
    response = await client.post(INVENTORY_PREFIX, json=InventoryItemFactory(quantity=-1))

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "VAL_001"
    assert any(e["field"].endswith("quantity") for e in body["errors"])


@pytest.mark.asyncio
async def test_get_item_and_by_sku(client):
    item = await _create(client)

    by_id = await client.get(f"{INVENTORY_PREFIX}/{item['id']}")
    by_sku = await client.get(f"{INVENTORY_PREFIX}/sku/{item['sku']}")

    assert by_id.status_code == 200
    assert by_sku.json()["id"] == item["id"]


@pytest.mark.asyncio
async def test_missing_item_problem_detail(client):
    response = await client.get(f"{INVENTORY_PREFIX}/{MISSING_ID}", headers={"X-Request-ID": "req-404"})

    assert response.status_code == 404
    assert response.headers["content-type"] == "application/problem+json"
    assert response.headers["X-Request-ID"] == "req-404"
    body = response.json()
    assert body["code"] == "RES_001"
    assert body["trace_id"] == "req-404"
    assert body["instance"] == f"{INVENTORY_PREFIX}/{MISSING_ID}"
    assert MISSING_ID in body["detail"]


@pytest.mark.asyncio
async def test_list_items(client):
    for _ in range(3):
        await _create(client)

    response = await client.get(INVENTORY_PREFIX, params={"page_size": 2})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert len(data["items"]) == 2


# ---------------------------------------------------------------------------
# Stock operations
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_stock(client):
    item = await _create(client, quantity=5)

    response = await client.post(
        f"{INVENTORY_PREFIX}/{item['id']}/add-stock",
        json={"quantity": 10, "notes": "restock"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["item"]["quantity"] == 15
    assert data["movement"]["type"] == "STOCK_IN"
    assert data["movement"]["quantity"] == 10
    assert data["movement"]["signed_quantity"] == 10


@pytest.mark.asyncio
async def test_add_stock_rejects_zero(client):
    item = await _create(client)

    response = await client.post(f"{INVENTORY_PREFIX}/{item['id']}/add-stock", json={"quantity": 0})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_remove_stock_insufficient(client):
    item = await _create(client, quantity=5)

    response = await client.post(f"{INVENTORY_PREFIX}/{item['id']}/remove-stock", json={"quantity": 7})

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "BIZ_001"
    assert body["detail"] == "Insufficient stock. Available: 5, requested: 7"
    assert "retryable" not in body

    after = await client.get(f"{INVENTORY_PREFIX}/{item['id']}")
    assert after.json()["quantity"] == 5


@pytest.mark.asyncio
async def test_adjust_stock(client):
    item = await _create(client, quantity=10)

    response = await client.post(f"{INVENTORY_PREFIX}/{item['id']}/adjust-stock", json={"new_quantity": 3})

    data = response.json()
    assert data["item"]["quantity"] == 3
    assert data["movement"]["type"] == "ADJUSTMENT"
    assert data["movement"]["quantity"] == 7
    assert data["movement"]["signed_quantity"] == -7


@pytest.mark.asyncio
async def test_adjust_stock_zero_delta(client):
    item = await _create(client, quantity=4)

    response = await client.post(f"{INVENTORY_PREFIX}/{item['id']}/adjust-stock", json={"new_quantity": 4})

    assert response.status_code == 200
    assert response.json()["movement"] is None


@pytest.mark.asyncio
async def test_movements_and_reconcile(client):
    item = await _create(client, quantity=6)
    await client.post(f"{INVENTORY_PREFIX}/{item['id']}/remove-stock", json={"quantity": 2})
    await client.post(f"{INVENTORY_PREFIX}/{item['id']}/adjust-stock", json={"new_quantity": 9})

    movements = await client.get(f"{INVENTORY_PREFIX}/{item['id']}/movements")
    reconcile = await client.get(f"{INVENTORY_PREFIX}/{item['id']}/reconcile")
    stock_out = await client.get(f"{INVENTORY_PREFIX}/movements", params={"type": "STOCK_OUT"})

    assert [m["type"] for m in movements.json()] == ["ADJUSTMENT", "STOCK_OUT", "INITIAL"]
    assert reconcile.json() == {
        "item_id": item["id"],
        "quantity": 9,
        "ledger_total": 9,
        "movement_count": 3,
        "consistent": True,
    }
    assert stock_out.json()["total"] == 1


@pytest.mark.asyncio
async def test_delete_item(client):
    item = await _create(client, quantity=4)
    await client.post(f"{INVENTORY_PREFIX}/{item['id']}/add-stock", json={"quantity": 1})

    response = await client.delete(f"{INVENTORY_PREFIX}/{item['id']}")

    assert response.status_code == 200
    data = response.json()
    assert data["deleted"] is True
    assert data["movements_deleted"] == 2
    assert data["price_history_deleted"] == 0
    assert data["item"]["id"] == item["id"]
    assert (await client.get(f"{INVENTORY_PREFIX}/{item['id']}")).status_code == 404


# ---------------------------------------------------------------------------
# Financials
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_financials(client):
    item = await _create(client, cost="50", price="100")

    response = await client.patch(
        f"{INVENTORY_PREFIX}/{item['id']}/financials",
        json={"price": "120", "change_reason": "Vendor increase"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["price"] == "120.00"
    assert body["data"]["margin"] == "140.00"
    assert body["price_history"]["old_price"] == "100.00"
    assert body["price_history"]["new_price"] == "120.00"
    assert body["price_history"]["change_reason"] == "Vendor increase"


@pytest.mark.asyncio
async def test_update_financials_without_change(client):
    item = await _create(client, cost="50", price="100")

    response = await client.patch(f"{INVENTORY_PREFIX}/{item['id']}/financials", json={"price": "100"})

    assert response.status_code == 200
    assert response.json()["price_history"] is None
    history = await client.get(f"{INVENTORY_PREFIX}/{item['id']}/price-history")
    assert history.json() == []


@pytest.mark.asyncio
async def test_update_financials_empty_body(client):
    item = await _create(client)

    response = await client.patch(f"{INVENTORY_PREFIX}/{item['id']}/financials", json={})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "No financial data provided for update."
    assert body["data"] is None


@pytest.mark.asyncio
async def test_update_financials_rejects_negative(client):
    item = await _create(client)

    response = await client.patch(f"{INVENTORY_PREFIX}/{item['id']}/financials", json={"cost": "-5"})

    assert response.status_code == 422
    assert response.json()["code"] == "VAL_001"


@pytest.mark.asyncio
async def test_update_financials_missing_item(client):
    response = await client.patch(
        f"{INVENTORY_PREFIX}/{MISSING_ID}/financials",
        json=FinancialsUpdateFactory(),
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_actor_header_attribution(client, test_user):
    item = await _create(client, cost="10", price="20")

    response = await client.patch(
        f"{INVENTORY_PREFIX}/{item['id']}/financials",
        json=FinancialsUpdateFactory(price="30"),
        headers={"X-Actor-Id": str(test_user.id)},
    )
    history = await client.get(f"{INVENTORY_PREFIX}/{item['id']}/price-history")

    assert response.json()["price_history"]["user_id"] == test_user.id
    assert history.json()[0]["user"]["email"] == test_user.email


@pytest.mark.asyncio
async def test_price_history_defaults_to_system_user(client):
    item = await _create(client, cost="10", price="20")
    await client.patch(f"{INVENTORY_PREFIX}/{item['id']}/financials", json={"margin": "50"})

    history = (await client.get(f"{INVENTORY_PREFIX}/{item['id']}/price-history")).json()

    assert len(history) == 1
    assert history[0]["new_price"] == "15.00"
    assert history[0]["user"]["email"] == "system@inventory.local"


@pytest.mark.asyncio
async def test_price_history_feed(client, test_user):
    valve = await _create(client, name="Brass Valve", cost="10", price="20", category_id="plumbing")
    wire = await _create(client, name="Copper Wire", cost="10", price="20", category_id="electrical")
    for item, price in ((valve, "25"), (wire, "30")):
        await client.patch(
            f"{INVENTORY_PREFIX}/{item['id']}/financials",
            json={"price": price},
            headers={"X-Actor-Id": str(test_user.id)},
        )

    feed = await client.get(f"{INVENTORY_PREFIX}/price-history")
    plumbing = await client.get(f"{INVENTORY_PREFIX}/price-history", params={"category_id": "plumbing"})
    by_product = await client.get(f"{INVENTORY_PREFIX}/price-history", params={"sort": "product-desc", "search": "r"})

    assert feed.status_code == 200
    assert [h["new_price"] for h in feed.json()] == ["30.00", "25.00"]
    assert [h["inventory_item"]["sku"] for h in plumbing.json()] == [valve["sku"]]
    assert plumbing.json()[0]["user"]["display_name"] == "Test Buyer"
    assert [h["inventory_item"]["name"] for h in by_product.json()] == ["Copper Wire", "Brass Valve"]


@pytest.mark.asyncio
async def test_price_history_feed_rejects_oversized_limit(client):
    response = await client.get(f"{INVENTORY_PREFIX}/price-history", params={"limit": 500})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_datastore_failure_on_read_is_masked(client, failing_statements):
    item = await _create(client)
    failing_statements("SELECT inventory_items", "disk I/O error")

    response = await client.get(f"{INVENTORY_PREFIX}/{item['id']}")

    assert response.status_code == 500
    assert response.headers["content-type"] == "application/problem+json"
    body = response.json()
    assert body["code"] == "EXT_004"
    assert body["detail"] == "A datastore error occurred; no changes were applied"


@pytest.mark.asyncio
async def test_locked_read_returns_retryable_conflict(client, failing_statements):
    item = await _create(client)
    failing_statements("SELECT inventory_items", "database is locked")

    response = await client.get(f"{INVENTORY_PREFIX}/{item['id']}")

    assert response.status_code == 409
    assert response.headers["Retry-After"] == "1"
    assert response.json()["code"] == "RES_003"


# ---------------------------------------------------------------------------
# Thresholds, location and alerts
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_min_level_and_alerts(client):
    item = await _create(client, quantity=4, min_stock_level=2)
    assert (await client.get(f"{INVENTORY_PREFIX}/alerts")).json()["total"] == 0

    response = await client.patch(f"{INVENTORY_PREFIX}/{item['id']}/min-level", json={"min_level": 4})
    alerts = (await client.get(f"{INVENTORY_PREFIX}/alerts")).json()

    assert response.json()["stock_status"] == "low"
    assert alerts["total"] == 1
    assert alerts["items"][0]["status"] == "low"


@pytest.mark.asyncio
async def test_update_location(client):
    item = await _create(client)

    response = await client.patch(f"{INVENTORY_PREFIX}/{item['id']}/location", json={"location": "Van 2"})

    assert response.json()["location"] == "Van 2"


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
