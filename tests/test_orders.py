import uuid
from datetime import datetime, timedelta, timezone

import pytest

import database
import services
from models import Order


@pytest.fixture
def drill(create_product):
    return create_product("acme-drill", variants=[
        {"title": "Bare", "sku": "DRL-BARE", "price": 19.99, "inventory_quantity": 10, "option1": "Bare"},
        {"title": "Kit", "sku": "DRL-KIT", "price": 50.0, "inventory_quantity": 2, "option1": "Kit"},
    ])


@pytest.fixture
def place_order(client, address, drill):
    def _place(headers, items=None, **extra):
        payload = {
            "items": items or [{"product_id": drill["id"], "sku": "DRL-BARE", "quantity": 3}],
            "shipping_address": address,
            "payment_method": "invoice",
        }
        payload.update(extra)
        return client.post("/api/orders", json=payload, headers=headers)
    return _place


def inventory(client, product_id, sku):
    return client.get(f"/api/products/{product_id}/inventory", params={"sku": sku}).json()["inventory_quantity"]


def test_create_order_snapshots_and_totals(client, buyer, buyer_headers, drill, place_order):
    res = place_order(buyer_headers, items=[
        {"product_id": drill["id"], "sku": "DRL-BARE", "quantity": 3},
        {"product_id": drill["id"], "sku": "DRL-KIT", "quantity": 1},
    ])
    assert res.status_code == 201
    order = res.json()
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert order["user_id"] == str(buyer.id)
    assert order["user_email"] == "wholesale@example.com"
    assert order["order_number"] == datetime.now(timezone.utc).strftime("%Y%m%d") + "0001"
    assert order["subtotal"] == pytest.approx(109.97)
    assert order["total_amount"] == pytest.approx(
        order["subtotal"] + order["tax_amount"] + order["shipping_amount"]
    )
    assert order["total_items"] == 4
    assert order["can_be_cancelled"] is True
    assert order["billing_address"] == order["shipping_address"]

    items = {i["sku"]: i for i in order["items"]}
    assert items["DRL-BARE"]["unit_price"] == 19.99
    assert items["DRL-BARE"]["total_price"] == pytest.approx(59.97)
    assert items["DRL-KIT"]["product_title"] == "Acme Drill"
    assert items["DRL-KIT"]["option1"] == "Kit"

    assert inventory(client, drill["id"], "DRL-BARE") == 7
    assert inventory(client, drill["id"], "DRL-KIT") == 1


def test_order_numbers_increment(client, buyer_headers, place_order):
    first = place_order(buyer_headers).json()["order_number"]
    second = place_order(buyer_headers).json()["order_number"]
    assert int(second[-4:]) == int(first[-4:]) + 1


def test_tax_and_shipping(client, buyer_headers, place_order, monkeypatch):
    monkeypatch.setattr(services, "DEFAULT_TAX_RATE", 0.1)
    monkeypatch.setattr(services, "SHIPPING_EXPRESS", 25.0)
    order = place_order(buyer_headers, shipping_method="express").json()
    assert order["subtotal"] == pytest.approx(59.97)
    assert order["tax_amount"] == pytest.approx(6.0)
    assert order["shipping_amount"] == 25.0
    assert order["total_amount"] == pytest.approx(90.97)


def test_free_shipping_threshold(monkeypatch):
    monkeypatch.setattr(services, "SHIPPING_STANDARD", 9.0)
    monkeypatch.setattr(services, "FREE_SHIPPING_THRESHOLD", 100.0)
    assert services.compute_totals(50.0)["shipping"] == 9.0
    assert services.compute_totals(100.0)["shipping"] == 0.0


def test_insufficient_inventory_rejected(client, buyer_headers, drill, place_order):
    res = place_order(buyer_headers, items=[{"product_id": drill["id"], "sku": "DRL-KIT", "quantity": 3}])
    assert res.status_code == 400
    assert "DRL-KIT" in res.json()["detail"]
    assert inventory(client, drill["id"], "DRL-KIT") == 2


def test_repeated_lines_count_against_inventory(client, buyer_headers, drill, place_order):
    res = place_order(buyer_headers, items=[
        {"product_id": drill["id"], "sku": "DRL-KIT", "quantity": 2},
        {"product_id": drill["id"], "sku": "DRL-KIT", "quantity": 1},
    ])
    assert res.status_code == 400


def test_unknown_product_or_variant_rejected(client, buyer_headers, drill, place_order):
    assert place_order(buyer_headers, items=[
        {"product_id": str(uuid.uuid4()), "sku": "DRL-BARE", "quantity": 1},
    ]).status_code == 400
    assert place_order(buyer_headers, items=[
        {"product_id": drill["id"], "sku": "NOPE", "quantity": 1},
    ]).status_code == 400


def test_draft_product_cannot_be_ordered(client, buyer_headers, create_product, place_order):
    draft = create_product("draft-drill", status="draft")
    res = place_order(buyer_headers, items=[{"product_id": draft["id"], "sku": "DRAFT-DRILL-1", "quantity": 1}])
    assert res.status_code == 400


def test_order_requires_items_and_auth(client, address, buyer_headers, drill):
    assert client.post("/api/orders", json={"items": [], "shipping_address": address},
                       headers=buyer_headers).status_code == 400
    items = [{"product_id": drill["id"], "sku": "DRL-BARE", "quantity": 1}]
    assert client.post("/api/orders", json={"items": items, "shipping_address": address}).status_code == 401


def test_owner_and_admin_see_order_others_do_not(client, buyer_headers, other_headers, admin_headers, place_order):
    order = place_order(buyer_headers).json()
    assert client.get(f"/api/orders/{order['id']}", headers=buyer_headers).status_code == 200
    assert client.get(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/orders/{order['id']}", headers=other_headers).status_code == 404
    number = order["order_number"]
    assert client.get(f"/api/orders/number/{number}", headers=buyer_headers).json()["id"] == order["id"]
    assert client.get(f"/api/orders/number/{number}", headers=other_headers).status_code == 404


def test_order_search_is_scoped_to_owner(client, buyer_headers, other_headers, admin_headers, place_order):
    place_order(buyer_headers)
    place_order(buyer_headers)
    place_order(other_headers)

    assert client.get("/api/orders", headers=buyer_headers).json()["total_count"] == 2
    assert client.get("/api/orders", headers=other_headers).json()["total_count"] == 1
    assert client.get("/api/orders", headers=admin_headers).json()["total_count"] == 3
    assert client.get("/api/orders/count", headers=buyer_headers).json() == {"count": 2}

    by_email = client.get("/api/orders", params={"search": "retail@"}, headers=admin_headers).json()
    assert by_email["total_count"] == 1


def test_admin_updates_status_shipping_and_payment(client, buyer_headers, admin_headers, place_order):
    order = place_order(buyer_headers).json()

    res = client.put(f"/api/orders/{order['id']}/status", json={"status": "shipped"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["status"] == "shipped"
    assert res.json()["shipped_at"] is not None

    res = client.put(f"/api/orders/{order['id']}/shipping",
                     json={"tracking_number": "1Z999", "tracking_url": "https://track.example.com/1Z999"},
                     headers=admin_headers)
    assert res.json()["tracking_number"] == "1Z999"
    assert res.json()["is_shipped"] is True

    res = client.put(f"/api/orders/{order['id']}/payment",
                     json={"payment_status": "paid", "transaction_id": "tx-1"}, headers=admin_headers)
    assert res.json()["payment_status"] == "paid"


def test_status_update_validation_and_permissions(client, buyer_headers, admin_headers, place_order):
    order = place_order(buyer_headers).json()
    url = f"/api/orders/{order['id']}/status"
    assert client.put(url, json={"status": "teleported"}, headers=admin_headers).status_code == 400
    assert client.put(url, json={"status": "confirmed"}, headers=buyer_headers).status_code == 403


def test_cancel_restocks_inventory(client, buyer_headers, drill, place_order):
    order = place_order(buyer_headers).json()
    assert inventory(client, drill["id"], "DRL-BARE") == 7

    res = client.post(f"/api/orders/{order['id']}/cancel", headers=buyer_headers)
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"
    assert inventory(client, drill["id"], "DRL-BARE") == 10

    again = client.post(f"/api/orders/{order['id']}/cancel", headers=buyer_headers)
    assert again.status_code == 400


def test_shipped_order_cannot_be_cancelled(client, buyer_headers, admin_headers, place_order):
    order = place_order(buyer_headers).json()
    client.put(f"/api/orders/{order['id']}/status", json={"status": "shipped"}, headers=admin_headers)
    assert client.post(f"/api/orders/{order['id']}/cancel", headers=buyer_headers).status_code == 400


def test_stats_and_delete(client, buyer_headers, admin_headers, place_order):
    first = place_order(buyer_headers).json()
    place_order(buyer_headers)

    assert client.get("/api/orders/stats", headers=buyer_headers).status_code == 403
    stats = client.get("/api/orders/stats", headers=admin_headers).json()
    assert stats["total_orders"] == 2
    assert stats["by_status"] == {"pending": 2}
    assert stats["revenue"] == pytest.approx(2 * first["total_amount"])

    assert client.delete(f"/api/orders/{first['id']}", headers=buyer_headers).status_code == 403
    assert client.delete(f"/api/orders/{first['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/api/orders/{first['id']}", headers=admin_headers).status_code == 404


def test_product_in_orders_cannot_be_deleted(client, buyer_headers, admin_headers, drill, place_order):
    place_order(buyer_headers)
    res = client.delete(f"/api/products/{drill['id']}", headers=admin_headers)
    assert res.status_code == 409


def test_order_number_sequence_passes_four_digits(client, buyer_headers, place_order):
    first = place_order(buyer_headers).json()
    prefix = datetime.now(timezone.utc).strftime("%Y%m%d")
    with database.SessionLocal() as db:
        db.get(Order, uuid.UUID(first["id"])).order_number = prefix + "9999"
        db.commit()

    assert place_order(buyer_headers).json()["order_number"] == prefix + "10000"
    assert place_order(buyer_headers).json()["order_number"] == prefix + "10001"


def test_created_range_and_stats_honour_utc_offsets(client, buyer_headers, admin_headers, place_order):
    order = place_order(buyer_headers).json()
    now = datetime.now(timezone.utc)
    later_in_new_york = (now + timedelta(hours=1)).astimezone(timezone(timedelta(hours=-5))).isoformat()
    earlier_in_karachi = (now - timedelta(hours=1)).astimezone(timezone(timedelta(hours=5))).isoformat()

    def total(**params):
        return client.get("/api/orders", params=params, headers=admin_headers).json()["total_count"]

    assert total(created_from=later_in_new_york) == 0
    assert total(created_to=earlier_in_karachi) == 0
    assert total(created_from=earlier_in_karachi, created_to=later_in_new_york) == 1

    def revenue(**params):
        return client.get("/api/orders/stats", params=params, headers=admin_headers).json()["revenue"]

    assert revenue(from_date=later_in_new_york) == 0
    assert revenue(to_date=earlier_in_karachi) == 0
    assert revenue(from_date=earlier_in_karachi) == pytest.approx(order["total_amount"])
