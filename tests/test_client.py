import pytest

from client import ApiError, TokenStore, WholesaleClient
from conftest import product_payload


@pytest.fixture
def api(client):
    return WholesaleClient("http://testserver", session=client, timeout=None)


def test_login_stores_tokens(api, admin):
    api.login("admin@wholesale.com", "admin123")
    assert api.tokens.is_authenticated
    assert api.tokens.is_admin
    assert api.profile()["email"] == "admin@wholesale.com"


def test_register_then_login(api):
    user = api.register("fresh@example.com", "secret123", "Fresh", "Buyer", role="retail")
    assert user["role"] == "retail"
    api.login("fresh@example.com", "secret123")
    assert not api.tokens.is_admin
    assert api.validate_password("secret123") is True


def test_problem_details_become_api_errors(api, admin):
    api.login("admin@wholesale.com", "admin123")
    api.create_product(product_payload("acme-drill"))
    with pytest.raises(ApiError) as exc:
        api.create_product(product_payload("acme-drill"))
    assert exc.value.status == 409
    assert exc.value.title == "Product creation failed"
    assert "acme-drill" in exc.value.detail


def test_product_helpers(api, admin):
    api.login("admin@wholesale.com", "admin123")
    created = api.create_product(product_payload("acme-drill"))
    assert api.get_product("acme-drill")["id"] == created["id"]
    assert api.count_products() == 1
    assert api.search_products(search="drill", page_size=5)["total_count"] == 1
    assert api.update_inventory(created["id"], "ACME-DRILL-1", -3)["inventory_quantity"] == 7
    assert api.get_inventory(created["id"], "ACME-DRILL-1") == 7
    api.delete_product(created["id"])
    with pytest.raises(ApiError) as exc:
        api.get_product(created["id"])
    assert exc.value.status == 404


def test_expired_access_token_is_refreshed_once(api, buyer):
    api.login("wholesale@example.com", "wholesale123")
    old_refresh = api.tokens.refresh_token
    api.tokens.access_token = "expired.or.garbage"

    profile = api.profile()
    assert profile["email"] == "wholesale@example.com"
    assert api.tokens.access_token != "expired.or.garbage"
    assert api.tokens.refresh_token != old_refresh


def test_failed_refresh_clears_the_store(api, buyer):
    api.login("wholesale@example.com", "wholesale123")
    api.tokens.access_token = "expired.or.garbage"
    api.tokens.refresh_token = "revoked"

    with pytest.raises(ApiError) as exc:
        api.profile()
    assert exc.value.status == 401
    assert not api.tokens.is_authenticated
    assert api.tokens.user is None


def test_logout_clears_tokens(api, buyer):
    api.login("wholesale@example.com", "wholesale123")
    api.logout()
    assert not api.tokens.is_authenticated
    with pytest.raises(ApiError) as exc:
        api.profile()
    assert exc.value.status == 401


def test_orders_through_client(api, admin, buyer, address):
    admin_api = WholesaleClient("http://testserver", session=api.session, timeout=None)
    admin_api.login("admin@wholesale.com", "admin123")
    product = admin_api.create_product(product_payload("acme-drill"))

    api.login("wholesale@example.com", "wholesale123")
    order = api.create_order({
        "items": [{"product_id": product["id"], "sku": "ACME-DRILL-1", "quantity": 2}],
        "shipping_address": address,
    })
    assert api.get_order_by_number(order["order_number"])["id"] == order["id"]
    assert api.search_orders()["total_count"] == 1
    assert api.cancel_order(order["id"])["status"] == "cancelled"
    assert admin_api.order_stats()["by_status"] == {"cancelled": 1}


def test_token_store_defaults():
    store = TokenStore()
    assert not store.is_authenticated
    assert not store.is_admin
    store.set({"access_token": "a", "refresh_token": "r", "user": {"role": "admin"}})
    assert store.is_admin
    store.clear()
    assert store.refresh_token is None
