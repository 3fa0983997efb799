import os

# Configure before the app modules read their settings.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret-key-for-the-wholesale-api-suite"
os.environ["ENABLE_DEV_ENDPOINTS"] = "false"
os.environ["SEED_ON_STARTUP"] = "false"

import pytest
from fastapi.testclient import TestClient

import database
from main import app
from models import User
from security import hash_password


@pytest.fixture(autouse=True)
def reset_db():
    database.drop_db()
    database.init_db()
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user():
    def _make(email, password="secret123", role="wholesale", status="active",
              first_name="Test", last_name="User"):
        with database.SessionLocal() as db:
            user = User(
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role=role,
                status=status,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            return user
    return _make


@pytest.fixture
def login(client):
    def _login(email, password):
        res = client.post("/api/auth/login", json={"email": email, "password": password})
        assert res.status_code == 200, res.text
        return {"Authorization": f"Bearer {res.json()['access_token']}"}
    return _login


@pytest.fixture
def admin(make_user):
    return make_user("admin@wholesale.com", "admin123", role="admin", first_name="Admin")


@pytest.fixture
def buyer(make_user):
    return make_user("wholesale@example.com", "wholesale123", role="wholesale", first_name="Wendy")


@pytest.fixture
def other_buyer(make_user):
    return make_user("retail@example.com", "retail123", role="retail", first_name="Rick")


@pytest.fixture
def admin_headers(admin, login):
    return login("admin@wholesale.com", "admin123")


@pytest.fixture
def buyer_headers(buyer, login):
    return login("wholesale@example.com", "wholesale123")


@pytest.fixture
def other_headers(other_buyer, login):
    return login("retail@example.com", "retail123")


def product_payload(handle="acme-drill", **overrides):
    payload = {
        "title": "Acme Drill",
        "description": "Cordless drill",
        "handle": handle,
        "vendor": "Acme",
        "product_type": "Tools",
        "tags": ["drill", "cordless"],
        "status": "active",
        "variants": [
            {"title": "Default", "sku": f"{handle.upper()}-1", "price": 50.0, "inventory_quantity": 10},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def create_product(client, admin_headers):
    def _create(handle="acme-drill", **overrides):
        res = client.post("/api/products", json=product_payload(handle, **overrides), headers=admin_headers)
        assert res.status_code == 201, res.text
        return res.json()
    return _create


@pytest.fixture
def address():
    return {
        "first_name": "Wendy",
        "last_name": "Buyer",
        "address1": "1 Market St",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
        "country": "US",
        "phone": "555-0100",
    }
