import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")

import itertools

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document, ensure_indexes
from main import create_app
from schemas import Role
from security import hash_password

_seq = itertools.count(1)


@pytest.fixture
def db():
    database = mongomock.MongoClient().marketplace
    ensure_indexes(database)
    return database


@pytest.fixture
def client(db):
    with TestClient(create_app(db)) as c:
        yield c


@pytest.fixture
def make_user(client):
    def _make(**overrides):
        n = next(_seq)
        payload = {
            "name": f"User {n}",
            "email": f"user{n}@mail.com",
            "password": "secret123",
            "phone": "+15550000",
            "address": "1 Main St",
        }
        payload.update(overrides)
        res = client.post("/users", json=payload)
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make


@pytest.fixture
def make_store(client):
    def _make(**overrides):
        payload = {"name": f"Store {next(_seq)}", "description": "General goods"}
        payload.update(overrides)
        res = client.post("/stores", json=payload)
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make


@pytest.fixture
def make_product(client, make_store):
    def _make(**overrides):
        if "store_id" not in overrides:
            overrides["store_id"] = make_store()["id"]
        payload = {
            "name": f"Product {next(_seq)}",
            "standard_price": 20.0,
            "description": "A product",
            "quantity": 10,
        }
        payload.update(overrides)
        res = client.post("/products", json=payload)
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make


@pytest.fixture
def make_category(client):
    def _make(**overrides):
        payload = {"name": f"Category {next(_seq)}", "topic": "misc"}
        payload.update(overrides)
        res = client.post("/categories", json=payload)
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make


@pytest.fixture
def make_cart(client, make_user):
    def _make(user_id=None):
        user_id = user_id or make_user()["id"]
        res = client.post("/carts", json={"user_id": user_id})
        assert res.status_code == 201, res.text
        return res.json()["data"]
    return _make


@pytest.fixture
def login(client):
    def _login(email, password="secret123"):
        res = client.post("/auth/login", data={"email": email, "password": password})
        assert res.status_code == 200, res.text
        return {"Authorization": f"Bearer {res.json()['data']['access_token']}"}
    return _login


@pytest.fixture
def admin_headers(db, login):
    # admins are never created through the API
    create_document(db, "users", {
        "name": "Root",
        "email": "root@mail.com",
        "password_hash": hash_password("secret123"),
        "role": Role.ADMIN.value,
        "status": "active",
    })
    return login("root@mail.com")
