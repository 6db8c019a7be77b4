from datetime import datetime, timedelta, timezone
from itertools import count

import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from database import DocumentStore
from schemas import Category, Product
from seed import seed_catalogue


class FixedClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class SequentialIds:
    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self._counter = count(1)

    def __call__(self) -> str:
        return f"{self.prefix}_{next(self._counter)}"


def make_product(product_id: str = "p1", price: float = 10.0, **kwargs) -> Product:
    kwargs.setdefault("name", f"Product {product_id}")
    kwargs.setdefault("category", Category(id="electronics", name="Electronics"))
    return Product(id=product_id, price=price, **kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def ids():
    return SequentialIds()


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def store(mongo_db):
    return DocumentStore(mongo_db)


@pytest.fixture
def seeded_store(store, clock):
    seed_catalogue(store, now=clock())
    return store


@pytest.fixture
def api_store(store):
    # the HTTP layer runs on the real clock, so flash-sale windows must too
    seed_catalogue(store)
    return store


@pytest.fixture
def client(api_store):
    main.app.dependency_overrides[main.get_store] = lambda: api_store
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


def signup(client, email="ana@example.com", name="Ana Silva", password="secret123"):
    resp = client.post("/api/auth/signup", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def auth(client):
    return signup(client)


@pytest.fixture
def admin_auth(client, mongo_db):
    headers = signup(client, email="admin@example.com", name="Store Admin")
    mongo_db["users"].update_one({"email": "admin@example.com"}, {"$set": {"role": "ADMIN"}})
    return headers
