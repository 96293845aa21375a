"""Test fixtures for the storefront service tests."""

import pytest
from fastapi.testclient import TestClient

from storefront_service.auth import TokenClaims
from storefront_service.config import Settings
from storefront_service.server import StorefrontState, app, get_state
from storefront_service.store import InMemoryRecordStore


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


def make_product(product_id: str, sizes: list, **overrides) -> dict:
    """Build a product row as stored in the ``products`` table."""
    row = {
        "product_id": product_id,
        "name": overrides.pop("name", product_id.replace("-", " ").title()),
        "description": "",
        "long_description": "Long copy",
        "price": 100,
        "sizes": sizes,
        "images": ["/a.jpg", "/b.jpg"],
        "rating": 0,
        "reviews": 0,
        "notes": {"top": [], "middle": [], "base": []},
        "category": "summer",
        "is_new": False,
        "is_bestseller": False,
        "is_active": True,
        "is_out_of_stock": False,
        "is_gift_package": False,
    }
    row.update(overrides)
    return row


def order_payload(*items: dict, **overrides) -> dict:
    """Build a checkout payload in the camelCase shape clients send."""
    payload = {
        "items": list(items),
        "total": sum(item.get("price", 0) * item.get("quantity", 1) for item in items),
        "shippingAddress": {
            "name": "Mona Adel",
            "email": "mona@example.com",
            "phone": "+201000000000",
            "address": "12 Nile St",
            "city": "Cairo",
            "governorate": "Cairo",
        },
        "paymentMethod": "cod",
    }
    payload.update(overrides)
    return payload


def line(product_id: str = "P1", size: str = "S", quantity: int = 1, **extra) -> dict:
    item = {"productId": product_id, "name": product_id, "size": size, "quantity": quantity, "price": 50}
    item.update(extra)
    return item


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", products_cache_ttl_ms=30_000, product_detail_cache_ttl_ms=300_000)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def p1(store):
    """Product P1 with size S (5 in stock) and size M (sold out)."""
    return store.insert(
        "products",
        make_product("P1", [{"size": "S", "volume": "", "stockCount": 5}, {"size": "M", "volume": "", "stockCount": 0}]),
    )


@pytest.fixture
def app_state(settings, store, clock):
    return StorefrontState(settings=settings, store=store, clock=clock)


@pytest.fixture
def test_client(app_state):
    """Create a test client bound to an isolated service state."""
    app.dependency_overrides[get_state] = lambda: app_state
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(app_state):
    token = app_state.tokens.encode(TokenClaims(user_id="admin-1", email="admin@example.com", role="admin"))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(app_state):
    token = app_state.tokens.encode(TokenClaims(user_id="user-1", email="user@example.com", role="user"))
    return {"Authorization": f"Bearer {token}"}
