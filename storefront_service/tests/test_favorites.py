"""Tests for per-user favorites."""

import pytest

from conftest import make_product
from storefront_service.exceptions import UserNotFoundError
from storefront_service.favorites import FavoriteService, smallest_price, transform_favorite


@pytest.fixture
def favorites(store):
    return FavoriteService(store)


@pytest.fixture
def user(store):
    return store.insert("users", {"id": "user-1", "email": "user@example.com", "role": "user"})


def test_smallest_price_ignores_unpriced_sizes():
    """The card price is the cheapest priced size."""
    sizes = [{"originalPrice": 900, "discountedPrice": 700}, {"originalPrice": 0}, {"price": 800}]

    assert smallest_price(sizes) == 700
    assert smallest_price([]) == 0


def test_transform_favorite_for_gift_package():
    """Gift packages use the package price and expose no sizes."""
    row = make_product("BOX", [{"size": "S", "originalPrice": 10}], is_gift_package=True, package_price=450, images=[])

    favorite = transform_favorite(row)

    assert favorite["price"] == 450
    assert favorite["sizes"] == []
    assert favorite["image"] == "/placeholder.svg"


def test_add_is_idempotent_and_keeps_order(favorites, store, user):
    """Adding twice stores the id once; listing follows insertion order."""
    store.insert("products", make_product("A", [{"size": "S", "originalPrice": 100}]))
    store.insert("products", make_product("B", [{"size": "S", "originalPrice": 200}]))

    favorites.add_favorite("user-1", "B")
    favorites.add_favorite("user-1", "A")
    favorites.add_favorite("user-1", "B")

    assert favorites.favorite_ids("user-1") == ["B", "A"]
    assert [product["id"] for product in favorites.list_favorites("user-1")] == ["B", "A"]


def test_deleted_products_are_skipped(favorites, store, user):
    """Favorites pointing at removed products are left out of the list."""
    store.update("users", {"id": "user-1"}, {"favorites": ["gone"]})

    assert favorites.list_favorites("user-1") == []


def test_remove_favorite(favorites, user):
    """Removing drops the id and tolerates ids that were never saved."""
    favorites.add_favorite("user-1", "A")
    favorites.remove_favorite("user-1", "A")
    favorites.remove_favorite("user-1", "never-added")

    assert favorites.favorite_ids("user-1") == []


def test_unknown_user_is_not_found(favorites):
    """Favorites belong to an existing account."""
    with pytest.raises(UserNotFoundError):
        favorites.favorite_ids("ghost")


def test_favorites_endpoints(test_client, store, user, user_headers):
    """Favorites round trip over HTTP for the token's user."""
    store.insert("products", make_product("A", [{"size": "S", "originalPrice": 100}]))

    added = test_client.post("/api/favorites", json={"productId": "A"}, headers=user_headers)
    listed = test_client.get("/api/favorites", headers=user_headers)
    removed = test_client.request("DELETE", "/api/favorites", json={"productId": "A"}, headers=user_headers)

    assert added.json() == {"success": True}
    assert [product["id"] for product in listed.json()] == ["A"]
    assert listed.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
    assert removed.json() == {"success": True}
    assert test_client.get("/api/favorites", headers=user_headers).json() == []


def test_favorites_require_login_and_product_id(test_client, user, user_headers):
    """Anonymous callers get 401; a missing productId is 400."""
    assert test_client.get("/api/favorites").status_code == 401

    response = test_client.post("/api/favorites", json={}, headers=user_headers)

    assert response.status_code == 400
    assert response.json()["error"] == "productId required"


def test_favorites_for_missing_account(test_client, user_headers):
    """A valid token for a deleted account is 404."""
    response = test_client.get("/api/favorites", headers=user_headers)

    assert response.status_code == 404
    assert response.json()["error"] == "User not found"
