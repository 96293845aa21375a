"""Tests for catalog transforms and admin writes."""

import pytest

from conftest import make_product
from storefront_service.catalog import (
    Catalog,
    ProductQuery,
    build_product_row,
    clamp_limit,
    is_out_of_stock,
    size_stock,
    transform_product,
    transform_product_list,
)
from storefront_service.exceptions import ProductNotFoundError
from storefront_service.schemas import ProductPayload


@pytest.mark.parametrize(
    "sizes, expected",
    [
        ([], False),
        (None, False),
        ([{"size": "S", "stockCount": 0}, {"size": "M", "stockCount": 0}], True),
        ([{"size": "S", "stockCount": 0}, {"size": "M", "stockCount": 1}], False),
        ([{"size": "S"}, {"size": "M", "stockCount": None}], True),
        ([{"size": "S", "stock_count": 2}], False),
    ],
)
def test_is_out_of_stock(sizes, expected):
    """Out of stock only when every size is untracked or at zero."""
    assert is_out_of_stock(sizes) is expected


@pytest.mark.parametrize(
    "size, expected",
    [
        ({"size": "S", "stockCount": 3}, 3),
        ({"size": "S", "stock_count": 0}, 0),
        ({"size": "S", "stockCount": "4"}, 4),
        ({"size": "S", "stockCount": " 2.0 "}, 2),
        ({"size": "S", "stockCount": "plenty"}, None),
        ({"size": "S", "stockCount": ""}, None),
        ({"size": "S", "stockCount": float("nan")}, None),
        ({"size": "S", "stockCount": True}, None),
        ({"size": "S", "stockCount": [1]}, None),
        ({"size": "S"}, None),
    ],
)
def test_size_stock_only_returns_numbers(size, expected):
    """Numeric strings are coerced; anything else counts as untracked."""
    assert size_stock(size) == expected


def test_transform_product_derives_flag_when_missing():
    """Detail reads compute the flag from sizes if none is stored."""
    row = make_product("P9", [{"size": "S", "stockCount": 0}], is_out_of_stock=None)

    product = transform_product(row)

    assert product["isOutOfStock"] is True
    assert product["id"] == "P9"
    assert product["longDescription"] == "Long copy"


def test_transform_product_list_trusts_stored_flag_and_trims():
    """List reads use the persisted flag, one image and no heavy fields."""
    row = make_product("P9", [{"size": "S", "stockCount": 0}], is_out_of_stock=False)

    product = transform_product_list(row)

    assert product["isOutOfStock"] is False
    assert product["images"] == ["/a.jpg"]
    assert "longDescription" not in product and "notes" not in product


def test_build_product_row_parses_stock_and_price():
    """Blank or negative stock is untracked; price is the cheapest effective size price."""
    payload = ProductPayload.model_validate(
        {
            "name": "Kaftan",
            "sizes": [
                {"size": "S", "volume": "", "originalPrice": "1200", "discountedPrice": "900", "stockCount": "3"},
                {"size": "M", "volume": "", "originalPrice": 1100, "stockCount": ""},
                {"size": "L", "volume": "", "originalPrice": 1300, "stockCount": -2},
            ],
        }
    )

    row = build_product_row(payload)

    assert [size["stockCount"] for size in row["sizes"]] == [3, None, None]
    assert row["price"] == 900
    assert row["is_out_of_stock"] is False


def test_build_product_row_for_gift_package():
    """Gift packages carry no sizes and are priced by the package price."""
    payload = ProductPayload.model_validate(
        {"name": "Eid Box", "isGiftPackage": True, "packagePrice": "450", "giftPackageSizes": [{"size": "Box"}]}
    )

    row = build_product_row(payload)

    assert row["sizes"] == []
    assert row["price"] == 450
    assert row["gift_package_sizes"] == [{"size": "Box"}]


def test_create_product_applies_defaults(store):
    """New products are active, unrated and get a generated id."""
    product = Catalog(store).create_product(ProductPayload(name="Abaya", sizes=[]))

    assert product["id"].startswith("product-")
    assert product["isActive"] is True
    assert product["images"] == ["/placeholder.svg"]
    assert product["rating"] == 0


def test_update_missing_product_is_not_found(store):
    """Updating an unknown product raises a 404 error."""
    with pytest.raises(ProductNotFoundError):
        Catalog(store).update_product("nope", ProductPayload(name="X"))


def test_update_keeps_unset_fields(store):
    """Fields left out of the update payload keep their stored values."""
    store.insert("products", make_product("P2", [], category="winter"))

    product = Catalog(store).update_product("P2", ProductPayload(name="Renamed"))

    assert product["name"] == "Renamed"
    assert product["category"] == "winter"
    assert product["images"] == ["/a.jpg", "/b.jpg"]


def test_query_filters_and_limits():
    """Inactive products are hidden unless explicitly included; limits are clamped."""
    assert ProductQuery(category="summer", is_new=True).filters() == {
        "is_active": True,
        "category": "summer",
        "is_new": True,
    }
    assert ProductQuery(include_inactive=True).filters() == {}
    assert clamp_limit("500", 20, 40) == 40
    assert clamp_limit("0", 20, 40) == 1
    assert clamp_limit("abc", 20, 40) == 20
