"""Tests for the two-phase stock reservation."""

import copy

import pytest

from conftest import make_product
from storefront_service.exceptions import InsufficientStockError, ProductNotFoundError, StorefrontError
from storefront_service.schemas import OrderLineItem
from storefront_service.stock import StockReservations
from storefront_service.store import InMemoryRecordStore


def item(product_id="DRESS", size="M", quantity=1, **extra):
    return OrderLineItem(product_id=product_id, name="Wrap Dress", size=size, quantity=quantity, price=50, **extra)


def sizes_of(store, product_id):
    return {size["size"]: size.get("stockCount") for size in store.select_one("products", {"product_id": product_id})["sizes"]}


@pytest.fixture
def dress(store):
    return store.insert(
        "products",
        make_product("DRESS", [{"size": "M", "volume": "", "stockCount": 2}, {"size": "L", "volume": "", "stockCount": 3}]),
    )


@pytest.fixture
def reservations(store):
    return StockReservations(store)


def test_reserve_rejects_quantity_above_stock(reservations, dress):
    """Asking for 3 when 2 are in stock names product, size and both counts."""
    with pytest.raises(InsufficientStockError) as exc_info:
        reservations.reserve([item(quantity=3)])

    error = exc_info.value
    assert (error.product, error.size, error.available, error.requested) == ("Wrap Dress", "M", 2, 3)
    assert error.status_code == 400
    assert "Available: 2, Requested: 3" in error.message


def test_reserve_accepts_exact_stock(reservations, dress):
    """Asking for exactly the stock on hand passes."""
    token = reservations.reserve([item(quantity=2)])

    assert [(line.product_id, line.size, line.quantity, line.available) for line in token.lines] == [("DRESS", "M", 2, 2)]


def test_reserve_unknown_product_is_not_found(reservations, dress):
    """An unknown product id rejects the whole order with a 404."""
    with pytest.raises(ProductNotFoundError, match="Product GHOST not found"):
        reservations.reserve([item(), item(product_id="GHOST")])


def test_untracked_size_accepts_any_quantity(store, reservations):
    """A size without a stock count is never short."""
    store.insert("products", make_product("SCARF", [{"size": "One", "volume": ""}]))

    token = reservations.reserve([item(product_id="SCARF", size="One", quantity=500)])

    assert token.lines[0].available is None


def test_unknown_size_label_is_unconstrained(reservations, dress):
    """A size label the product does not list is treated as untracked."""
    token = reservations.reserve([item(size="XXL", quantity=99)])

    assert token.lines[0].available is None


def test_gift_packages_and_custom_sizes_skip_stock(store, reservations, dress):
    """Exempt lines are neither checked nor decremented, whatever their quantity."""
    lines = [
        item(quantity=50, is_gift_package=True),
        item(size="custom", quantity=50, custom_measurements={"unit": "cm", "values": {}}),
        OrderLineItem(name="Eid Box", quantity=9, price=300, is_gift_package=True),
    ]

    token = reservations.reserve(lines)
    reservations.commit(token)

    assert token.lines == []
    assert sizes_of(store, "DRESS") == {"M": 2, "L": 3}


def test_commit_decrements_and_keeps_flag_when_stock_remains(store, reservations, dress):
    """With stock left on another size the product stays in stock."""
    adjustments = reservations.commit(reservations.reserve([item(quantity=2)]))

    assert sizes_of(store, "DRESS") == {"M": 0, "L": 3}
    assert store.select_one("products", {"product_id": "DRESS"})["is_out_of_stock"] is False
    assert [(a.size, a.previous, a.current, a.is_out_of_stock) for a in adjustments] == [("M", 2, 0, False)]


def test_commit_marks_out_of_stock_when_every_size_hits_zero(store, reservations, dress):
    """Selling the last unit of every size flips the flag in the same write."""
    token = reservations.reserve([item(size="M", quantity=2), item(size="L", quantity=3)])

    reservations.commit(token)

    product = store.select_one("products", {"product_id": "DRESS"})
    assert sizes_of(store, "DRESS") == {"M": 0, "L": 0}
    assert product["is_out_of_stock"] is True


def test_commit_rereads_product_and_floors_at_zero(store, reservations):
    """Two orders validated against the same stock both pass; stock ends at zero, not below.

    This is the known oversell window between validation and decrement.
    """
    store.insert("products", make_product("TEE", [{"size": "S", "volume": "", "stockCount": 1}]))
    first = reservations.reserve([item(product_id="TEE", size="S")])
    second = reservations.reserve([item(product_id="TEE", size="S")])

    reservations.commit(first)
    adjustments = reservations.commit(second)

    assert sizes_of(store, "TEE") == {"S": 0}
    assert adjustments[0].previous == 0 and adjustments[0].current == 0


class StaleReadStore(InMemoryRecordStore):
    """Serves product reads from a snapshot taken before any commit."""

    def __init__(self):
        super().__init__()
        self.snapshot = {}

    def freeze(self):
        self.snapshot = {row["product_id"]: copy.deepcopy(row) for row in self.select("products")}

    def select_one(self, table, filters):
        if table == "products" and self.snapshot:
            return copy.deepcopy(self.snapshot.get(filters.get("product_id")))
        return super().select_one(table, filters)


def test_interleaved_commits_lose_an_update_but_never_go_negative():
    """Concurrent commits reading the same stock write the same result: one decrement is lost."""
    store = StaleReadStore()
    store.insert("products", make_product("TEE", [{"size": "S", "volume": "", "stockCount": 1}]))
    reservations = StockReservations(store)
    first = reservations.reserve([item(product_id="TEE", size="S")])
    second = reservations.reserve([item(product_id="TEE", size="S")])
    store.freeze()

    reservations.commit(first)
    reservations.commit(second)

    stored = InMemoryRecordStore.select_one(store, "products", {"product_id": "TEE"})
    assert stored["sizes"][0]["stockCount"] == 0
    assert stored["is_out_of_stock"] is True


def test_commit_failure_is_logged_not_raised(store, reservations, dress, mocker):
    """A failing stock write does not surface; other products still update."""
    store.insert("products", make_product("TEE", [{"size": "S", "volume": "", "stockCount": 4}]))
    token = reservations.reserve([item(quantity=1), item(product_id="TEE", size="S", quantity=1)])
    real_update = store.update

    def flaky_update(table, filters, changes):
        if filters.get("product_id") == "DRESS":
            raise RuntimeError("connection reset")
        return real_update(table, filters, changes)

    mocker.patch.object(store, "update", side_effect=flaky_update)

    adjustments = reservations.commit(token)

    assert [a.product_id for a in adjustments] == ["TEE"]
    assert sizes_of(store, "DRESS") == {"M": 2, "L": 3}
    assert sizes_of(store, "TEE") == {"S": 3}


def test_token_can_only_be_used_once(reservations, dress):
    """A committed or released token cannot be committed again."""
    token = reservations.reserve([item()])
    reservations.release(token)

    with pytest.raises(StorefrontError, match="already released"):
        reservations.commit(token)


def test_string_stock_counts_are_checked_as_numbers(store, reservations):
    """Imported rows with textual stock counts are validated and decremented numerically."""
    store.insert("products", make_product("IMPORTED", [{"size": "M", "stockCount": "2"}, {"size": "L", "stockCount": "n/a"}]))

    with pytest.raises(InsufficientStockError) as exc_info:
        reservations.reserve([item("IMPORTED", "M", 3)])
    assert exc_info.value.available == 2

    token = reservations.reserve([item("IMPORTED", "M", 2), item("IMPORTED", "L", 50)])
    reservations.commit(token)

    assert sizes_of(store, "IMPORTED")["M"] == 0
