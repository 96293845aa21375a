"""Best-effort stock reservation for sized products.

Checkout runs in two phases around the order insert:

1. ``reserve`` validates every stock-tracked line against the current product
   rows and rejects the whole order if any size is short. Nothing is written.
2. ``commit`` runs after the order row exists. It re-reads each product,
   decrements the ordered sizes (never below zero), recomputes the product's
   out-of-stock flag and writes both back in one update. Failures are logged
   and skipped; the order stands.

Neither phase is atomic with the other or with concurrent checkouts. Two orders
validated against the same snapshot can both commit and oversell a size, and
two interleaved commits can lose one decrement. There is no lock or version
check; replacing ``commit`` with a conditional decrement in the store is the
intended fix and needs no change at the call sites.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Optional

from .catalog import PRODUCTS_TABLE, is_out_of_stock, size_stock
from .exceptions import InsufficientStockError, ProductNotFoundError, StorefrontError
from .logger import logger
from .schemas import OrderLineItem
from .store import RecordStore


@dataclass(frozen=True)
class ReservedLine:
    """A stock-tracked order line that passed validation.

    Attributes:
        product_id: Public product identifier.
        size: Size label matched against the product's sizes.
        quantity: Units to take from stock on commit.
        available: Stock seen during validation, None when untracked.
    """

    product_id: str
    size: str
    quantity: int
    available: Optional[int] = None


@dataclass
class ReservationToken:
    """Handle returned by ``reserve`` and consumed by ``commit`` or ``release``."""

    lines: list[ReservedLine] = field(default_factory=list)
    state: str = "reserved"

    @property
    def product_ids(self) -> list[str]:
        return list(dict.fromkeys(line.product_id for line in self.lines))


@dataclass(frozen=True)
class StockAdjustment:
    """Result of decrementing one size during ``commit``."""

    product_id: str
    size: str
    previous: int
    current: int
    is_out_of_stock: bool


def find_size(sizes: Iterable[dict[str, Any]], label: str) -> Optional[dict[str, Any]]:
    """Return the size dict whose ``size`` label equals ``label`` exactly."""
    return next((size for size in sizes if size.get("size") == label), None)


class StockReservations:
    """Validate and decrement per-size stock counters for orders.

    Args:
        store: Store holding the ``products`` table.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def reserve(self, items: Iterable[OrderLineItem]) -> ReservationToken:
        """Check every stock-tracked line against current stock.

        Gift packages and custom sizes are skipped. A line whose size is not
        found, or whose size has no stock count, is always accepted.

        Args:
            items: Order lines in submission order.

        Returns:
            ReservationToken: Lines to decrement on commit.

        Raises:
            ProductNotFoundError: If a line references an unknown product.
            InsufficientStockError: If a line asks for more than is in stock.
        """
        token = ReservationToken()
        for item in items:
            if not item.is_stock_tracked:
                continue

            product = self.store.select_one(PRODUCTS_TABLE, {"product_id": item.product_id})
            if product is None:
                raise ProductNotFoundError(f"Product {item.product_id} not found")

            size = find_size(product.get("sizes") or [], item.size)
            available = size_stock(size) if size is not None else None
            if available is not None and item.quantity > available:
                logger.warning(
                    f"Rejecting order line | product_id={item.product_id} | size={item.size} | "
                    f"available={available} | requested={item.quantity}"
                )
                raise InsufficientStockError(item.name or product.get("name") or item.product_id, item.size, available, item.quantity)

            token.lines.append(ReservedLine(item.product_id, item.size, item.quantity, available))
        return token

    def commit(self, token: ReservationToken) -> list[StockAdjustment]:
        """Decrement stock for a reservation whose order has been persisted.

        Each product is re-read fresh, so decrements committed since ``reserve``
        are seen. Errors for one product are logged and do not stop the others.

        Returns:
            list[StockAdjustment]: One entry per size that was decremented.
        """
        self._consume(token, "committed")
        adjustments: list[StockAdjustment] = []
        for product_id in token.product_ids:
            lines = [line for line in token.lines if line.product_id == product_id]
            try:
                adjustments.extend(self._decrement_product(product_id, lines))
            except Exception as e:
                logger.exception(f"Failed to update stock for product {product_id}: {e}")
        return adjustments

    def release(self, token: ReservationToken) -> None:
        """Retire a reservation whose order was never persisted.

        Validation holds no stock, so there is nothing to give back.
        """
        self._consume(token, "released")
        logger.debug(f"Reservation released | products={token.product_ids}")

    def _consume(self, token: ReservationToken, state: str) -> None:
        if token.state != "reserved":
            raise StorefrontError(f"Reservation already {token.state}", 500)
        token.state = state

    def _decrement_product(self, product_id: str, lines: list[ReservedLine]) -> list[StockAdjustment]:
        product = self.store.select_one(PRODUCTS_TABLE, {"product_id": product_id})
        if product is None or not product.get("sizes"):
            logger.warning(f"Skipping stock update, product has no sizes | product_id={product_id}")
            return []

        sizes = [dict(size) for size in product["sizes"]]
        changed: list[tuple[str, int, int]] = []
        for line in lines:
            size = find_size(sizes, line.size)
            if size is None:
                continue
            previous = size_stock(size)
            if previous is None:
                continue
            current = max(0, previous - line.quantity)
            size["stockCount"] = current
            size.pop("stock_count", None)
            changed.append((line.size, previous, current))

        if not changed:
            return []

        out_of_stock = is_out_of_stock(sizes)
        self.store.update(PRODUCTS_TABLE, {"product_id": product_id}, {"sizes": sizes, "is_out_of_stock": out_of_stock})
        logger.info(f"Stock updated | product_id={product_id} | sizes={changed} | is_out_of_stock={out_of_stock}")
        return [StockAdjustment(product_id, label, previous, current, out_of_stock) for label, previous, current in changed]
