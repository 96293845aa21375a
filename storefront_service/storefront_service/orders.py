"""Order creation, listing and status updates."""

import time
from dataclasses import dataclass
from typing import Any, Optional

from .auth import TokenClaims
from .cache import ResponseCache
from .catalog import random_suffix
from .exceptions import OrderNotFoundError, OrderPersistenceError, StoreError
from .logger import logger
from .producer import OrderEventProducer
from .schemas import OrderCreate, OrderStatus
from .stock import StockReservations
from .store import RecordStore, Row

ORDERS_TABLE = "orders"
USERS_TABLE = "users"

GUEST_USER_ID = "00000000-0000-0000-0000-000000000000"
GUEST_USER = {
    "id": GUEST_USER_ID,
    "email": "guest@storefront.local",
    "name": "Guest",
    "role": "user",
}

DEFAULT_ORDER_LIMIT = 50
MAX_ORDER_LIMIT = 200

RLS_MESSAGE = "Database configuration error. Please contact support."


def generate_order_id(now_ms: Optional[int] = None) -> str:
    """Order id made of the creation time and a random suffix."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"order-{now_ms}-{random_suffix()}"


def is_rls_error(message: str) -> bool:
    return "row-level security" in message or "RLS" in message


def transform_order(row: Row) -> dict[str, Any]:
    """Convert an order row to its public shape.

    ``_id`` is the internal row id kept for older admin clients; ``id`` is the
    public order id.
    """
    return {
        "_id": row.get("id"),
        "id": row.get("order_id"),
        "userId": row.get("user_id"),
        "items": row.get("items") or [],
        "total": row.get("total") or 0,
        "status": row.get("status") or "pending",
        "shippingAddress": row.get("shipping_address") or {},
        "paymentMethod": row.get("payment_method") or "cod",
        "paymentDetails": row.get("payment_details"),
        "discountCode": row.get("discount_code"),
        "discountAmount": row.get("discount_amount") or 0,
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def build_order_row(order_id: str, user_id: str, order: OrderCreate) -> Row:
    """Snapshot the checkout payload into an order row with status ``pending``."""
    shipping = order.shipping_address.model_dump(by_alias=True)
    shipping["country"] = order.shipping_address.country or order.shipping_address.governorate
    return {
        "order_id": order_id,
        "user_id": user_id,
        "items": [item.model_dump(by_alias=True, exclude_none=True) for item in order.items],
        "total": order.total,
        "status": "pending",
        "shipping_address": shipping,
        "payment_method": order.payment_method,
        "payment_details": order.payment_details,
        "discount_code": order.discount_code or None,
        "discount_amount": order.discount_amount,
    }


@dataclass(frozen=True)
class OrderPage:
    orders: list[dict[str, Any]]
    page: Optional[int] = None
    limit: Optional[int] = None
    total: Optional[int] = None

    @property
    def total_pages(self) -> int:
        if not self.limit or self.total is None:
            return 1
        return max(-(-self.total // self.limit), 1)


class OrderService:
    """Checkout and order management.

    Args:
        store: Store holding the ``orders``, ``users`` and ``products`` tables.
        reservations: Stock validation and decrement around the order insert.
        cache: Response cache cleared after writes, if caching is enabled.
        producer: Publisher for created orders, None to skip publishing.
    """

    def __init__(
        self,
        store: RecordStore,
        reservations: StockReservations,
        cache: Optional[ResponseCache] = None,
        producer: Optional[OrderEventProducer] = None,
    ):
        self.store = store
        self.reservations = reservations
        self.cache = cache
        self.producer = producer

    def resolve_user_id(self, claims: Optional[TokenClaims], shipping_email: Optional[str]) -> str:
        """Pick the account an order is attributed to.

        A verified token wins. Otherwise the order goes to the guest account,
        unless the shipping email belongs to a registered user, in which case it
        is linked to that user. Linking grants no access to the order.
        """
        if claims is not None:
            return claims.user_id

        email = (shipping_email or "").strip()
        if email:
            try:
                user = self.store.select_one(USERS_TABLE, {"email": email})
            except StoreError as e:
                logger.error(f"Error looking up user by email for order linking: {e}")
                user = None
            if user:
                logger.info(f"Linked guest order to existing user by email | user_id={user['id']}")
                return user["id"]

        self.ensure_guest_user()
        return GUEST_USER_ID

    def ensure_guest_user(self) -> None:
        """Create the shared guest account on first use.

        Raises:
            OrderPersistenceError: If the guest account cannot be created.
        """
        if self.store.select_one(USERS_TABLE, {"id": GUEST_USER_ID}) is not None:
            return
        try:
            self.store.insert(USERS_TABLE, dict(GUEST_USER))
        except StoreError as e:
            logger.error(f"Error creating guest user: {e}")
            raise OrderPersistenceError("Failed to create order") from e
        logger.info("Created guest user account")

    def create_order(self, order: OrderCreate, claims: Optional[TokenClaims] = None) -> dict[str, Any]:
        """Validate stock, persist the order, then decrement stock.

        Args:
            order: Validated checkout payload.
            claims: Claims of the caller's bearer token, if one was valid.

        Returns:
            dict: The persisted order in its public shape.

        Raises:
            ProductNotFoundError: If a stock-tracked line references an unknown product.
            InsufficientStockError: If a line asks for more than is in stock.
            OrderPersistenceError: If the order row cannot be written.
        """
        user_id = self.resolve_user_id(claims, order.shipping_address.email)
        reservation = self.reservations.reserve(order.items)

        row = build_order_row(generate_order_id(), user_id, order)
        try:
            created = self.store.insert(ORDERS_TABLE, row)
        except StoreError as e:
            self.reservations.release(reservation)
            message = str(e) or "Failed to create order"
            logger.error(f"Error inserting order {row['order_id']}: {message}")
            if is_rls_error(message):
                raise OrderPersistenceError(RLS_MESSAGE) from e
            raise OrderPersistenceError(message) from e

        logger.info(
            f"Order inserted | order_id={created['order_id']} | user_id={user_id} | "
            f"items={len(created['items'])} | total={created['total']}"
        )

        self.reservations.commit(reservation)
        if self.cache is not None:
            self.cache.clear()

        public = transform_order(created)
        if self.producer is not None:
            self.producer.publish_order(public)
        return public

    def list_orders(
        self, claims: TokenClaims, page: Optional[int] = None, limit: Optional[int] = None
    ) -> OrderPage:
        """List orders newest first; non-admins only see their own.

        Args:
            claims: Claims of the caller.
            page: 1-based page, enables offset pagination and a total count.
            limit: Page size, or a plain row cap when ``page`` is None.
        """
        filters = {} if claims.is_admin else {"user_id": claims.user_id}
        if page is not None:
            limit = limit or DEFAULT_ORDER_LIMIT
            rows = self.store.select(
                ORDERS_TABLE, filters, order_by="created_at", descending=True, offset=(page - 1) * limit, limit=limit
            )
            total = self.store.count(ORDERS_TABLE, filters)
            return OrderPage([transform_order(row) for row in rows], page, limit, total)

        rows = self.store.select(ORDERS_TABLE, filters, order_by="created_at", descending=True, limit=limit)
        return OrderPage([transform_order(row) for row in rows])

    def get_order(self, order_id: str) -> dict[str, Any]:
        """Fetch one order by its public order id, falling back to the row id.

        Raises:
            OrderNotFoundError: If neither id matches an order.
        """
        row = self.store.select_one(ORDERS_TABLE, {"order_id": order_id})
        if row is None:
            row = self.store.select_one(ORDERS_TABLE, {"id": order_id})
        if row is None:
            logger.warning(f"Order not found | order_id={order_id}")
            raise OrderNotFoundError("Order not found")
        return transform_order(row)

    def update_status(self, order_id: str, status: OrderStatus) -> dict[str, Any]:
        """Move an order to a new status.

        Raises:
            OrderNotFoundError: If no order has this id.
        """
        updated = self.store.update(ORDERS_TABLE, {"order_id": order_id}, {"status": status})
        if not updated:
            raise OrderNotFoundError("Order not found")
        logger.info(f"Order status updated | order_id={order_id} | status={status}")
        if self.cache is not None:
            self.cache.clear()
        return transform_order(updated[0])
