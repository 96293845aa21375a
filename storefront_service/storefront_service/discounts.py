"""Discount code validation and pricing."""

from datetime import datetime, timezone
from typing import Any, Optional

from .auth import TokenClaims
from .exceptions import DiscountCodeNotFoundError, DiscountError, StorefrontError, StoreError
from .logger import logger
from .schemas import DiscountCodePayload, DiscountItem, DiscountValidationRequest
from .store import RecordStore, Row

DISCOUNT_CODES_TABLE = "discount_codes"
ORDERS_TABLE = "orders"

BUNDLE_TYPES = ("buyXgetX", "buyXgetYpercent")


def _parse_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def transform_discount_code(row: Row) -> dict[str, Any]:
    """Convert a discount code row to the shape used by the admin dashboard."""
    return {
        "_id": row.get("id"),
        "id": row.get("id"),
        "code": row.get("code"),
        "type": row.get("original_type") or row.get("discount_type"),
        "value": row.get("discount_value"),
        "minOrderAmount": row.get("min_purchase"),
        "maxUses": row.get("usage_limit"),
        "currentUses": row.get("usage_count") or 0,
        "isActive": row.get("is_active") is not False,
        "expiresAt": row.get("valid_until"),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
        "description": row.get("description"),
        "buyX": row.get("buy_x"),
        "getX": row.get("get_x"),
        "discountPercentage": row.get("discount_percentage"),
    }


def discount_code_changes(payload: DiscountCodePayload) -> Row:
    """Column values for the fields present in ``payload``.

    Bundle types are stored as ``percentage`` with the real rule kept in
    ``original_type``.
    """
    fields = payload.model_fields_set
    changes: Row = {}
    if "code" in fields and payload.code is not None:
        changes["code"] = payload.code.strip().upper()
    if "type" in fields and payload.type is not None:
        changes["discount_type"] = "percentage" if payload.type in BUNDLE_TYPES else payload.type
        changes["original_type"] = payload.type
    if "value" in fields:
        changes["discount_value"] = payload.value or 0
    if "min_order_amount" in fields:
        changes["min_purchase"] = payload.min_order_amount or None
    if "max_uses" in fields:
        changes["usage_limit"] = payload.max_uses or None
    if "expires_at" in fields:
        changes["valid_until"] = payload.expires_at.isoformat() if payload.expires_at else None
    if "is_active" in fields and payload.is_active is not None:
        changes["is_active"] = payload.is_active
    if "description" in fields:
        changes["description"] = payload.description or None
    if "buy_x" in fields:
        changes["buy_x"] = payload.buy_x or None
    if "get_x" in fields:
        changes["get_x"] = payload.get_x or None
    if "discount_percentage" in fields:
        changes["discount_percentage"] = payload.discount_percentage or None
    return changes


def cheapest_units_total(items: list[DiscountItem], count: int) -> float:
    """Sum the prices of the ``count`` cheapest units in the cart."""
    total = 0.0
    remaining = count
    for item in sorted(items, key=lambda item: item.price):
        if remaining <= 0:
            break
        taken = min(remaining, item.quantity)
        total += item.price * taken
        remaining -= taken
    return total


def total_quantity(items: list[DiscountItem]) -> int:
    return sum(item.quantity for item in items)


def percentage_discount(order_amount: float, percent: float, max_discount: Optional[float] = None) -> float:
    amount = order_amount * percent / 100
    if max_discount:
        amount = min(amount, max_discount)
    return amount


def fixed_discount(order_amount: float, value: float) -> float:
    return min(value, order_amount)


def buy_x_get_x_discount(items: list[DiscountItem], buy_x: int, get_x: int) -> tuple[float, int]:
    """Make the cheapest units free: ``get_x`` per complete set of ``buy_x + get_x``.

    Returns:
        tuple: Discount amount and number of free units.

    Raises:
        DiscountError: If the cart has fewer than ``buy_x + get_x`` units.
    """
    minimum = buy_x + get_x
    quantity = total_quantity(items)
    if quantity < minimum:
        needed = minimum - quantity
        raise DiscountError(
            f"Add {needed} more item{'s' if needed > 1 else ''} to your cart to apply this discount "
            f"(Buy {buy_x} Get {get_x} Free - minimum {minimum} items required)",
            extra={"neededItems": needed, "buyX": buy_x, "getX": get_x, "minimumRequired": minimum},
        )
    free_units = (quantity // minimum) * get_x
    return cheapest_units_total(items, free_units), free_units


def buy_x_get_percent_discount(items: list[DiscountItem], buy_x: int, percent: float) -> float:
    """Take ``percent`` off the cheapest unit once the cart holds ``buy_x`` units.

    Raises:
        DiscountError: If the cart has fewer than ``buy_x`` units.
    """
    quantity = total_quantity(items)
    if quantity < buy_x:
        needed = buy_x - quantity
        raise DiscountError(
            f"Add {needed} more item{'s' if needed > 1 else ''} to get {percent:g}% off on the next item "
            f"(Buy {buy_x} Get {percent:g}% Off)",
            extra={"neededItems": needed, "buyX": buy_x, "discountPercentage": percent},
        )
    return cheapest_units_total(items, 1) * percent / 100


class DiscountService:
    """Validate discount codes against a cart and manage them for admins.

    Args:
        store: Store holding ``discount_codes`` and ``orders``.
        now: Optional callable returning the current aware datetime.
    """

    def __init__(self, store: RecordStore, now=None):
        self.store = store
        self._now = now or (lambda: datetime.now(timezone.utc))

    def find_code(self, code: str) -> Optional[Row]:
        normalized = code.strip().upper()
        for row in self.store.select(DISCOUNT_CODES_TABLE, {"is_active": True}):
            if str(row.get("code", "")).upper() == normalized:
                return row
        return None

    def _check_usage(self, row: Row, claims: Optional[TokenClaims], email: Optional[str]) -> None:
        limit = row.get("usage_limit")
        if not limit:
            return
        if claims is not None:
            used = self.store.count(ORDERS_TABLE, {"user_id": claims.user_id, "discount_code": row["code"]})
            if used >= limit:
                raise DiscountError(f"You have already used this discount code {limit} times.")
        elif email:
            used = sum(
                1
                for order in self.store.select(ORDERS_TABLE, {"discount_code": row["code"]})
                if (order.get("shipping_address") or {}).get("email") == email
            )
            if used >= limit:
                raise DiscountError(f"This email has already used this discount code {limit} times.")

    def validate(self, request: DiscountValidationRequest, claims: Optional[TokenClaims] = None) -> dict[str, Any]:
        """Check a code's validity window, usage and minimum, then price it.

        Returns:
            dict: ``valid``, ``discountAmount``, ``code``, ``type``, ``value`` and
            type-specific ``discountDetails``.

        Raises:
            DiscountError: If the code cannot be applied to this cart.
            StorefrontError: If the store cannot be queried.
        """
        if not request.code:
            raise DiscountError("Discount code is required")

        try:
            row = self.find_code(request.code)
            if row is None:
                raise DiscountError("Invalid discount code")

            now = self._now()
            valid_from = _parse_time(row.get("valid_from"))
            if valid_from and now < valid_from:
                raise DiscountError("Discount code is not yet valid")
            valid_until = _parse_time(row.get("valid_until"))
            if valid_until and now > valid_until:
                raise DiscountError("Discount code has expired")

            self._check_usage(row, claims, request.email)
        except StoreError as e:
            logger.error(f"Error validating discount code {request.code}: {e}")
            raise StorefrontError("Failed to validate discount code", 500) from e

        minimum = row.get("min_purchase")
        if minimum and request.order_amount < minimum:
            raise DiscountError(
                "MIN_ORDER_AMOUNT",
                extra={"minOrderAmount": minimum, "minOrderRemaining": minimum - request.order_amount},
            )

        kind = row.get("original_type") or row.get("discount_type")
        value = row.get("discount_value") or 0
        items = request.items or []
        details: dict[str, Any]

        if kind == "percentage":
            amount = percentage_discount(request.order_amount, value, row.get("max_discount"))
            details = {"percentage": value}
        elif kind == "fixed":
            amount = fixed_discount(request.order_amount, value)
            details = {"fixedAmount": value}
        elif kind in ("buyXgetX", "buyXgetYpercent"):
            if not items:
                raise DiscountError("Add items to your cart to apply this discount")
            buy_x = row.get("buy_x") or 0
            if kind == "buyXgetX":
                get_x = row.get("get_x") or 0
                if not buy_x or not get_x:
                    raise DiscountError("Invalid discount code configuration")
                amount, free_units = buy_x_get_x_discount(items, buy_x, get_x)
                details = {"buyX": buy_x, "getX": get_x, "freeItemsCount": free_units, "type": kind}
            else:
                percent = row.get("discount_percentage") or 0
                if not buy_x or not percent:
                    raise DiscountError("Invalid discount code configuration")
                amount = buy_x_get_percent_discount(items, buy_x, percent)
                details = {"buyX": buy_x, "discountPercentage": percent, "type": kind}
        else:
            raise DiscountError("This discount code type is not supported")

        if amount == 0 and kind in ("percentage", "fixed"):
            raise DiscountError("This discount code type is not supported")

        logger.info(f"Discount code validated | code={row['code']} | type={kind} | amount={amount}")
        return {
            "valid": True,
            "discountAmount": amount,
            "code": row["code"],
            "type": kind,
            "value": value,
            "discountDetails": details,
        }

    def create_code(self, payload: DiscountCodePayload) -> dict[str, Any]:
        """Create an active discount code.

        Raises:
            DiscountError: If required fields for the type are missing or the code exists.
            StorefrontError: If the code cannot be written.
        """
        if not payload.code or not payload.type:
            raise DiscountError("Code and type are required")
        if payload.type in ("percentage", "fixed") and not payload.value:
            raise DiscountError("Value is required for this discount type")
        if payload.type == "buyXgetX" and not (payload.buy_x and payload.get_x):
            raise DiscountError("Buy X and Get X quantities are required for this discount type")
        if payload.type == "buyXgetYpercent" and not (payload.buy_x and payload.discount_percentage):
            raise DiscountError("Buy X quantity and discount percentage are required for this discount type")
        if self.find_code(payload.code) is not None:
            raise DiscountError("Discount code already exists")

        row = {
            "description": None,
            "discount_value": 0,
            "min_purchase": None,
            "max_discount": None,
            "valid_from": None,
            "valid_until": None,
            "usage_limit": None,
            "usage_count": 0,
            "is_active": True,
        }
        row.update(discount_code_changes(payload))
        if payload.type in BUNDLE_TYPES:
            row["discount_value"] = 0

        try:
            created = self.store.insert(DISCOUNT_CODES_TABLE, row)
        except StoreError as e:
            logger.error(f"Error creating discount code {row['code']}: {e}")
            raise StorefrontError(str(e) or "Failed to create discount code", 500) from e
        logger.info(f"Discount code created | code={created['code']} | type={payload.type}")
        return transform_discount_code(created)

    def list_codes(self) -> list[dict[str, Any]]:
        """All discount codes, newest first."""
        rows = self.store.select(DISCOUNT_CODES_TABLE, order_by="created_at", descending=True)
        return [transform_discount_code(row) for row in rows]

    def update_code(self, code_id: str, payload: DiscountCodePayload) -> dict[str, Any]:
        """Apply the fields present in ``payload`` to a discount code.

        Raises:
            DiscountCodeNotFoundError: If no code has this id.
        """
        changes = discount_code_changes(payload)
        if changes:
            updated = self.store.update(DISCOUNT_CODES_TABLE, {"id": code_id}, changes)
            row = updated[0] if updated else None
        else:
            row = self.store.select_one(DISCOUNT_CODES_TABLE, {"id": code_id})
        if row is None:
            raise DiscountCodeNotFoundError("Discount code not found")
        logger.info(f"Discount code updated | id={code_id} | fields={sorted(changes)}")
        return transform_discount_code(row)

    def delete_code(self, code_id: str) -> None:
        """Delete a discount code.

        Raises:
            DiscountCodeNotFoundError: If no code has this id.
        """
        if not self.store.delete(DISCOUNT_CODES_TABLE, {"id": code_id}):
            raise DiscountCodeNotFoundError("Discount code not found")
        logger.info(f"Discount code deleted | id={code_id}")
