"""Domain exceptions surfaced to API callers."""

from typing import Any, Optional


class StorefrontError(Exception):
    """Base error carrying the HTTP status and message returned to the caller."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, extra: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}


class ValidationFailedError(StorefrontError):
    status_code = 400


class AuthenticationError(StorefrontError):
    status_code = 401


class AuthorizationError(StorefrontError):
    status_code = 403


class ProductNotFoundError(StorefrontError):
    status_code = 404


class OrderNotFoundError(StorefrontError):
    status_code = 404


class UserNotFoundError(StorefrontError):
    status_code = 404


class DiscountCodeNotFoundError(StorefrontError):
    status_code = 404


class InsufficientStockError(StorefrontError):
    """Raised when a line item asks for more units than a size has in stock.

    Attributes:
        product: Display name of the product.
        size: Requested size label.
        available: Stock count recorded for the size.
        requested: Quantity on the order line.
    """

    status_code = 400

    def __init__(self, product: str, size: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product} - Size {size}. Available: {available}, Requested: {requested}"
        )
        self.product = product
        self.size = size
        self.available = available
        self.requested = requested


class DiscountError(StorefrontError):
    status_code = 400


class OrderPersistenceError(StorefrontError):
    status_code = 500


class StoreError(Exception):
    """Raised by record stores when a query or write fails."""
