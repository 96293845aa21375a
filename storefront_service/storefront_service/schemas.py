"""Pydantic models for storefront request payloads."""

import math
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]
PaymentMethod = Literal["cod", "visa", "mastercard"]
DiscountType = Literal["percentage", "fixed", "buyXgetX", "buyXgetYpercent"]

CUSTOM_SIZE = "custom"
MAX_LINE_QUANTITY = 1000
MAX_CART_LINES = 100


class CamelModel(BaseModel):
    """Base model accepting camelCase keys from the storefront clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _optional_number(value: Any) -> Optional[float]:
    """Coerce a form value to a number, treating blanks and zero as missing."""
    if value in (None, "", 0, "0"):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


class ProductSize(CamelModel):
    """A purchasable size of a product.

    Attributes:
        size: Size label shown to the customer (e.g. "M").
        volume: Secondary label (length, fit or volume).
        original_price: Price before discount.
        discounted_price: Price after discount.
        stock_count: Units in stock, None when stock is not tracked for this size.
    """

    size: str
    volume: str = ""
    original_price: Optional[float] = None
    discounted_price: Optional[float] = None
    stock_count: Optional[int] = None

    @field_validator("original_price", "discounted_price", mode="before")
    @classmethod
    def parse_price(cls, v):
        return _optional_number(v)

    @field_validator("stock_count", mode="before")
    @classmethod
    def parse_stock_count(cls, v):
        """Blank, negative or non-numeric counts mean the size is untracked."""
        if v is None or v == "":
            return None
        try:
            number = float(v)
        except (TypeError, ValueError):
            return None
        if math.isnan(number) or number < 0:
            return None
        return int(number)

    @property
    def effective_price(self) -> float:
        return self.discounted_price or self.original_price or 0.0


class ProductNotes(BaseModel):
    top: list[str] = Field(default_factory=list)
    middle: list[str] = Field(default_factory=list)
    base: list[str] = Field(default_factory=list)


class ProductPayload(CamelModel):
    """Admin payload used to create or update a product.

    Gift packages carry ``gift_package_sizes`` and a package price instead of
    sized stock.
    """

    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    description: str = ""
    long_description: str = ""
    category: Optional[str] = None
    sizes: list[ProductSize] = Field(default_factory=list)
    images: Optional[list[str]] = None
    notes: Optional[ProductNotes] = None
    is_new: Optional[bool] = None
    is_bestseller: Optional[bool] = None
    is_active: Optional[bool] = None
    is_out_of_stock: Optional[bool] = None
    is_gift_package: bool = False
    gift_package_sizes: list[dict[str, Any]] = Field(default_factory=list)
    package_price: Optional[float] = None
    package_original_price: Optional[float] = None
    before_sale_price: Optional[float] = None
    after_sale_price: Optional[float] = None

    @field_validator("package_price", "package_original_price", mode="before")
    @classmethod
    def parse_package_price(cls, v):
        return _optional_number(v)

    @field_validator("before_sale_price", "after_sale_price", mode="before")
    @classmethod
    def parse_sale_price(cls, v):
        if v is None or v == "":
            return None
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Linen Wrap Dress",
                "description": "Relaxed wrap dress in washed linen",
                "category": "summer",
                "sizes": [
                    {"size": "S", "volume": "110cm", "originalPrice": 1200, "stockCount": 4},
                    {"size": "M", "volume": "112cm", "originalPrice": 1200, "discountedPrice": 990},
                ],
            }
        }
    )


class OrderLineItem(CamelModel):
    """A line on an incoming order, frozen into the order row as submitted.

    Attributes:
        product_id: Public product identifier (``product_id`` column).
        size: Size label, or "custom" for made-to-measure items.
        quantity: Units ordered.
        price: Unit price captured at checkout.
        is_gift_package: True for gift bundles, which are not stock tracked.
    """

    id: Optional[str] = None
    product_id: Optional[str] = None
    name: str = ""
    price: float = Field(..., ge=0)
    size: str = ""
    volume: str = ""
    image: str = ""
    category: str = ""
    quantity: int = Field(..., gt=0, le=MAX_LINE_QUANTITY)
    is_gift_package: bool = False
    selected_products: Optional[list[Any]] = None
    package_details: Optional[dict[str, Any]] = None
    custom_measurements: Optional[dict[str, Any]] = None

    @property
    def is_custom_size(self) -> bool:
        return self.size == CUSTOM_SIZE

    @property
    def is_stock_tracked(self) -> bool:
        """Gift packages and custom sizes never draw from sized inventory."""
        return not (self.is_gift_package or self.is_custom_size)

    @model_validator(mode="after")
    def require_product_for_tracked_items(self):
        if self.is_stock_tracked and not self.product_id:
            raise ValueError("productId is required for sized items")
        return self


class ShippingAddress(CamelModel):
    name: str = Field(..., min_length=1)
    email: str = ""
    phone: str = ""
    secondary_phone: Optional[str] = None
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    country: str = ""
    country_code: str = ""
    postal_code: str = ""
    governorate: str = ""


class OrderCreate(CamelModel):
    """Checkout payload for a new order.

    Attributes:
        items: Ordered lines, at least one.
        total: Order total computed by the client after discounts.
        shipping_address: Delivery details, snapshotted on the order.
        payment_method: One of cod, visa, mastercard.
        discount_code: Code applied at checkout, if any.
        discount_amount: Amount taken off by the discount code.
    """

    items: list[OrderLineItem] = Field(..., min_length=1)
    total: float = Field(..., ge=0)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod = "cod"
    payment_details: Optional[dict[str, Any]] = None
    discount_code: Optional[str] = None
    discount_amount: float = Field(0, ge=0)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": [{"productId": "linen-wrap-dress", "name": "Linen Wrap Dress", "size": "M", "quantity": 1, "price": 990}],
                "total": 990,
                "shippingAddress": {"name": "Mona", "email": "mona@example.com", "address": "12 Nile St", "city": "Cairo"},
                "paymentMethod": "cod",
            }
        }
    )


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class DiscountItem(CamelModel):
    id: str = ""
    name: str = ""
    price: float = Field(0, ge=0)
    quantity: int = Field(1, ge=1, le=MAX_LINE_QUANTITY)


class DiscountValidationRequest(CamelModel):
    """Checkout request to price a discount code against the current cart."""

    code: str = ""
    order_amount: float = 0
    items: Optional[list[DiscountItem]] = Field(None, max_length=MAX_CART_LINES)
    email: Optional[str] = None


class DiscountCodePayload(CamelModel):
    """Admin payload used to create or edit a discount code.

    On updates only the fields present in the request body are changed, so
    callers can send ``{"isActive": false}`` alone to toggle a code.

    Attributes:
        code: Code customers type at checkout, stored upper-cased.
        type: Pricing rule applied by the code.
        value: Percentage or fixed amount for the simple types.
        min_order_amount: Minimum order amount required to apply the code.
        max_uses: Uses allowed per account or per guest email.
        expires_at: End of the validity window.
        buy_x: Units to buy for the bundle types.
        get_x: Units given free by ``buyXgetX``.
        discount_percentage: Percentage taken off by ``buyXgetYpercent``.
    """

    code: Optional[str] = None
    type: Optional[DiscountType] = None
    value: Optional[float] = Field(None, ge=0)
    min_order_amount: Optional[float] = Field(None, ge=0)
    max_uses: Optional[int] = Field(None, ge=0)
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None
    description: Optional[str] = None
    buy_x: Optional[int] = Field(None, ge=0)
    get_x: Optional[int] = Field(None, ge=0)
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)

    @field_validator(
        "value", "min_order_amount", "max_uses", "expires_at", "buy_x", "get_x", "discount_percentage", mode="before"
    )
    @classmethod
    def blank_as_missing(cls, v):
        return None if v == "" else v


class FavoriteRequest(CamelModel):
    product_id: str = ""
