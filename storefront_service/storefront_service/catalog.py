"""Product catalog: row transforms, queries and admin writes."""

import math
import random
import string
import time
from dataclasses import dataclass
from typing import Any, Optional

from .exceptions import ProductNotFoundError, StorefrontError, StoreError
from .logger import logger
from .schemas import ProductPayload
from .store import RecordStore, Row

PRODUCTS_TABLE = "products"
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 40

_ID_ALPHABET = string.ascii_lowercase + string.digits


def random_suffix(length: int = 9) -> str:
    return "".join(random.choices(_ID_ALPHABET, k=length))


def size_stock(size: dict[str, Any]) -> Optional[int]:
    """Stock count recorded on a size dict, accepting either key spelling.

    Numeric strings from imported rows are coerced. Anything that is not a
    finite number means the size is untracked and yields None.
    """
    stock = size.get("stockCount")
    if stock is None:
        stock = size.get("stock_count")
    if stock is None or isinstance(stock, bool):
        return None
    if isinstance(stock, int):
        return stock
    if isinstance(stock, str):
        try:
            stock = float(stock.strip())
        except ValueError:
            return None
    if not isinstance(stock, float) or not math.isfinite(stock):
        return None
    return int(stock)


def is_out_of_stock(sizes: Optional[list[dict[str, Any]]]) -> bool:
    """True when every size is untracked or at zero.

    A product without sizes (gift packages) is never considered out of stock.
    """
    if not sizes:
        return False
    return all(size_stock(size) is None or size_stock(size) <= 0 for size in sizes)


def _public_sizes(sizes: list[dict[str, Any]]) -> list[dict[str, Any]]:
    public = []
    for size in sizes:
        entry = {key: value for key, value in size.items() if key != "stock_count"}
        entry["stockCount"] = size_stock(size)
        public.append(entry)
    return public


def transform_product(row: Row) -> dict[str, Any]:
    """Convert a product row to the public detail shape.

    ``isOutOfStock`` falls back to the value derived from the sizes when the row
    has no persisted flag.
    """
    sizes = row.get("sizes") or []
    flag = row.get("is_out_of_stock")
    notes = row.get("notes") or {"top": [], "middle": [], "base": []}
    return {
        "_id": row.get("id") or row.get("product_id"),
        "id": row.get("product_id"),
        "product_id": row.get("product_id"),
        "name": row.get("name"),
        "description": row.get("description"),
        "longDescription": row.get("long_description"),
        "price": row.get("price") or 0,
        "beforeSalePrice": row.get("before_sale_price"),
        "afterSalePrice": row.get("after_sale_price"),
        "sizes": _public_sizes(sizes),
        "images": row.get("images") or [],
        "rating": row.get("rating") or 0,
        "reviews": row.get("reviews") or 0,
        "notes": notes,
        "category": row.get("category"),
        "isNew": row.get("is_new") is True,
        "isBestseller": row.get("is_bestseller") is True,
        "isActive": row.get("is_active") is not False,
        "isOutOfStock": flag if flag is not None else is_out_of_stock(sizes),
        "isGiftPackage": bool(row.get("is_gift_package")),
        "packagePrice": row.get("package_price"),
        "packageOriginalPrice": row.get("package_original_price"),
        "giftPackageSizes": row.get("gift_package_sizes") or [],
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def transform_product_list(row: Row) -> dict[str, Any]:
    """Convert a product row to the lighter list shape.

    List views trust the persisted ``is_out_of_stock`` flag, keep only the first
    image and drop the long description and notes.
    """
    product = transform_product(row)
    product["isOutOfStock"] = bool(row.get("is_out_of_stock"))
    product["images"] = product["images"][:1]
    del product["longDescription"]
    del product["notes"]
    return product


def build_product_row(payload: ProductPayload) -> Row:
    """Map an admin payload to the column values written to the store.

    Gift packages are priced by ``package_price`` and carry no sized stock. For
    sized products ``price`` is the cheapest effective size price and
    ``is_out_of_stock`` is always derived from the size stock counts.
    """
    row: Row = {
        "name": payload.name,
        "description": payload.description,
        "long_description": payload.long_description or "",
        "category": payload.category,
        "images": payload.images,
        "notes": payload.notes.model_dump() if payload.notes else None,
        "is_new": payload.is_new,
        "is_bestseller": payload.is_bestseller,
        "is_active": payload.is_active,
        "is_gift_package": payload.is_gift_package,
    }
    if payload.is_gift_package:
        row.update(
            {
                "sizes": [],
                "gift_package_sizes": payload.gift_package_sizes,
                "package_price": payload.package_price or 0,
                "package_original_price": payload.package_original_price,
                "is_out_of_stock": payload.is_out_of_stock,
                "price": payload.package_price or 0,
                "before_sale_price": None,
                "after_sale_price": None,
            }
        )
        return row

    sizes = [
        {
            "size": size.size,
            "volume": size.volume,
            "originalPrice": size.original_price,
            "discountedPrice": size.discounted_price,
            "stockCount": size.stock_count,
        }
        for size in payload.sizes
    ]
    row.update(
        {
            "sizes": sizes,
            "is_out_of_stock": is_out_of_stock(sizes),
            "price": min((size.effective_price for size in payload.sizes), default=0),
            "before_sale_price": payload.before_sale_price,
            "after_sale_price": payload.after_sale_price,
        }
    )
    return row


@dataclass(frozen=True)
class ProductQuery:
    """Filters accepted by the product listing endpoint.

    Attributes:
        category: Only products in this category.
        is_bestseller: Filter on the bestseller flag when set.
        is_new: Filter on the new-arrival flag when set.
        is_gift_package: Filter on the gift-package flag when set.
        include_inactive: Include hidden products (admin only).
        page: 1-based page number, None for an unpaginated list.
        limit: Page size, or a plain row cap when ``page`` is None.
    """

    category: Optional[str] = None
    is_bestseller: Optional[bool] = None
    is_new: Optional[bool] = None
    is_gift_package: Optional[bool] = None
    include_inactive: bool = False
    page: Optional[int] = None
    limit: Optional[int] = None

    def filters(self) -> dict[str, Any]:
        filters: dict[str, Any] = {}
        if not self.include_inactive:
            filters["is_active"] = True
        if self.category:
            filters["category"] = self.category
        if self.is_bestseller is not None:
            filters["is_bestseller"] = self.is_bestseller
        if self.is_new is not None:
            filters["is_new"] = self.is_new
        if self.is_gift_package is not None:
            filters["is_gift_package"] = self.is_gift_package
        return filters


@dataclass(frozen=True)
class ProductPage:
    products: list[dict[str, Any]]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return max(math.ceil(self.total / self.limit), 1)


def clamp_limit(raw: Optional[str], default: int, maximum: int) -> int:
    """Parse a ``limit`` query value into ``1..maximum``."""
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        value = default
    return min(max(value, 1), maximum)


def parse_page(raw: Optional[str]) -> int:
    try:
        return max(int(raw or "1"), 1)
    except ValueError:
        return 1


class Catalog:
    """Product reads and admin writes against a record store.

    Args:
        store: Store holding the ``products`` table.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def get_product(self, product_id: str, include_inactive: bool = False) -> dict[str, Any]:
        """Fetch one product in its public detail shape.

        Raises:
            ProductNotFoundError: If no (active) product has this id.
        """
        filters: dict[str, Any] = {"product_id": product_id}
        if not include_inactive:
            filters["is_active"] = True
        row = self.store.select_one(PRODUCTS_TABLE, filters)
        if row is None:
            raise ProductNotFoundError("Product not found")
        return transform_product(row)

    def list_products(self, query: ProductQuery) -> list[dict[str, Any]]:
        """List products newest first, optionally capped by ``query.limit``."""
        rows = self.store.select(
            PRODUCTS_TABLE,
            query.filters(),
            order_by="created_at",
            descending=True,
            limit=query.limit,
        )
        return [transform_product_list(row) for row in rows]

    def page_products(self, query: ProductQuery) -> ProductPage:
        """Return one page of products plus the total matching count."""
        page = query.page or 1
        limit = query.limit or DEFAULT_PAGE_LIMIT
        filters = query.filters()
        rows = self.store.select(
            PRODUCTS_TABLE,
            filters,
            order_by="created_at",
            descending=True,
            offset=(page - 1) * limit,
            limit=limit,
        )
        total = self.store.count(PRODUCTS_TABLE, filters)
        return ProductPage([transform_product_list(row) for row in rows], total, page, limit)

    def create_product(self, payload: ProductPayload) -> dict[str, Any]:
        row = build_product_row(payload)
        row["product_id"] = payload.id or f"product-{int(time.time() * 1000)}-{random_suffix()}"
        row["rating"] = 0
        row["reviews"] = 0
        if row["images"] is None:
            row["images"] = ["/placeholder.svg"]
        if row["notes"] is None:
            row["notes"] = {"top": [], "middle": [], "base": []}
        for flag in ("is_new", "is_bestseller"):
            if row[flag] is None:
                row[flag] = False
        if row["is_active"] is None:
            row["is_active"] = True
        if row["is_out_of_stock"] is None:
            row["is_out_of_stock"] = False
        try:
            created = self.store.insert(PRODUCTS_TABLE, row)
        except StoreError as e:
            logger.error(f"Error creating product: {e}")
            raise StorefrontError(str(e) or "Failed to create product", 500) from e
        logger.info(f"Product created | product_id={created['product_id']}")
        return transform_product(created)

    def update_product(self, product_id: str, payload: ProductPayload) -> dict[str, Any]:
        """Apply an admin update; unset optional fields keep their stored values.

        Raises:
            ProductNotFoundError: If the product does not exist.
        """
        changes = {key: value for key, value in build_product_row(payload).items() if value is not None}
        for nullable in ("before_sale_price", "after_sale_price", "package_original_price"):
            changes.setdefault(nullable, None)
        try:
            updated = self.store.update(PRODUCTS_TABLE, {"product_id": product_id}, changes)
        except StoreError as e:
            logger.error(f"Error updating product {product_id}: {e}")
            raise StorefrontError(str(e) or "Failed to update product", 500) from e
        if not updated:
            raise ProductNotFoundError("Product not found")
        logger.info(f"Product updated | product_id={product_id}")
        return transform_product(updated[0])

    def delete_product(self, product_id: str) -> None:
        """Delete a product.

        Raises:
            ProductNotFoundError: If nothing was deleted.
        """
        try:
            deleted = self.store.delete(PRODUCTS_TABLE, {"product_id": product_id})
        except StoreError as e:
            logger.error(f"Error deleting product {product_id}: {e}")
            raise ProductNotFoundError("Product not found or failed to delete") from e
        if not deleted:
            raise ProductNotFoundError("Product not found or failed to delete")
        logger.info(f"Product deleted | product_id={product_id}")
