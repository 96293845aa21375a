"""Per-user favorite products."""

from typing import Any

from .catalog import PRODUCTS_TABLE
from .exceptions import StorefrontError, StoreError, UserNotFoundError
from .logger import logger
from .store import RecordStore, Row

USERS_TABLE = "users"
PLACEHOLDER_IMAGE = "/placeholder.svg"


def _size_price(size: dict[str, Any]) -> float:
    return size.get("discountedPrice") or size.get("originalPrice") or size.get("price") or 0


def smallest_price(sizes: list[dict[str, Any]]) -> float:
    """Cheapest positive size price, 0 when no size is priced."""
    prices = [price for price in (_size_price(size) for size in sizes) if price > 0]
    return min(prices, default=0)


def transform_favorite(row: Row) -> dict[str, Any]:
    """Convert a product row to the compact card shown on the favorites page."""
    is_gift_package = bool(row.get("is_gift_package"))
    sizes = row.get("sizes") or []
    images = row.get("images") or []
    favorite = {
        "id": row.get("product_id"),
        "name": row.get("name"),
        "price": (row.get("package_price") or 0) if is_gift_package else smallest_price(sizes),
        "image": images[0] if images else PLACEHOLDER_IMAGE,
        "category": row.get("category"),
        "isNew": bool(row.get("is_new")),
        "isBestseller": bool(row.get("is_bestseller")),
        "isOutOfStock": bool(row.get("is_out_of_stock")),
        "sizes": []
        if is_gift_package
        else [
            {
                "size": size.get("size"),
                "volume": size.get("volume"),
                "originalPrice": size.get("originalPrice") or size.get("price") or 0,
                "discountedPrice": size.get("discountedPrice") or size.get("price") or 0,
            }
            for size in sizes
        ],
        "isGiftPackage": is_gift_package,
        "packagePrice": row.get("package_price") or 0,
        "packageOriginalPrice": row.get("package_original_price") or 0,
        "giftPackageSizes": row.get("gift_package_sizes") or [],
    }
    if row.get("rating") is not None:
        favorite["rating"] = row["rating"]
    return favorite


class FavoriteService:
    """Favorite product ids stored on the user row, in the order they were added.

    Args:
        store: Store holding the ``users`` and ``products`` tables.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def favorite_ids(self, user_id: str) -> list[str]:
        """Product ids saved by the user.

        Raises:
            UserNotFoundError: If the account does not exist.
        """
        user = self.store.select_one(USERS_TABLE, {"id": user_id})
        if user is None:
            raise UserNotFoundError("User not found")
        return list(user.get("favorites") or [])

    def list_favorites(self, user_id: str) -> list[dict[str, Any]]:
        """Favorite products in the order they were added.

        Ids whose product no longer exists are skipped.
        """
        favorites = self.favorite_ids(user_id)
        products = []
        try:
            for product_id in favorites:
                row = self.store.select_one(PRODUCTS_TABLE, {"product_id": product_id})
                if row is not None:
                    products.append(transform_favorite(row))
        except StoreError as e:
            logger.error(f"Error fetching favorite products | user_id={user_id}: {e}")
            raise StorefrontError("Failed to fetch products", 500) from e
        logger.debug(f"Favorites listed | user_id={user_id} | count={len(products)}")
        return products

    def add_favorite(self, user_id: str, product_id: str) -> None:
        favorites = self.favorite_ids(user_id)
        if product_id in favorites:
            return
        self._save(user_id, favorites + [product_id])
        logger.info(f"Added product {product_id} to favorites | user_id={user_id}")

    def remove_favorite(self, user_id: str, product_id: str) -> None:
        favorites = self.favorite_ids(user_id)
        self._save(user_id, [favorite for favorite in favorites if favorite != product_id])
        logger.info(f"Removed product {product_id} from favorites | user_id={user_id}")

    def _save(self, user_id: str, favorites: list[str]) -> None:
        try:
            self.store.update(USERS_TABLE, {"id": user_id}, {"favorites": favorites})
        except StoreError as e:
            logger.error(f"Error updating favorites | user_id={user_id}: {e}")
            raise StorefrontError("Failed to update favorites", 500) from e
