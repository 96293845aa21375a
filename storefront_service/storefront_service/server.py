"""FastAPI server implementation for the Storefront Service."""

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from .auth import TokenClaims, TokenDecoder
from .cache import Clock, ResponseCache, wall_clock_ms
from .catalog import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, Catalog, ProductQuery, clamp_limit, parse_page
from .config import Settings
from .discounts import DiscountService
from .favorites import FavoriteService
from .exceptions import StorefrontError, ValidationFailedError
from .logger import logger
from .orders import DEFAULT_ORDER_LIMIT, MAX_ORDER_LIMIT, OrderService
from .producer import OrderEventProducer
from .schemas import (
    DiscountCodePayload,
    DiscountValidationRequest,
    FavoriteRequest,
    OrderCreate,
    OrderStatusUpdate,
    ProductPayload,
)
from .stock import StockReservations
from .store import InMemoryRecordStore, RecordStore


class StorefrontState:
    """Services shared by all requests handled by this process."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[RecordStore] = None,
        clock: Clock = wall_clock_ms,
        producer: Optional[OrderEventProducer] = None,
    ):
        """Wire the services around one store and one response cache.

        Args:
            settings: Runtime settings, read from the environment when omitted.
            store: Record store, an empty in-memory store when omitted.
            clock: Millisecond clock driving cache expiry.
            producer: Publisher for created orders.
        """
        self.settings = settings or Settings.from_env()
        self.store = store if store is not None else InMemoryRecordStore()
        self.cache = ResponseCache(clock)
        self.tokens = TokenDecoder(self.settings.jwt_secret, self.settings.jwt_algorithm)
        self.catalog = Catalog(self.store)
        self.reservations = StockReservations(self.store)
        self.orders = OrderService(self.store, self.reservations, self.cache, producer)
        self.discounts = DiscountService(self.store)
        self.favorites = FavoriteService(self.store)

    @property
    def producer(self) -> Optional[OrderEventProducer]:
        return self.orders.producer

    @producer.setter
    def producer(self, producer: Optional[OrderEventProducer]) -> None:
        self.orders.producer = producer


state = StorefrontState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage the lifecycle of the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    servers = state.settings.kafka_bootstrap_servers
    if servers:
        state.producer = OrderEventProducer(servers, state.settings.orders_topic)
        logger.info(f"Publishing created orders to {state.settings.orders_topic} via {servers}")
    else:
        logger.info("KAFKA_BOOTSTRAP_SERVERS not set, order events disabled")

    yield

    if state.producer:
        state.producer.close()
        state.producer = None
    logger.info("Shutdown complete")


app = FastAPI(title="Storefront Service", lifespan=lifespan)
router = APIRouter()


def get_state() -> StorefrontState:
    return state


def optional_claims(
    authorization: Optional[str] = Header(None), app_state: StorefrontState = Depends(get_state)
) -> Optional[TokenClaims]:
    return app_state.tokens.optional_claims(authorization)


def require_claims(
    authorization: Optional[str] = Header(None), app_state: StorefrontState = Depends(get_state)
) -> TokenClaims:
    return app_state.tokens.require_claims(authorization)


def require_admin(
    authorization: Optional[str] = Header(None), app_state: StorefrontState = Depends(get_state)
) -> TokenClaims:
    return app_state.tokens.require_admin(authorization)


def error_response(message: str, status_code: int, extra: Optional[dict[str, Any]] = None) -> JSONResponse:
    content = {"error": message, "timestamp": datetime.now(timezone.utc).isoformat()}
    content.update(extra or {})
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc.message, exc.status_code, exc.extra)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else error.get("msg", "Invalid request"))
    return error_response("; ".join(problems) or "Invalid request", 400)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error in {request.method} {request.url.path}")
    return error_response("Internal server error", 500, {"details": str(exc)})


def _flag(value: Optional[str]) -> Optional[bool]:
    return None if value is None else value == "true"


def _cache_and_respond(
    app_state: StorefrontState, request: Request, payload: Any, headers: dict[str, str], ttl_ms: int, use_cache: bool
) -> Response:
    body = json.dumps(payload, default=str)
    if use_cache:
        try:
            app_state.cache.set(str(request.url), 200, body, headers, ttl_ms)
        except Exception as e:
            logger.warning(f"Failed to cache response for {request.url.path}: {e}")
    return Response(content=body, status_code=200, headers=headers)


@router.get("/health")
def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/ready")
def readiness_check(app_state: StorefrontState = Depends(get_state)):
    """Check if the service can reach its record store.

    Returns:
        dict: Service readiness status and store connectivity.
    """
    try:
        store_ok = bool(app_state.store.ping())
    except Exception as e:
        logger.error(f"Store ping failed: {e}")
        store_ok = False
    return {"status": "ready" if store_ok else "not_ready", "store": store_ok}


@router.get("/api/products")
async def get_products(
    request: Request,
    claims: Optional[TokenClaims] = Depends(optional_claims),
    app_state: StorefrontState = Depends(get_state),
):
    """Serve a product detail (``id``) or a filtered product list.

    Public reads are answered from the response cache when possible. Admin
    requests with ``includeInactive=true`` always read fresh data and are never
    cached.
    """
    params = request.query_params
    include_inactive = params.get("includeInactive") == "true"
    is_admin = claims is not None and claims.is_admin
    use_cache = not (include_inactive and is_admin)

    if use_cache:
        cached = app_state.cache.get(str(request.url))
        if cached is not None:
            logger.debug(f"Cache hit | url={request.url}")
            return Response(content=cached.body, status_code=cached.status, headers=cached.headers)

    settings = app_state.settings
    product_id = params.get("id")
    if product_id:
        product = app_state.catalog.get_product(product_id, include_inactive=include_inactive and is_admin)
        headers = {"Cache-Control": "no-store", "Content-Type": "application/json"}
        return _cache_and_respond(app_state, request, product, headers, settings.product_detail_cache_ttl_ms, use_cache)

    query = ProductQuery(
        category=params.get("category"),
        is_bestseller=_flag(params.get("isBestseller")),
        is_new=_flag(params.get("isNew")),
        is_gift_package=_flag(params.get("isGiftPackage")),
        include_inactive=include_inactive and is_admin,
        page=parse_page(params.get("page")) if "page" in params else None,
        limit=clamp_limit(params.get("limit"), DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT)
        if "page" in params or "limit" in params
        else None,
    )

    headers = {"Content-Type": "application/json", "Cache-Control": "no-store"}
    if query.page is not None:
        page = app_state.catalog.page_products(query)
        headers.update(
            {
                "X-Total-Count": str(page.total),
                "X-Page": str(page.page),
                "X-Limit": str(page.limit),
                "X-Total-Pages": str(page.total_pages),
            }
        )
        products = page.products
    else:
        products = app_state.catalog.list_products(query)

    logger.info(f"Listed products | count={len(products)} | include_inactive={query.include_inactive}")
    return _cache_and_respond(app_state, request, products, headers, settings.products_cache_ttl_ms, use_cache)


@router.post("/api/products")
async def create_product(
    payload: ProductPayload,
    claims: TokenClaims = Depends(require_admin),
    app_state: StorefrontState = Depends(get_state),
):
    """Create a product and invalidate cached catalog reads."""
    product = app_state.catalog.create_product(payload)
    app_state.cache.clear()
    return {"success": True, "product": product, "message": "Product created successfully"}


@router.put("/api/products")
async def update_product(
    payload: ProductPayload,
    id: Optional[str] = None,
    claims: TokenClaims = Depends(require_admin),
    app_state: StorefrontState = Depends(get_state),
):
    """Update a product by ``id`` and invalidate cached catalog reads."""
    if not id:
        raise ValidationFailedError("Product ID is required")
    product = app_state.catalog.update_product(id, payload)
    app_state.cache.clear()
    return {"success": True, "product": product, "message": "Product updated successfully"}


@router.delete("/api/products")
async def delete_product(
    id: Optional[str] = None,
    claims: TokenClaims = Depends(require_admin),
    app_state: StorefrontState = Depends(get_state),
):
    """Delete a product by ``id`` and invalidate cached catalog reads."""
    if not id:
        raise ValidationFailedError("Product ID is required")
    app_state.catalog.delete_product(id)
    app_state.cache.clear()
    return {"success": True, "message": "Product deleted successfully"}


@router.get("/api/orders")
async def list_orders(
    request: Request,
    claims: TokenClaims = Depends(require_claims),
    app_state: StorefrontState = Depends(get_state),
):
    """List the caller's orders, or every order for admins."""
    params = request.query_params
    page = parse_page(params.get("page")) if "page" in params else None
    limit = (
        clamp_limit(params.get("limit"), DEFAULT_ORDER_LIMIT, MAX_ORDER_LIMIT)
        if "page" in params or "limit" in params
        else None
    )
    result = app_state.orders.list_orders(claims, page=page, limit=limit)
    if page is None:
        return JSONResponse(content=result.orders)

    headers = {
        "X-Total-Count": str(result.total),
        "X-Page": str(result.page),
        "X-Limit": str(result.limit),
        "X-Total-Pages": str(result.total_pages),
        "Cache-Control": "no-store",
    }
    return JSONResponse(content=result.orders, headers=headers)


@router.post("/api/orders")
async def create_order(
    order: OrderCreate,
    claims: Optional[TokenClaims] = Depends(optional_claims),
    app_state: StorefrontState = Depends(get_state),
):
    """Create an order after validating stock for every sized line.

    Returns:
        dict: Success envelope with the persisted order.
    """
    logger.info(f"Received new order | items={len(order.items)} | total={order.total} | payment={order.payment_method}")
    created = app_state.orders.create_order(order, claims)
    return {"success": True, "order": created, "message": "Order created successfully"}


@router.get("/api/admin/orders/{order_id}")
async def get_admin_order(
    order_id: str,
    claims: TokenClaims = Depends(require_admin),
    app_state: StorefrontState = Depends(get_state),
):
    """Fetch one order by order id or row id (admin only)."""
    return app_state.orders.get_order(order_id)


@router.patch("/api/orders/{order_id}")
@router.patch("/api/admin/orders/{order_id}")
async def update_order_status(
    order_id: str,
    update: OrderStatusUpdate,
    claims: TokenClaims = Depends(require_admin),
    app_state: StorefrontState = Depends(get_state),
):
    """Set the status of an order (admin only)."""
    order = app_state.orders.update_status(order_id, update.status)
    return {"success": True, "order": order, "message": "Order status updated successfully"}


@router.post("/api/discount-codes/validate")
async def validate_discount_code(
    request: DiscountValidationRequest,
    claims: Optional[TokenClaims] = Depends(optional_claims),
    app_state: StorefrontState = Depends(get_state),
):
    """Price a discount code against the current cart."""
    return app_state.discounts.validate(request, claims)


@router.get("/api/discount-codes")
async def list_discount_codes(
    claims: TokenClaims = Depends(require_admin),
    app_state: StorefrontState = Depends(get_state),
):
    """List every discount code, newest first (admin only)."""
    return app_state.discounts.list_codes()


@router.post("/api/discount-codes")
async def create_discount_code(
    payload: DiscountCodePayload,
    claims: TokenClaims = Depends(require_admin),
    app_state: StorefrontState = Depends(get_state),
):
    """Create a discount code (admin only)."""
    return {"success": True, "discountCode": app_state.discounts.create_code(payload)}


@router.put("/api/discount-codes")
async def update_discount_code(
    payload: DiscountCodePayload,
    id: Optional[str] = None,
    claims: TokenClaims = Depends(require_admin),
    app_state: StorefrontState = Depends(get_state),
):
    """Edit a discount code by ``id``; ``{"isActive": ...}`` alone toggles it."""
    if not id:
        raise ValidationFailedError("Discount code ID is required")
    return {"success": True, "discountCode": app_state.discounts.update_code(id, payload)}


@router.delete("/api/discount-codes")
async def delete_discount_code(
    id: Optional[str] = None,
    claims: TokenClaims = Depends(require_admin),
    app_state: StorefrontState = Depends(get_state),
):
    """Delete a discount code by ``id`` (admin only)."""
    if not id:
        raise ValidationFailedError("Discount code ID is required")
    app_state.discounts.delete_code(id)
    return {"success": True}


@router.get("/api/favorites")
async def list_favorites(
    claims: TokenClaims = Depends(require_claims),
    app_state: StorefrontState = Depends(get_state),
):
    """The caller's favorite products, in the order they were added."""
    favorites = app_state.favorites.list_favorites(claims.user_id)
    return JSONResponse(
        content=favorites,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate", "Pragma": "no-cache", "Expires": "0"},
    )


@router.post("/api/favorites")
async def add_favorite(
    request: FavoriteRequest,
    claims: TokenClaims = Depends(require_claims),
    app_state: StorefrontState = Depends(get_state),
):
    """Add a product to the caller's favorites."""
    if not request.product_id:
        raise ValidationFailedError("productId required")
    app_state.favorites.add_favorite(claims.user_id, request.product_id)
    return {"success": True}


@router.delete("/api/favorites")
async def remove_favorite(
    request: FavoriteRequest,
    claims: TokenClaims = Depends(require_claims),
    app_state: StorefrontState = Depends(get_state),
):
    """Remove a product from the caller's favorites."""
    if not request.product_id:
        raise ValidationFailedError("productId required")
    app_state.favorites.remove_favorite(claims.user_id, request.product_id)
    return {"success": True}


app.include_router(router)
logger.info("API router mounted.")
