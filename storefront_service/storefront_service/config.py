"""Service configuration loaded from environment variables."""

import os
from typing import Optional

from pydantic import BaseModel, Field


class Settings(BaseModel):
    """Runtime settings for the storefront service.

    Attributes:
        jwt_secret: Shared secret used to verify bearer tokens.
        jwt_algorithm: Signing algorithm expected on bearer tokens.
        products_cache_ttl_ms: TTL for cached product list responses.
        product_detail_cache_ttl_ms: TTL for cached single product responses.
        kafka_bootstrap_servers: Kafka brokers for order events, None disables publishing.
        orders_topic: Topic that receives created orders.
        log_level: Minimum level for the stderr sink.
        log_file: Optional path of a rotating log file.
        host: Interface uvicorn binds to.
        port: Port uvicorn listens on.
    """

    jwt_secret: str = "dev-secret"
    jwt_algorithm: str = "HS256"
    products_cache_ttl_ms: int = Field(30_000, ge=0)
    product_detail_cache_ttl_ms: int = Field(300_000, ge=0)
    kafka_bootstrap_servers: Optional[str] = None
    orders_topic: str = "orders.created"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment.

        Returns:
            Settings: Settings with environment overrides applied.
        """
        env = {
            "jwt_secret": os.getenv("JWT_SECRET"),
            "jwt_algorithm": os.getenv("JWT_ALGORITHM"),
            "products_cache_ttl_ms": os.getenv("PRODUCTS_CACHE_TTL_MS"),
            "product_detail_cache_ttl_ms": os.getenv("PRODUCT_DETAIL_CACHE_TTL_MS"),
            "kafka_bootstrap_servers": os.getenv("KAFKA_BOOTSTRAP_SERVERS"),
            "orders_topic": os.getenv("ORDERS_TOPIC"),
            "log_level": os.getenv("LOG_LEVEL"),
            "log_file": os.getenv("LOG_FILE"),
            "host": os.getenv("HOST"),
            "port": os.getenv("PORT"),
        }
        return cls(**{key: value for key, value in env.items() if value})
