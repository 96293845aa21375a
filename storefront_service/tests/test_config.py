"""Tests for environment-driven settings."""

from storefront_service import __version__
from storefront_service.config import Settings


def test_version():
    """The package exposes its version."""
    assert __version__ == "0.1.0"


def test_defaults_without_environment(monkeypatch):
    """Unset variables fall back to the documented defaults."""
    for name in ("PRODUCTS_CACHE_TTL_MS", "PRODUCT_DETAIL_CACHE_TTL_MS", "KAFKA_BOOTSTRAP_SERVERS"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.products_cache_ttl_ms == 30_000
    assert settings.product_detail_cache_ttl_ms == 300_000
    assert settings.kafka_bootstrap_servers is None


def test_environment_overrides(monkeypatch):
    """TTL knobs and brokers are read from the environment."""
    monkeypatch.setenv("PRODUCTS_CACHE_TTL_MS", "5000")
    monkeypatch.setenv("PRODUCT_DETAIL_CACHE_TTL_MS", "60000")
    monkeypatch.setenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")

    settings = Settings.from_env()

    assert settings.products_cache_ttl_ms == 5000
    assert settings.product_detail_cache_ttl_ms == 60000
    assert settings.kafka_bootstrap_servers == "kafka:9092"
