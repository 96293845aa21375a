"""Storefront service: product catalog, checkout and order management API."""

__version__ = "0.1.0"
