"""Storefront API: product catalogue and checkout with response caching."""

__version__ = "2.0.0"
