"""Cache key construction.

Keys are readable rather than hashed so the invalidation service can
address groups of entries with glob patterns:

    cache:GET:/api/products?limit=12&page=1
    cache:GET:/api/products/6f1c0e52-...
"""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode

KEY_PREFIX = "cache"


def normalize_path(path: str) -> str:
    """Strip a trailing slash so /api/products/ and /api/products share a key."""
    if len(path) > 1 and path.endswith("/"):
        return path.rstrip("/") or "/"
    return path


def normalize_query(query_string: str) -> str:
    """Sort query parameters so their order does not change the key.

    Blank values are kept, since ``?search=`` and no search parameter may
    be handled differently by an endpoint.
    """
    if not query_string:
        return ""
    pairs = parse_qsl(query_string, keep_blank_values=True)
    return urlencode(sorted(pairs))


def build_cache_key(method: str, path: str, query_string: str = "") -> str:
    """Build the deterministic key for a request signature."""
    key = f"{KEY_PREFIX}:{method.upper()}:{normalize_path(path)}"
    query = normalize_query(query_string)
    if query:
        key = f"{key}?{query}"
    return key


def path_pattern(method: str, path_prefix: str) -> str:
    """Glob pattern matching every key for a path prefix (any query)."""
    return f"{KEY_PREFIX}:{method.upper()}:{normalize_path(path_prefix)}*"
