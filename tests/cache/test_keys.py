"""Tests for cache key construction."""

from __future__ import annotations

from storefront.cache.keys import build_cache_key, normalize_path, normalize_query, path_pattern


class TestBuildCacheKey:

    def test_path_without_query(self):
        assert build_cache_key("GET", "/api/products") == "cache:GET:/api/products"

    def test_query_parameters_are_sorted(self):
        a = build_cache_key("GET", "/api/products", "page=2&limit=5&category=books")
        b = build_cache_key("GET", "/api/products", "category=books&page=2&limit=5")
        assert a == b == "cache:GET:/api/products?category=books&limit=5&page=2"

    def test_different_queries_give_different_keys(self):
        assert build_cache_key("GET", "/api/products", "page=1") != build_cache_key(
            "GET", "/api/products", "page=2"
        )

    def test_trailing_slash_is_ignored(self):
        assert build_cache_key("GET", "/api/products/") == build_cache_key("GET", "/api/products")

    def test_method_is_upper_cased(self):
        assert build_cache_key("get", "/api/products").startswith("cache:GET:")


class TestNormalisation:

    def test_root_path_kept(self):
        assert normalize_path("/") == "/"

    def test_blank_values_kept(self):
        assert normalize_query("search=&page=1") == "page=1&search="

    def test_empty_query(self):
        assert normalize_query("") == ""

    def test_path_pattern_covers_queries_and_subpaths(self):
        assert path_pattern("GET", "/api/products/") == "cache:GET:/api/products*"
