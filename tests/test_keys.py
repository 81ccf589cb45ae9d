"""
Tests for cache key derivation.
"""

from __future__ import annotations

import hashlib

from dlcache.cache.keys import KEY_LENGTH, derive_key, is_cache_key


class TestDeriveKey:
    def test_deterministic(self) -> None:
        url = "https://example.com/watch?v=abc"
        assert derive_key(url) == derive_key(url)

    def test_distinct_identities_get_distinct_keys(self) -> None:
        urls = [f"https://example.com/watch?v={i}" for i in range(200)]
        keys = {derive_key(u) for u in urls}
        assert len(keys) == len(urls)

    def test_fixed_length_hex(self) -> None:
        for url in ["", "a", "https://example.com/" + "x" * 5000, "https://例え.jp/動画"]:
            key = derive_key(url)
            assert len(key) == KEY_LENGTH
            assert is_cache_key(key)

    def test_is_sha256_of_utf8(self) -> None:
        url = "https://example.com/ü"
        assert derive_key(url) == hashlib.sha256(url.encode("utf-8")).hexdigest()


class TestIsCacheKey:
    def test_rejects_wrong_shapes(self) -> None:
        assert not is_cache_key("abc")
        assert not is_cache_key("g" * KEY_LENGTH)
        assert not is_cache_key("A" * KEY_LENGTH)
