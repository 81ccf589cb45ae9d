"""Cache key derivation."""

from __future__ import annotations

import hashlib

KEY_LENGTH = 64


def derive_key(identity: str) -> str:
    """Map a request identity (a URL) to a fixed-length cache key.

    SHA-256 over the UTF-8 bytes, lowercase hex.
    """
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()


def is_cache_key(value: str) -> bool:
    """Whether ``value`` has the shape of a key produced by derive_key."""
    if len(value) != KEY_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in value)
