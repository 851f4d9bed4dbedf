"""API key generation and hashing.

Keys are looked up by hash, so the stored digest is a plain, unsalted
SHA-256 over the full key.
"""

from __future__ import annotations

import hashlib
import secrets

KEY_PREFIX = "wc_"
KEY_RANDOM_BYTES = 24
DISPLAY_PREFIX_LENGTH = 12  # "wc_" + 9 hex chars


def hash_api_key(full_key: str) -> str:
    """Return the hex SHA-256 digest of a raw key."""
    return hashlib.sha256(full_key.encode("utf-8")).hexdigest()


def generate_api_key() -> tuple[str, str, str]:
    """
    Generate a new API key.

    Returns:
        (full_key, prefix, key_hash).
        The full key is shown to the user once, never stored.
    """
    full_key = f"{KEY_PREFIX}{secrets.token_hex(KEY_RANDOM_BYTES)}"
    prefix = full_key[:DISPLAY_PREFIX_LENGTH]
    return full_key, prefix, hash_api_key(full_key)
