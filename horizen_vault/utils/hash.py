"""Hashing utilities for backup integrity verification.

Provides SHA-256 digests over compact JSON. Keys keep document order, so a
bundle written by the web app hashes to the same digest here.
"""

import hashlib
import hmac
import json
from typing import Any


HASH_PREFIX = "sha256:"


def hash_bytes(data: bytes, algorithm: str = "sha256") -> str:
    """
    Calculate hash of bytes.

    Args:
        data: Bytes to hash
        algorithm: Hash algorithm

    Returns:
        Hexadecimal hash string
    """
    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


def hash_string(text: str, algorithm: str = "sha256") -> str:
    """
    Calculate hash of a string.

    Args:
        text: String to hash
        algorithm: Hash algorithm

    Returns:
        Hexadecimal hash string
    """
    return hash_bytes(text.encode("utf-8"), algorithm)


def canonical_json(value: Any) -> str:
    """Serialize a JSON-compatible value with no whitespace, keeping key order."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def hash_json(value: Any) -> str:
    """
    Hash a JSON-compatible value.

    Returns:
        Digest in the form "sha256:<hex>"
    """
    return HASH_PREFIX + hash_string(canonical_json(value))


def digests_match(expected: str, actual: str) -> bool:
    """Compare two digest strings in constant time, ignoring hex case."""
    return hmac.compare_digest(expected.lower(), actual.lower())


def is_utf8_encodable(value: Any) -> bool:
    """False when a JSON-compatible value holds text UTF-8 cannot encode (lone surrogates)."""
    try:
        canonical_json(value).encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True
