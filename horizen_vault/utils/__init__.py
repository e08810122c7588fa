"""Utility modules for the Horizen vault.

Provides common utilities:
- Logging configuration
- Content hashing for backup integrity
"""

from .hash import (
    canonical_json,
    digests_match,
    hash_bytes,
    hash_json,
    hash_string,
    is_utf8_encodable,
)
from .logging import (
    RedactingFilter,
    get_logger,
    setup_logging,
)


__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "RedactingFilter",
    # Hashing
    "hash_bytes",
    "hash_string",
    "hash_json",
    "canonical_json",
    "digests_match",
    "is_utf8_encodable",
]
