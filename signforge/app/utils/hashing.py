"""
Content hashing for tamper evidence.

Current scope:
- Deterministic SHA-256 of the original uploaded bytes, computed before any
  modification and printed on the audit page.

Explicit non-scope:
- Hashing the composited output
- Digital signature application

IMPORTANT DESIGN RULE:
- This module hashes bytes, and bytes only.
"""

import hashlib
from typing import Union


def compute_document_hash(data: Union[bytes, bytearray]) -> str:
    """
    Compute the SHA-256 digest of the exact bytes given.

    Args:
        data:
            Original document bytes, exactly as uploaded.

    Returns:
        Lowercase hexadecimal SHA-256 digest (64 characters).
    """
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(
            "compute_document_hash expects bytes, "
            f"got {type(data).__name__}"
        )

    return hashlib.sha256(data).hexdigest()
