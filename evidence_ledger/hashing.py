"""
Evidence Ledger Hashing

All hashes use SHA-256 with lowercase hexadecimal output.
"""

import hashlib
from typing import Any, Dict, Union

from .canonicalization import canonicalize


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 hash and return as lowercase hex string."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def block_hash(metadata: Dict[str, Any]) -> str:
    """
    Compute the link hash of a block.

    block_hash = SHA-256(CJE(block metadata))

    Only metadata is hashed, never the encrypted payload, so the chain can
    be audited without the key.
    """
    return sha256_hex(canonicalize(metadata))


def record_hash(plaintext: bytes) -> str:
    """Compute the plaintext hash stored in a block's data_hash."""
    return sha256_hex(plaintext)
