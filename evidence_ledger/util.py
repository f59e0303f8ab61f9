"""
Utility functions for the evidence ledger.

Provides time, encoding, comparison and masking helpers.
"""

import base64
import hmac
import secrets
import time
from typing import Union


def now_millis() -> int:
    """Get current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def b64e(b: bytes) -> str:
    """Base64 encode bytes to string."""
    return base64.b64encode(b).decode('ascii')


def constant_time_compare(a: Union[str, bytes], b: Union[str, bytes]) -> bool:
    """
    Compare two strings/bytes in constant time to prevent timing attacks.
    """
    if isinstance(a, str):
        a = a.encode('utf-8')
    if isinstance(b, str):
        b = b.encode('utf-8')
    return hmac.compare_digest(a, b)


def freshness_marker(timestamp_ms: int) -> str:
    """
    Generate the per-block freshness marker.

    This is not a cryptographic signature; it only makes two blocks written
    in the same millisecond distinguishable.
    """
    return f"SIG_{timestamp_ms}_{secrets.token_hex(4)}"


def mask_value(value: str, fully_masked: bool = False, max_chars: int = 50) -> str:
    """
    Mask a rejected value before it is written anywhere.

    Secrets are replaced entirely; everything else is truncated.
    """
    if fully_masked:
        return '********'
    if len(value) > max_chars:
        return value[:max_chars] + '...'
    return value
