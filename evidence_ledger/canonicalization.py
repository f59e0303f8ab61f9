"""
Evidence Ledger Canonicalization

Two canonical forms are used throughout the ledger:

- Canonical text: every externally supplied string is normalized to a single
  Unicode representation before any check runs on it, so a disallowed
  character cannot be smuggled in through an alternate encoding.
- Canonical JSON: records and block metadata are serialized to identical
  bytes regardless of key order, so hashes are stable.
"""

import json
import re
import unicodedata
from typing import Any, Dict, List, Optional, Union

# C0 controls and DEL, except tab (0x09), newline (0x0A) and carriage return (0x0D)
CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

UNICODE_FORM = 'NFKC'


def canonicalize_text(raw: Optional[str]) -> str:
    """
    Canonicalize an untrusted string.

    Steps:
    - Unicode normalization to NFKC
    - Strip control characters except tab/newline/carriage-return
    - Trim leading and trailing whitespace

    Returns:
        The canonical string ("" for None or empty input)
    """
    if not raw:
        return ''

    clean = unicodedata.normalize(UNICODE_FORM, raw)
    clean = CONTROL_CHARS.sub('', clean)
    return clean.strip()


def canonicalize(obj: Any) -> bytes:
    """
    Convert an object to canonical JSON bytes.

    Rules:
    - Object keys sorted lexicographically (Unicode code point order)
    - No whitespace between tokens (compact form)
    - UTF-8 encoding, no BOM
    - Arrays preserve order

    Returns:
        UTF-8 encoded bytes of canonical JSON
    """
    canonical = _canonicalize_value(obj)
    return json.dumps(canonical, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def _canonicalize_value(value: Any) -> Any:
    """Recursively canonicalize a value."""
    if value is None:
        return None
    elif isinstance(value, bool):
        return value
    elif isinstance(value, (int, float)):
        return value
    elif isinstance(value, str):
        return value
    elif isinstance(value, dict):
        return _canonicalize_object(value)
    elif isinstance(value, (list, tuple)):
        return _canonicalize_array(value)
    else:
        raise ValueError(f"Cannot canonicalize type: {type(value)}")


def _canonicalize_object(obj: Dict[str, Any]) -> Dict[str, Any]:
    sorted_keys = sorted(obj.keys())
    return {k: _canonicalize_value(obj[k]) for k in sorted_keys}


def _canonicalize_array(arr: Union[List, tuple]) -> List:
    return [_canonicalize_value(item) for item in arr]
