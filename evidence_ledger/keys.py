"""
Key Derivation Unit

Turns the operator's passphrase into the symmetric key that protects every
ledger payload. PBKDF2-HMAC-SHA256 with a fixed local salt; the result is
wrapped in an opaque handle that only the cipher wrapper may open.

There is no recovery path: a lost passphrase means unreadable payloads.
"""

import hashlib
from typing import Union

from . import config

KEY_LENGTH = 32
MIN_ITERATIONS = 10000


class DerivedKey:
    """
    Opaque handle around derived key material.

    The raw bytes are not reachable through repr, str, bytes(), equality or
    pickling. Lifetime is the unlocked session of the owning ledger.
    """

    __slots__ = ("_material",)

    def __init__(self, material: bytes):
        if len(material) != KEY_LENGTH:
            raise ValueError(f"Derived key must be {KEY_LENGTH} bytes")
        self._material = material

    def _expose(self) -> bytes:
        return self._material

    def __repr__(self) -> str:
        return "DerivedKey(<redacted>)"

    __str__ = __repr__

    def __reduce__(self):
        raise TypeError("DerivedKey cannot be serialized")


def derive_key(
    passphrase: str,
    salt: Union[str, bytes] = config.KEY_SALT,
    iterations: int = config.KDF_ITERATIONS
) -> DerivedKey:
    """
    Derive a symmetric key from a passphrase.

    Args:
        passphrase: The operator's master passphrase
        salt: Salt constant (str is UTF-8 encoded)
        iterations: PBKDF2 iteration count

    Returns:
        DerivedKey handle

    Raises:
        ValueError: If the passphrase is empty or the iteration count is too low
    """
    if not isinstance(passphrase, str) or not passphrase:
        raise ValueError("Passphrase must be a non-empty string")
    if iterations < MIN_ITERATIONS:
        raise ValueError(f"Iteration count must be at least {MIN_ITERATIONS}")

    if isinstance(salt, str):
        salt = salt.encode('utf-8')

    material = hashlib.pbkdf2_hmac(
        "sha256", passphrase.encode('utf-8'), salt, iterations, dklen=KEY_LENGTH
    )
    return DerivedKey(material)
