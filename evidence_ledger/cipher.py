"""
Block Cipher Wrapper

Authenticated encryption of a single ledger payload.

Uses ChaCha20-Poly1305 (IETF variant, RFC 8439) through PyNaCl:
- 12-byte random nonce, generated fresh for every call
- 16-byte Poly1305 tag appended to the ciphertext
- Stored form: nonce || ciphertext_with_tag

Any modification of nonce or ciphertext makes decryption fail; corrupted
plaintext is never returned.
"""

import nacl.utils
from nacl.bindings import (
    crypto_aead_chacha20poly1305_ietf_ABYTES,
    crypto_aead_chacha20poly1305_ietf_NPUBBYTES,
    crypto_aead_chacha20poly1305_ietf_decrypt,
    crypto_aead_chacha20poly1305_ietf_encrypt,
)
from nacl.exceptions import CryptoError

from .errors import IntegrityError
from .keys import DerivedKey

NONCE_SIZE = crypto_aead_chacha20poly1305_ietf_NPUBBYTES
TAG_SIZE = crypto_aead_chacha20poly1305_ietf_ABYTES


def encrypt(key: DerivedKey, plaintext: bytes) -> bytes:
    """
    Encrypt a payload under key with a fresh random nonce.

    Returns:
        nonce || ciphertext_with_tag
    """
    nonce = nacl.utils.random(NONCE_SIZE)
    ciphertext = crypto_aead_chacha20poly1305_ietf_encrypt(plaintext, None, nonce, key._expose())
    return nonce + ciphertext


def decrypt(key: DerivedKey, blob: bytes) -> bytes:
    """
    Split and decrypt a stored payload.

    Raises:
        IntegrityError: If the blob is truncated or authentication fails
    """
    if len(blob) < NONCE_SIZE + TAG_SIZE:
        raise IntegrityError("Payload too short to contain nonce and tag")

    nonce, ciphertext = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    try:
        return crypto_aead_chacha20poly1305_ietf_decrypt(ciphertext, None, nonce, key._expose())
    except CryptoError as e:
        raise IntegrityError("Payload authentication failed") from e
