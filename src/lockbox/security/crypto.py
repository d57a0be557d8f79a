"""Low-level randomness and AEAD helpers shared by the session store and keys.

Blob layout produced by :func:`aead_encrypt` (AES-GCM):
- 12 bytes: random nonce
- N bytes: ciphertext followed by the 16-byte GCM tag

Every random byte in Lockbox comes from :func:`random_bytes`, so a failing
entropy source surfaces as a single error type (``EntropyUnavailable``).
"""
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from lockbox.core.exceptions import EntropyUnavailable, DecryptionError


KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


def random_bytes(length: int) -> bytes:
    try:
        return os.urandom(length)
    except (OSError, NotImplementedError) as exc:
        raise EntropyUnavailable(f"secure random source unavailable: {exc}") from exc


def generate_key(length: int = KEY_SIZE) -> bytes:
    return random_bytes(length)


def aead_encrypt(key: bytes, plaintext: bytes, aad: Optional[bytes] = None) -> bytes:
    nonce = random_bytes(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, aad)


def aead_decrypt(key: bytes, blob: bytes, aad: Optional[bytes] = None) -> bytes:
    """Reverse :func:`aead_encrypt`.

    Raises ``DecryptionError`` for short blobs and failed tags; callers that
    need a more specific error translate it themselves.
    """
    if len(blob) < NONCE_SIZE + TAG_SIZE:
        raise DecryptionError("ciphertext too short to contain nonce and tag")
    nonce, ct = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
    try:
        return AESGCM(key).decrypt(nonce, ct, aad)
    except InvalidTag as exc:
        raise DecryptionError("authentication tag mismatch") from exc


def zeroize(buf: bytearray) -> None:
    # best-effort overwrite; immutable copies made elsewhere are out of reach
    for i in range(len(buf)):
        buf[i] = 0
