from typing import Union

from argon2.low_level import Type, hash_secret_raw

from .crypto import random_bytes


def generate_salt(length: int = 16) -> bytes:
    """Return a cryptographically secure random salt."""
    return random_bytes(length)


def derive_key(
    password: Union[bytes, str],
    salt: bytes,
    time_cost: int = 3,
    memory_cost: int = 65536,
    parallelism: int = 1,
    key_len: int = 32,
) -> bytes:
    """
    Derive a symmetric key from a password using Argon2id.
    Returns raw derived key bytes; the salt must be kept to re-derive it.
    """
    if isinstance(password, str):
        password = password.encode("utf-8")

    return hash_secret_raw(
        secret=password,
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=key_len,
        type=Type.ID,
    )
