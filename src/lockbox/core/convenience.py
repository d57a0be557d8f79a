"""High-level encrypt/decrypt helpers for bytes, strings, objects and files.

Every helper takes a key object from :mod:`lockbox.security.keys`; the key
decides the algorithm. The ``encrypt_*`` helpers return ciphertext bytes, or
write them to ``dest`` and return None. The ``decrypt_*`` helpers accept
either ciphertext bytes or the path of a file holding ciphertext.
"""
from __future__ import annotations

import logging
import os
import pickle
from pathlib import Path
from typing import Any, Optional, Union

from lockbox.security.keys import CipherKey

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]
Source = Union[bytes, bytearray, memoryview, str, os.PathLike]


def _read_source(data: Source) -> bytes:
    # bytes are ciphertext, str/PathLike are paths to ciphertext
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, (str, os.PathLike)):
        return Path(data).read_bytes()
    raise TypeError(f"expected bytes or a path, not {type(data).__name__}")


def _emit(result: bytes, dest: Optional[PathLike]) -> Optional[bytes]:
    if dest is None:
        return result
    Path(dest).write_bytes(result)
    logger.debug("Wrote %d bytes to %s", len(result), dest)
    return None


def encrypt_data(data: bytes, key: CipherKey, dest: Optional[PathLike] = None) -> Optional[bytes]:
    return _emit(key.encrypt(data), dest)


def decrypt_data(data: Source, key: CipherKey, dest: Optional[PathLike] = None) -> Optional[bytes]:
    return _emit(key.decrypt(_read_source(data)), dest)


def encrypt_string(text: str, key: CipherKey, dest: Optional[PathLike] = None) -> Optional[bytes]:
    return encrypt_data(text.encode("utf-8"), key, dest)


def decrypt_string(data: Source, key: CipherKey) -> str:
    return key.decrypt(_read_source(data)).decode("utf-8")


def encrypt_object(obj: Any, key: CipherKey, dest: Optional[PathLike] = None) -> Optional[bytes]:
    """Pickle ``obj`` and encrypt the result."""
    return encrypt_data(pickle.dumps(obj, protocol=pickle.HIGHEST_PROTOCOL), key, dest)


def decrypt_object(data: Source, key: CipherKey) -> Any:
    """Decrypt and unpickle an object written by :func:`encrypt_object`.

    Only use this on data encrypted by someone you trust: unpickling runs code.
    """
    return pickle.loads(key.decrypt(_read_source(data)))


def encrypt_file(path: PathLike, key: CipherKey, dest: Optional[PathLike] = None) -> Path:
    """Encrypt the file at ``path`` into ``dest`` (in place by default)."""
    target = Path(dest if dest is not None else path)
    target.write_bytes(key.encrypt(Path(path).read_bytes()))
    logger.debug("Encrypted %s -> %s", path, target)
    return target


def decrypt_file(path: PathLike, key: CipherKey, dest: Optional[PathLike] = None) -> Path:
    """Decrypt the file at ``path`` into ``dest`` (in place by default)."""
    target = Path(dest if dest is not None else path)
    target.write_bytes(key.decrypt(Path(path).read_bytes()))
    logger.debug("Decrypted %s -> %s", path, target)
    return target
