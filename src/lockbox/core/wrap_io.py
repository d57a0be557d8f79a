"""Transparent encryption around arbitrary file writers and readers.

Any function that writes a file can be made to produce an encrypted file,
and any function that reads one can be fed an encrypted file::

    encrypt(lambda p: df.to_csv(p, index=False), "data.csv", key)
    df = decrypt(pd.read_csv, "data.csv", key)

The writer/reader works on a private temporary file (same suffix as the
target, mode 0600) that is removed on every exit path, errors included.
"""
from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from lockbox.security.keys import CipherKey
from .convenience import PathLike, decrypt_file, encrypt_file

logger = logging.getLogger(__name__)


def _temp_path(suffix: str) -> Path:
    fd, name = tempfile.mkstemp(suffix=suffix, prefix="lockbox-")
    try:
        os.fchmod(fd, 0o600)
    except (AttributeError, OSError):
        # no fchmod on Windows; mkstemp already creates owner-only files
        pass
    os.close(fd)
    logger.debug("Created temporary file %s", name)
    return Path(name)


def _discard(path: Path) -> None:
    try:
        path.unlink()
        logger.debug("Removed temporary file %s", path)
    except FileNotFoundError:
        pass


@contextmanager
def encrypted_output(path: PathLike, key: CipherKey) -> Iterator[Path]:
    """Yield a temporary path; on success its contents are encrypted into ``path``.

    If the body raises, ``path`` is left untouched.
    """
    tmp = _temp_path(Path(path).suffix)
    try:
        yield tmp
        encrypt_file(tmp, key, dest=path)
    finally:
        _discard(tmp)


@contextmanager
def decrypted_input(path: PathLike, key: CipherKey) -> Iterator[Path]:
    """Yield a temporary path holding the decrypted contents of ``path``."""
    tmp = _temp_path(Path(path).suffix)
    try:
        decrypt_file(path, key, dest=tmp)
        yield tmp
    finally:
        _discard(tmp)


def encrypt(write: Callable[..., Any], path: PathLike, key: CipherKey, *args, **kwargs) -> Any:
    """Call ``write(tmp, *args, **kwargs)`` and store its output encrypted at ``path``."""
    with encrypted_output(path, key) as tmp:
        return write(tmp, *args, **kwargs)


def decrypt(read: Callable[..., Any], path: PathLike, key: CipherKey, *args, **kwargs) -> Any:
    """Decrypt ``path`` and return ``read(tmp, *args, **kwargs)``."""
    with decrypted_input(path, key) as tmp:
        return read(tmp, *args, **kwargs)
