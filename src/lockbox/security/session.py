"""In-memory session key store protecting secrets held by key objects.

The store owns one ephemeral protection key (32 random bytes, never persisted)
and uses it to wrap the raw secrets that key objects carry around. Each
protection key has a generation number; every wrapped secret records the
generation (and the store's session id) it was produced under. Calling
refresh() swaps in a new protection key and bumps the generation, so every
secret wrapped before the call is permanently useless: unwrap() raises
StaleGeneration for it. Tampered or corrupted secrets of the current
generation raise AuthenticationFailure instead.

Readers never take the lock: they read an immutable (key, generation)
snapshot and work on it. refresh() builds a new snapshot under the lock and
publishes it with a single attribute assignment, then zeroes the old key.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Optional

from lockbox.core.exceptions import (
    AuthenticationFailure,
    DecryptionError,
    StaleGeneration,
)
from .crypto import aead_decrypt, aead_encrypt, generate_key, random_bytes, zeroize


SESSION_ID_SIZE = 16


@dataclass(frozen=True)
class WrappedSecret:
    """A secret encrypted under one generation of a session protection key."""

    session_id: bytes
    generation: int
    blob: bytes = field(repr=False)


@dataclass(frozen=True, eq=False)
class _SessionState:
    generation: int
    key: bytearray = field(repr=False)


class SessionKeyStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._session_id: Optional[bytes] = None
        self._state: Optional[_SessionState] = None

    def __repr__(self) -> str:
        return f"<SessionKeyStore generation={self.generation}>"

    def __getstate__(self):
        raise TypeError("SessionKeyStore cannot be pickled")

    @property
    def initialized(self) -> bool:
        return self._state is not None

    @property
    def generation(self) -> int:
        """Current generation, or 0 if the store has not been initialized."""
        state = self._state
        return state.generation if state is not None else 0

    def _new_state(self) -> _SessionState:
        # caller holds self._lock
        if self._session_id is None:
            self._session_id = random_bytes(SESSION_ID_SIZE)
        key = bytearray(generate_key())
        return _SessionState(generation=self.generation + 1, key=key)

    def _aad(self, generation: int) -> bytes:
        return b"lockbox-session:" + self._session_id + generation.to_bytes(8, "big")

    def initialize(self) -> None:
        """Generate the first protection key. No-op if one already exists."""
        if self._state is not None:
            return
        with self._lock:
            if self._state is None:
                self._state = self._new_state()

    def _snapshot(self) -> _SessionState:
        state = self._state
        if state is None:
            self.initialize()
            state = self._state
        return state

    def wrap(self, secret: bytes) -> WrappedSecret:
        """Encrypt ``secret`` under the current protection key."""
        while True:
            state = self._snapshot()
            blob = aead_encrypt(bytes(state.key), bytes(secret), self._aad(state.generation))
            # a refresh may have swapped (and zeroed) the key mid-encryption
            if self._state is state:
                return WrappedSecret(self._session_id, state.generation, blob)

    def unwrap(self, wrapped: WrappedSecret) -> bytes:
        """Return the secret inside ``wrapped``.

        Raises:
            StaleGeneration: ``wrapped`` was produced by another store or
                before the last refresh().
            AuthenticationFailure: ``wrapped`` is current but its ciphertext
                does not verify.
        """
        state = self._state
        if (
            state is None
            or wrapped.session_id != self._session_id
            or wrapped.generation != state.generation
        ):
            raise StaleGeneration(
                f"secret from generation {wrapped.generation} is no longer valid "
                f"(current generation {self.generation}); the session key was refreshed"
            )
        try:
            return aead_decrypt(bytes(state.key), wrapped.blob, self._aad(state.generation))
        except DecryptionError as exc:
            if self._state is not state:
                raise StaleGeneration(
                    f"session key was refreshed while unwrapping generation {wrapped.generation}"
                ) from exc
            raise AuthenticationFailure("wrapped secret failed integrity verification") from exc

    def refresh(self) -> None:
        """Replace the protection key, invalidating every wrapped secret."""
        with self._lock:
            old = self._state
            self._state = self._new_state()
        if old is not None:
            zeroize(old.key)


# module-level default store: one per process
_default_store = SessionKeyStore()


def get_session_store() -> SessionKeyStore:
    return _default_store


def session_key_refresh() -> None:
    """Invalidate every key object bound to the default store."""
    get_session_store().refresh()
