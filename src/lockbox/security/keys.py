"""Key objects: one encrypt/decrypt interface over openssl and sodium keys.

Four kinds of key are supported:

- ``key_openssl``: AES symmetric key (GCM by default, or CBC/CTR)
- ``key_sodium``: libsodium secretbox symmetric key
- ``keypair_openssl``: RSA key pair, envelope encryption + RSA-PSS signatures
- ``keypair_sodium``: X25519 key pair, crypto_box (or sealed box)

The secret half of a key (the symmetric key or our private key) is never kept
on the object in the clear. Constructors wrap it with the session key store
and every encrypt/decrypt call unwraps it just in time. Pickling a key object
drops the store reference, so a key saved to disk and loaded into another
process (or used after session_key_refresh()) raises StaleGeneration rather
than decrypting anything.

For key pairs, ``pub`` is always the *other* party's public key and ``key`` is
our own private key. Alice encrypts to Bob with ``(bob_pub, alice_key)`` and
Bob decrypts with ``(alice_pub, bob_key)``.
"""
from __future__ import annotations

import os
import struct
from pathlib import Path
from typing import Optional, Union

import nacl.exceptions
import nacl.public
import nacl.secret
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives import padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from lockbox.core.exceptions import DecryptionError, KeyFileError, KeyTypeError, LockboxError
from .crypto import aead_decrypt, aead_encrypt, random_bytes
from .kdf import derive_key
from .keyfiles import Password, PathLike, load_private_key, load_public_key
from .keystore import assess_keyring_backend, load_key, save_key
from .session import SessionKeyStore, WrappedSecret, get_session_store


BytesLike = Union[bytes, bytearray, memoryview]

AES_KEY_SIZES = (16, 24, 32)
AES_BLOCK_SIZE = 16
OPENSSL_MODES = ("gcm", "cbc", "ctr")
ENVELOPE_KEY_SIZE = 32

_OAEP = padding.OAEP(mgf=padding.MGF1(algorithm=hashes.SHA256()), algorithm=hashes.SHA256(), label=None)
_PSS = padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=padding.PSS.MAX_LENGTH)


def _as_key_bytes(key) -> bytes:
    if not isinstance(key, (bytes, bytearray, memoryview)):
        raise KeyTypeError(f"key must be bytes, not {type(key).__name__}")
    return bytes(key)


def _pack_field(value: bytes) -> bytes:
    return struct.pack(">H", len(value)) + value


def _split_field(data: bytes) -> tuple[bytes, bytes]:
    # inverse of _pack_field: returns (field, remainder)
    if len(data) < 2:
        raise DecryptionError("ciphertext truncated (missing length prefix)")
    (length,) = struct.unpack(">H", data[:2])
    if len(data) < 2 + length:
        raise DecryptionError("ciphertext truncated")
    return data[2:2 + length], data[2 + length:]


class CipherKey:
    """Base class for key objects.

    Subclasses set ``key_type`` and ``backend`` and implement encrypt/decrypt
    on bytes.
    """

    key_type = ""
    backend = ""

    def __init__(self, store: Optional[SessionKeyStore] = None):
        self._store = store if store is not None else get_session_store()

    def __repr__(self) -> str:
        return f"<lockbox key: {self.backend} {self.key_type}>"

    def __getstate__(self):
        state = self.__dict__.copy()
        del state["_store"]
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)
        self._store = get_session_store()

    def _protect(self, secret: bytes) -> WrappedSecret:
        return self._store.wrap(secret)

    def _reveal(self, wrapped: WrappedSecret) -> bytes:
        return self._store.unwrap(wrapped)

    def encrypt(self, data: BytesLike) -> bytes:
        raise NotImplementedError

    def decrypt(self, data: BytesLike) -> bytes:
        raise NotImplementedError


class OpenSSLKey(CipherKey):
    key_type = "symmetric"
    backend = "openssl"

    def __init__(self, key: BytesLike, mode: str = "gcm", store: Optional[SessionKeyStore] = None):
        super().__init__(store)
        key = _as_key_bytes(key)
        if len(key) not in AES_KEY_SIZES:
            raise KeyTypeError(f"AES key must be 16, 24 or 32 bytes, got {len(key)}")
        if mode not in OPENSSL_MODES:
            raise KeyTypeError(f"unsupported AES mode {mode!r}; expected one of {OPENSSL_MODES}")
        self.mode = mode
        self._key = self._protect(key)

    def __repr__(self) -> str:
        return f"<lockbox key: openssl symmetric (aes-{self.mode})>"

    def encrypt(self, data: BytesLike) -> bytes:
        key = self._reveal(self._key)
        data = bytes(data)
        if self.mode == "gcm":
            return aead_encrypt(key, data)

        iv = random_bytes(AES_BLOCK_SIZE)
        if self.mode == "cbc":
            padder = sym_padding.PKCS7(algorithms.AES.block_size).padder()
            data = padder.update(data) + padder.finalize()
            mode = modes.CBC(iv)
        else:
            mode = modes.CTR(iv)
        encryptor = Cipher(algorithms.AES(key), mode).encryptor()
        return iv + encryptor.update(data) + encryptor.finalize()

    def decrypt(self, data: BytesLike) -> bytes:
        key = self._reveal(self._key)
        data = bytes(data)
        if self.mode == "gcm":
            return aead_decrypt(key, data)

        if len(data) < AES_BLOCK_SIZE:
            raise DecryptionError("ciphertext too short to contain IV")
        iv, ct = data[:AES_BLOCK_SIZE], data[AES_BLOCK_SIZE:]
        if self.mode == "cbc":
            if len(ct) % AES_BLOCK_SIZE:
                raise DecryptionError("CBC ciphertext is not a whole number of blocks")
            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ct) + decryptor.finalize()
            unpadder = sym_padding.PKCS7(algorithms.AES.block_size).unpadder()
            try:
                return unpadder.update(padded) + unpadder.finalize()
            except ValueError as exc:
                raise DecryptionError("invalid padding (wrong key or corrupt data)") from exc
        decryptor = Cipher(algorithms.AES(key), modes.CTR(iv)).decryptor()
        return decryptor.update(ct) + decryptor.finalize()


class SodiumKey(CipherKey):
    key_type = "symmetric"
    backend = "sodium"

    def __init__(self, key: BytesLike, store: Optional[SessionKeyStore] = None):
        super().__init__(store)
        key = _as_key_bytes(key)
        if len(key) != nacl.secret.SecretBox.KEY_SIZE:
            raise KeyTypeError(
                f"sodium key must be {nacl.secret.SecretBox.KEY_SIZE} bytes, got {len(key)}"
            )
        self._key = self._protect(key)

    def encrypt(self, data: BytesLike) -> bytes:
        box = nacl.secret.SecretBox(self._reveal(self._key))
        nonce = random_bytes(nacl.secret.SecretBox.NONCE_SIZE)
        return bytes(box.encrypt(bytes(data), nonce))

    def decrypt(self, data: BytesLike) -> bytes:
        box = nacl.secret.SecretBox(self._reveal(self._key))
        try:
            return box.decrypt(bytes(data))
        except nacl.exceptions.CryptoError as exc:
            raise DecryptionError("failed to decrypt (wrong key or corrupt data)") from exc


class OpenSSLKeyPair(CipherKey):
    """RSA key pair.

    Ciphertext layout, all length prefixes are 2-byte big-endian:

    - authenticated: ``len(sig) || sig || payload`` where ``sig`` is an
      RSA-PSS/SHA-256 signature of ``payload`` by our private key
    - envelope payload: ``len(ek) || ek || nonce || aes-gcm ciphertext`` where
      ``ek`` is a fresh 256-bit AES key encrypted to ``pub`` with RSA-OAEP
    - plain payload: RSA-OAEP ciphertext of the data (size limited)
    """

    key_type = "pair"
    backend = "openssl"

    def __init__(
        self,
        pub: Union[rsa.RSAPublicKey, PathLike, None],
        key: Union[rsa.RSAPrivateKey, PathLike, None],
        envelope: bool = True,
        password: Password = None,
        authenticated: bool = True,
        store: Optional[SessionKeyStore] = None,
    ):
        super().__init__(store)
        pub_key = pub if isinstance(pub, rsa.RSAPublicKey) else load_public_key(pub)
        priv_key = key if isinstance(key, rsa.RSAPrivateKey) else load_private_key(key, password)
        self.envelope = envelope
        self.authenticated = authenticated
        self._pub = pub_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        self._key = self._protect(
            priv_key.private_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )

    def _public(self) -> rsa.RSAPublicKey:
        return serialization.load_der_public_key(self._pub)

    def _private(self) -> rsa.RSAPrivateKey:
        return serialization.load_der_private_key(self._reveal(self._key), password=None)

    def encrypt(self, data: BytesLike) -> bytes:
        data = bytes(data)
        pub = self._public()
        if self.envelope:
            session_key = random_bytes(ENVELOPE_KEY_SIZE)
            payload = _pack_field(pub.encrypt(session_key, _OAEP)) + aead_encrypt(session_key, data)
        else:
            try:
                payload = pub.encrypt(data, _OAEP)
            except ValueError as exc:
                raise LockboxError(
                    f"data too long for RSA without envelope ({len(data)} bytes); use envelope=True"
                ) from exc
        if self.authenticated:
            signature = self._private().sign(payload, _PSS, hashes.SHA256())
            payload = _pack_field(signature) + payload
        return payload

    def decrypt(self, data: BytesLike) -> bytes:
        payload = bytes(data)
        if self.authenticated:
            signature, payload = _split_field(payload)
            try:
                self._public().verify(signature, payload, _PSS, hashes.SHA256())
            except InvalidSignature as exc:
                raise DecryptionError("signature verification failed") from exc
        priv = self._private()
        try:
            if self.envelope:
                encrypted_key, body = _split_field(payload)
                return aead_decrypt(priv.decrypt(encrypted_key, _OAEP), body)
            return priv.decrypt(payload, _OAEP)
        except ValueError as exc:
            raise DecryptionError("RSA decryption failed") from exc


def _read_raw_key(value, size: int, what: str) -> bytes:
    if isinstance(value, (nacl.public.PublicKey, nacl.public.PrivateKey)):
        raw = bytes(value)
    elif isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
    elif isinstance(value, (str, os.PathLike)):
        path = Path(value).expanduser()
        if not path.is_file():
            raise KeyFileError(f"{what} key file not found: {path}")
        raw = path.read_bytes()
    else:
        raise KeyTypeError(f"{what} key must be bytes or a path, not {type(value).__name__}")
    if len(raw) != size:
        raise KeyTypeError(f"sodium {what} key must be {size} bytes, got {len(raw)}")
    return raw


class SodiumKeyPair(CipherKey):
    key_type = "pair"
    backend = "sodium"

    def __init__(self, pub, key, authenticated: bool = True, store: Optional[SessionKeyStore] = None):
        super().__init__(store)
        self.authenticated = authenticated
        self._pub = _read_raw_key(pub, nacl.public.PublicKey.SIZE, "public")
        self._key = self._protect(_read_raw_key(key, nacl.public.PrivateKey.SIZE, "private"))

    def _private(self) -> nacl.public.PrivateKey:
        return nacl.public.PrivateKey(self._reveal(self._key))

    def encrypt(self, data: BytesLike) -> bytes:
        public = nacl.public.PublicKey(self._pub)
        if not self.authenticated:
            return bytes(nacl.public.SealedBox(public).encrypt(bytes(data)))
        box = nacl.public.Box(self._private(), public)
        nonce = random_bytes(nacl.public.Box.NONCE_SIZE)
        return bytes(box.encrypt(bytes(data), nonce))

    def decrypt(self, data: BytesLike) -> bytes:
        if self.authenticated:
            box = nacl.public.Box(self._private(), nacl.public.PublicKey(self._pub))
        else:
            box = nacl.public.SealedBox(self._private())
        try:
            return box.decrypt(bytes(data))
        except nacl.exceptions.CryptoError as exc:
            raise DecryptionError("failed to decrypt (wrong key or corrupt data)") from exc


# ------------------------------------------------------------------
# Constructors
# ------------------------------------------------------------------

def key_openssl(key: BytesLike, mode: str = "gcm", store: Optional[SessionKeyStore] = None) -> OpenSSLKey:
    return OpenSSLKey(key, mode=mode, store=store)


def key_sodium(key: BytesLike, store: Optional[SessionKeyStore] = None) -> SodiumKey:
    return SodiumKey(key, store=store)


def keypair_openssl(
    pub=None,
    key=None,
    envelope: bool = True,
    password: Password = None,
    authenticated: bool = True,
    store: Optional[SessionKeyStore] = None,
) -> OpenSSLKeyPair:
    """RSA key pair from key objects, files or directories.

    ``None`` for either half falls back to ``USER_PUBKEY`` / ``USER_KEY`` and
    then ``~/.ssh``.
    """
    return OpenSSLKeyPair(
        pub, key, envelope=envelope, password=password, authenticated=authenticated, store=store,
    )


def keypair_sodium(pub, key, authenticated: bool = True, store: Optional[SessionKeyStore] = None) -> SodiumKeyPair:
    return SodiumKeyPair(pub, key, authenticated=authenticated, store=store)


_SYMMETRIC = {"sodium": key_sodium, "openssl": key_openssl}
_KEYGEN_SIZES = {"sodium": nacl.secret.SecretBox.KEY_SIZE, "openssl": 16}


def _symmetric(raw: bytes, backend: str, store: Optional[SessionKeyStore]) -> CipherKey:
    try:
        factory = _SYMMETRIC[backend]
    except KeyError:
        raise KeyTypeError(f"unknown backend {backend!r}; expected 'sodium' or 'openssl'") from None
    return factory(raw, store=store)


def keygen(backend: str = "sodium") -> bytes:
    """Fresh raw symmetric key bytes for ``backend``."""
    if backend not in _KEYGEN_SIZES:
        raise KeyTypeError(f"unknown backend {backend!r}; expected 'sodium' or 'openssl'")
    return random_bytes(_KEYGEN_SIZES[backend])


def sodium_pubkey(key: BytesLike) -> bytes:
    """Public half of a raw X25519 private key."""
    return bytes(nacl.public.PrivateKey(_as_key_bytes(key)).public_key)


def key_from_password(
    password: Union[str, bytes],
    salt: bytes,
    backend: str = "sodium",
    store: Optional[SessionKeyStore] = None,
    **kdf_params,
) -> CipherKey:
    """Symmetric key derived from ``password`` with Argon2id.

    The same password and salt always give the same key; keep the salt.
    """
    return _symmetric(derive_key(password, salt, key_len=32, **kdf_params), backend, store)


def key_from_keyring(
    service: str,
    account: str,
    backend: str = "sodium",
    store: Optional[SessionKeyStore] = None,
) -> CipherKey:
    raw = load_key(service, account)
    if raw is None:
        raise KeyFileError(f"no key found in OS keyring for {service}/{account}")
    return _symmetric(raw, backend, store)


def save_key_to_keyring(key: BytesLike, service: str, account: str, force: bool = False) -> None:
    """Store raw symmetric key bytes in the OS keyring.

    Insecure-looking keyring backends are refused unless ``force`` is set.
    """
    if not force:
        secure, msg = assess_keyring_backend()
        if not secure:
            raise KeyFileError(
                f"refusing to store key in OS keyring: {msg}; "
                "pass force=True to override if you understand the risk"
            )
    save_key(service, account, _as_key_bytes(key))
