"""Security helpers: session key protection and key objects for Lockbox.

This package provides:
- a session key store that keeps secrets wrapped under an ephemeral key
- symmetric and key-pair objects over the openssl and sodium backends
- Argon2id password-based keys, RSA key files and opt-in OS keyring storage
"""

from .session import (
    SessionKeyStore,
    WrappedSecret,
    get_session_store,
    session_key_refresh,
)
from .keys import (
    CipherKey,
    key_openssl,
    key_sodium,
    keypair_openssl,
    keypair_sodium,
    key_from_password,
    key_from_keyring,
    save_key_to_keyring,
    keygen,
    sodium_pubkey,
)
from .keyfiles import ssh_keygen, load_public_key, load_private_key
from .kdf import generate_salt, derive_key

__all__ = [
    "SessionKeyStore",
    "WrappedSecret",
    "get_session_store",
    "session_key_refresh",
    "CipherKey",
    "key_openssl",
    "key_sodium",
    "keypair_openssl",
    "keypair_sodium",
    "key_from_password",
    "key_from_keyring",
    "save_key_to_keyring",
    "keygen",
    "sodium_pubkey",
    "ssh_keygen",
    "load_public_key",
    "load_private_key",
    "generate_salt",
    "derive_key",
]
