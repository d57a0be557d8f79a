"""OS keystore integration using keyring for opt-in storage of raw symmetric keys.

Keys are base64-encoded and stored under a service/account pair. This is a
convenience for keeping a long-lived data key off the filesystem; do not
assume keyring provides hardware-backed security on every platform.
"""
import base64
import binascii
from typing import Optional

try:
    import keyring
    from keyring.errors import PasswordDeleteError
except ImportError:
    keyring = None
    PasswordDeleteError = None


def _require_keyring():
    if keyring is None:
        raise RuntimeError("keyring package is not available; install keyring to use keystore features")


def save_key(service: str, account: str, key_bytes: bytes) -> None:
    """Persist binary key_bytes in the OS keystore under (service, account)."""
    _require_keyring()
    secret = base64.b64encode(key_bytes).decode("ascii")
    keyring.set_password(service, account, secret)


def assess_keyring_backend() -> tuple[bool, str]:
    """Return (is_secure, message) describing the current keyring backend.

    Heuristics are used because `keyring` exposes different backends across
    platforms. If `keyring` is not available this returns (False, reason).
    """
    if keyring is None:
        return False, "keyring package is not installed"

    try:
        backend = keyring.get_keyring()
    except Exception as e:
        return False, f"failed to get keyring backend: {e}"

    name = backend.__class__.__name__
    priority = getattr(backend, "priority", None)

    insecure_indicators = ("Plaintext", "Uncrypted", "Simple", "File", "Fail", "Null")
    if any(tok in name for tok in insecure_indicators):
        return False, f"insecure backend detected: {name}"

    if priority is not None and priority <= 0:
        return False, f"no suitable secure keyring backend available (priority={priority}, backend={name})"

    if "Win" in name or "Keychain" in name or "SecretService" in name or "KWallet" in name:
        return True, f"backend looks acceptable: {name} (priority={priority})"

    return True, f"unknown backend '{name}', treat with caution (priority={priority})"


def load_key(service: str, account: str) -> Optional[bytes]:
    """Load a persisted key from the OS keystore; returns raw bytes or None."""
    _require_keyring()
    secret = keyring.get_password(service, account)
    if secret is None:
        return None
    try:
        return base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError):
        return None


def delete_key(service: str, account: str) -> None:
    """Remove the key from the OS keystore; missing entries are ignored."""
    _require_keyring()
    try:
        keyring.delete_password(service, account)
    except PasswordDeleteError:
        pass
