"""
Exceptions for Lockbox
Everything derives from LockboxError so callers have a single catch-all
"""


class LockboxError(Exception):
    # general container for errors
    pass


class SessionKeyError(LockboxError):
    # raised by the session key store
    pass


class EntropyUnavailable(SessionKeyError):
    # raised when the secure random source cannot be read
    pass


class StaleGeneration(SessionKeyError):
    # raised when a wrapped secret belongs to an invalidated session key
    pass


class AuthenticationFailure(SessionKeyError):
    # raised when a wrapped secret fails integrity checks (tampered/corrupt)
    pass


class KeyTypeError(LockboxError):
    # raised on invalid key material (wrong length, type or mode)
    pass


class DecryptionError(LockboxError):
    # raised when data does not decrypt or verify under a key
    pass


class KeyFileError(LockboxError):
    # raised when a key file cannot be found, created or parsed
    pass
