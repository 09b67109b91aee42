"""
Exception classes for symmetric encryption operations.

Configuration and permission problems surface as ConfigError when the
keystores are resolved at startup. Per-value problems surface as CipherError
(or its DecryptionError subclass) to the immediate caller.
"""

from __future__ import annotations


class SymmetricEncryptionError(Exception):
    """Base exception for all symmetric encryption operations."""

    pass


class CipherError(SymmetricEncryptionError):
    """Cipher could not be resolved or the encrypted data is malformed.

    Raised when a header names a cipher version that is not configured,
    when header framing is truncated, or when a cipher name, key or iv
    is not usable.
    """

    pass


class DecryptionError(CipherError):
    """Cipher engine rejected the ciphertext (bad padding or auth tag)."""

    pass


class ConfigError(SymmetricEncryptionError):
    """Configuration error.

    Missing or unreadable key material, insecure key file permissions,
    missing environment variables or KMS keys that could not be found.
    """

    pass
