"""
RSA key encryption key (KEK).

Wraps data encryption keys with RSA-OAEP so that only the holder of the
private key can unwrap them. Used by the environment based keystores.
"""

from __future__ import annotations

from typing import Optional, Union

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .errors import ConfigError, DecryptionError

DEFAULT_KEY_SIZE: int = 2048

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


class KeyEncryptionKey:
    """RSA private key used to wrap and unwrap data encryption keys."""

    def __init__(self, private_rsa_key: Union[str, bytes], password: Optional[bytes] = None) -> None:
        """
        Load a PEM encoded RSA private key.

        Raises:
            ConfigError: If the PEM cannot be loaded or is not an RSA key
        """
        pem = private_rsa_key.encode("utf-8") if isinstance(private_rsa_key, str) else private_rsa_key
        try:
            private_key = serialization.load_pem_private_key(pem, password=password)
        except (ValueError, TypeError) as e:
            raise ConfigError("Invalid private RSA key") from e
        if not isinstance(private_key, rsa.RSAPrivateKey):
            raise ConfigError("Key encrypting key must be an RSA private key")
        self._private_key = private_key

    @staticmethod
    def generate(size: int = DEFAULT_KEY_SIZE) -> str:
        """Generate a new RSA private key, returned as a PEM string."""
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=size)
        return private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("ascii")

    @property
    def public_key_pem(self) -> str:
        return (
            self._private_key.public_key()
            .public_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            .decode("ascii")
        )

    def encrypt(self, key: bytes) -> bytes:
        """Wrap key bytes with the RSA public key."""
        return self._private_key.public_key().encrypt(bytes(key), _OAEP)

    def decrypt(self, encrypted_key: bytes) -> bytes:
        """Unwrap key bytes with the RSA private key."""
        try:
            return self._private_key.decrypt(bytes(encrypted_key), _OAEP)
        except ValueError as e:
            raise DecryptionError("Failed to unwrap key with the key encrypting key") from e

    def __repr__(self) -> str:
        return f"KeyEncryptionKey(key_size={self._private_key.key_size}, private_key=[REDACTED])"
