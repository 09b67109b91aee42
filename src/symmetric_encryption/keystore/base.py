"""
Abstract keystore interface.

A keystore persists one data encryption key, wrapped by a key encrypting key
(or by a cloud KMS), and can generate the configuration fragment for a new key.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Protocol

from ..encoder import get_encoder
from ..key import MAX_VERSION, Key

#: Encoding of binary values (key, iv) in generated cipher descriptors
DESCRIPTOR_ENCODING: str = "base64strict"


class KeyEncrypter(Protocol):
    """Anything that can wrap and unwrap key bytes (a Key or a KeyEncryptionKey)."""

    def encrypt(self, key: bytes) -> bytes:
        ...

    def decrypt(self, encrypted_key: bytes) -> bytes:
        ...


def next_version(version: Optional[int]) -> int:
    """Return the version after ``version``, wrapping 255 back to 1."""
    version = int(version or 0)
    return 1 if version >= MAX_VERSION else version + 1


def binary_fields(**values: Optional[bytes]) -> Dict[str, Any]:
    """
    Encode binary descriptor values as text so the descriptor can be saved as JSON.

    The returned mapping carries a ``key_encoding`` marker that ``read_key``
    uses to decode the values again.

    Example:
        >>> binary_fields(iv=kek.iv)
        {'iv': 'q83vEjRWeJCrze8SNFZ4kA==', 'key_encoding': 'base64strict'}
    """
    encoder = get_encoder(DESCRIPTOR_ENCODING)
    fields: Dict[str, Any] = {name: encoder.encode(value) for name, value in values.items()}
    fields["key_encoding"] = DESCRIPTOR_ENCODING
    return fields


class Keystore(ABC):
    """Abstract base class for key storage backends."""

    #: Name used in configuration (``"keystore": "file"``)
    keystore_name: str = ""

    @abstractmethod
    def read(self) -> bytes:
        """
        Return the unwrapped data encryption key.

        Raises:
            ConfigError: If the key cannot be found or read
        """
        pass

    @abstractmethod
    def write(self, key: bytes) -> Any:
        """Wrap and persist the data encryption key."""
        pass

    @classmethod
    @abstractmethod
    def generate_data_key(
        cls,
        cipher_name: str,
        app_name: str,
        environment: str,
        version: int = 0,
        dek: Optional[Key] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Create and persist a new data encryption key.

        Args:
            cipher_name: Cipher the key is for
            app_name: Application name, used for file and variable names
            environment: Environment name, for example ``production``
            version: Current version. The returned fragment uses the next one.
            dek: Existing key to store instead of generating a new one

        Returns:
            Cipher configuration fragment for the new key
        """
        pass
