"""Encrypted attribute helper for persistence layers."""

from __future__ import annotations

from typing import Any, Optional, Union

from .cipher import CipherRegistry
from .coerce import COERCION_TYPES


class EncryptedField:
    """
    Converts a typed attribute to and from its encrypted column value.

    Plug ``serialize``/``deserialize`` into the persistence layer of choice::

        ssn = EncryptedField(registry, type="string")
        row["encrypted_ssn"] = ssn.serialize("123-45-6789")
        ssn.deserialize(row["encrypted_ssn"])

    Args:
        registry: CipherRegistry used for encryption and decryption
        type: Coercion type of the attribute (see ``COERCION_TYPES``)
        random_iv: Encrypt every value with a random iv. Identical values
            then produce different ciphertext, so the column cannot be
            searched by value.
        compress: Compress values before encryption
    """

    def __init__(
        self,
        registry: CipherRegistry,
        type: str = "string",
        random_iv: bool = True,
        compress: bool = False,
    ) -> None:
        if type not in COERCION_TYPES:
            raise ValueError(f"Invalid type: {type!r}. Valid types: {', '.join(COERCION_TYPES)}")
        self.registry = registry
        self.type = type
        self.random_iv = random_iv
        self.compress = compress

    def serialize(self, value: Any) -> Optional[Union[str, bytes]]:
        """Encrypt an attribute value for storage."""
        return self.registry.encrypt(
            value, random_iv=self.random_iv, compress=self.compress, type=self.type
        )

    def deserialize(self, encrypted: Optional[Union[str, bytes]]) -> Any:
        """Decrypt a stored value back into the attribute type."""
        return self.registry.decrypt(encrypted, type=self.type)

    def is_encrypted(self, value: Optional[Union[str, bytes]]) -> bool:
        """Whether a stored value looks encrypted (starts with a header)."""
        return self.registry.is_encrypted(value)

    def __repr__(self) -> str:
        return f"EncryptedField(type={self.type!r}, random_iv={self.random_iv}, compress={self.compress})"
