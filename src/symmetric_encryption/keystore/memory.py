"""In-memory keystore: the wrapped key is held inline in the configuration."""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from ..encoder import Encoder, get_encoder
from ..errors import ConfigError
from ..key import Key
from .base import KeyEncrypter, Keystore, binary_fields, next_version


class MemoryKeystore(Keystore):
    """Holds the data encryption key wrapped and base64 (strict) encoded."""

    keystore_name = "memory"

    def __init__(
        self,
        key_encrypting_key: Optional[KeyEncrypter] = None,
        encrypted_key: Optional[str] = None,
        encoding: Union[str, Encoder] = "base64strict",
    ) -> None:
        if key_encrypting_key is None:
            raise ConfigError("Missing mandatory key_encrypting_key")
        self.key_encrypting_key = key_encrypting_key
        self.encoder = get_encoder(encoding)
        self._encrypted_key = encrypted_key

    @property
    def encrypted_key(self) -> Optional[str]:
        return self._encrypted_key

    def read(self) -> bytes:
        if not self._encrypted_key:
            raise ConfigError("Missing mandatory encrypted_key")
        return self.key_encrypting_key.decrypt(self.encoder.decode(self._encrypted_key))

    def write(self, key: bytes) -> str:
        self._encrypted_key = self.encoder.encode(self.key_encrypting_key.encrypt(key))
        return self._encrypted_key

    @classmethod
    def generate_data_key(
        cls,
        cipher_name: str,
        app_name: str,
        environment: str,
        version: int = 0,
        dek: Optional[Key] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """Generate a data key wrapped by a new inline key encrypting key."""
        version = next_version(version)
        dek = dek or Key.random(cipher_name)
        kek = Key.random(cipher_name)
        encrypted_key = cls(kek).write(dek.key)

        return {
            "keystore": cls.keystore_name,
            "cipher_name": dek.cipher_name,
            "version": version,
            "encrypted_key": encrypted_key,
            **binary_fields(iv=dek.iv),
            "key_encrypting_key": binary_fields(key=kek.key, iv=kek.iv),
        }
