"""File keystore: the wrapped data encryption key is stored in a local file."""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

from ..encoder import get_encoder
from ..errors import ConfigError
from ..key import Key
from .base import KeyEncrypter, Keystore, binary_fields, next_version
from .files import read_from_file, write_to_file


class FileKeystore(Keystore):
    """
    Stores the data encryption key in a binary file.

    The key is wrapped by ``key_encrypting_key`` when one is supplied. A
    key encrypting key's own key is normally stored in a further file, which is
    left unwrapped and protected by file permissions only.
    """

    keystore_name = "file"

    def __init__(self, key_filename: str, key_encrypting_key: Optional[KeyEncrypter] = None) -> None:
        if not key_filename:
            raise ConfigError("Missing mandatory key_filename")
        self.key_filename = key_filename
        self.key_encrypting_key = key_encrypting_key

    def read(self) -> bytes:
        data = read_from_file(self.key_filename)
        if self.key_encrypting_key is not None:
            return self.key_encrypting_key.decrypt(data)
        return data

    def write(self, key: bytes) -> None:
        data = self.key_encrypting_key.encrypt(key) if self.key_encrypting_key is not None else key
        write_to_file(self.key_filename, data)

    @classmethod
    def generate_data_key(
        cls,
        cipher_name: str,
        app_name: str,
        environment: str,
        version: int = 0,
        dek: Optional[Key] = None,
        key_path: str = "~/.symmetric-encryption",
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Generate a data key file plus a key encrypting key file.

        Three levels of keys are produced: the data key (stored in a file,
        wrapped by the KEK), the KEK (stored inline in the config, wrapped by
        the KEKEK) and the KEKEK (stored unwrapped in a second file).
        """
        version = next_version(version)
        dek = dek or Key.random(cipher_name)
        kek = Key.random(cipher_name)
        kekek = Key.random(cipher_name)

        base_name = os.path.join(key_path, f"{app_name}_{environment}_v{version}")
        dek_file_name = f"{base_name}.encrypted_key"
        kekek_file_name = f"{base_name}.kekek"

        cls(dek_file_name, key_encrypting_key=kek).write(dek.key)
        cls(kekek_file_name).write(kekek.key)

        return {
            "keystore": cls.keystore_name,
            "cipher_name": dek.cipher_name,
            "version": version,
            "key_filename": dek_file_name,
            **binary_fields(iv=dek.iv),
            "key_encrypting_key": {
                "encrypted_key": get_encoder("base64strict").encode(kekek.encrypt(kek.key)),
                **binary_fields(iv=kek.iv),
                "key_encrypting_key": {
                    "key_filename": kekek_file_name,
                    **binary_fields(iv=kekek.iv),
                },
            },
        }
