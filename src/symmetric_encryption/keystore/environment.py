"""Environment variable keystores."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional, Union

from ..encoder import Encoder, get_encoder
from ..errors import ConfigError
from ..key import Key
from ..key_encryption_key import KeyEncryptionKey
from .base import KeyEncrypter, Keystore, binary_fields, next_version

logger = logging.getLogger(__name__)


class EnvironmentKeystore(Keystore):
    """
    Stores the wrapped data encryption key in an environment variable.

    The variable holds the key wrapped by ``key_encrypting_key`` and encoded
    with ``encoding`` (strict base64 by default). Since this process cannot set
    the variable for the deployed application, ``write`` logs the command that
    has to be run and returns the encoded value.
    """

    keystore_name = "environment"

    def __init__(
        self,
        key_env_var: str,
        key_encrypting_key: Optional[KeyEncrypter] = None,
        encoding: Union[str, Encoder] = "base64strict",
    ) -> None:
        if not key_env_var:
            raise ConfigError("Missing mandatory key_env_var")
        if key_encrypting_key is None:
            raise ConfigError("Missing mandatory key_encrypting_key")
        self.key_env_var = key_env_var
        self.key_encrypting_key = key_encrypting_key
        self.encoder = get_encoder(encoding)

    def read(self) -> bytes:
        encoded = os.environ.get(self.key_env_var)
        if encoded is None:
            raise ConfigError(f"The environment variable {self.key_env_var} must be set")
        return self.key_encrypting_key.decrypt(self.encoder.decode(encoded.strip()))

    def write(self, key: bytes) -> str:
        encoded = self.encoder.encode(self.key_encrypting_key.encrypt(key))
        self._publish_instructions(encoded)
        return encoded

    def _publish_instructions(self, encoded: str) -> None:
        logger.info(
            "Set the environment variable %s for this key: export %s=%s",
            self.key_env_var,
            self.key_env_var,
            encoded,
        )

    @classmethod
    def key_env_var_for(cls, app_name: str, environment: str, version: int) -> str:
        return f"{app_name}_{environment}_v{version}".upper().replace("-", "_")

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
        """Generate a data key wrapped by a new RSA key encrypting key."""
        version = next_version(version)
        private_rsa_key = KeyEncryptionKey.generate()
        dek = dek or Key.random(cipher_name)
        key_env_var = cls.key_env_var_for(app_name, environment, version)

        cls(key_env_var, KeyEncryptionKey(private_rsa_key)).write(dek.key)

        return {
            "keystore": cls.keystore_name,
            "cipher_name": dek.cipher_name,
            "version": version,
            "key_env_var": key_env_var,
            **binary_fields(iv=dek.iv),
            "key_encrypting_key": {"private_rsa_key": private_rsa_key},
        }


class HerokuKeystore(EnvironmentKeystore):
    """Environment keystore that prints the ``heroku config:add`` command."""

    keystore_name = "heroku"

    def _publish_instructions(self, encoded: str) -> None:
        logger.info(
            "Add the key to the Heroku config: heroku config:add %s=%s",
            self.key_env_var,
            encoded,
        )
