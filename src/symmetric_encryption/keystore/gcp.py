"""
Google Cloud KMS keystore.

The data encryption key is encrypted by a Cloud KMS crypto key and stored
base64 encoded in a local file. By default the crypto key lives at
``projects/<project>/locations/<location>/keyRings/<app_name>/cryptoKeys/<environment>``.

Requires the ``gcp`` extra (google-cloud-kms).
"""

from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Optional

from google.api_core.exceptions import AlreadyExists, NotFound
from google.cloud import kms

from ..errors import ConfigError
from ..key import Key
from .base import KeyEncrypter, Keystore, binary_fields, next_version
from .files import read_file_and_decode, write_encoded_to_file

logger = logging.getLogger(__name__)

DEFAULT_LOCATION: str = "global"


class GcpKeystore(Keystore):
    """
    Stores the Cloud KMS encrypted data key in a file.

    Args:
        key_file: Path of the file holding the encrypted data key
        app_name: Key ring name when ``crypto_key`` is not supplied
        environment: Crypto key name when ``crypto_key`` is not supplied
        crypto_key: Full resource name of the crypto key
        project_id: Defaults to ``GOOGLE_CLOUD_PROJECT``
        credentials: Service account file, defaults to ``GOOGLE_CLOUD_KEYFILE``.
            Application default credentials are used when neither is set.
        location_id: Defaults to ``GOOGLE_CLOUD_LOCATION`` or ``global``
        key_encrypting_key: Not supported, KMS is the key encrypting key
        client: Optional preconfigured KeyManagementServiceClient
        auto_create_crypto_key: Create the key ring and crypto key when missing
    """

    keystore_name = "gcp"

    def __init__(
        self,
        key_file: str,
        app_name: Optional[str] = None,
        environment: Optional[str] = None,
        crypto_key: Optional[str] = None,
        project_id: Optional[str] = None,
        credentials: Optional[str] = None,
        location_id: Optional[str] = None,
        key_encrypting_key: Optional[KeyEncrypter] = None,
        client: Any = None,
        auto_create_crypto_key: bool = True,
    ) -> None:
        if key_encrypting_key is not None:
            raise ConfigError("key_encrypting_key is not supported when using the GCP KMS keystore")
        if not key_file:
            raise ConfigError("Missing mandatory key_file")
        if not crypto_key and not (app_name and environment):
            raise ConfigError("Either crypto_key or both app_name and environment are required")

        self.key_file = key_file
        self.app_name = app_name
        self.environment = environment
        self.auto_create_crypto_key = auto_create_crypto_key
        self._crypto_key = crypto_key
        self._project_id = project_id
        self._credentials = credentials
        self._location_id = location_id
        self._client = client

    @property
    def project_id(self) -> str:
        project_id = self._project_id or os.environ.get("GOOGLE_CLOUD_PROJECT")
        if not project_id:
            raise ConfigError("Missing GCP project, set project_id or GOOGLE_CLOUD_PROJECT")
        return project_id

    @property
    def location_id(self) -> str:
        return self._location_id or os.environ.get("GOOGLE_CLOUD_LOCATION") or DEFAULT_LOCATION

    @property
    def credentials(self) -> Optional[str]:
        return self._credentials or os.environ.get("GOOGLE_CLOUD_KEYFILE")

    @property
    def crypto_key(self) -> str:
        if self._crypto_key:
            return self._crypto_key
        return kms.KeyManagementServiceClient.crypto_key_path(
            self.project_id, self.location_id, self.app_name, self.environment
        )

    @property
    def client(self) -> Any:
        if self._client is None:
            if self.credentials:
                self._client = kms.KeyManagementServiceClient.from_service_account_file(self.credentials)
            else:
                self._client = kms.KeyManagementServiceClient()
        return self._client

    def read(self) -> bytes:
        ciphertext = read_file_and_decode(self.key_file)
        response = self._auto_create(
            lambda: self.client.decrypt(request={"name": self.crypto_key, "ciphertext": ciphertext})
        )
        return response.plaintext

    def write(self, key: bytes) -> None:
        response = self._auto_create(
            lambda: self.client.encrypt(request={"name": self.crypto_key, "plaintext": key})
        )
        write_encoded_to_file(self.key_file, response.ciphertext)

    def create_crypto_key(self) -> None:
        """Create the key ring (if needed) and the crypto key."""
        crypto_key = self.crypto_key
        key_ring, _, crypto_key_id = crypto_key.partition("/cryptoKeys/")
        location, _, key_ring_id = key_ring.partition("/keyRings/")

        try:
            self.client.create_key_ring(
                request={"parent": location, "key_ring_id": key_ring_id, "key_ring": {}}
            )
            logger.info("Created GCP KMS key ring %s", key_ring)
        except AlreadyExists:
            logger.debug("GCP KMS key ring %s already exists", key_ring)

        self.client.create_crypto_key(
            request={
                "parent": key_ring,
                "crypto_key_id": crypto_key_id,
                "crypto_key": {"purpose": kms.CryptoKey.CryptoKeyPurpose.ENCRYPT_DECRYPT},
            }
        )
        logger.info("Created GCP KMS crypto key %s", crypto_key)

    def _auto_create(self, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except NotFound as e:
            if not self.auto_create_crypto_key:
                raise ConfigError(f"GCP KMS crypto key {self.crypto_key} not found") from e

        self.create_crypto_key()
        try:
            return call()
        except NotFound as e:
            raise ConfigError(f"GCP KMS crypto key {self.crypto_key} still not found") from e

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
        """Generate a data key encrypted by the Cloud KMS crypto key."""
        version = next_version(version)
        key_file = os.path.join(key_path, f"{app_name}_{environment}_v{version}.encrypted_key")
        keystore = cls(key_file=key_file, app_name=app_name, environment=environment, **kwargs)
        dek = dek or Key.random(cipher_name)
        keystore.write(dek.key)

        return {
            "keystore": cls.keystore_name,
            "cipher_name": dek.cipher_name,
            "version": version,
            "key_file": key_file,
            **binary_fields(iv=dek.iv),
            "crypto_key": keystore.crypto_key,
        }
