"""
AWS KMS keystore.

The data encryption key is encrypted by an AWS KMS customer master key and the
result is stored base64 encoded in a local file, one file per region. The
master key is addressed by alias and is created on first use when missing.

Requires the ``aws`` extra (boto3).
"""

from __future__ import annotations

import datetime
import getpass
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Sequence

import boto3
from botocore.exceptions import ClientError

from ..errors import ConfigError
from ..key import Key, cipher_spec
from .base import KeyEncrypter, Keystore, binary_fields, next_version
from .files import read_file_and_decode, write_encoded_to_file

logger = logging.getLogger(__name__)

AWS_US_REGIONS = ("us-east-1", "us-east-2", "us-west-1", "us-west-2")

# KMS data key spec by key size in bytes
AWS_KEY_SPECS: Dict[int, str] = {16: "AES_128", 32: "AES_256"}


def _not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "NotFoundException"


def _whoami() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


class AwsKms:
    """
    Thin wrapper around a regional KMS client bound to one master key alias.

    Args:
        region: AWS region, for example ``us-east-1``
        master_key_alias: Alias of the customer master key
        client: Optional preconfigured boto3 KMS client
        auto_create_master_key: Create the master key and alias when KMS
            reports that the alias does not exist
    """

    def __init__(
        self,
        region: str,
        master_key_alias: str,
        client: Any = None,
        auto_create_master_key: bool = True,
    ) -> None:
        self.region = region
        self.master_key_alias = master_key_alias
        self.auto_create_master_key = auto_create_master_key
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = boto3.client("kms", region_name=self.region)
        return self._client

    @staticmethod
    def key_spec(cipher_name: str) -> str:
        """Return the KMS key spec for a cipher name."""
        spec = cipher_spec(cipher_name)
        try:
            return AWS_KEY_SPECS[spec.key_size]
        except KeyError:
            raise ConfigError(f"AWS KMS does not support generating keys for {spec.name}")

    def generate_data_key(self, cipher_name: str) -> bytes:
        """Return a new plaintext data key generated by KMS."""
        response = self._auto_create(
            lambda: self.client.generate_data_key(
                KeyId=self.master_key_alias, KeySpec=self.key_spec(cipher_name)
            )
        )
        return response["Plaintext"]

    def generate_encrypted_data_key(self, cipher_name: str) -> bytes:
        """Return a new data key generated and encrypted by KMS."""
        response = self._auto_create(
            lambda: self.client.generate_data_key_without_plaintext(
                KeyId=self.master_key_alias, KeySpec=self.key_spec(cipher_name)
            )
        )
        return response["CiphertextBlob"]

    def encrypt(self, plaintext: bytes) -> bytes:
        response = self._auto_create(
            lambda: self.client.encrypt(KeyId=self.master_key_alias, Plaintext=plaintext)
        )
        return response["CiphertextBlob"]

    def decrypt(self, ciphertext: bytes) -> bytes:
        response = self._auto_create(
            lambda: self.client.decrypt(KeyId=self.master_key_alias, CiphertextBlob=ciphertext)
        )
        return response["Plaintext"]

    def create_master_key(self) -> str:
        """Create a new customer master key and point the alias at it."""
        response = self.client.create_key(
            Description="symmetric_encryption customer master key",
            Tags=[
                {"TagKey": "CreatedAt", "TagValue": datetime.datetime.now().isoformat()},
                {"TagKey": "CreatedBy", "TagValue": _whoami()},
            ],
        )
        key_id = response["KeyMetadata"]["KeyId"]
        self.client.create_alias(AliasName=self.master_key_alias, TargetKeyId=key_id)
        logger.info(
            "Created AWS KMS master key %s with alias %s in %s",
            key_id,
            self.master_key_alias,
            self.region,
        )
        return key_id

    def _auto_create(self, call: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        try:
            return call()
        except ClientError as e:
            if not _not_found(e):
                raise
            if not self.auto_create_master_key:
                raise ConfigError(
                    f"AWS KMS master key {self.master_key_alias} not found in {self.region}"
                ) from e

        self.create_master_key()
        try:
            return call()
        except ClientError as e:
            if not _not_found(e):
                raise
            raise ConfigError(
                f"AWS KMS master key {self.master_key_alias} still not found in {self.region}"
            ) from e


class AwsKeystore(Keystore):
    """
    Stores the KMS encrypted data key in a file for the current region.

    Args:
        key_files: ``[{"region": ..., "file_name": ...}, ...]``
        master_key_alias: Alias of the KMS customer master key
        region: Region to use. Defaults to ``AWS_REGION`` or ``AWS_DEFAULT_REGION``.
        key_encrypting_key: Not supported, KMS is the key encrypting key
        client: Optional preconfigured boto3 KMS client
        auto_create_master_key: Create the master key when it does not exist
    """

    keystore_name = "aws"

    def __init__(
        self,
        key_files: Sequence[Dict[str, str]],
        master_key_alias: str,
        region: Optional[str] = None,
        key_encrypting_key: Optional[KeyEncrypter] = None,
        client: Any = None,
        auto_create_master_key: bool = True,
    ) -> None:
        if key_encrypting_key is not None:
            raise ConfigError("key_encrypting_key is not supported when using the AWS KMS keystore")
        if not master_key_alias:
            raise ConfigError("Missing mandatory master_key_alias")

        region = region or os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")
        if not region:
            raise ConfigError("Missing AWS region, set region or AWS_REGION")

        key_file = next((kf for kf in key_files or () if kf.get("region") == region), None)
        if key_file is None:
            raise ConfigError(f"Region {region} not found in key_files")

        self.region = region
        self.key_file = key_file["file_name"]
        self.master_key_alias = master_key_alias
        self.kms = AwsKms(
            region,
            master_key_alias,
            client=client,
            auto_create_master_key=auto_create_master_key,
        )

    @staticmethod
    def master_key_alias_for(app_name: str, environment: str) -> str:
        return f"alias/symmetric-encryption/{app_name}/{environment}"

    def read(self) -> bytes:
        return self.kms.decrypt(read_file_and_decode(self.key_file))

    def write(self, key: bytes) -> None:
        write_encoded_to_file(self.key_file, self.kms.encrypt(key))

    @classmethod
    def generate_data_key(
        cls,
        cipher_name: str,
        app_name: str,
        environment: str,
        version: int = 0,
        dek: Optional[Key] = None,
        key_path: str = "~/.symmetric-encryption",
        regions: Sequence[str] = AWS_US_REGIONS,
        master_key_alias: Optional[str] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Generate one data key and store it encrypted for every region.

        The data key is generated by KMS in the first region, then encrypted by
        the master key of each region into its own file.
        """
        version = next_version(version)
        master_key_alias = master_key_alias or cls.master_key_alias_for(app_name, environment)

        key_files: List[Dict[str, str]] = []
        for region in regions:
            file_name = os.path.join(key_path, f"{app_name}_{environment}_{region}_v{version}.encrypted_key")
            keystore = cls(
                key_files=[{"region": region, "file_name": file_name}],
                master_key_alias=master_key_alias,
                region=region,
                **kwargs,
            )
            if dek is None:
                dek = Key(
                    keystore.kms.generate_data_key(cipher_name),
                    iv=Key.random_iv(cipher_name),
                    cipher_name=cipher_name,
                )
            keystore.write(dek.key)
            key_files.append({"region": region, "file_name": file_name})

        return {
            "keystore": cls.keystore_name,
            "cipher_name": dek.cipher_name,
            "version": version,
            "master_key_alias": master_key_alias,
            "key_files": key_files,
            **binary_fields(iv=dek.iv),
        }
