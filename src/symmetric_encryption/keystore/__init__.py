"""
Keystores: where data encryption keys are kept.

A cipher descriptor names its key material in one of several ways::

    {"key": b"..."}                              inline key (development only)
    {"key_filename": "...", ...}                 FileKeystore
    {"key_env_var": "...", ...}                  EnvironmentKeystore
    {"encrypted_key": "...", ...}                MemoryKeystore
    {"keystore": "aws", "key_files": [...]}      AwsKeystore
    {"keystore": "gcp", "key_file": "..."}       GcpKeystore

``key_encrypting_key`` may itself be a descriptor, resolved recursively by
``read_key``, an RSA private key PEM, or any object with encrypt/decrypt.
"""

from __future__ import annotations

import copy
import importlib
import logging
import os
from typing import Any, Dict, Iterable, Mapping, Optional, Type

from ..encoder import get_encoder
from ..errors import ConfigError
from ..key import DEFAULT_CIPHER_NAME, Key
from ..key_encryption_key import KeyEncryptionKey
from .base import KeyEncrypter, Keystore, binary_fields, next_version

logger = logging.getLogger(__name__)

# Cloud keystores are only imported when selected, their client libraries are optional
KEYSTORES: Dict[str, str] = {
    "file": "symmetric_encryption.keystore.file:FileKeystore",
    "environment": "symmetric_encryption.keystore.environment:EnvironmentKeystore",
    "heroku": "symmetric_encryption.keystore.environment:HerokuKeystore",
    "memory": "symmetric_encryption.keystore.memory:MemoryKeystore",
    "aws": "symmetric_encryption.keystore.aws:AwsKeystore",
    "gcp": "symmetric_encryption.keystore.gcp:GcpKeystore",
}

DEFAULT_ENVIRONMENTS = ("development", "test", "release", "production")

# Descriptor entries consumed by Cipher rather than by the keystore
_CIPHER_OPTIONS = ("always_add_header", "encoding")

DEV_KEY: str = "1234567890ABCDEF"


def keystore_class(name: str) -> Type[Keystore]:
    """
    Return the keystore class registered under ``name``.

    Raises:
        ConfigError: If no keystore has that name
    """
    try:
        module_name, _, class_name = KEYSTORES[str(name)].partition(":")
    except KeyError:
        raise ConfigError(f"Keystore: {name!r} not found, valid keystores: {', '.join(KEYSTORES)}")
    return getattr(importlib.import_module(module_name), class_name)


def keystore_for(config: Mapping[str, Any]) -> Type[Keystore]:
    """Infer the keystore class from a cipher descriptor."""
    if config.get("keystore"):
        return keystore_class(config["keystore"])
    if config.get("encrypted_key"):
        return keystore_class("memory")
    if config.get("key_filename"):
        return keystore_class("file")
    if config.get("key_env_var"):
        return keystore_class("environment")
    raise ConfigError("Unknown keystore supplied in config")


def resolve_key_encrypting_key(value: Any, cipher_name: str = DEFAULT_CIPHER_NAME) -> Optional[KeyEncrypter]:
    """Turn a ``key_encrypting_key`` configuration value into an object with encrypt/decrypt."""
    if value is None:
        return None
    if isinstance(value, (str, bytes)):
        return KeyEncryptionKey(value)
    if isinstance(value, Mapping):
        if "private_rsa_key" in value:
            return KeyEncryptionKey(value["private_rsa_key"])
        config = dict(value)
        config.setdefault("cipher_name", cipher_name)
        return read_key(**config)
    if callable(getattr(value, "encrypt", None)) and callable(getattr(value, "decrypt", None)):
        return value
    raise ConfigError(f"Invalid key_encrypting_key: {type(value).__name__}")


def read_key(
    key: Optional[Any] = None,
    iv: Optional[Any] = None,
    cipher_name: str = DEFAULT_CIPHER_NAME,
    version: int = 0,
    key_encrypting_key: Any = None,
    keystore: Optional[str] = None,
    **args: Any,
) -> Key:
    """
    Resolve a cipher descriptor into a Key.

    The key encrypting key is resolved first (recursively), then the keystore
    named or implied by the descriptor is asked for the unwrapped key. When the
    descriptor has a ``key_encoding`` entry, text ``key`` and ``iv`` values are
    decoded with it, otherwise text is used as UTF-8.

    Raises:
        ConfigError: If the key material cannot be located or unwrapped
    """
    for option in _CIPHER_OPTIONS:
        args.pop(option, None)

    key_encoding = args.pop("key_encoding", None)
    if key_encoding:
        encoder = get_encoder(key_encoding)
        try:
            if isinstance(key, str):
                key = encoder.decode(key)
            if isinstance(iv, str):
                iv = encoder.decode(iv)
        except ValueError as e:
            raise ConfigError(f"Invalid {key_encoding} value in cipher configuration") from e

    kek = resolve_key_encrypting_key(key_encrypting_key, cipher_name)

    if key is None:
        if keystore:
            args["keystore"] = keystore
        store_class = keystore_for(args)
        args.pop("keystore", None)
        try:
            store = store_class(key_encrypting_key=kek, **args)
        except TypeError as e:
            raise ConfigError(f"Invalid configuration for keystore {store_class.keystore_name}: {e}") from e
        key = store.read()

    return Key(key, iv=iv, cipher_name=cipher_name, version=version)


def dev_config(cipher_name: str = "aes-128-cbc") -> Dict[str, Any]:
    """Configuration with a well known key, for development and test only."""
    return {
        "ciphers": [
            {
                "key": DEV_KEY,
                "iv": DEV_KEY,
                "cipher_name": cipher_name,
                "version": 1,
            }
        ]
    }


def generate_data_keys(
    keystore: str = "file",
    environments: Iterable[str] = DEFAULT_ENVIRONMENTS,
    cipher_name: str = "aes-256-cbc",
    app_name: str = "symmetric-encryption",
    **args: Any,
) -> Dict[str, Any]:
    """
    Generate a full configuration, one set of keys per environment.

    ``development`` and ``test`` get the well known development key.
    """
    store_class = keystore_class(keystore)
    full_config: Dict[str, Any] = {}
    for environment in environments:
        if environment in ("development", "test"):
            full_config[environment] = dev_config()
            continue
        cipher_config = store_class.generate_data_key(
            cipher_name=cipher_name,
            app_name=app_name,
            environment=environment,
            **args,
        )
        logger.info("Generated %s data key v%s for %s", keystore, cipher_config["version"], environment)
        full_config[environment] = {"ciphers": [cipher_config]}
    return full_config


def _key_path_args(config: Mapping[str, Any]) -> Dict[str, Any]:
    if config.get("key_filename"):
        return {"key_path": os.path.dirname(config["key_filename"])}
    if config.get("key_file"):
        return {"key_path": os.path.dirname(config["key_file"])}
    if config.get("key_files"):
        key_files = config["key_files"]
        return {
            "key_path": os.path.dirname(key_files[0]["file_name"]),
            "regions": [kf["region"] for kf in key_files],
        }
    return {}


def rotate_keys(
    full_config: Mapping[str, Any],
    app_name: str,
    environments: Iterable[str] = (),
    rolling_deploy: bool = False,
    keystore: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Generate a new primary data key for each environment.

    Environments using an inline key (development, test) are left untouched.

    Args:
        full_config: Configuration keyed by environment name
        app_name: Application name used for key names
        environments: Environments to rotate, defaults to all
        rolling_deploy: Keep the current primary first and add the new key
            second, so that servers not yet updated can decrypt new data.
            Once every server has the new key, ``activate_keys`` moves it first.
        keystore: Keystore to generate the new key with. Defaults to the
            keystore of the current primary.

    Returns:
        Updated copy of ``full_config``
    """
    full_config = copy.deepcopy(dict(full_config))
    environments = list(environments) or list(full_config)

    for environment in environments:
        config = full_config.get(environment)
        if not config or not config.get("ciphers"):
            continue
        ciphers = config["ciphers"]
        primary = ciphers[0]
        if primary.get("key") is not None:
            continue

        version = max(int(c.get("version") or 0) for c in ciphers)
        store_class = keystore_class(keystore) if keystore else keystore_for(primary)
        args = _key_path_args(primary) if not keystore else {}
        new_config = store_class.generate_data_key(
            cipher_name=primary.get("cipher_name", DEFAULT_CIPHER_NAME),
            app_name=app_name,
            environment=environment,
            version=version,
            **args,
        )
        for option in _CIPHER_OPTIONS:
            if option in primary:
                new_config[option] = primary[option]

        ciphers.insert(1 if rolling_deploy else 0, new_config)
        logger.info("Rotated %s data key to v%s", environment, new_config["version"])
    return full_config


def rotate_key_encrypting_keys(
    full_config: Mapping[str, Any],
    app_name: str,
    environments: Iterable[str] = (),
) -> Dict[str, Any]:
    """
    Re-wrap the current primary data key with new key encrypting keys.

    The data key itself, and therefore all encrypted data, is unchanged.

    Returns:
        Updated copy of ``full_config``
    """
    full_config = copy.deepcopy(dict(full_config))
    environments = list(environments) or list(full_config)

    for environment in environments:
        config = full_config.get(environment)
        if not config or not config.get("ciphers"):
            continue
        ciphers = config["ciphers"]
        primary = ciphers[0]
        if not primary.get("key_encrypting_key"):
            continue

        version = int(primary.get("version") or 0)
        dek = read_key(**primary)
        store_class = keystore_for(primary)
        new_config = store_class.generate_data_key(
            cipher_name=dek.cipher_name,
            app_name=app_name,
            environment=environment,
            version=version - 1,
            dek=dek,
            **_key_path_args(primary),
        )
        for option in _CIPHER_OPTIONS:
            if option in primary:
                new_config[option] = primary[option]
        ciphers[0] = new_config
        logger.info("Rotated %s key encrypting key for data key v%s", environment, version)
    return full_config


def _cipher_lists(full_config: Dict[str, Any], environments: Iterable[str]) -> Iterable[tuple]:
    for environment in list(environments) or list(full_config):
        config = full_config.get(environment)
        if config and config.get("ciphers"):
            yield environment, config["ciphers"]


def activate_keys(full_config: Mapping[str, Any], environments: Iterable[str] = ()) -> Dict[str, Any]:
    """
    Make the cipher with the highest version the primary.

    Completes a ``rolling_deploy`` rotation once every server can decrypt
    with the new key.

    Returns:
        Updated copy of ``full_config``
    """
    full_config = copy.deepcopy(dict(full_config))
    for environment, ciphers in _cipher_lists(full_config, environments):
        highest = max(ciphers, key=lambda c: int(c.get("version") or 0))
        ciphers.remove(highest)
        ciphers.insert(0, highest)
        logger.info("Activated %s data key v%s", environment, highest.get("version"))
    return full_config


def cleanup_keys(full_config: Mapping[str, Any], environments: Iterable[str] = ()) -> Dict[str, Any]:
    """
    Remove every cipher except the one with the highest version.

    Only safe once all data has been re-encrypted with that key.

    Returns:
        Updated copy of ``full_config``
    """
    full_config = copy.deepcopy(dict(full_config))
    for environment, ciphers in _cipher_lists(full_config, environments):
        highest = max(ciphers, key=lambda c: int(c.get("version") or 0))
        removed = len(ciphers) - 1
        ciphers[:] = [highest]
        logger.info("Removed %d old data key(s) from %s", removed, environment)
    return full_config


__all__ = [
    "KEYSTORES",
    "KeyEncrypter",
    "Keystore",
    "activate_keys",
    "binary_fields",
    "cleanup_keys",
    "dev_config",
    "generate_data_keys",
    "keystore_class",
    "keystore_for",
    "next_version",
    "read_key",
    "resolve_key_encrypting_key",
    "rotate_key_encrypting_keys",
    "rotate_keys",
]
