"""
Configuration loading.

A configuration file is JSON keyed by environment name::

    {
      "production": {
        "ciphers": [
          {"key_filename": "/etc/app/production_v2.encrypted_key",
           "iv": "q83vEjRWeJCrze8SNFZ4kA==", "key_encoding": "base64strict",
           "cipher_name": "aes-256-cbc", "version": 2,
           "key_encrypting_key": {...}}
        ]
      }
    }

The first cipher is the primary. Binary values (``key``, ``iv``) are text
encoded as named by ``key_encoding``, without it text is used as UTF-8.
``.env`` files are loaded (python-dotenv) before any environment lookup so
keystores can read their variables.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from .cipher import CipherRegistry, SelectCipher
from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE: str = os.path.join("config", "symmetric-encryption.json")
DEFAULT_ENVIRONMENT: str = "development"


def current_environment() -> str:
    """Environment name from SYMMETRIC_ENCRYPTION_ENV or APP_ENV, default development."""
    return (
        os.environ.get("SYMMETRIC_ENCRYPTION_ENV")
        or os.environ.get("APP_ENV")
        or DEFAULT_ENVIRONMENT
    )


def load(
    config: Mapping[str, Any],
    select_cipher: Optional[SelectCipher] = None,
) -> CipherRegistry:
    """
    Build a CipherRegistry from one environment's configuration.

    Args:
        config: ``{"ciphers": [...], "randomize_iv": bool}``
        select_cipher: Optional cipher selector for headerless data

    Raises:
        ConfigError: If ciphers are missing or a key cannot be read
    """
    ciphers = config.get("ciphers")
    if not ciphers:
        raise ConfigError("Missing required ciphers configuration")
    return CipherRegistry.from_config(
        ciphers,
        select_cipher=select_cipher,
        randomize_iv=bool(config.get("randomize_iv", False)),
    )


def load_file(
    file_name: Optional[str] = None,
    env: Optional[str] = None,
    select_cipher: Optional[SelectCipher] = None,
) -> CipherRegistry:
    """
    Load the configuration file and build the registry for an environment.

    Args:
        file_name: Defaults to SYMMETRIC_ENCRYPTION_CONFIG, then
            ``config/symmetric-encryption.json``
        env: Environment name, defaults to ``current_environment()``
        select_cipher: Optional cipher selector for headerless data

    Raises:
        ConfigError: If the file is missing, invalid, or has no such environment
    """
    load_dotenv()

    env = env or current_environment()
    file_name = file_name or os.environ.get("SYMMETRIC_ENCRYPTION_CONFIG") or DEFAULT_CONFIG_FILE

    if not os.path.isfile(file_name):
        raise ConfigError(f"Symmetric encryption config file not found: {file_name!r}")
    try:
        with open(file_name, "r", encoding="utf-8") as f:
            full_config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {file_name!r}: {e}") from e

    config = full_config.get(env) if isinstance(full_config, dict) else None
    if not config:
        raise ConfigError(f"Environment {env!r} not found in {file_name!r}")

    logger.info("Loading symmetric encryption config for %s from %s", env, file_name)
    return load(config, select_cipher=select_cipher)


def write_file(file_name: str, full_config: Mapping[str, Any]) -> None:
    """
    Save a full configuration (keyed by environment) as JSON.

    Generated and rotated configurations hold only text values, so the output
    of ``generate_data_keys`` or ``rotate_keys`` can be written directly.
    """
    directory = os.path.dirname(file_name)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(file_name, "w", encoding="utf-8") as f:
        json.dump(full_config, f, indent=2)
        f.write("\n")
    logger.info("Wrote symmetric encryption config to %s", file_name)
