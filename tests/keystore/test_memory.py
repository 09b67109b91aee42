"""Tests for the memory keystore."""

from __future__ import annotations

import pytest

from symmetric_encryption import Cipher, ConfigError, Key, read_key
from symmetric_encryption.keystore.memory import MemoryKeystore


def test_write_and_read() -> None:
    kek = Key.random("aes-256-cbc")
    key = Key.random_key("aes-256-cbc")
    encrypted_key = MemoryKeystore(kek).write(key)
    assert isinstance(encrypted_key, str)
    assert MemoryKeystore(kek, encrypted_key=encrypted_key).read() == key


def test_requires_key_encrypting_key() -> None:
    with pytest.raises(ConfigError):
        MemoryKeystore(encrypted_key="abc")


def test_requires_encrypted_key() -> None:
    with pytest.raises(ConfigError):
        MemoryKeystore(Key.random("aes-256-cbc")).read()


def test_generate_data_key() -> None:
    config = MemoryKeystore.generate_data_key(
        cipher_name="aes-256-gcm", app_name="my_app", environment="production"
    )
    assert config["keystore"] == "memory"
    assert config["version"] == 1
    assert config["cipher_name"] == "aes-256-gcm"

    cipher = Cipher.from_config(**config)
    assert cipher.decrypt(cipher.encrypt("Hello World")) == "Hello World"
    assert read_key(**config).key == cipher.key.key
