"""Tests for the file keystore."""

from __future__ import annotations

import base64
import glob
import os
import stat

import pytest

from symmetric_encryption import Cipher, ConfigError, Key, read_key
from symmetric_encryption.keystore.file import FileKeystore


def test_write_and_read_raw(key_path: str) -> None:
    file_name = os.path.join(key_path, "raw.key")
    key = Key.random_key("aes-256-cbc")
    keystore = FileKeystore(file_name)
    keystore.write(key)
    assert keystore.read() == key
    with open(file_name, "rb") as f:
        assert f.read() == key


def test_write_and_read_wrapped(key_path: str) -> None:
    file_name = os.path.join(key_path, "wrapped.key")
    kek = Key.random("aes-256-cbc")
    key = Key.random_key("aes-256-cbc")
    FileKeystore(file_name, key_encrypting_key=kek).write(key)

    with open(file_name, "rb") as f:
        assert f.read() != key
    assert FileKeystore(file_name, key_encrypting_key=kek).read() == key


def test_file_is_owner_only(key_path: str) -> None:
    file_name = os.path.join(key_path, "mode.key")
    FileKeystore(file_name).write(b"k" * 32)
    assert stat.S_IMODE(os.stat(file_name).st_mode) == 0o600


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions only")
@pytest.mark.parametrize("mode", [0o640, 0o604, 0o660])
def test_rejects_group_or_other_access(key_path: str, mode: int) -> None:
    file_name = os.path.join(key_path, "open.key")
    FileKeystore(file_name).write(b"k" * 32)
    os.chmod(file_name, mode)
    with pytest.raises(ConfigError):
        FileKeystore(file_name).read()


def test_missing_file(key_path: str) -> None:
    with pytest.raises(ConfigError):
        FileKeystore(os.path.join(key_path, "missing.key")).read()


def test_backup_on_overwrite(key_path: str) -> None:
    file_name = os.path.join(key_path, "rotate.key")
    keystore = FileKeystore(file_name)
    keystore.write(b"a" * 32)
    keystore.write(b"b" * 32)

    backups = glob.glob(f"{file_name}.*")
    assert len(backups) == 1
    with open(backups[0], "rb") as f:
        assert f.read() == b"a" * 32
    assert keystore.read() == b"b" * 32


def test_generate_data_key(key_path: str) -> None:
    config = FileKeystore.generate_data_key(
        cipher_name="aes-256-cbc",
        app_name="my_app",
        environment="production",
        version=0,
        key_path=key_path,
    )
    assert config["keystore"] == "file"
    assert config["version"] == 1
    assert config["key_filename"] == os.path.join(key_path, "my_app_production_v1.encrypted_key")
    assert os.path.exists(config["key_filename"])
    assert os.path.exists(os.path.join(key_path, "my_app_production_v1.kekek"))
    assert "encrypted_key" in config["key_encrypting_key"]
    assert "key_filename" in config["key_encrypting_key"]["key_encrypting_key"]

    key = read_key(**config)
    assert len(key.key) == 32
    assert key.version == 1

    cipher = Cipher.from_config(**config)
    assert cipher.decrypt(cipher.encrypt("Hello World")) == "Hello World"


def test_generate_keeps_supplied_key(key_path: str) -> None:
    dek = Key.random("aes-128-cbc")
    config = FileKeystore.generate_data_key(
        cipher_name="aes-128-cbc",
        app_name="my_app",
        environment="production",
        version=4,
        dek=dek,
        key_path=key_path,
    )
    assert config["version"] == 5
    assert config["key_encoding"] == "base64strict"
    assert base64.b64decode(config["iv"]) == dek.iv
    assert read_key(**config).key == dek.key
