"""Tests for Key and the cipher engines."""

from __future__ import annotations

import pytest

from symmetric_encryption import CIPHER_SPECS, CipherError, DecryptionError, Key
from symmetric_encryption.header import Header

DEV_KEY = b"1234567890ABCDEF"


@pytest.mark.parametrize("cipher_name", sorted(CIPHER_SPECS))
def test_encrypt_decrypt(cipher_name: str) -> None:
    key = Key.random(cipher_name)
    plaintext = b"Hello World " * 10
    ciphertext = key.encrypt(plaintext)
    assert ciphertext != plaintext
    assert key.decrypt(ciphertext) == plaintext


@pytest.mark.parametrize("cipher_name", sorted(CIPHER_SPECS))
def test_random_key_sizes(cipher_name: str) -> None:
    key = Key.random(cipher_name)
    spec = CIPHER_SPECS[cipher_name]
    assert len(key.key) == spec.key_size
    assert len(key.iv) == spec.iv_size


def test_accepts_text_key_and_iv() -> None:
    key = Key("1234567890ABCDEF", iv="1234567890ABCDEF", cipher_name="aes-128-cbc")
    assert key.key == DEV_KEY
    assert key.iv == DEV_KEY


def test_invalid_key_size() -> None:
    with pytest.raises(CipherError):
        Key(b"short", cipher_name="aes-256-cbc")


def test_invalid_iv_size() -> None:
    with pytest.raises(CipherError):
        Key(DEV_KEY, iv=b"short", cipher_name="aes-128-cbc")


def test_unknown_cipher_name() -> None:
    with pytest.raises(CipherError):
        Key(DEV_KEY, cipher_name="des-ede3-cbc")


@pytest.mark.parametrize("version", [-1, 256])
def test_version_out_of_range(version: int) -> None:
    with pytest.raises(ValueError):
        Key(DEV_KEY, iv=DEV_KEY, cipher_name="aes-128-cbc", version=version)


def test_missing_iv() -> None:
    key = Key(DEV_KEY, cipher_name="aes-128-cbc")
    with pytest.raises(CipherError):
        key.encrypt(b"data")


def test_empty_plaintext() -> None:
    key = Key.random("aes-128-cbc")
    assert key.encrypt(b"") == b""
    assert key.decrypt(b"") == b""


def test_truncated_cbc_ciphertext() -> None:
    key = Key.random("aes-256-cbc")
    ciphertext = key.encrypt(b"Hello World")
    with pytest.raises(DecryptionError) as exc_info:
        key.decrypt(ciphertext[:-1])
    assert exc_info.value.__cause__ is not None


def test_gcm_detects_tampering() -> None:
    key = Key.random("aes-256-gcm")
    ciphertext = bytearray(key.encrypt(b"Hello World"))
    ciphertext[0] ^= 0x01
    with pytest.raises(DecryptionError):
        key.decrypt(bytes(ciphertext))


def test_gcm_auth_data_must_match() -> None:
    key = Key.random("aes-128-gcm")
    ciphertext = key.encrypt(b"Hello World", auth_data=b"record-1")
    assert key.decrypt(ciphertext, auth_data=b"record-1") == b"Hello World"
    with pytest.raises(DecryptionError):
        key.decrypt(ciphertext, auth_data=b"record-2")


def test_gcm_appends_tag_without_header() -> None:
    key = Key.random("aes-256-gcm")
    assert len(key.encrypt(b"0123456789")) == 10 + 16


def test_header_receives_auth_tag() -> None:
    key = Key.random("aes-256-gcm")
    header = Header(version=0)
    encrypted = key.encrypt(b"Hello World", header=header)
    assert Header.present(encrypted)
    assert header.auth_tag is not None
    body = encrypted[len(header.write()) :]
    assert key.decrypt(body, auth_tag=header.auth_tag) == b"Hello World"


def test_compress_forces_header() -> None:
    key = Key.random("aes-256-cbc", version=3)
    encrypted = key.encrypt(b"a" * 1000, compress=True)
    assert Header.present(encrypted)
    assert encrypted[4] == 3
    assert encrypted[5] & 0x80


def test_incremental_engine_matches_one_shot() -> None:
    key = Key.random("aes-256-cbc")
    plaintext = bytes(range(256)) * 3

    engine = key.encryptor()
    chunks = [engine.update(plaintext[i : i + 7]) for i in range(0, len(plaintext), 7)]
    chunks.append(engine.finalize())
    assert b"".join(chunks) == key.encrypt(plaintext)

    engine = key.decryptor()
    ciphertext = key.encrypt(plaintext)
    chunks = [engine.update(ciphertext[i : i + 5]) for i in range(0, len(ciphertext), 5)]
    chunks.append(engine.finalize())
    assert b"".join(chunks) == plaintext


def test_with_iv_keeps_key() -> None:
    key = Key.random("aes-128-cbc", version=4)
    other = key.with_iv(Key.random_iv("aes-128-cbc"))
    assert other.key == key.key
    assert other.version == 4
    assert other.iv != key.iv


def test_block_size() -> None:
    assert Key.random("aes-256-cbc").block_size == 16
    assert Key.random("aes-256-ctr").block_size == 1
    assert Key.random("aes-256-gcm").authenticated


def test_repr_is_redacted() -> None:
    key = Key(DEV_KEY, iv=DEV_KEY, cipher_name="aes-128-cbc")
    assert "REDACTED" in repr(key)
    assert "1234567890ABCDEF" not in repr(key)
