"""Tests for Cipher."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from symmetric_encryption import Cipher, CipherError, CipherRegistry, DecryptionError, Header


def test_known_vector(dev_cipher: Cipher) -> None:
    assert dev_cipher.encrypt("987654321") == "PUgvP1n1Zy/WKGXXa8QiWg=="
    assert dev_cipher.decrypt("PUgvP1n1Zy/WKGXXa8QiWg==") == "987654321"


def test_aes_256_cbc_vector() -> None:
    cipher = Cipher(
        key="1234567890ABCDEF1234567890ABCDEF",
        iv="1234567890ABCDEF",
        cipher_name="aes-256-cbc",
        always_add_header=False,
    )
    assert cipher.encrypt("987654321") == "Qd0qzN6oVuATJQBTf8X6tg=="
    assert cipher.decrypt("Qd0qzN6oVuATJQBTf8X6tg==") == "987654321"


def test_none_and_empty(dev_cipher: Cipher) -> None:
    assert dev_cipher.encrypt(None) is None
    assert dev_cipher.encrypt("") == ""
    assert dev_cipher.decrypt(None) is None
    assert dev_cipher.decrypt("") == ""


def test_adds_header_by_default(primary_cipher: Cipher) -> None:
    encrypted = primary_cipher.encrypt("Hello World")
    decoded = primary_cipher.decode(encrypted)
    assert Header.present(decoded)
    assert decoded[4] == primary_cipher.version
    assert primary_cipher.decrypt(encrypted) == "Hello World"


def test_header_can_be_disabled(primary_cipher: Cipher) -> None:
    encrypted = primary_cipher.encrypt("Hello World", header=False)
    assert not Header.present(primary_cipher.decode(encrypted))
    assert primary_cipher.decrypt(encrypted) == "Hello World"


def test_random_iv(primary_cipher: Cipher) -> None:
    first = primary_cipher.encrypt("Hello World", random_iv=True)
    second = primary_cipher.encrypt("Hello World", random_iv=True)
    assert first != second
    assert primary_cipher.decrypt(first) == "Hello World"
    assert primary_cipher.decrypt(second) == "Hello World"


def test_random_iv_forces_header(primary_cipher: Cipher) -> None:
    encrypted = primary_cipher.encrypt("Hello World", random_iv=True, header=False)
    assert Header.present(primary_cipher.decode(encrypted))
    assert primary_cipher.decrypt(encrypted) == "Hello World"


def test_same_value_same_ciphertext_without_random_iv(primary_cipher: Cipher) -> None:
    assert primary_cipher.encrypt("Hello World") == primary_cipher.encrypt("Hello World")


def test_compress(primary_cipher: Cipher) -> None:
    value = "Hello World " * 500
    encrypted = primary_cipher.encrypt(value, compress=True)
    uncompressed = primary_cipher.encrypt(value)
    assert len(encrypted) < len(uncompressed)
    assert primary_cipher.decode(encrypted)[5] & 0x80
    assert primary_cipher.decrypt(encrypted) == value


def test_unicode(primary_cipher: Cipher) -> None:
    value = "Ünïcödé 日本語 ✓"
    assert primary_cipher.decrypt(primary_cipher.encrypt(value)) == value


def test_binary_data_returns_bytes(primary_cipher: Cipher) -> None:
    value = b"\xff\xfe\x00\x81binary"
    assert primary_cipher.decrypt(primary_cipher.encrypt(value)) == value


@pytest.mark.parametrize("cipher_name", ["aes-128-gcm", "aes-256-gcm", "aes-256-ctr"])
@pytest.mark.parametrize("header", [True, False])
def test_other_modes(cipher_name: str, header: bool) -> None:
    cipher = Cipher.random(cipher_name=cipher_name, always_add_header=header)
    encrypted = cipher.encrypt("Hello World")
    assert cipher.decrypt(encrypted) == "Hello World"


@pytest.mark.parametrize("encoding", ["none", "base64", "base64urlsafe", "base16"])
def test_encodings(encoding: str) -> None:
    cipher = Cipher.random(encoding=encoding)
    encrypted = cipher.encrypt("Hello World")
    assert cipher.decrypt(encrypted) == "Hello World"


def test_none_encoding_returns_binary() -> None:
    cipher = Cipher.random(encoding="none")
    assert isinstance(cipher.encrypt("Hello World"), bytes)


def test_binary_encrypt_decrypt(primary_cipher: Cipher) -> None:
    binary = primary_cipher.binary_encrypt(b"Hello World", random_iv=True, compress=True)
    assert primary_cipher.binary_decrypt(binary) == b"Hello World"


def test_header_from_other_version_is_rejected(primary_cipher: Cipher, secondary_cipher: Cipher) -> None:
    encrypted = secondary_cipher.encrypt("Hello World")
    with pytest.raises(CipherError):
        primary_cipher.decrypt(encrypted)


def test_decrypt_with_registry_uses_header_version(
    primary_cipher: Cipher, secondary_cipher: Cipher, registry: CipherRegistry
) -> None:
    encrypted = secondary_cipher.encrypt("Hello World")
    assert primary_cipher.decrypt(encrypted, registry=registry) == "Hello World"


def test_version_range() -> None:
    with pytest.raises(ValueError):
        Cipher.random(version=256)


def test_random_key_and_iv(primary_cipher: Cipher) -> None:
    assert len(primary_cipher.random_key()) == 32
    assert len(primary_cipher.random_iv()) == 16
    assert primary_cipher.block_size == 16


def test_from_config_inline_key() -> None:
    cipher = Cipher.from_config(
        key="1234567890ABCDEF",
        iv="1234567890ABCDEF",
        cipher_name="aes-128-cbc",
        version=1,
        always_add_header=False,
        encoding="base64strict",
    )
    assert cipher.version == 1
    assert cipher.encrypt("987654321") == "PUgvP1n1Zy/WKGXXa8QiWg=="


def test_repr_has_no_key(dev_cipher: Cipher) -> None:
    assert "1234567890ABCDEF" not in repr(dev_cipher)


def test_compressed_flag_over_uncompressed_data(primary_cipher: Cipher) -> None:
    data = Header(version=primary_cipher.version, compress=True).write()
    data += primary_cipher.key.encrypt(b"not zlib data")
    with pytest.raises(DecryptionError):
        primary_cipher.binary_decrypt(data)


def test_shared_between_threads(primary_cipher: Cipher) -> None:
    values = [f"value {i} " * (i % 7 + 1) for i in range(200)]

    def roundtrip(i: int) -> str:
        encrypted = primary_cipher.encrypt(values[i], random_iv=i % 2 == 0, compress=i % 3 == 0)
        return primary_cipher.decrypt(encrypted)

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(roundtrip, range(len(values))))
    assert results == values
