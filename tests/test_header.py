"""Tests for the encryption header."""

from __future__ import annotations

import pytest

from symmetric_encryption import Cipher, CipherError, CipherRegistry, Header, Key
from symmetric_encryption.header import FLAG_COMPRESSED, FLAG_IV, MAGIC_HEADER


@pytest.fixture
def header_registry() -> CipherRegistry:
    return CipherRegistry([Cipher.random(version=1)])


def test_write_parse_roundtrip(header_registry: CipherRegistry) -> None:
    header = Header(
        version=1,
        compress=True,
        iv=b"i" * 16,
        key=b"k" * 32,
        cipher_name="aes-256-cbc",
        auth_tag=b"t" * 16,
        registry=header_registry,
    )
    written = header.write()

    parsed = Header(registry=header_registry)
    assert parsed.parse(written + b"body") == len(written)
    assert parsed == header
    assert parsed.key == b"k" * 32


def test_embedded_key_is_encrypted(header_registry: CipherRegistry) -> None:
    written = Header(version=1, key=b"k" * 32, registry=header_registry).write()
    assert b"k" * 32 not in written


def test_embedded_key_with_cipher_without_iv() -> None:
    registry = CipherRegistry([Cipher(Key.random_key("aes-256-cbc"), iv=None, version=3)])
    header = Header(version=3, key=b"k" * 32, iv=b"i" * 16, registry=registry)
    written = header.write()
    assert b"k" * 32 not in written

    parsed = Header(registry=registry)
    assert parsed.parse(written) == len(written)
    assert parsed.key == b"k" * 32


def test_layout() -> None:
    written = Header(version=7, compress=True, iv=b"i" * 16).write()
    assert written[:4] == MAGIC_HEADER
    assert written[4] == 7
    assert written[5] == FLAG_COMPRESSED | FLAG_IV
    assert written[6:8] == b"\x10\x00"
    assert written[8:] == b"i" * 16


def test_minimal_header() -> None:
    assert Header(version=0).write() == b"@EnC\x00\x00"


def test_no_header(header_registry: CipherRegistry) -> None:
    header = Header(registry=header_registry)
    assert header.parse(b"plain data here") == 0
    assert header.parse(b"@EnC\x01") == 0
    assert header.parse(b"") == 0
    assert header.parse_strip(b"plain data here") is None


def test_parse_at_offset(header_registry: CipherRegistry) -> None:
    written = Header(version=1, iv=b"i" * 16).write()
    header = Header(registry=header_registry)
    assert header.parse(b"xx" + written, offset=2) == len(written)
    assert header.iv == b"i" * 16


def test_parse_strip(header_registry: CipherRegistry) -> None:
    written = Header(version=1).write()
    assert Header(registry=header_registry).parse_strip(written + b"body") == b"body"


def test_unknown_version(header_registry: CipherRegistry) -> None:
    written = Header(version=9).write()
    with pytest.raises(CipherError):
        Header(registry=header_registry).parse(written)


def test_version_zero_falls_back_to_primary(header_registry: CipherRegistry) -> None:
    header = Header(registry=header_registry)
    assert header.parse(Header(version=0).write()) == 6
    assert header.cipher is header_registry.primary


def test_truncated_field(header_registry: CipherRegistry) -> None:
    written = Header(version=1, iv=b"i" * 16).write()
    with pytest.raises(CipherError):
        Header(registry=header_registry).parse(written[:-4])
    with pytest.raises(CipherError):
        Header(registry=header_registry).parse(written[:7])


def test_parse_requires_registry() -> None:
    with pytest.raises(CipherError):
        Header().parse(Header(version=1).write())


def test_present() -> None:
    assert Header.present(b"@EnC\x01\x00")
    assert not Header.present(b"@En")
    assert not Header.present(None)


def test_repr_hides_key(header_registry: CipherRegistry) -> None:
    header = Header(version=1, key=b"k" * 32, registry=header_registry)
    assert "kkkk" not in repr(header)
