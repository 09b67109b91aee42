"""Tests for value coercion and EncryptedField."""

from __future__ import annotations

import datetime
from decimal import Decimal

import pytest

from symmetric_encryption import CipherRegistry, EncryptedField
from symmetric_encryption.coerce import coerce_from_string, coerce_to_string


@pytest.mark.parametrize(
    "type, value, text",
    [
        ("string", "abc", "abc"),
        ("integer", 42, "42"),
        ("float", 1.5, "1.5"),
        ("decimal", Decimal("12.34"), "12.34"),
        ("date", datetime.date(2024, 1, 31), "2024-01-31"),
        ("time", datetime.time(13, 45, 12), "13:45:12"),
        ("datetime", datetime.datetime(2024, 1, 31, 13, 45), "2024-01-31T13:45:00"),
        ("boolean", True, "true"),
        ("boolean", False, "false"),
        ("json", {"a": [1, 2]}, '{"a": [1, 2]}'),
    ],
)
def test_coercion(type: str, value, text: str) -> None:
    assert coerce_to_string(value, type) == text
    assert coerce_from_string(text, type) == value


@pytest.mark.parametrize("type", ["string", "integer", "json"])
def test_none_and_empty_pass_through(type: str) -> None:
    assert coerce_to_string(None, type) is None
    assert coerce_from_string(None, type) is None
    assert coerce_from_string("", type) == ""


def test_string_keeps_bytes() -> None:
    assert coerce_to_string(b"\xff\x00", "string") == b"\xff\x00"


def test_boolean_from_text() -> None:
    assert coerce_from_string("TRUE", "boolean") is True
    assert coerce_from_string("0", "boolean") is False


def test_invalid_type() -> None:
    with pytest.raises(ValueError):
        coerce_to_string(1, "complex")
    with pytest.raises(ValueError):
        coerce_from_string("1", "complex")


def test_encrypted_field(registry: CipherRegistry) -> None:
    field = EncryptedField(registry, type="integer")
    encrypted = field.serialize(1234)
    assert isinstance(encrypted, str)
    assert field.is_encrypted(encrypted)
    assert field.deserialize(encrypted) == 1234
    assert field.serialize(None) is None
    assert field.deserialize(None) is None


def test_encrypted_field_random_iv(registry: CipherRegistry) -> None:
    field = EncryptedField(registry)
    assert field.serialize("123-45-6789") != field.serialize("123-45-6789")

    searchable = EncryptedField(registry, random_iv=False)
    assert searchable.serialize("123-45-6789") == searchable.serialize("123-45-6789")


def test_encrypted_field_compress(registry: CipherRegistry) -> None:
    field = EncryptedField(registry, type="json", compress=True)
    document = {"rows": list(range(200))}
    assert field.deserialize(field.serialize(document)) == document


def test_encrypted_field_invalid_type(registry: CipherRegistry) -> None:
    with pytest.raises(ValueError):
        EncryptedField(registry, type="complex")
