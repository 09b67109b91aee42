"""
Pytest configuration and fixtures for symmetric encryption tests.
"""

from __future__ import annotations

import pytest

from symmetric_encryption import Cipher, CipherRegistry

DEV_KEY = "1234567890ABCDEF"


@pytest.fixture
def dev_cipher() -> Cipher:
    """Well known aes-128-cbc cipher without a header, used for fixed vectors."""
    return Cipher(
        key=DEV_KEY,
        iv=DEV_KEY,
        cipher_name="aes-128-cbc",
        always_add_header=False,
    )


@pytest.fixture
def primary_cipher() -> Cipher:
    """Random aes-256-cbc cipher, version 2."""
    return Cipher.random(cipher_name="aes-256-cbc", version=2)


@pytest.fixture
def secondary_cipher() -> Cipher:
    """Random aes-128-cbc cipher, version 1."""
    return Cipher.random(cipher_name="aes-128-cbc", version=1)


@pytest.fixture
def registry(primary_cipher: Cipher, secondary_cipher: Cipher) -> CipherRegistry:
    """Registry with version 2 as primary and version 1 as secondary."""
    return CipherRegistry([primary_cipher, secondary_cipher])


@pytest.fixture
def key_path(tmp_path) -> str:
    """Directory for generated key files."""
    path = tmp_path / "keys"
    path.mkdir()
    return str(path)
