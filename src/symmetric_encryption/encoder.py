"""
Encoders between raw binary ciphertext and text-safe representations.

This module provides:
- Encoder: Abstract encoder with nil/empty short-circuits
- NoneEncoder, Base64Encoder, Base64StrictEncoder, Base64UrlSafeEncoder,
  Base16Encoder: Concrete encodings
- get_encoder: Lookup by encoding name

No cryptography happens here. Encoded output is always ``str``, decoded output
is always ``bytes`` (except for the ``none`` encoding which passes raw bytes
through unchanged).
"""

from __future__ import annotations

import base64
import binascii
from abc import ABC, abstractmethod
from typing import Dict, Optional, Type, Union

# Line length used by the historical (non-strict) base64 output.
BASE64_LINE_LENGTH: int = 60

ENCODINGS = ("none", "base64", "base64strict", "base64urlsafe", "base16")


def _to_bytes(value: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


class Encoder(ABC):
    """
    Abstract encoder.

    ``None`` is returned unchanged and an empty value is returned as an empty
    value of the output type, without invoking the underlying codec.
    """

    name: str = ""

    def encode(self, binary: Optional[Union[bytes, bytearray]]) -> Optional[Union[str, bytes]]:
        """Encode raw bytes into text."""
        if binary is None:
            return None
        if len(binary) == 0:
            return ""
        return self._encode(bytes(binary))

    def decode(self, encoded: Optional[Union[str, bytes]]) -> Optional[bytes]:
        """Decode text back into raw bytes."""
        if encoded is None:
            return None
        if len(encoded) == 0:
            return b""
        return self._decode(encoded)

    @abstractmethod
    def _encode(self, binary: bytes) -> Union[str, bytes]:
        ...

    @abstractmethod
    def _decode(self, encoded: Union[str, bytes]) -> bytes:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NoneEncoder(Encoder):
    """Pass-through: returns a copy of the raw binary data."""

    name = "none"

    def encode(self, binary: Optional[Union[bytes, bytearray]]) -> Optional[bytes]:
        if binary is None:
            return None
        return bytes(binary)

    def decode(self, encoded: Optional[Union[str, bytes]]) -> Optional[bytes]:
        if encoded is None:
            return None
        return _to_bytes(encoded)

    def _encode(self, binary: bytes) -> bytes:
        return bytes(binary)

    def _decode(self, encoded: Union[str, bytes]) -> bytes:
        return _to_bytes(encoded)


class Base64Encoder(Encoder):
    """
    Base64 with a line break after every 60 characters and a trailing newline.

    Kept for compatibility with data encoded by earlier releases.
    Prefer ``base64strict`` for new data.
    """

    name = "base64"

    def _encode(self, binary: bytes) -> str:
        encoded = base64.b64encode(binary).decode("ascii")
        lines = [
            encoded[i : i + BASE64_LINE_LENGTH]
            for i in range(0, len(encoded), BASE64_LINE_LENGTH)
        ]
        return "\n".join(lines) + "\n"

    def _decode(self, encoded: Union[str, bytes]) -> bytes:
        # Characters outside the alphabet (newlines) are discarded
        return base64.b64decode(_to_bytes(encoded))


class Base64StrictEncoder(Base64Encoder):
    """Base64 without any line breaks. Recommended encoding."""

    name = "base64strict"

    def _encode(self, binary: bytes) -> str:
        return base64.b64encode(binary).decode("ascii")


class Base64UrlSafeEncoder(Encoder):
    """URL and filename safe base64 (``-`` and ``_`` instead of ``+`` and ``/``)."""

    name = "base64urlsafe"

    def _encode(self, binary: bytes) -> str:
        return base64.urlsafe_b64encode(binary).decode("ascii")

    def _decode(self, encoded: Union[str, bytes]) -> bytes:
        return base64.urlsafe_b64decode(_to_bytes(encoded))


class Base16Encoder(Encoder):
    """Lowercase hex."""

    name = "base16"

    def _encode(self, binary: bytes) -> str:
        return binascii.hexlify(binary).decode("ascii")

    def _decode(self, encoded: Union[str, bytes]) -> bytes:
        return binascii.unhexlify(_to_bytes(encoded))


_ENCODERS: Dict[str, Type[Encoder]] = {
    "none": NoneEncoder,
    "base64": Base64Encoder,
    "base64strict": Base64StrictEncoder,
    "base64urlsafe": Base64UrlSafeEncoder,
    "base16": Base16Encoder,
}


def get_encoder(encoding: Union[str, Encoder]) -> Encoder:
    """
    Return the encoder for the supplied encoding name.

    Args:
        encoding: One of ``none``, ``base64``, ``base64strict``,
            ``base64urlsafe`` or ``base16``. An Encoder instance is returned as is.

    Returns:
        Encoder instance

    Raises:
        ValueError: If the encoding is not known
    """
    if isinstance(encoding, Encoder):
        return encoding
    try:
        return _ENCODERS[str(encoding)]()
    except KeyError:
        raise ValueError(f"Unknown encoder: {encoding!r}")


def encode(binary: Optional[bytes], encoding: str) -> Optional[Union[str, bytes]]:
    """Encode using the named encoding."""
    return get_encoder(encoding).encode(binary)


def decode(encoded: Optional[Union[str, bytes]], encoding: str) -> Optional[bytes]:
    """Decode using the named encoding."""
    return get_encoder(encoding).decode(encoded)
