"""
Self-describing header prepended to encrypted data.

Layout::

    "@EnC" | version (uint8) | flags (uint8) | [iv] [key] [cipher_name] [auth_tag]

Every optional field is framed as ``{uint16 little-endian length}{bytes}`` and
appears in the order above, only when its flag is set. The embedded key is
never stored in the clear: it is encrypted with the registry cipher matching
the header version, using an all-zero iv when that cipher has no iv of its own.
"""

from __future__ import annotations

import struct
from typing import Any, Optional, Tuple, Union

from .errors import CipherError

MAGIC_HEADER: bytes = b"@EnC"
MAGIC_HEADER_SIZE: int = len(MAGIC_HEADER)
MIN_HEADER_SIZE: int = MAGIC_HEADER_SIZE + 2

FLAG_COMPRESSED: int = 0b1000_0000
FLAG_IV: int = 0b0100_0000
FLAG_KEY: int = 0b0010_0000
FLAG_CIPHER_NAME: int = 0b0001_0000
FLAG_AUTH_TAG: int = 0b0000_1000

_LENGTH = struct.Struct("<H")
_MAX_FIELD_LENGTH: int = 0xFFFF


class Header:
    """
    Encryption header.

    Args:
        version: Version of the cipher used to encrypt the data (0..255)
        compress: Whether the data was compressed before encryption
        iv: Random iv used for this record, if any
        key: Random data key used for this record, if any (stored encrypted)
        cipher_name: Cipher used when it differs from the version's cipher
        auth_tag: Authentication tag for authenticated modes
        registry: CipherRegistry used to resolve ``version`` into a cipher
    """

    def __init__(
        self,
        version: Optional[int] = None,
        compress: bool = False,
        iv: Optional[bytes] = None,
        key: Optional[bytes] = None,
        cipher_name: Optional[str] = None,
        auth_tag: Optional[bytes] = None,
        registry: Any = None,
    ) -> None:
        if version is None:
            version = registry.primary.version if registry is not None else 0
        self.version = version
        self.compress = compress
        self.iv = iv
        self.key = key
        self.cipher_name = cipher_name
        self.auth_tag = auth_tag
        self.registry = registry

    @staticmethod
    def present(buffer: Optional[Union[bytes, bytearray]]) -> bool:
        """Whether the buffer starts with the magic header prefix."""
        if not buffer:
            return False
        return bytes(buffer[:MAGIC_HEADER_SIZE]) == MAGIC_HEADER

    @property
    def compressed(self) -> bool:
        return bool(self.compress)

    @property
    def cipher(self):
        """
        Cipher in the registry matching this header's version.

        Raises:
            CipherError: If no registry is set or the version is not configured
        """
        if self.registry is None:
            raise CipherError("A cipher registry is required to resolve the header version")
        cipher = self.registry.cipher(self.version)
        if cipher is None:
            raise CipherError(f"No cipher with version:{self.version} found in the registry")
        return cipher

    def parse(self, buffer: Union[bytes, bytearray], offset: int = 0) -> int:
        """
        Parse a header from ``buffer`` starting at ``offset``.

        Fields not present in the buffer are reset to ``None``.

        Returns:
            Number of bytes consumed, 0 when no header is present

        Raises:
            CipherError: If the version is not in the registry or a field is truncated
        """
        buffer = bytes(buffer)
        if len(buffer) - offset < MIN_HEADER_SIZE:
            return 0
        if buffer[offset : offset + MAGIC_HEADER_SIZE] != MAGIC_HEADER:
            return 0

        position = offset + MAGIC_HEADER_SIZE
        version = buffer[position]
        flags = buffer[position + 1]
        position += 2

        self.version = version
        cipher = self.cipher

        self.compress = bool(flags & FLAG_COMPRESSED)

        self.iv = None
        if flags & FLAG_IV:
            self.iv, position = _read_field(buffer, position)

        self.key = None
        if flags & FLAG_KEY:
            encrypted_key, position = _read_field(buffer, position)
            self.key = _key_wrapping_key(cipher).decrypt(encrypted_key)

        self.cipher_name = None
        if flags & FLAG_CIPHER_NAME:
            name, position = _read_field(buffer, position)
            self.cipher_name = name.decode("utf-8")

        self.auth_tag = None
        if flags & FLAG_AUTH_TAG:
            self.auth_tag, position = _read_field(buffer, position)

        return position - offset

    def parse_strip(self, buffer: Union[bytes, bytearray]) -> Optional[bytes]:
        """Parse the header and return the remaining bytes, or None when no header."""
        offset = self.parse(buffer)
        if not offset:
            return None
        return bytes(buffer[offset:])

    def write(self) -> bytes:
        """Serialize this header to bytes."""
        version = int(self.version)
        if version < 0 or version > 255:
            raise CipherError(f"Header version must be 0 to 255, got {version}")

        flags = 0
        fields = []
        if self.compress:
            flags |= FLAG_COMPRESSED
        if self.iv:
            flags |= FLAG_IV
            fields.append(bytes(self.iv))
        if self.key:
            flags |= FLAG_KEY
            fields.append(_key_wrapping_key(self.cipher).encrypt(self.key))
        if self.cipher_name:
            flags |= FLAG_CIPHER_NAME
            fields.append(self.cipher_name.encode("utf-8"))
        if self.auth_tag:
            flags |= FLAG_AUTH_TAG
            fields.append(bytes(self.auth_tag))

        output = bytearray(MAGIC_HEADER)
        output.append(version)
        output.append(flags)
        for field in fields:
            if len(field) > _MAX_FIELD_LENGTH:
                raise CipherError(f"Header field too long: {len(field)} bytes")
            output += _LENGTH.pack(len(field))
            output += field
        return bytes(output)

    def __bytes__(self) -> bytes:
        return self.write()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Header):
            return NotImplemented
        return (
            self.version == other.version
            and self.compressed == other.compressed
            and self.iv == other.iv
            and self.key == other.key
            and self.cipher_name == other.cipher_name
            and self.auth_tag == other.auth_tag
        )

    def __repr__(self) -> str:
        return (
            f"Header(version={self.version}, compress={self.compressed}, "
            f"iv={self.iv is not None}, key={'[REDACTED]' if self.key else None}, "
            f"cipher_name={self.cipher_name!r}, auth_tag={self.auth_tag is not None})"
        )


def _read_field(buffer: bytes, position: int) -> Tuple[bytes, int]:
    if position + _LENGTH.size > len(buffer):
        raise CipherError("Truncated header: missing field length")
    (length,) = _LENGTH.unpack_from(buffer, position)
    position += _LENGTH.size
    if position + length > len(buffer):
        raise CipherError(
            f"Truncated header: field needs {length} bytes, only {len(buffer) - position} remain"
        )
    return buffer[position : position + length], position + length


def _key_wrapping_key(cipher: Any) -> Any:
    """Key of the version's cipher, falling back to a zero iv when it has none."""
    key = cipher.key
    if key.iv is None:
        key = key.with_iv(bytes(key.spec.iv_size))
    return key
