"""
Data encryption keys and the cipher engines behind them.

This module provides:
- CipherSpec: Key size, iv size and mode for a supported cipher name
- CipherEngine: Incremental encrypt/decrypt context (update/finalize)
- Key: Immutable (key, iv, cipher_name, version) data encryption key

Keys, ivs and encrypted data are handled in their raw binary form, no encoding
is ever applied here. Every encrypt/decrypt call builds a new CipherEngine from
the stored key bytes, so a single Key can be shared between threads.
"""

from __future__ import annotations

import secrets
import zlib
from dataclasses import dataclass
from typing import Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher as CryptoCipher
from cryptography.hazmat.primitives.ciphers import algorithms, modes

from .errors import CipherError, DecryptionError
from .header import Header

DEFAULT_CIPHER_NAME: str = "aes-256-cbc"
TAG_SIZE: int = 16  # 128 bits (GCM authentication tag)
MAX_VERSION: int = 255


@dataclass(frozen=True)
class CipherSpec:
    """Parameters for an OpenSSL style cipher name such as ``aes-256-cbc``."""

    name: str
    key_size: int
    iv_size: int
    mode: str

    @property
    def authenticated(self) -> bool:
        """Whether the mode produces an authentication tag."""
        return self.mode == "gcm"

    @property
    def block_size(self) -> int:
        """Cipher block size in bytes. Stream modes report 1."""
        return 16 if self.mode == "cbc" else 1


CIPHER_SPECS: Dict[str, CipherSpec] = {
    "aes-128-cbc": CipherSpec("aes-128-cbc", 16, 16, "cbc"),
    "aes-192-cbc": CipherSpec("aes-192-cbc", 24, 16, "cbc"),
    "aes-256-cbc": CipherSpec("aes-256-cbc", 32, 16, "cbc"),
    "aes-128-ctr": CipherSpec("aes-128-ctr", 16, 16, "ctr"),
    "aes-192-ctr": CipherSpec("aes-192-ctr", 24, 16, "ctr"),
    "aes-256-ctr": CipherSpec("aes-256-ctr", 32, 16, "ctr"),
    "aes-128-gcm": CipherSpec("aes-128-gcm", 16, 12, "gcm"),
    "aes-192-gcm": CipherSpec("aes-192-gcm", 24, 12, "gcm"),
    "aes-256-gcm": CipherSpec("aes-256-gcm", 32, 12, "gcm"),
}


def cipher_spec(cipher_name: str) -> CipherSpec:
    """
    Look up a supported cipher.

    Args:
        cipher_name: OpenSSL style name, for example ``aes-256-cbc``

    Returns:
        CipherSpec for the name

    Raises:
        CipherError: If the cipher is not supported
    """
    try:
        return CIPHER_SPECS[cipher_name.lower()]
    except (KeyError, AttributeError):
        raise CipherError(f"Unsupported cipher: {cipher_name!r}")


def _to_bytes(value: Union[str, bytes, bytearray]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


class CipherEngine:
    """
    Incremental cipher context for a single encrypt or decrypt pass.

    Handles PKCS7 padding for CBC so callers can feed arbitrary sized chunks.
    An engine must be finalized exactly once and is not reusable.
    """

    def __init__(
        self,
        spec: CipherSpec,
        key: bytes,
        iv: Optional[bytes],
        encrypt: bool,
        auth_data: Optional[bytes] = None,
        auth_tag: Optional[bytes] = None,
    ) -> None:
        if iv is None:
            raise CipherError(f"Cipher {spec.name} requires an iv")

        if spec.mode == "cbc":
            mode = modes.CBC(iv)
        elif spec.mode == "ctr":
            mode = modes.CTR(iv)
        elif encrypt:
            mode = modes.GCM(iv)
        else:
            if auth_tag is None:
                raise CipherError(f"Cipher {spec.name} requires an auth tag to decrypt")
            mode = modes.GCM(iv, auth_tag)

        cipher = CryptoCipher(algorithms.AES(key), mode)
        self._context = cipher.encryptor() if encrypt else cipher.decryptor()
        if spec.authenticated and auth_data:
            self._context.authenticate_additional_data(auth_data)

        self._padding = None
        if spec.mode == "cbc":
            pkcs7 = padding.PKCS7(algorithms.AES.block_size)
            self._padding = pkcs7.padder() if encrypt else pkcs7.unpadder()

        self._spec = spec
        self._encrypt = encrypt
        self.tag: Optional[bytes] = None

    def update(self, data: bytes) -> bytes:
        """Process the next chunk, returning whatever output is ready."""
        if self._encrypt:
            if self._padding is not None:
                data = self._padding.update(data)
            return self._context.update(data)

        try:
            result = self._context.update(data)
            if self._padding is not None:
                result = self._padding.update(result)
        except ValueError as e:
            raise DecryptionError("Decryption failed") from e
        return result

    def finalize(self) -> bytes:
        """Flush the final block, adding or removing padding."""
        if self._encrypt:
            result = b""
            if self._padding is not None:
                result = self._context.update(self._padding.finalize())
            result += self._context.finalize()
            if self._spec.authenticated:
                self.tag = self._context.tag
            return result

        try:
            result = self._context.finalize()
            if self._padding is not None:
                result = self._padding.update(result) + self._padding.finalize()
        except (ValueError, InvalidTag) as e:
            # Generic error, the engine reason is kept as __cause__
            raise DecryptionError("Decryption failed") from e
        return result


class Key:
    """
    Immutable data encryption key.

    Holds the raw key, the optional iv, the cipher name and the version of the
    cipher in the registry that this key belongs to.
    """

    __slots__ = ("_key", "_iv", "_cipher_name", "_version", "_spec")

    def __init__(
        self,
        key: Union[str, bytes, bytearray],
        iv: Optional[Union[str, bytes, bytearray]] = None,
        cipher_name: str = DEFAULT_CIPHER_NAME,
        version: int = 0,
    ) -> None:
        """
        Create a Key.

        Args:
            key: Raw key material. A ``str`` is UTF-8 encoded.
            iv: Optional iv. Required at encrypt/decrypt time unless supplied per call.
            cipher_name: OpenSSL style cipher name
            version: Cipher version, 0 to 255

        Raises:
            CipherError: If the cipher is unknown or the key/iv size is wrong
            ValueError: If the version is out of range
        """
        if key is None:
            raise CipherError("Missing mandatory key")
        spec = cipher_spec(cipher_name)
        key_bytes = _to_bytes(key)
        iv_bytes = _to_bytes(iv) if iv is not None else None

        if len(key_bytes) != spec.key_size:
            raise CipherError(
                f"Invalid key size for {spec.name}: expected {spec.key_size}, got {len(key_bytes)}"
            )
        if iv_bytes is not None and len(iv_bytes) != spec.iv_size:
            raise CipherError(
                f"Invalid iv size for {spec.name}: expected {spec.iv_size}, got {len(iv_bytes)}"
            )

        version = int(version or 0)
        if version < 0 or version > MAX_VERSION:
            raise ValueError(
                f"Cipher version has a valid range of 0 to {MAX_VERSION}. {version} is out of range"
            )

        self._key = key_bytes
        self._iv = iv_bytes
        self._cipher_name = spec.name
        self._version = version
        self._spec = spec

    @classmethod
    def random(cls, cipher_name: str = DEFAULT_CIPHER_NAME, version: int = 0) -> Key:
        """Generate a Key with a random key and a random iv."""
        return cls(
            key=cls.random_key(cipher_name),
            iv=cls.random_iv(cipher_name),
            cipher_name=cipher_name,
            version=version,
        )

    @staticmethod
    def random_key(cipher_name: str = DEFAULT_CIPHER_NAME) -> bytes:
        """Return random key bytes sized for the cipher."""
        return secrets.token_bytes(cipher_spec(cipher_name).key_size)

    @staticmethod
    def random_iv(cipher_name: str = DEFAULT_CIPHER_NAME) -> bytes:
        """Return a random iv sized for the cipher."""
        return secrets.token_bytes(cipher_spec(cipher_name).iv_size)

    @property
    def key(self) -> bytes:
        return self._key

    @property
    def iv(self) -> Optional[bytes]:
        return self._iv

    @property
    def cipher_name(self) -> str:
        return self._cipher_name

    @property
    def version(self) -> int:
        return self._version

    @property
    def spec(self) -> CipherSpec:
        return self._spec

    @property
    def authenticated(self) -> bool:
        return self._spec.authenticated

    @property
    def block_size(self) -> int:
        return self._spec.block_size

    def with_iv(self, iv: Optional[bytes]) -> Key:
        """Return a copy of this key using a different iv."""
        return Key(self._key, iv=iv, cipher_name=self._cipher_name, version=self._version)

    def encryptor(self, auth_data: Optional[bytes] = None) -> CipherEngine:
        """Return a new incremental encryption engine for this key."""
        return CipherEngine(self._spec, self._key, self._iv, True, auth_data=auth_data)

    def decryptor(
        self, auth_data: Optional[bytes] = None, auth_tag: Optional[bytes] = None
    ) -> CipherEngine:
        """Return a new incremental decryption engine for this key."""
        return CipherEngine(
            self._spec, self._key, self._iv, False, auth_data=auth_data, auth_tag=auth_tag
        )

    def encrypt(
        self,
        plaintext: Union[str, bytes, bytearray],
        auth_data: bytes = b"",
        compress: bool = False,
        header: Optional[Header] = None,
    ) -> bytes:
        """
        Encrypt plaintext with this key.

        When a header is supplied, or compression is requested, the header is
        completed with this key's version, the compression flag and the auth
        tag, then prepended to the ciphertext. Without a header, authenticated
        modes append the tag to the ciphertext instead.

        Args:
            plaintext: Data to encrypt
            auth_data: Additional authenticated data (authenticated modes only)
            compress: Whether to zlib compress before encrypting
            header: Optional Header to complete and prepend

        Returns:
            Binary ciphertext, empty when plaintext is empty
        """
        data = _to_bytes(plaintext)
        if not data:
            return b""

        if compress:
            data = zlib.compress(data)
            if header is None:
                header = Header(version=self._version)

        engine = self.encryptor(auth_data)
        ciphertext = engine.update(data) + engine.finalize()

        if header is None:
            return ciphertext + engine.tag if engine.tag else ciphertext

        header.compress = compress
        header.auth_tag = engine.tag
        return header.write() + ciphertext

    def decrypt(
        self,
        ciphertext: Union[bytes, bytearray],
        auth_data: bytes = b"",
        auth_tag: Optional[bytes] = None,
    ) -> bytes:
        """
        Decrypt raw ciphertext with this key.

        No header handling and no decompression is performed here.

        Args:
            ciphertext: Binary ciphertext without any header
            auth_data: Additional authenticated data (must match encryption)
            auth_tag: Auth tag for authenticated modes. When omitted the last
                16 bytes of the ciphertext are used.

        Returns:
            Decrypted bytes

        Raises:
            DecryptionError: If the cipher engine rejects the data
        """
        data = bytes(ciphertext)
        if not data:
            return b""

        if self._spec.authenticated and auth_tag is None:
            if len(data) < TAG_SIZE:
                raise DecryptionError("Encrypted data too small to contain an auth tag")
            data, auth_tag = data[:-TAG_SIZE], data[-TAG_SIZE:]

        engine = self.decryptor(auth_data, auth_tag)
        return engine.update(data) + engine.finalize()

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental key disclosure."""
        return f"Key(cipher_name={self._cipher_name!r}, version={self._version}, key=[REDACTED])"
