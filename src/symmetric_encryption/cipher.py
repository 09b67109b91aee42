"""
Ciphers and the versioned cipher registry.

This module provides:
- Cipher: A data encryption Key bound to an Encoder and a header policy
- CipherRegistry: Immutable, ordered collection of ciphers (primary first)

Encryption always uses the primary cipher. Decryption is driven by the header
when one is present: the header version selects the cipher, and a key, iv or
cipher name carried in the header overrides that cipher's own values.
"""

from __future__ import annotations

import logging
import secrets
import zlib
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Union

from .coerce import coerce_from_string, coerce_to_string
from .encoder import Encoder, get_encoder
from .errors import CipherError, ConfigError, DecryptionError
from .header import Header
from .key import DEFAULT_CIPHER_NAME, Key
from .keystore import read_key

logger = logging.getLogger(__name__)

DEFAULT_ENCODING: str = "base64strict"

SelectCipher = Callable[[Any, bytes], Any]


def _as_text(data: bytes) -> Union[str, bytes]:
    """Return ``str`` when the data is valid UTF-8, otherwise the raw bytes."""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data


class Cipher:
    """
    Encrypts and decrypts with a single data encryption key.

    Args:
        key: Raw key bytes (or ``str``, UTF-8 encoded)
        iv: Default iv. Optional when every encryption uses a random iv.
        cipher_name: OpenSSL style cipher name, for example ``aes-256-cbc``
        version: Version of this cipher, 0..255, written into headers
        always_add_header: Prepend a header even when no per-record
            parameters (random iv, compression) need one
        encoding: Name of the encoding applied by ``encrypt``/``decrypt``
    """

    def __init__(
        self,
        key: Union[str, bytes],
        iv: Optional[Union[str, bytes]] = None,
        cipher_name: str = DEFAULT_CIPHER_NAME,
        version: int = 0,
        always_add_header: bool = True,
        encoding: Union[str, Encoder] = DEFAULT_ENCODING,
    ) -> None:
        self._key = Key(key, iv=iv, cipher_name=cipher_name, version=version)
        self._encoder = get_encoder(encoding)
        self._always_add_header = bool(always_add_header)

    @classmethod
    def from_config(
        cls,
        cipher_name: str = DEFAULT_CIPHER_NAME,
        version: int = 0,
        always_add_header: bool = True,
        encoding: Union[str, Encoder] = DEFAULT_ENCODING,
        **config: Any,
    ) -> Cipher:
        """
        Build a Cipher from a descriptor, reading the key from its keystore.

        Example:
            >>> Cipher.from_config(key_filename="/etc/app/data.key",
            ...                    iv="1234567890ABCDEF",
            ...                    key_encrypting_key={"key": kek, "iv": kek_iv},
            ...                    version=2)
        """
        key = read_key(cipher_name=cipher_name, version=version, **config)
        return cls(
            key=key.key,
            iv=key.iv,
            cipher_name=key.cipher_name,
            version=version,
            always_add_header=always_add_header,
            encoding=encoding,
        )

    @classmethod
    def random(
        cls,
        cipher_name: str = DEFAULT_CIPHER_NAME,
        version: int = 0,
        always_add_header: bool = True,
        encoding: Union[str, Encoder] = DEFAULT_ENCODING,
    ) -> Cipher:
        """Build a Cipher with a random key and iv."""
        key = Key.random(cipher_name, version=version)
        return cls(
            key=key.key,
            iv=key.iv,
            cipher_name=cipher_name,
            version=version,
            always_add_header=always_add_header,
            encoding=encoding,
        )

    @property
    def key(self) -> Key:
        return self._key

    @property
    def iv(self) -> Optional[bytes]:
        return self._key.iv

    @property
    def cipher_name(self) -> str:
        return self._key.cipher_name

    @property
    def version(self) -> int:
        return self._key.version

    @property
    def encoder(self) -> Encoder:
        return self._encoder

    @property
    def encoding(self) -> str:
        return self._encoder.name

    @property
    def always_add_header(self) -> bool:
        return self._always_add_header

    @property
    def block_size(self) -> int:
        return self._key.block_size

    def random_key(self) -> bytes:
        """Return random key bytes sized for this cipher."""
        return Key.random_key(self.cipher_name)

    def random_iv(self) -> bytes:
        """Return a random iv sized for this cipher."""
        return Key.random_iv(self.cipher_name)

    def encode(self, binary: Optional[bytes]) -> Optional[Union[str, bytes]]:
        return self._encoder.encode(binary)

    def decode(self, encoded: Optional[Union[str, bytes]]) -> Optional[bytes]:
        return self._encoder.decode(encoded)

    def encrypt(
        self,
        value: Optional[Union[str, bytes]],
        random_iv: bool = False,
        compress: bool = False,
        header: Optional[bool] = None,
    ) -> Optional[Union[str, bytes]]:
        """
        Encrypt and encode a value.

        Args:
            value: Text (UTF-8 encoded first) or bytes to encrypt
            random_iv: Use a fresh random iv, stored in the header
            compress: Compress before encrypting
            header: Whether to add a header, defaults to ``always_add_header``

        Returns:
            Encoded ciphertext. ``None`` and empty values are returned unchanged.
        """
        if value is None or len(value) == 0:
            return value
        binary = self.binary_encrypt(value, random_iv=random_iv, compress=compress, header=header)
        return self.encode(binary)

    def decrypt(
        self, encoded: Optional[Union[str, bytes]], registry: Optional[CipherRegistry] = None
    ) -> Optional[Union[str, bytes]]:
        """
        Decode and decrypt a value produced by ``encrypt``.

        Returns:
            ``str`` when the plaintext is valid UTF-8, otherwise ``bytes``.
            ``None`` and empty values are returned unchanged.
        """
        if encoded is None or len(encoded) == 0:
            return encoded
        decoded = self.decode(encoded)
        if not decoded:
            return decoded
        return _as_text(self.binary_decrypt(decoded, registry=registry))

    def binary_encrypt(
        self,
        data: Union[str, bytes],
        random_iv: bool = False,
        compress: bool = False,
        header: Optional[bool] = None,
    ) -> bytes:
        """
        Encrypt without encoding.

        A header is always added when ``random_iv`` or ``compress`` is set,
        since the data cannot be decrypted without it.
        """
        if data is None:
            return None
        if header is None:
            header = self._always_add_header
        add_header = header or random_iv or compress

        key = self._key.with_iv(self.random_iv()) if random_iv else self._key
        encryption_header = None
        if add_header:
            encryption_header = Header(version=self.version, iv=key.iv if random_iv else None)
        return key.encrypt(data, compress=compress, header=encryption_header)

    def binary_decrypt(
        self,
        data: Optional[bytes],
        header: bool = True,
        registry: Optional[CipherRegistry] = None,
    ) -> Optional[bytes]:
        """
        Decrypt binary data, honoring any header.

        Args:
            data: Binary ciphertext, optionally prefixed by a header
            header: Set to False to treat the data as raw ciphertext
            registry: Registry used to resolve the header version. Defaults to
                a registry holding only this cipher.

        Raises:
            CipherError: If the header names a version that is not configured
            DecryptionError: If the ciphertext is rejected
        """
        if data is None:
            return None
        data = bytes(data)
        if not data:
            return b""

        if header:
            encryption_header = Header(registry=registry or CipherRegistry([self]))
            offset = encryption_header.parse(data)
            if offset:
                return self._decrypt_with_header(encryption_header, data[offset:])
        return self._key.decrypt(data)

    @staticmethod
    def _decrypt_with_header(header: Header, data: bytes) -> bytes:
        source = header.cipher
        cipher_name = header.cipher_name or source.cipher_name
        key = Key(
            header.key or source.key.key,
            iv=header.iv or source.iv,
            cipher_name=cipher_name,
            version=header.version,
        )
        result = key.decrypt(data, auth_tag=header.auth_tag)
        if header.compressed:
            try:
                result = zlib.decompress(result)
            except zlib.error as e:
                raise DecryptionError("Failed to decompress the decrypted data") from e
        return result

    def __repr__(self) -> str:
        return (
            f"Cipher(cipher_name={self.cipher_name!r}, version={self.version}, "
            f"encoding={self.encoding!r}, always_add_header={self._always_add_header})"
        )


class CipherRegistry:
    """
    Ordered, immutable set of ciphers.

    The first cipher is the primary and is used for all new encryption. The
    remaining ciphers are only used to decrypt existing data, selected by the
    version in the header.

    Args:
        ciphers: Ciphers, primary first
        select_cipher: Optional callable ``(encoded, decoded) -> Cipher | version``
            used to pick a cipher for headerless data
        randomize_iv: Default ``random_iv`` for ``encrypt``
    """

    def __init__(
        self,
        ciphers: Iterable[Cipher],
        select_cipher: Optional[SelectCipher] = None,
        randomize_iv: bool = False,
    ) -> None:
        ciphers = tuple(ciphers)
        if not ciphers:
            raise ConfigError("At least one cipher is required")
        for cipher in ciphers:
            if not isinstance(cipher, Cipher):
                raise TypeError(f"Expected a Cipher, got {type(cipher).__name__}")
        self._ciphers = ciphers
        self._select_cipher = select_cipher
        self._randomize_iv = bool(randomize_iv)

    @classmethod
    def from_config(
        cls,
        ciphers: Sequence[Mapping[str, Any]],
        select_cipher: Optional[SelectCipher] = None,
        randomize_iv: bool = False,
    ) -> CipherRegistry:
        """Build a registry from a list of cipher descriptors, primary first."""
        if not ciphers:
            raise ConfigError("Missing required ciphers configuration")
        registry = cls(
            [Cipher.from_config(**dict(config)) for config in ciphers],
            select_cipher=select_cipher,
            randomize_iv=randomize_iv,
        )
        logger.info(
            "Loaded %d cipher(s), primary version %d (%s)",
            len(registry.ciphers),
            registry.primary.version,
            registry.primary.cipher_name,
        )
        return registry

    @property
    def ciphers(self) -> tuple:
        return self._ciphers

    @property
    def primary(self) -> Cipher:
        return self._ciphers[0]

    @property
    def secondary(self) -> List[Cipher]:
        return list(self._ciphers[1:])

    @property
    def versions(self) -> List[int]:
        return [cipher.version for cipher in self._ciphers]

    @property
    def randomize_iv(self) -> bool:
        return self._randomize_iv

    def cipher(self, version: Optional[int] = None) -> Optional[Cipher]:
        """
        Return the cipher for a version.

        ``None`` returns the primary. Version 0 falls back to the primary when
        no cipher has version 0. Any other unmatched version returns ``None``.
        """
        if version is None:
            return self.primary
        for cipher in self._ciphers:
            if cipher.version == version:
                return cipher
        if version == 0:
            return self.primary
        return None

    def encrypt(
        self,
        value: Any,
        random_iv: Optional[bool] = None,
        compress: bool = False,
        type: str = "string",
        header: Optional[bool] = None,
    ) -> Optional[Union[str, bytes]]:
        """Coerce and encrypt a value with the primary cipher."""
        if value is None or (isinstance(value, (str, bytes)) and len(value) == 0):
            return value
        if random_iv is None:
            random_iv = self._randomize_iv
        return self.primary.encrypt(
            coerce_to_string(value, type),
            random_iv=random_iv,
            compress=compress,
            header=header,
        )

    def decrypt(
        self, value: Optional[Union[str, bytes]], version: Optional[int] = None, type: str = "string"
    ) -> Any:
        """
        Decode, decrypt and coerce a value.

        The header, when present, selects the cipher. Otherwise the supplied
        version, then ``select_cipher``, then the primary cipher is used.

        Raises:
            CipherError: If the selected version is not configured
            DecryptionError: If the ciphertext is rejected
        """
        if value is None or len(value) == 0:
            return value
        decoded = self.primary.decode(value)
        if not decoded:
            return decoded
        plaintext = _as_text(self.binary_decrypt(decoded, version=version, encoded=value))
        return coerce_from_string(plaintext, type)

    def binary_decrypt(
        self, decoded: bytes, version: Optional[int] = None, encoded: Any = None
    ) -> bytes:
        """Decrypt already decoded data, selecting the cipher as ``decrypt`` does."""
        if Header.present(decoded):
            return self.primary.binary_decrypt(decoded, registry=self)

        if version is not None:
            cipher = self.cipher(version)
        elif self._select_cipher is not None:
            cipher = self._select_cipher(encoded, decoded)
            if not isinstance(cipher, Cipher):
                cipher = self.cipher(cipher)
        else:
            cipher = self.primary

        if cipher is None:
            raise CipherError(f"Cipher with version:{version} not found in any of the configured ciphers")
        return cipher.binary_decrypt(decoded, header=False, registry=self)

    def try_decrypt(self, value: Optional[Union[str, bytes]], type: str = "string") -> Any:
        """
        Decrypt, returning None instead of raising when decryption fails.

        Caveat: decrypting with the wrong key can occasionally succeed and
        return garbage. Prefer data written with a header so the right key is
        always selected.
        """
        try:
            return self.decrypt(value, type=type)
        except (CipherError, ValueError):
            return None

    def is_encrypted(self, value: Optional[Union[str, bytes]]) -> bool:
        """Whether the value decodes to data starting with an encryption header."""
        if value is None or len(value) == 0:
            return False
        try:
            decoded = self.primary.decode(value)
        except ValueError:
            return False
        return Header.present(decoded)

    def header(self, value: Optional[Union[str, bytes]]) -> Optional[Header]:
        """Return the parsed header of an encrypted value, or None."""
        if value is None or len(value) == 0:
            return None
        decoded = self.primary.decode(value)
        header = Header(registry=self)
        if not header.parse(decoded):
            return None
        return header

    @staticmethod
    def random_password(size: int = 22) -> str:
        """Return a random URL-safe password built from ``size`` random bytes."""
        return secrets.token_urlsafe(size)

    def __repr__(self) -> str:
        return f"CipherRegistry(versions={self.versions}, primary={self.primary.cipher_name!r})"

