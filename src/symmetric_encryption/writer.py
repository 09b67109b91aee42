"""
Streaming encryption.

Writer encrypts data as it is written to an underlying binary stream, so that
files of any size can be encrypted with constant memory. By default every file
gets its own random key and iv, stored in the header encrypted by the
registry's cipher.
"""

from __future__ import annotations

import zlib
from typing import IO, Any, Iterable, Optional, Union

from .errors import CipherError
from .header import Header
from .key import Key

# zlib window bits selecting the gzip container
GZIP_WBITS: int = 31
DEFAULT_BLOCK_SIZE: int = 65536


class Writer:
    """
    Encrypting writer around a binary stream.

    Args:
        ios: Binary stream to write the encrypted data to
        registry: CipherRegistry supplying the cipher
        version: Cipher version to use, defaults to the primary cipher
        cipher_name: Cipher for the random key. Requires random_key.
        header: Write a header. Forced when random_key, random_iv or compress is set.
        random_key: Generate a random key for this stream, stored in the header
        random_iv: Generate a random iv for this stream, stored in the header
        compress: Compress (gzip) the data before encryption

    Raises:
        ValueError: If the option combination is invalid
        CipherError: If the version is unknown or the cipher is authenticated

    Example:
        >>> with Writer.open("data.csv.enc", registry) as writer:
        ...     writer.write(b"Hello World\\n")
    """

    def __init__(
        self,
        ios: IO[bytes],
        registry: Any,
        version: Optional[int] = None,
        cipher_name: Optional[str] = None,
        header: bool = True,
        random_key: bool = True,
        random_iv: bool = True,
        compress: bool = False,
    ) -> None:
        if random_key and not random_iv:
            raise ValueError("When random_key is true, random_iv must also be true")
        if cipher_name and not (random_key and random_iv):
            raise ValueError("Cannot supply a cipher_name unless both random_key and random_iv are true")

        cipher = registry.cipher(version)
        if cipher is None:
            raise CipherError(f"Cipher with version:{version} not found in any of the configured ciphers")

        cipher_name = cipher_name or cipher.cipher_name
        if random_key:
            key = Key.random(cipher_name, version=cipher.version)
        elif random_iv:
            key = cipher.key.with_iv(cipher.random_iv())
        else:
            key = cipher.key
        if key.authenticated:
            raise CipherError(f"Cipher {cipher_name} is not supported for streaming")

        self._ios = ios
        self._engine = key.encryptor()
        self._compressor = zlib.compressobj(wbits=GZIP_WBITS) if compress else None
        self._size = 0
        self._closed = False

        if header or random_key or random_iv or compress:
            stream_header = Header(
                version=cipher.version,
                compress=compress,
                iv=key.iv if random_iv else None,
                key=key.key if random_key else None,
                cipher_name=cipher_name if random_key else None,
                registry=registry,
            )
            self._ios.write(stream_header.write())

    @classmethod
    def open(cls, file_name_or_stream: Union[str, IO[bytes]], registry: Any, **kwargs: Any) -> Writer:
        """Open a file path (or wrap a stream) for encrypted writing."""
        if isinstance(file_name_or_stream, str):
            ios = open(file_name_or_stream, "wb")
            try:
                return cls(ios, registry, **kwargs)
            except BaseException:
                ios.close()
                raise
        return cls(file_name_or_stream, registry, **kwargs)

    @classmethod
    def encrypt(
        cls,
        source: Union[str, IO[bytes]],
        target: Union[str, IO[bytes]],
        registry: Any,
        block_size: int = DEFAULT_BLOCK_SIZE,
        **kwargs: Any,
    ) -> int:
        """
        Encrypt an entire file or stream into ``target``.

        Returns:
            Number of plaintext bytes read from ``source``
        """
        source_ios = open(source, "rb") if isinstance(source, str) else source
        try:
            with cls.open(target, registry, **kwargs) as writer:
                while True:
                    block = source_ios.read(block_size)
                    if not block:
                        break
                    writer.write(block)
                return writer.size
        finally:
            if isinstance(source, str):
                source_ios.close()

    @property
    def size(self) -> int:
        """Number of plaintext bytes written so far."""
        return self._size

    @property
    def closed(self) -> bool:
        return self._closed

    def writable(self) -> bool:
        return True

    def write(self, data: Union[bytes, bytearray, str]) -> int:
        """
        Encrypt and write data.

        Returns:
            Number of plaintext bytes accepted
        """
        if self._closed:
            raise ValueError("I/O operation on closed Writer")
        if isinstance(data, str):
            data = data.encode("utf-8")
        data = bytes(data)
        if not data:
            return 0

        chunk = self._compressor.compress(data) if self._compressor is not None else data
        if chunk:
            encrypted = self._engine.update(chunk)
            if encrypted:
                self._ios.write(encrypted)
        self._size += len(data)
        return len(data)

    def writelines(self, lines: Iterable[Union[bytes, str]]) -> None:
        for line in lines:
            self.write(line)

    def flush(self) -> None:
        """Flush the underlying stream. Buffered cipher blocks are only written on close."""
        self._ios.flush()

    def close(self, close_child_stream: bool = True) -> None:
        """
        Write the final block and close.

        Args:
            close_child_stream: Also close the underlying stream
        """
        if self._closed:
            return
        tail = b""
        if self._compressor is not None:
            tail = self._engine.update(self._compressor.flush())
        tail += self._engine.finalize()
        if tail:
            self._ios.write(tail)
        self._closed = True
        if close_child_stream:
            self._ios.close()
        else:
            self._ios.flush()

    def __enter__(self) -> Writer:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
