"""
Streaming decryption.

Reader decrypts an encrypted stream on the fly. The header is read from the
first buffer and selects the key, iv, cipher and compression for the stream.
"""

from __future__ import annotations

import io
import zlib
from enum import Enum
from typing import IO, Any, Iterator, List, Optional, Union

from .errors import CipherError, DecryptionError
from .header import MAGIC_HEADER_SIZE, Header
from .key import Key
from .writer import DEFAULT_BLOCK_SIZE, GZIP_WBITS

MIN_BUFFER_SIZE: int = 128
DEFAULT_BUFFER_SIZE: int = 4096


class ReaderState(Enum):
    """Lifecycle of a Reader."""

    UNOPENED = "unopened"
    HEADER_READ = "header_read"
    STREAMING = "streaming"
    EOF = "eof"


class Reader:
    """
    Decrypting reader around a binary stream.

    Args:
        ios: Binary stream holding the encrypted data
        registry: CipherRegistry used to resolve the header version
        buffer_size: Bytes read from ``ios`` at a time, at least 128 so the
            header fits in the first buffer
        version: Cipher version for streams without a header, defaults to
            the primary cipher

    Example:
        >>> with Reader.open("data.csv.enc", registry) as reader:
        ...     for line in reader:
        ...         print(line)
    """

    def __init__(
        self,
        ios: IO[bytes],
        registry: Any,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        version: Optional[int] = None,
    ) -> None:
        if buffer_size < MIN_BUFFER_SIZE:
            raise ValueError(f"Buffer size cannot be smaller than {MIN_BUFFER_SIZE}")
        self._ios = ios
        self._registry = registry
        self._buffer_size = buffer_size
        self._requested_version = version
        self._state = ReaderState.UNOPENED
        self._closed = False
        self._read_header()

    @classmethod
    def open(cls, file_name_or_stream: Union[str, IO[bytes]], registry: Any, **kwargs: Any) -> Reader:
        """Open a file path (or wrap a stream) for decrypted reading."""
        if isinstance(file_name_or_stream, str):
            ios = open(file_name_or_stream, "rb")
            try:
                return cls(ios, registry, **kwargs)
            except BaseException:
                ios.close()
                raise
        return cls(file_name_or_stream, registry, **kwargs)

    @classmethod
    def read_file(cls, file_name_or_stream: Union[str, IO[bytes]], registry: Any, **kwargs: Any) -> bytes:
        """Return the entire decrypted contents."""
        with cls.open(file_name_or_stream, registry, **kwargs) as reader:
            return reader.read()

    @classmethod
    def decrypt(
        cls,
        source: Union[str, IO[bytes]],
        target: Union[str, IO[bytes]],
        registry: Any,
        block_size: int = DEFAULT_BLOCK_SIZE,
        **kwargs: Any,
    ) -> int:
        """
        Decrypt an entire file or stream into ``target``.

        Returns:
            Number of plaintext bytes written
        """
        target_ios = open(target, "wb") if isinstance(target, str) else target
        total = 0
        try:
            with cls.open(source, registry, **kwargs) as reader:
                while True:
                    block = reader.read(block_size)
                    if not block:
                        break
                    target_ios.write(block)
                    total += len(block)
        finally:
            if isinstance(target, str):
                target_ios.close()
        return total

    @classmethod
    def empty(cls, file_name_or_stream: Union[str, IO[bytes]], registry: Any, **kwargs: Any) -> bool:
        """Whether the encrypted file holds no data (missing files count as empty)."""
        if isinstance(file_name_or_stream, str):
            try:
                reader = cls.open(file_name_or_stream, registry, **kwargs)
            except FileNotFoundError:
                return True
        else:
            reader = cls.open(file_name_or_stream, registry, **kwargs)
        with reader:
            return reader.eof()

    @classmethod
    def file_header_present(cls, file_name: str) -> bool:
        """Whether the file starts with an encryption header, without decrypting it."""
        with open(file_name, "rb") as f:
            return Header.present(f.read(MAGIC_HEADER_SIZE))

    @property
    def state(self) -> ReaderState:
        return self._state

    @property
    def header_present(self) -> bool:
        return self._header_present

    @property
    def compressed(self) -> Optional[bool]:
        """Whether the stream is compressed, None when there is no header."""
        return self._compressed

    @property
    def version(self) -> int:
        return self._version

    @property
    def cipher_name(self) -> str:
        return self._key.cipher_name

    @property
    def closed(self) -> bool:
        return self._closed

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return self._ios.seekable()

    def tell(self) -> int:
        """Current position in the decrypted stream."""
        return self._pos

    def eof(self) -> bool:
        """Whether all decrypted data has been consumed."""
        while not self._read_buffer and not self._exhausted:
            self._read_block()
        return not self._read_buffer

    def read(self, size: Optional[int] = -1) -> bytes:
        """
        Read up to ``size`` decrypted bytes, or everything when size is negative.

        Returns ``b""`` at end of stream.
        """
        if size is None or size < 0:
            while not self._exhausted:
                self._read_block()
            data = bytes(self._read_buffer)
            self._read_buffer.clear()
        else:
            while len(self._read_buffer) < size and not self._exhausted:
                self._read_block()
            data = bytes(self._read_buffer[:size])
            del self._read_buffer[:size]
        self._pos += len(data)
        self._update_state()
        return data

    def readline(self, size: int = -1, sep: bytes = b"\n") -> bytes:
        """Read up to and including the next ``sep``, or ``size`` bytes."""
        while True:
            index = self._read_buffer.find(sep)
            if index >= 0:
                end = index + len(sep)
                break
            if 0 <= size <= len(self._read_buffer) or self._exhausted:
                end = len(self._read_buffer)
                break
            self._read_block()
        if size >= 0:
            end = min(end, size)
        data = bytes(self._read_buffer[:end])
        del self._read_buffer[:end]
        self._pos += len(data)
        self._update_state()
        return data

    def readlines(self, sep: bytes = b"\n") -> List[bytes]:
        return list(self.each_line(sep))

    def each_line(self, sep: bytes = b"\n") -> Iterator[bytes]:
        """Yield lines split on ``sep``."""
        while True:
            line = self.readline(sep=sep)
            if not line:
                return
            yield line

    def __iter__(self) -> Iterator[bytes]:
        return self.each_line()

    def rewind(self) -> None:
        """Return to the start of the stream. Requires a seekable stream."""
        self._ios.seek(0)
        self._read_header()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """
        Move to a position in the decrypted stream.

        Seeking forward decrypts and discards data. Seeking backward rewinds
        and decrypts from the start. Seeking relative to the end decrypts the
        whole stream to find its length.

        Returns:
            The new position
        """
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = self._pos + offset
        elif whence == io.SEEK_END:
            self.rewind()
            size = self._skip(-1)
            target = size + offset
        else:
            raise ValueError(f"Invalid whence: {whence}")

        if target < 0:
            raise ValueError(f"Negative seek position {target}")
        if target < self._pos or whence == io.SEEK_END:
            self.rewind()
        self._skip(target - self._pos)
        return self._pos

    def close(self, close_child_stream: bool = True) -> None:
        if self._closed:
            return
        self._closed = True
        if close_child_stream:
            self._ios.close()

    def __enter__(self) -> Reader:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _read_header(self) -> None:
        self._pos = 0
        self._read_buffer = bytearray()
        self._exhausted = False
        self._ciphertext_seen = False

        buffer = self._ios.read(self._buffer_size) or b""
        header = Header(registry=self._registry)
        offset = header.parse(buffer)
        if offset:
            cipher = header.cipher
            key = Key(
                header.key or cipher.key.key,
                iv=header.iv or cipher.iv,
                cipher_name=header.cipher_name or cipher.cipher_name,
                version=header.version,
            )
            self._header_present = True
            self._compressed = header.compressed
            self._version = header.version
            buffer = buffer[offset:]
        else:
            cipher = self._registry.cipher(self._requested_version)
            if cipher is None:
                raise CipherError(
                    f"Cipher with version:{self._requested_version} not found in any of the configured ciphers"
                )
            key = cipher.key
            self._header_present = False
            self._compressed = None
            self._version = cipher.version

        if key.authenticated:
            raise CipherError(f"Cipher {key.cipher_name} is not supported for streaming")

        self._key = key
        self._engine = key.decryptor()
        self._decompressor = zlib.decompressobj(wbits=GZIP_WBITS) if self._compressed else None
        self._state = ReaderState.HEADER_READ
        if buffer:
            self._ciphertext_seen = True
            self._append(self._engine.update(buffer))

    def _read_block(self) -> None:
        buffer = self._ios.read(self._buffer_size)
        if not buffer:
            self._finish()
            return
        self._ciphertext_seen = True
        self._append(self._engine.update(buffer))
        if self._state is ReaderState.HEADER_READ:
            self._state = ReaderState.STREAMING

    def _finish(self) -> None:
        if self._exhausted:
            return
        self._exhausted = True
        # A stream with no ciphertext at all is empty, not truncated
        if not self._ciphertext_seen:
            return
        self._append(self._engine.finalize())
        if self._decompressor is not None:
            self._read_buffer += self._decompressor.flush()
            if not self._decompressor.eof:
                raise DecryptionError("Compressed data is truncated")

    def _append(self, data: bytes) -> None:
        if self._decompressor is not None and data:
            try:
                data = self._decompressor.decompress(data)
            except zlib.error as e:
                raise DecryptionError("Failed to decompress the decrypted data") from e
        self._read_buffer += data

    def _skip(self, count: int) -> int:
        """Decrypt and discard ``count`` bytes (all when negative), returning how many."""
        skipped = 0
        while count < 0 or skipped < count:
            want = self._buffer_size if count < 0 else min(self._buffer_size, count - skipped)
            data = self.read(want)
            if not data:
                break
            skipped += len(data)
        return skipped

    def _update_state(self) -> None:
        if self._exhausted and not self._read_buffer:
            self._state = ReaderState.EOF
        elif self._state is ReaderState.HEADER_READ:
            self._state = ReaderState.STREAMING
