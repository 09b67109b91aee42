"""
Re-encryption of existing data after a key rotation.

After ``rotate_keys`` adds a new primary cipher, values and files encrypted
with older versions keep working, but can be moved to the new key with
ReEncrypt so that the old keys can eventually be removed.

Two kinds of files are handled:
- Encrypted files (starting with a header) are decrypted and re-encrypted as
  a whole, streamed through a temporary file.
- Text files (configuration files, exports) are searched for encoded values
  that start with a header, and each of those values is re-encrypted in place.
"""

from __future__ import annotations

import glob
import logging
import os
import re
from typing import Any, List, Optional, Pattern, Union

from .errors import CipherError
from .header import MAGIC_HEADER
from .reader import Reader
from .writer import Writer

logger = logging.getLogger(__name__)

# Alphabets of the text encodings whose output can be found inside a text file
_ENCODED_ALPHABETS = {
    "base64": "[A-Za-z0-9+/]*={0,2}",
    "base64strict": "[A-Za-z0-9+/]*={0,2}",
    "base64urlsafe": "[A-Za-z0-9_-]*={0,2}",
    "base16": "[0-9a-f]*",
}


class ReEncrypt:
    """
    Re-encrypts values and files with a single target cipher.

    Args:
        registry: CipherRegistry able to decrypt the existing data
        version: Version of the cipher to re-encrypt with, defaults to the primary

    Raises:
        ValueError: If the version is not configured in the registry

    Example:
        >>> re_encrypt = ReEncrypt(registry)
        >>> re_encrypt.process_directory("config/**/*.json")
    """

    def __init__(self, registry: Any, version: Optional[int] = None) -> None:
        cipher = registry.cipher(version)
        if cipher is None:
            raise ValueError(f"Undefined encryption key version: {version}")
        self.registry = registry
        self.cipher = cipher
        self._pattern: Optional[Pattern[str]] = None

    def re_encrypt(self, encrypted: Union[str, bytes]) -> Union[str, bytes]:
        """
        Return ``encrypted`` re-encrypted with the target cipher.

        Values already encrypted with the target version, and values that
        cannot be decrypted, are returned unchanged.
        """
        try:
            header = self.registry.header(encrypted)
        except (CipherError, ValueError):
            return encrypted
        if header is not None and header.version == self.cipher.version:
            return encrypted

        plaintext = self.registry.try_decrypt(encrypted)
        if plaintext is None:
            return encrypted
        return self.cipher.encrypt(plaintext, random_iv=self.registry.randomize_iv)

    def re_encrypt_contents(self, file_name: str) -> bool:
        """
        Re-encrypt every encrypted value embedded in a text file.

        Returns:
            Whether the file was modified
        """
        with open(file_name, "r", encoding="utf-8", newline="") as f:
            contents = f.read()

        output = self.pattern.sub(lambda match: self.re_encrypt(match.group(0)), contents)
        if output == contents:
            return False

        with open(file_name, "w", encoding="utf-8", newline="") as f:
            f.write(output)
        logger.info("Re-encrypted values in %s with version %d", file_name, self.cipher.version)
        return True

    def re_encrypt_file(self, file_name: str) -> bool:
        """
        Re-encrypt an entire encrypted file.

        The new contents are written to a temporary file next to the original,
        which then replaces it. The temporary file is removed on failure.

        Returns:
            Whether the file was rewritten. Files already encrypted with the
            target version are left alone.
        """
        temp_file_name = f"{file_name}_re_encrypting"
        try:
            with Reader.open(file_name, self.registry) as source:
                if source.header_present and source.version == self.cipher.version:
                    return False
                Writer.encrypt(
                    source,
                    temp_file_name,
                    self.registry,
                    version=self.cipher.version,
                    compress=bool(source.compressed),
                )
            os.replace(temp_file_name, file_name)
        except BaseException:
            if os.path.exists(temp_file_name):
                os.remove(temp_file_name)
            raise

        logger.info("Re-encrypted %s with version %d", file_name, self.cipher.version)
        return True

    def process_directory(self, path: str) -> List[str]:
        """
        Re-encrypt all files matching a glob pattern (``**`` is recursive).

        Returns:
            Names of the files that were modified
        """
        modified = []
        for file_name in sorted(glob.glob(path, recursive=True)):
            if not os.path.isfile(file_name):
                continue
            if Reader.file_header_present(file_name):
                changed = self.re_encrypt_file(file_name)
            else:
                changed = self.re_encrypt_contents(file_name)
            if changed:
                modified.append(file_name)
        return modified

    @property
    def pattern(self) -> Pattern[str]:
        """Regular expression matching encoded values that start with a header."""
        if self._pattern is None:
            encoder = self.registry.primary.encoder
            alphabet = _ENCODED_ALPHABETS.get(encoder.name)
            if alphabet is None:
                raise ValueError(f"Cannot search for values with the {encoder.name!r} encoding")
            prefix = encoder.encode(MAGIC_HEADER)
            if encoder.name != "base16":
                # Only the first 5 characters encode the magic bytes alone
                prefix = prefix[:5]
            self._pattern = re.compile(re.escape(prefix) + alphabet)
        return self._pattern
