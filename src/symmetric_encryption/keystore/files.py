"""Helpers for reading and writing key files."""

from __future__ import annotations

import base64
import binascii
import logging
import os
import stat
import time

from ..errors import ConfigError

logger = logging.getLogger(__name__)

KEY_FILE_MODE: int = 0o600


def check_permissions(file_name: str) -> None:
    """
    Reject key files readable or writable by group or others.

    Raises:
        ConfigError: If any group/other permission bit is set
    """
    if os.name == "nt":
        return
    mode = stat.S_IMODE(os.stat(file_name).st_mode)
    if mode & 0o077:
        raise ConfigError(
            f"Key file {file_name!r} has permissions {oct(mode)}. "
            "It must only be accessible by its owner, for example: chmod 600"
        )


def read_from_file(file_name: str) -> bytes:
    """
    Read raw bytes from a key file after checking its permissions.

    Raises:
        ConfigError: If the file does not exist or has insecure permissions
    """
    file_name = os.path.expanduser(file_name)
    if not os.path.isfile(file_name):
        raise ConfigError(f"Key file not found: {file_name!r}")
    check_permissions(file_name)
    with open(file_name, "rb") as f:
        return f.read()


def write_to_file(file_name: str, data: bytes) -> None:
    """
    Write bytes to a key file with owner-only permissions.

    An existing file is first renamed to ``<file_name>.<unix timestamp>``.
    """
    file_name = os.path.expanduser(file_name)
    directory = os.path.dirname(file_name)
    if directory:
        os.makedirs(directory, exist_ok=True)

    if os.path.exists(file_name):
        backup = f"{file_name}.{int(time.time())}"
        os.rename(file_name, backup)
        logger.info("Backed up existing key file %s to %s", file_name, backup)

    fd = os.open(file_name, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, KEY_FILE_MODE)
    with os.fdopen(fd, "wb") as f:
        f.write(data)
    os.chmod(file_name, KEY_FILE_MODE)


def read_file_and_decode(file_name: str) -> bytes:
    """Read a base64 (strict) encoded key file."""
    encoded = read_from_file(file_name)
    try:
        return base64.b64decode(encoded.strip(), validate=True)
    except binascii.Error as e:
        raise ConfigError(f"Key file {file_name!r} is not valid base64") from e


def write_encoded_to_file(file_name: str, data: bytes) -> None:
    """Write bytes to a key file as strict base64."""
    write_to_file(file_name, base64.b64encode(data))
