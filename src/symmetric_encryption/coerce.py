"""
Coercion of typed values to and from their string form.

Values are converted to strings before encryption and back after decryption so
that typed fields (integers, dates, json documents, ...) can be stored
encrypted.
"""

from __future__ import annotations

import datetime
import json
from decimal import Decimal
from typing import Any

COERCION_TYPES = (
    "string",
    "integer",
    "float",
    "decimal",
    "datetime",
    "time",
    "date",
    "boolean",
    "json",
)

_TRUE_VALUES = frozenset(("true", "t", "1", "yes", "y", "on"))


def _check_type(type: str) -> None:
    if type not in COERCION_TYPES:
        raise ValueError(f"Invalid type: {type!r}. Valid types: {', '.join(COERCION_TYPES)}")


def coerce_to_string(value: Any, type: str = "string") -> Any:
    """
    Convert a typed value into the string that gets encrypted.

    ``None`` and ``""`` are returned unchanged. Bytes pass through for the
    ``string`` type so binary values can be encrypted.
    """
    _check_type(type)
    if value is None or (isinstance(value, (str, bytes)) and len(value) == 0):
        return value

    if type == "string":
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        return str(value)
    if type == "integer":
        return str(int(value))
    if type == "float":
        return repr(float(value))
    if type == "decimal":
        return str(Decimal(value))
    if type in ("datetime", "time", "date"):
        return value.isoformat() if not isinstance(value, str) else value
    if type == "boolean":
        if isinstance(value, str):
            value = value.strip().lower() in _TRUE_VALUES
        return "true" if value else "false"
    return json.dumps(value)


def coerce_from_string(value: Any, type: str = "string") -> Any:
    """Convert a decrypted string back into the requested type."""
    _check_type(type)
    if value is None or (isinstance(value, (str, bytes)) and len(value) == 0):
        return value
    if type == "string":
        return value

    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if type == "integer":
        return int(value)
    if type == "float":
        return float(value)
    if type == "decimal":
        return Decimal(value)
    if type == "datetime":
        return datetime.datetime.fromisoformat(value)
    if type == "time":
        return datetime.time.fromisoformat(value)
    if type == "date":
        return datetime.date.fromisoformat(value)
    if type == "boolean":
        return value.strip().lower() in _TRUE_VALUES
    return json.loads(value)
