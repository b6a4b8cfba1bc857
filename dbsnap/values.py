# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Type-preserving value encoding for database dumps.

Every column value in a dump is one of three variants:

- Scalar: None, bool, int, float, str (and lists/dicts of them), written as-is
- Timestamp: datetime/date/time, written as an ISO-8601 string
- Binary: bytes-like payload, written as {"kind": "buffer", "value": <base64>}

The writer and the restorer must agree on the Binary shape bit-exactly.
Decoding only treats a dict as Binary when it has exactly the two tagged
keys, so nested JSON column values pass through untouched.
"""

import base64
import binascii
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, Union
from uuid import UUID

BINARY_KIND = "buffer"
_BINARY_KEYS = frozenset({"kind", "value"})

Scalar = Union[None, bool, int, float, str]


@dataclass(frozen=True)
class Binary:
    """A binary column value."""

    data: bytes

    def to_json(self) -> Dict[str, str]:
        return {
            "kind": BINARY_KIND,
            "value": base64.b64encode(self.data).decode("ascii"),
        }

    @classmethod
    def from_json(cls, payload: Dict[str, Any]) -> "Binary":
        """
        Decode a tagged payload.

        Raises:
            ValueError: If the base64 text is malformed
        """
        try:
            return cls(base64.b64decode(payload["value"], validate=True))
        except (binascii.Error, TypeError) as e:
            raise ValueError(f"Malformed binary payload: {e}") from e


@dataclass(frozen=True)
class Timestamp:
    """A date, time or datetime column value."""

    value: Union[datetime, date, time]

    def to_json(self) -> str:
        return self.value.isoformat()


Value = Union[Scalar, Timestamp, Binary]


def is_binary_payload(raw: Any) -> bool:
    """Check whether a decoded JSON value is a tagged binary payload."""
    return (
        isinstance(raw, dict)
        and raw.keys() == _BINARY_KEYS
        and raw["kind"] == BINARY_KIND
        and isinstance(raw["value"], str)
    )


def to_variant(value: Any) -> Any:
    """
    Classify a native driver value into its dump variant.

    Returns a Binary or Timestamp for tagged values, the value itself for
    scalars, and a plain str/float for Decimal, UUID and timedelta.

    Raises:
        TypeError: For types that have no dump representation
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (Binary, Timestamp)):
        return value
    # datetime is a subclass of date, both go through isoformat()
    if isinstance(value, (datetime, date, time)):
        return Timestamp(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return Binary(bytes(value))
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (list, tuple, dict)):
        return value
    raise TypeError(f"Cannot encode value of type {type(value).__name__}")


def encode_value(value: Any) -> Any:
    """Encode a native value into its JSON-safe dump form."""
    variant = to_variant(value)
    if isinstance(variant, (Binary, Timestamp)):
        return variant.to_json()
    if isinstance(variant, (list, tuple)):
        return [encode_value(item) for item in variant]
    if isinstance(variant, dict):
        return {str(key): encode_value(item) for key, item in variant.items()}
    return variant


def decode_value(raw: Any) -> Any:
    """
    Decode a dump value back into a native value.

    Binary payloads become bytes, also inside lists and objects;
    everything else is returned unchanged.
    Timestamps stay ISO strings here: only the database adapter knows the
    column type needed to turn them back into date/time objects.
    """
    if is_binary_payload(raw):
        return Binary.from_json(raw).data
    if isinstance(raw, list):
        return [decode_value(item) for item in raw]
    if isinstance(raw, dict):
        return {key: decode_value(item) for key, item in raw.items()}
    return raw


def encode_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Encode every column of a row."""
    return {column: encode_value(value) for column, value in row.items()}


def decode_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Decode every column of a row."""
    return {column: decode_value(value) for column, value in row.items()}
