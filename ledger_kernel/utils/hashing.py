"""
Deterministic serialization and hashing.

Used for outbox payloads and configuration checksums.  Output must be
byte-for-byte stable for equal inputs.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def format_decimal(value: Decimal) -> str:
    """Plain-notation string without trailing zeros ("1000", "499.99")."""
    normalized = value.normalize()
    if normalized == 0:
        return "0"
    return format(normalized, "f")


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return format_decimal(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, stable handling of Decimal/date/UUID."""
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: Any) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
