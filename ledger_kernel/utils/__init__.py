"""Utility modules for the ledger kernel."""

from ledger_kernel.utils.hashing import (
    canonicalize_json,
    format_decimal,
    hash_payload,
)
from ledger_kernel.utils.idempotency import format_source_key, normalize_source_key

__all__ = [
    "canonicalize_json",
    "format_decimal",
    "hash_payload",
    "format_source_key",
    "normalize_source_key",
]
