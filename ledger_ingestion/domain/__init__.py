"""
ledger_ingestion.domain -- typed inbound events.

ZERO I/O.
"""

from ledger_ingestion.domain.events import (
    EVENT_TYPES,
    FeeCollected,
    FloatAllocated,
    LedgerEvent,
    LoanClosed,
    LoanDisbursed,
    LoanStageChanged,
    MonetaryEvent,
    PaymentCompleted,
    PaymentReversed,
    decode_event,
)

__all__ = [
    "EVENT_TYPES",
    "FeeCollected",
    "FloatAllocated",
    "LedgerEvent",
    "LoanClosed",
    "LoanDisbursed",
    "LoanStageChanged",
    "MonetaryEvent",
    "PaymentCompleted",
    "PaymentReversed",
    "decode_event",
]
