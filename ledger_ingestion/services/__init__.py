"""Ingestion services."""

from ledger_ingestion.services.consumer import (
    HandleOutcome,
    HandleResult,
    LedgerEventConsumer,
)

__all__ = [
    "HandleOutcome",
    "HandleResult",
    "LedgerEventConsumer",
]
