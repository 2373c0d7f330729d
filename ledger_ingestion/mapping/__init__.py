"""Mapping engine: posting rules applied to decoded events."""

from ledger_ingestion.mapping.engine import EventMapper, MappingOutcome, PostingPlan

__all__ = [
    "EventMapper",
    "MappingOutcome",
    "PostingPlan",
]
