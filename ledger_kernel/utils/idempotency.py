"""
Source-key helpers.

A journal entry's idempotency key is the (source_event, source_id) pair,
scoped per tenant.  Both halves are given or neither is.
"""

from ledger_kernel.exceptions import InvalidEntryError


def normalize_source_key(
    source_event: str | None,
    source_id: str | None,
) -> tuple[str, str] | None:
    """
    Return the stripped pair, or None when the entry carries no key.

    Raises:
        InvalidEntryError: If exactly one half is given.
    """
    event = source_event.strip() if source_event else None
    ident = source_id.strip() if source_id else None

    if event is None and ident is None:
        return None
    if event is None or ident is None:
        raise InvalidEntryError(
            "INCOMPLETE_SOURCE_KEY",
            "source_event and source_id must be provided together",
        )
    return event, ident


def format_source_key(tenant_id: str, source_event: str, source_id: str) -> str:
    """Single-string form for logs: tenant:event:id."""
    return f"{tenant_id}:{source_event}:{source_id}"
