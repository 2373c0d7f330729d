"""
ORM-level immutability enforcement for ledger records.

Posted journal entries and their lines are the financial record; the ledger
never updates or deletes them.  Corrections are new offsetting entries.
Accounts are never deleted either, and their identity fields (tenant, code,
type, balance side) are fixed once created because historical lines are
interpreted through them.

SQLAlchemy fires mapper events before UPDATE/DELETE SQL is emitted:

    session.flush()
         |
         v
    [before_update] --> _check_*_update() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Entity          | Immutable fields
----------------|------------------------------------------------------
JournalEntry    | everything except updated_at
JournalLine     | everything except updated_at
Account         | tenant_id, code, account_type, balance_type; no DELETE

Call register_immutability_listeners() once at startup.  Tests register them
for the whole session in conftest.
"""

from sqlalchemy import event, inspect

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at"})
_ACCOUNT_IDENTITY_FIELDS = ("tenant_id", "code", "account_type", "balance_type")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field=None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_posted_record_update(mapper, connection, target):
    """Block any field change on a journal entry or line."""
    entity_type = type(target).__name__
    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            _blocked(
                entity_type,
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on posted {entity_type}",
                field=attr.key,
            )


def _check_posted_record_delete(mapper, connection, target):
    entity_type = type(target).__name__
    _blocked(
        entity_type,
        target.id,
        "DELETE",
        f"Posted {entity_type} records cannot be deleted",
    )


def _check_account_update(mapper, connection, target):
    """Identity fields are fixed; name, description, parent and is_active may change."""
    state = inspect(target)
    for key in _ACCOUNT_IDENTITY_FIELDS:
        if state.attrs[key].history.has_changes():
            _blocked(
                "Account",
                target.id,
                "UPDATE",
                f"Cannot modify field '{key}' on an account",
                field=key,
            )


def _check_account_delete(mapper, connection, target):
    _blocked(
        "Account",
        target.id,
        "DELETE",
        "Accounts are never deleted; deactivate instead",
    )


def _listeners():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.journal import JournalEntry, JournalLine

    return (
        (JournalEntry, "before_update", _check_posted_record_update),
        (JournalEntry, "before_delete", _check_posted_record_delete),
        (JournalLine, "before_update", _check_posted_record_update),
        (JournalLine, "before_delete", _check_posted_record_delete),
        (Account, "before_update", _check_account_update),
        (Account, "before_delete", _check_account_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners() -> None:
    """Remove all immutability listeners. FOR TESTING ONLY."""
    for target, name, fn in _listeners():
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
