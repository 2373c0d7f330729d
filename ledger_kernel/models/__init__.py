"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountType, BalanceType
from ledger_kernel.models.balance import AccountBalance
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.models.outbox import LedgerOutbox, OutboxStatus
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "AccountType",
    "BalanceType",
    "AccountBalance",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
    "LedgerOutbox",
    "OutboxStatus",
    "SequenceCounter",
]
