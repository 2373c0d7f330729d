"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService, AccountSpec
from ledger_kernel.services.balance_materializer import BalanceMaterializer
from ledger_kernel.services.general_ledger import GeneralLedger
from ledger_kernel.services.journal_writer import (
    JournalWriter,
    PostingResult,
    PostingStatus,
)
from ledger_kernel.services.ledger_events import (
    LEDGER_POSTED,
    InMemoryPublisher,
    LedgerEventEmitter,
    LoggingPublisher,
    OutboxRelay,
    Publisher,
    RelayResult,
)
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.services.trial_balance import TrialBalanceCompiler

__all__ = [
    "AccountService",
    "AccountSpec",
    "BalanceMaterializer",
    "GeneralLedger",
    "InMemoryPublisher",
    "JournalWriter",
    "LEDGER_POSTED",
    "LedgerEventEmitter",
    "LoggingPublisher",
    "OutboxRelay",
    "PostingResult",
    "PostingStatus",
    "Publisher",
    "RelayResult",
    "SequenceService",
    "TrialBalanceCompiler",
]
