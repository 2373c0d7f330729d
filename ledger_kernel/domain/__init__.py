"""Pure domain layer: clock and DTOs."""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountDTO,
    BalanceDTO,
    ClosingBalanceDTO,
    JournalEntryDTO,
    JournalLineDTO,
    LedgerLineDTO,
    LineRequest,
    Page,
    PostEntryRequest,
    TrialBalanceDTO,
    TrialBalanceRow,
)
from ledger_kernel.domain.settings import (
    DEFAULT_CURRENCY,
    SYSTEM_TENANT_ID,
    LedgerSettings,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "LineRequest",
    "PostEntryRequest",
    "AccountDTO",
    "JournalEntryDTO",
    "JournalLineDTO",
    "BalanceDTO",
    "ClosingBalanceDTO",
    "LedgerLineDTO",
    "TrialBalanceRow",
    "TrialBalanceDTO",
    "Page",
    "LedgerSettings",
    "SYSTEM_TENANT_ID",
    "DEFAULT_CURRENCY",
]
