"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.base import BaseSelector
from ledger_kernel.selectors.journal_selector import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    JournalSelector,
)
from ledger_kernel.selectors.ledger_selector import LedgerSelector, LineActivity

__all__ = [
    "AccountSelector",
    "BaseSelector",
    "DEFAULT_PAGE_SIZE",
    "JournalSelector",
    "LedgerSelector",
    "LineActivity",
    "MAX_PAGE_SIZE",
]
