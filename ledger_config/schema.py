"""
LedgerConfig schema.

The human-authored configuration of a ledger deployment.  YAML files are
parsed into these types by the loader and handed to the kernel through the
bridges; nothing here performs I/O.

Sections:
  tenancy        system tenant id and default currency
  database       connection URL and pool sizing
  retry          bounded retry for transient ingestion failures
  accounts       shared chart of accounts seeded into the system tenant
  posting_rules  event type -> debit/credit account codes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TenancyConfig:
    """Tenant fallback and currency defaults."""

    system_tenant_id: str = "system"
    default_currency: str = "KES"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30

    @property
    def pool_options(self) -> dict[str, int]:
        return {
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "pool_timeout": self.pool_timeout,
        }


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry for transient ingestion failures.

    Attempt n (1-based) waits backoff_seconds * n before attempt n + 1.
    """

    max_attempts: int = 3
    backoff_seconds: float = 0.5

    def delay_for(self, attempt: int) -> float:
        return self.backoff_seconds * attempt


# ---------------------------------------------------------------------------
# Chart of accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountSeed:
    """One account of the shared chart.  Parents precede children."""

    code: str
    name: str
    account_type: str  # ASSET, LIABILITY, EQUITY, INCOME, EXPENSE
    balance_type: str  # DEBIT, CREDIT
    parent_code: str | None = None
    description: str | None = None


# ---------------------------------------------------------------------------
# Posting rules (declarative data, no executable logic)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PostingRuleDef:
    """
    How one event type becomes a two-line journal entry.

    reference is reference_prefix + the event's source id.  description is a
    str.format template over {source_id}, {amount}, {currency} and
    {tenant_id}.  skip_when holds (field, value) pairs matched against the
    decoded event; any match means no posting.
    """

    event_type: str
    debit_account: str
    credit_account: str
    reference_prefix: str = ""
    description: str = ""
    skip_when: tuple[tuple[str, Any], ...] = ()


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfig:
    """A complete, parsed ledger configuration."""

    config_id: str
    version: int
    tenancy: TenancyConfig = field(default_factory=TenancyConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    accounts: tuple[AccountSeed, ...] = ()
    posting_rules: tuple[PostingRuleDef, ...] = ()
    informational_events: tuple[str, ...] = ()
    checksum: str = ""

    def rule_for(self, event_type: str) -> PostingRuleDef | None:
        for rule in self.posting_rules:
            if rule.event_type == event_type:
                return rule
        return None
