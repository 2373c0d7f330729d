"""
Module: ledger_kernel.models.balance
Responsibility: ORM persistence for the materialized monthly account balance
    cache.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per (tenant_id, account_id, period_year, period_month, currency).
    - For a DEBIT account balance = total_debits - total_credits; for a
      CREDIT account balance = total_credits - total_debits.  Sums cover the
      tenant's lines on the account whose entry_date falls in the month.
    - line_count is the number of lines the row was computed from.  Lines
      are insert-only, so an equal count means the row is current.

The table is a cache, never a source of truth.  Dropping every row loses
nothing; BalanceMaterializer rebuilds rows from journal lines on demand.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class AccountBalance(TrackedBase):
    """Cached net activity of one account in one calendar month."""

    __tablename__ = "account_balances"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "account_id",
            "period_year",
            "period_month",
            "currency",
            name="uq_account_balance_period",
        ),
    )

    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    period_year: Mapped[int] = mapped_column(Integer, nullable=False)

    period_month: Mapped[int] = mapped_column(Integer, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    total_debits: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    total_credits: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    balance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    line_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<AccountBalance {self.tenant_id}/{self.account_id} "
            f"{self.period_year}-{self.period_month:02d} {self.balance} {self.currency}>"
        )
