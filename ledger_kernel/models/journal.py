"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and journal lines, the
    single source of financial truth for every tenant.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/ or outer layers.

Invariants enforced:
    - Idempotency: UNIQUE(tenant_id, source_event, source_id).  NULL pairs
      never collide, so entries posted without a source key are unconstrained.
    - Balance: total_debit == total_credit, and both equal the line sums
      (checked by JournalWriter before flush; is_balanced is the read-side
      assertion).
    - Line order: UNIQUE(journal_entry_id, line_no), line_no runs 1..N.
    - Posting order: UNIQUE(tenant_id, posting_seq), strictly increasing
      per tenant in the order entries were written.
    - Immutability: entries are only ever POSTED; db/immutability.py blocks
      UPDATE and DELETE on entries and lines.

Failure modes:
    - IntegrityError on a duplicate (tenant_id, source_event, source_id),
      resolved by JournalWriter as an idempotent replay.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry.  There is no draft or void state."""

    POSTED = "POSTED"


class JournalEntry(TrackedBase):
    """
    Journal entry header, the atomic unit of double-entry accounting.

    Contract:
        Created together with all of its lines in one posting operation and
        never changed afterwards.  Corrections are new offsetting entries.
    """

    __tablename__ = "journal_entries"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "source_event", "source_id", name="uq_journal_source_key"
        ),
        Index("idx_journal_tenant_date", "tenant_id", "entry_date"),
        UniqueConstraint("tenant_id", "posting_seq", name="uq_journal_posting_seq"),
        Index("idx_journal_tenant_posted", "tenant_id", "posted_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False)

    # Human label, not unique
    reference: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[JournalEntryStatus] = mapped_column(
        String(10),
        default=JournalEntryStatus.POSTED,
        nullable=False,
    )

    source_event: Mapped[str | None] = mapped_column(String(100), nullable=True)

    source_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    total_debit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    total_credit: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    posted_by: Mapped[str] = mapped_column(String(100), nullable=False)

    posted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Per-tenant posting order, drawn from SequenceService
    posting_seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.id} ref={self.reference}>"

    @property
    def is_balanced(self) -> bool:
        """Header totals agree with each other and with the lines."""
        line_debits = sum((line.debit_amount for line in self.lines), Decimal("0"))
        line_credits = sum((line.credit_amount for line in self.lines), Decimal("0"))
        return (
            self.total_debit == self.total_credit
            and line_debits == self.total_debit
            and line_credits == self.total_credit
        )


class JournalLine(TrackedBase):
    """
    One debit or credit line within a journal entry.

    Guarantees:
        - Exactly one of debit_amount / credit_amount is strictly positive and
          the other is zero.
        - currency is a 3-character ISO 4217 code.
        - tenant_id is copied from the entry so balance aggregation filters
          on the line table alone.
    """

    __tablename__ = "journal_lines"

    __table_args__ = (
        UniqueConstraint("journal_entry_id", "line_no", name="uq_journal_line_no"),
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_tenant_account", "tenant_id", "account_id", "currency"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=False,
    )

    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    debit_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    credit_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    description: Mapped[str | None] = mapped_column(String(300), nullable=True)

    entry: Mapped["JournalEntry"] = relationship(back_populates="lines")

    account: Mapped["Account"] = relationship(back_populates="journal_lines")

    def __repr__(self) -> str:
        return (
            f"<JournalLine {self.line_no} dr={self.debit_amount} "
            f"cr={self.credit_amount} {self.currency}>"
        )
