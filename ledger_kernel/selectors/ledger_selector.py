"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only line-level ledger queries: the per-account audit
    trail and the debit/credit aggregations the balance materializer and the
    trial balance compiler are built on.
Architecture position: Kernel > Selectors.

Every aggregation derives from journal_lines joined to journal_entries on
entry_date.  Nothing here reads the account_balances cache.

Failure modes:
    - Returns zero sums and empty lists when no lines match.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.dtos import LedgerLineDTO
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import JournalEntry, JournalLine
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LineActivity:
    """Debit and credit sums over a set of lines."""

    total_debits: Decimal
    total_credits: Decimal
    line_count: int

    @property
    def net_debit(self) -> Decimal:
        return self.total_debits - self.total_credits


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class LedgerSelector(BaseSelector):
    """Line-level ledger queries."""

    def get_ledger(self, account_id: UUID, tenant_id: str) -> list[LedgerLineDTO]:
        """
        Every line the tenant posted to the account, in posting order.

        Posting order is the tenant posting sequence, then line_no.  The result
        is the full audit trail and is not paginated.
        """
        query = (
            select(
                JournalLine.journal_entry_id,
                JournalEntry.reference,
                JournalEntry.entry_date,
                JournalEntry.posted_at,
                JournalEntry.posting_seq,
                JournalLine.line_no,
                JournalLine.account_id,
                Account.code.label("account_code"),
                Account.name.label("account_name"),
                JournalLine.debit_amount,
                JournalLine.credit_amount,
                JournalLine.currency,
                JournalLine.description,
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .join(Account, JournalLine.account_id == Account.id)
            .where(
                JournalLine.tenant_id == tenant_id,
                JournalLine.account_id == account_id,
            )
            .order_by(JournalEntry.posting_seq, JournalLine.line_no)
        )

        return [
            LedgerLineDTO(
                entry_id=row.journal_entry_id,
                entry_reference=row.reference,
                entry_date=row.entry_date,
                posted_at=row.posted_at,
                posting_seq=row.posting_seq,
                line_no=row.line_no,
                account_id=row.account_id,
                account_code=row.account_code,
                account_name=row.account_name,
                debit_amount=_to_decimal(row.debit_amount),
                credit_amount=_to_decimal(row.credit_amount),
                currency=row.currency,
                description=row.description,
            )
            for row in self.session.execute(query).all()
        ]

    def account_activity(
        self,
        tenant_id: str,
        account_id: UUID,
        currency: str,
        start_date: date | None,
        end_date: date,
    ) -> LineActivity:
        """
        Sum the tenant's lines on one account and currency.

        start_date None means from the beginning of the ledger.  Both bounds
        are inclusive and compare against entry_date.
        """
        query = (
            select(
                func.coalesce(func.sum(JournalLine.debit_amount), 0).label("debits"),
                func.coalesce(func.sum(JournalLine.credit_amount), 0).label("credits"),
                func.count(JournalLine.id).label("line_count"),
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.tenant_id == tenant_id,
                JournalLine.account_id == account_id,
                JournalLine.currency == currency,
                JournalEntry.entry_date <= end_date,
            )
        )
        if start_date is not None:
            query = query.where(JournalEntry.entry_date >= start_date)

        row = self.session.execute(query).one()
        return LineActivity(
            total_debits=_to_decimal(row.debits),
            total_credits=_to_decimal(row.credits),
            line_count=int(row.line_count or 0),
        )

    def count_lines(
        self,
        tenant_id: str,
        account_id: UUID,
        currency: str,
        start_date: date,
        end_date: date,
    ) -> int:
        """Cheap freshness check for a cached monthly balance."""
        return self.session.scalar(
            select(func.count(JournalLine.id))
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.tenant_id == tenant_id,
                JournalLine.account_id == account_id,
                JournalLine.currency == currency,
                JournalEntry.entry_date >= start_date,
                JournalEntry.entry_date <= end_date,
            )
        ) or 0

    def accounts_with_activity(
        self,
        tenant_id: str,
        currency: str,
        start_date: date,
        end_date: date,
    ) -> set[UUID]:
        """Ids of accounts carrying the tenant's lines in the date range."""
        rows = self.session.scalars(
            select(JournalLine.account_id)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.tenant_id == tenant_id,
                JournalLine.currency == currency,
                JournalEntry.entry_date >= start_date,
                JournalEntry.entry_date <= end_date,
            )
            .distinct()
        ).all()
        return set(rows)

    def period_totals(
        self,
        tenant_id: str,
        currency: str,
        start_date: date,
        end_date: date,
    ) -> LineActivity:
        """Ledger-wide debit and credit sums for the tenant in a date range."""
        row = self.session.execute(
            select(
                func.coalesce(func.sum(JournalLine.debit_amount), 0).label("debits"),
                func.coalesce(func.sum(JournalLine.credit_amount), 0).label("credits"),
                func.count(JournalLine.id).label("line_count"),
            )
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.tenant_id == tenant_id,
                JournalLine.currency == currency,
                JournalEntry.entry_date >= start_date,
                JournalEntry.entry_date <= end_date,
            )
        ).one()
        return LineActivity(
            total_debits=_to_decimal(row.debits),
            total_credits=_to_decimal(row.credits),
            line_count=int(row.line_count or 0),
        )

    def activity_keys(
        self,
        tenant_id: str,
        start_date: date,
        end_date: date,
    ) -> set[tuple[UUID, str]]:
        """(account_id, currency) pairs with the tenant's lines in the range."""
        rows = self.session.execute(
            select(JournalLine.account_id, JournalLine.currency)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.tenant_id == tenant_id,
                JournalEntry.entry_date >= start_date,
                JournalEntry.entry_date <= end_date,
            )
            .distinct()
        ).all()
        return {(row.account_id, row.currency) for row in rows}
