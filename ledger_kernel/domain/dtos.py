"""
DTOs -- immutable data transfer objects for the ledger.

Responsibility:
    Defines the request objects that enter the posting engine
    (PostEntryRequest, LineRequest) and the read-side records returned by
    services and selectors (AccountDTO, JournalEntryDTO, BalanceDTO,
    LedgerLineDTO, TrialBalanceDTO, Page).

Architecture position:
    Kernel > Domain -- zero I/O.  ``from_model()`` class methods are boundary
    converters invoked only from services and selectors.

Invariants enforced:
    - Every monetary field is a Decimal; LineRequest rejects floats.
    - Returned records are frozen; callers never hold live ORM instances.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Generic, TypeVar
from uuid import UUID

from ledger_kernel.db.types import ZERO, to_money

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account as AccountModel
    from ledger_kernel.models.journal import JournalEntry as JournalEntryModel
    from ledger_kernel.models.journal import JournalLine as JournalLineModel

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Write-side requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineRequest:
    """
    One proposed journal line.

    Amounts are coerced to Decimal on construction.  Shape rules (exactly one
    side strictly positive) are checked by JournalWriter so that the error
    carries the line number.
    """

    account_id: UUID
    debit_amount: Decimal = ZERO
    credit_amount: Decimal = ZERO
    currency: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "debit_amount", to_money(self.debit_amount))
        object.__setattr__(self, "credit_amount", to_money(self.credit_amount))

    @classmethod
    def debit(
        cls,
        account_id: UUID,
        amount: Decimal | str | int,
        currency: str | None = None,
        description: str | None = None,
    ) -> LineRequest:
        return cls(
            account_id=account_id,
            debit_amount=amount,
            credit_amount=ZERO,
            currency=currency,
            description=description,
        )

    @classmethod
    def credit(
        cls,
        account_id: UUID,
        amount: Decimal | str | int,
        currency: str | None = None,
        description: str | None = None,
    ) -> LineRequest:
        return cls(
            account_id=account_id,
            debit_amount=ZERO,
            credit_amount=amount,
            currency=currency,
            description=description,
        )


@dataclass(frozen=True)
class PostEntryRequest:
    """
    A journal entry to post.

    ``entry_date`` defaults to the writer's clock date.  ``source_event`` and
    ``source_id`` form the idempotency key and must be given together.
    """

    reference: str
    lines: tuple[LineRequest, ...]
    posted_by: str
    description: str | None = None
    entry_date: date | None = None
    source_event: str | None = None
    source_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "lines", tuple(self.lines))


# ---------------------------------------------------------------------------
# Read-side records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountDTO:
    id: UUID
    tenant_id: str
    code: str
    name: str
    account_type: str
    balance_type: str
    parent_id: UUID | None
    description: str | None
    is_active: bool

    @classmethod
    def from_model(cls, model: AccountModel) -> AccountDTO:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            code=model.code,
            name=model.name,
            account_type=_enum_value(model.account_type),
            balance_type=_enum_value(model.balance_type),
            parent_id=model.parent_id,
            description=model.description,
            is_active=model.is_active,
        )

    @property
    def is_debit_normal(self) -> bool:
        return self.balance_type == "DEBIT"


@dataclass(frozen=True)
class JournalLineDTO:
    id: UUID
    line_no: int
    account_id: UUID
    debit_amount: Decimal
    credit_amount: Decimal
    currency: str
    description: str | None

    @classmethod
    def from_model(cls, model: JournalLineModel) -> JournalLineDTO:
        return cls(
            id=model.id,
            line_no=model.line_no,
            account_id=model.account_id,
            debit_amount=model.debit_amount,
            credit_amount=model.credit_amount,
            currency=model.currency,
            description=model.description,
        )


@dataclass(frozen=True)
class JournalEntryDTO:
    """A posted journal entry with its lines in line_no order."""

    id: UUID
    tenant_id: str
    reference: str
    description: str | None
    entry_date: date
    status: str
    source_event: str | None
    source_id: str | None
    total_debit: Decimal
    total_credit: Decimal
    posted_by: str
    posted_at: datetime
    posting_seq: int
    lines: tuple[JournalLineDTO, ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, model: JournalEntryModel) -> JournalEntryDTO:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            reference=model.reference,
            description=model.description,
            entry_date=model.entry_date,
            status=_enum_value(model.status),
            source_event=model.source_event,
            source_id=model.source_id,
            total_debit=model.total_debit,
            total_credit=model.total_credit,
            posted_by=model.posted_by,
            posted_at=model.posted_at,
            posting_seq=model.posting_seq,
            lines=tuple(
                JournalLineDTO.from_model(line)
                for line in sorted(model.lines, key=lambda l: l.line_no)
            ),
        )

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit


@dataclass(frozen=True)
class BalanceDTO:
    """Net activity of one account in one calendar month and currency."""

    tenant_id: str
    account_id: UUID
    account_code: str
    balance_type: str
    year: int
    month: int
    currency: str
    total_debits: Decimal
    total_credits: Decimal
    balance: Decimal
    line_count: int
    computed_at: datetime
    from_cache: bool = False

    @property
    def net_debit(self) -> Decimal:
        """Raw debit-minus-credit activity regardless of balance type."""
        return self.total_debits - self.total_credits


@dataclass(frozen=True)
class ClosingBalanceDTO:
    """Cumulative balance of an account as of a date."""

    tenant_id: str
    account_id: UUID
    account_code: str
    balance_type: str
    as_of: date
    currency: str
    total_debits: Decimal
    total_credits: Decimal
    balance: Decimal


@dataclass(frozen=True)
class LedgerLineDTO:
    """One journal line joined with its account and entry header."""

    entry_id: UUID
    entry_reference: str
    entry_date: date
    posted_at: datetime
    posting_seq: int
    line_no: int
    account_id: UUID
    account_code: str
    account_name: str
    debit_amount: Decimal
    credit_amount: Decimal
    currency: str
    description: str | None


@dataclass(frozen=True)
class TrialBalanceRow:
    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    balance_type: str
    debit: Decimal
    credit: Decimal
    balance: Decimal


@dataclass(frozen=True)
class TrialBalanceDTO:
    tenant_id: str
    year: int
    month: int
    currency: str
    rows: tuple[TrialBalanceRow, ...]
    total_debits: Decimal
    total_credits: Decimal
    balanced: bool

    @property
    def difference(self) -> Decimal:
        return self.total_debits - self.total_credits


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a newest-first listing."""

    items: tuple[T, ...]
    page: int
    size: int
    total: int

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return (self.total + self.size - 1) // self.size

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages


def _enum_value(value) -> str:
    return value.value if hasattr(value, "value") else str(value)
