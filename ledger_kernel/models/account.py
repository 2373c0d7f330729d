"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the tenant-scoped Chart of Accounts, the
    target of every journal line.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique within a tenant (uq_account_tenant_code).  The same code
      may exist in any number of tenants, including the system tenant whose
      accounts act as shared defaults.
    - Accounts are never deleted.  is_active is the only removal path and
      deactivated accounts keep resolving for historical lookups.
    - parent_id forms a tree.  Cycle prevention lives in AccountService.

Failure modes:
    - IntegrityError on a concurrent insert of the same (tenant_id, code),
      surfaced by AccountService as DuplicateAccountCodeError.
"""

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_kernel.models.journal import JournalLine


class AccountType(str, Enum):
    """Financial statement class of an account."""

    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class BalanceType(str, Enum):
    """The side that increases an account."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class Account(TrackedBase):
    """
    Chart of Accounts entry for one tenant.

    Guarantees:
        - (tenant_id, code) is unique.
        - account_type and balance_type are fixed at creation.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_account_tenant_code"),
        Index("idx_account_tenant_type", "tenant_id", "account_type"),
        Index("idx_account_parent", "parent_id"),
    )

    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False)

    code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    balance_type: Mapped[BalanceType] = mapped_column(String(10), nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    journal_lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="account",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Account {self.tenant_id}/{self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.balance_type == BalanceType.DEBIT
