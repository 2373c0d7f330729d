"""
AccountService -- chart-of-accounts writes.

Responsibility:
    Creates accounts, toggles their active flag, re-parents them and seeds
    a tenant's chart from configuration.  Reads go through AccountSelector.

Architecture position:
    Kernel > Services.  Flushes only; the caller commits.

Invariants enforced:
    - (tenant_id, code) is unique.  The pre-read catches the common case and
      the unique constraint catches the race; both surface as
      DuplicateAccountCodeError.
    - A parent resolves in the tenant or the system tenant.
    - The parent chain never loops.
    - Accounts are never deleted.  Only the owning tenant may deactivate or
      reactivate an account.

Failure modes:
    - DuplicateAccountCodeError, UnknownParentAccountError,
      AccountHierarchyCycleError, InvalidAccountError, AccountNotFoundError.
    - StorageError for any other persistence failure.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountDTO
from ledger_kernel.domain.settings import LedgerSettings
from ledger_kernel.exceptions import (
    AccountHierarchyCycleError,
    AccountNotFoundError,
    DuplicateAccountCodeError,
    InvalidAccountError,
    StorageError,
    UnknownParentAccountError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType, BalanceType
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")

MAX_CODE_LENGTH = 20
MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 500


@dataclass(frozen=True)
class AccountSpec:
    """One account to seed; parent_code refers to another seed or an existing code."""

    code: str
    name: str
    account_type: str
    balance_type: str
    parent_code: str | None = None
    description: str | None = None


class AccountService(BaseService):
    """Chart-of-accounts write operations."""

    def __init__(self, session: Session, settings: LedgerSettings | None = None):
        super().__init__(session)
        self.settings = settings or LedgerSettings()
        self._selector = AccountSelector(session, self.settings.system_tenant_id)

    def create_account(
        self,
        tenant_id: str,
        code: str,
        name: str,
        account_type: AccountType | str,
        balance_type: BalanceType | str,
        parent_id: UUID | None = None,
        description: str | None = None,
    ) -> AccountDTO:
        """
        Create an account in the tenant's chart.

        Raises:
            InvalidAccountError: Empty or oversized fields, unknown enums.
            DuplicateAccountCodeError: Code already used in this tenant.
            UnknownParentAccountError: Parent in neither tenant nor system chart.
        """
        code = _require_text("code", code, MAX_CODE_LENGTH)
        name = _require_text("name", name, MAX_NAME_LENGTH)
        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            raise InvalidAccountError(
                "description", f"longer than {MAX_DESCRIPTION_LENGTH} characters"
            )
        type_value = _coerce_enum(AccountType, "account_type", account_type)
        side_value = _coerce_enum(BalanceType, "balance_type", balance_type)

        if self._own_account_by_code(tenant_id, code) is not None:
            logger.warning(
                "account_code_duplicate",
                extra={"tenant_id": tenant_id, "account_code": code},
            )
            raise DuplicateAccountCodeError(tenant_id, code)

        if parent_id is not None and self._selector.find_by_id(parent_id, tenant_id) is None:
            raise UnknownParentAccountError(tenant_id, str(parent_id))

        account = Account(
            tenant_id=tenant_id,
            code=code,
            name=name,
            account_type=type_value,
            balance_type=side_value,
            parent_id=parent_id,
            description=description,
            is_active=True,
        )

        savepoint = self.session.begin_nested()
        try:
            self.session.add(account)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            if self._own_account_by_code(tenant_id, code) is not None:
                logger.warning(
                    "concurrent_account_insert_conflict",
                    extra={"tenant_id": tenant_id, "account_code": code},
                )
                raise DuplicateAccountCodeError(tenant_id, code) from exc
            raise StorageError("create_account", str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            savepoint.rollback()
            raise StorageError("create_account", str(exc)) from exc

        logger.info(
            "account_created",
            extra={
                "tenant_id": tenant_id,
                "account_id": str(account.id),
                "account_code": code,
                "account_type": type_value,
                "balance_type": side_value,
            },
        )
        return AccountDTO.from_model(account)

    def deactivate_account(self, account_id: UUID, tenant_id: str) -> AccountDTO:
        """Deactivate an account the tenant owns.  Idempotent."""
        return self._set_active(account_id, tenant_id, False)

    def reactivate_account(self, account_id: UUID, tenant_id: str) -> AccountDTO:
        """Reactivate an account the tenant owns.  Idempotent."""
        return self._set_active(account_id, tenant_id, True)

    def set_parent(
        self,
        account_id: UUID,
        tenant_id: str,
        parent_id: UUID | None,
    ) -> AccountDTO:
        """
        Re-parent an account the tenant owns.

        Raises:
            UnknownParentAccountError: Parent does not resolve.
            AccountHierarchyCycleError: Parent is the account or a descendant.
        """
        account = self._require_owned(account_id, tenant_id)

        if parent_id is not None:
            if self._selector.find_by_id(parent_id, tenant_id) is None:
                raise UnknownParentAccountError(tenant_id, str(parent_id))
            self._check_no_cycle(account.id, parent_id)

        account.parent_id = parent_id
        self.session.flush()
        logger.info(
            "account_reparented",
            extra={
                "tenant_id": tenant_id,
                "account_id": str(account_id),
                "parent_id": str(parent_id) if parent_id else None,
            },
        )
        return AccountDTO.from_model(account)

    def seed_chart(self, tenant_id: str, specs: list[AccountSpec]) -> int:
        """
        Create every spec whose code the tenant does not have yet.

        Specs are created in order, so a parent must precede its children.
        Returns the number of accounts created.
        """
        created = 0
        for spec in specs:
            if self._own_account_by_code(tenant_id, spec.code) is not None:
                continue
            parent_id = None
            if spec.parent_code:
                parent = self._selector.find_by_code(spec.parent_code, tenant_id)
                if parent is None:
                    raise UnknownParentAccountError(tenant_id, spec.parent_code)
                parent_id = parent.id
            self.create_account(
                tenant_id=tenant_id,
                code=spec.code,
                name=spec.name,
                account_type=spec.account_type,
                balance_type=spec.balance_type,
                parent_id=parent_id,
                description=spec.description,
            )
            created += 1

        logger.info(
            "chart_seeded",
            extra={"tenant_id": tenant_id, "created_count": created, "requested": len(specs)},
        )
        return created

    # ------------------------------------------------------------------

    def _set_active(self, account_id: UUID, tenant_id: str, active: bool) -> AccountDTO:
        account = self._require_owned(account_id, tenant_id)
        if account.is_active != active:
            account.is_active = active
            self.session.flush()
            logger.info(
                "account_activated" if active else "account_deactivated",
                extra={
                    "tenant_id": tenant_id,
                    "account_id": str(account_id),
                    "account_code": account.code,
                },
            )
        return AccountDTO.from_model(account)

    def _require_owned(self, account_id: UUID, tenant_id: str) -> Account:
        account = self.session.scalars(
            select(Account).where(
                Account.id == account_id,
                Account.tenant_id == tenant_id,
            )
        ).one_or_none()
        if account is None:
            raise AccountNotFoundError(tenant_id, str(account_id))
        return account

    def _own_account_by_code(self, tenant_id: str, code: str) -> Account | None:
        return self.session.scalars(
            select(Account).where(
                Account.tenant_id == tenant_id,
                Account.code == code,
            )
        ).one_or_none()

    def _check_no_cycle(self, account_id: UUID, parent_id: UUID) -> None:
        seen: set[UUID] = set()
        current: UUID | None = parent_id
        while current is not None:
            if current == account_id:
                raise AccountHierarchyCycleError(str(account_id), str(parent_id))
            if current in seen:
                # Pre-existing loop above us; the new link does not close it
                return
            seen.add(current)
            current = self.session.scalar(
                select(Account.parent_id).where(Account.id == current)
            )


def _require_text(field_name: str, value: str | None, max_length: int) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidAccountError(field_name, "must not be empty")
    if len(text) > max_length:
        raise InvalidAccountError(field_name, f"longer than {max_length} characters")
    return text


def _coerce_enum(enum_cls, field_name: str, value) -> str:
    raw = value.value if isinstance(value, enum_cls) else str(value).strip().upper()
    try:
        return enum_cls(raw).value
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidAccountError(field_name, f"{value!r} is not one of {allowed}") from None
