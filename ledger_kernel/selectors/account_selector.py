"""
Module: ledger_kernel.selectors.account_selector
Responsibility: Read-only chart-of-accounts lookups with explicit system
    tenant fallback.
Architecture position: Kernel > Selectors.

Resolution is a two-step lookup, never a combined query:

    1. the requesting tenant's own accounts
    2. the system tenant's accounts (shared defaults)

A tenant overrides a shared default by creating an account with the same
code.  Deactivated accounts still resolve so historical lines keep their
account; callers that post check is_active themselves.

Failure modes:
    - AccountNotFoundError when neither step resolves.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountDTO
from ledger_kernel.domain.settings import SYSTEM_TENANT_ID
from ledger_kernel.exceptions import AccountNotFoundError
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.selectors.base import BaseSelector


class AccountSelector(BaseSelector):
    """Chart-of-accounts queries for one tenant plus the system fallback."""

    def __init__(self, session: Session, system_tenant_id: str = SYSTEM_TENANT_ID):
        super().__init__(session)
        self.system_tenant_id = system_tenant_id

    def _scopes(self, tenant_id: str) -> tuple[str, ...]:
        if tenant_id == self.system_tenant_id:
            return (tenant_id,)
        return (tenant_id, self.system_tenant_id)

    def find_by_id(self, account_id: UUID, tenant_id: str) -> AccountDTO | None:
        for scope in self._scopes(tenant_id):
            account = self.session.scalars(
                select(Account).where(
                    Account.id == account_id,
                    Account.tenant_id == scope,
                )
            ).one_or_none()
            if account is not None:
                return AccountDTO.from_model(account)
        return None

    def find_by_code(self, code: str, tenant_id: str) -> AccountDTO | None:
        for scope in self._scopes(tenant_id):
            account = self.session.scalars(
                select(Account).where(
                    Account.code == code,
                    Account.tenant_id == scope,
                )
            ).one_or_none()
            if account is not None:
                return AccountDTO.from_model(account)
        return None

    def get_by_id(self, account_id: UUID, tenant_id: str) -> AccountDTO:
        """
        Resolve an account id for a tenant.

        Raises:
            AccountNotFoundError: If the id is in neither scope.
        """
        account = self.find_by_id(account_id, tenant_id)
        if account is None:
            raise AccountNotFoundError(tenant_id, str(account_id))
        return account

    def get_by_code(self, code: str, tenant_id: str) -> AccountDTO:
        """
        Resolve an account code for a tenant, tenant override first.

        Raises:
            AccountNotFoundError: If the code is in neither scope.
        """
        account = self.find_by_code(code, tenant_id)
        if account is None:
            raise AccountNotFoundError(tenant_id, code)
        return account

    def get_many(self, account_ids, tenant_id: str) -> dict[UUID, AccountDTO]:
        """Resolve a set of ids; unresolved ids are absent from the result."""
        wanted = set(account_ids)
        found: dict[UUID, AccountDTO] = {}
        for scope in self._scopes(tenant_id):
            missing = wanted - found.keys()
            if not missing:
                break
            rows = self.session.scalars(
                select(Account).where(
                    Account.id.in_(missing),
                    Account.tenant_id == scope,
                )
            ).all()
            for account in rows:
                found[account.id] = AccountDTO.from_model(account)
        return found

    def list_accounts(
        self,
        tenant_id: str,
        account_type: AccountType | str | None = None,
        include_inactive: bool = False,
    ) -> list[AccountDTO]:
        """
        The tenant's effective chart ordered by code.

        Tenant accounts plus every system account whose code the tenant has
        not overridden.  Only active accounts unless include_inactive.
        An override hides the shared default even when the override itself
        is inactive.
        """
        own = self._accounts_in_scope(tenant_id, account_type)
        merged = {account.code: account for account in own}

        if tenant_id != self.system_tenant_id:
            own_codes = set(
                self.session.scalars(
                    select(Account.code).where(Account.tenant_id == tenant_id)
                ).all()
            )
            for account in self._accounts_in_scope(self.system_tenant_id, account_type):
                if account.code not in own_codes:
                    merged[account.code] = account

        result = [
            AccountDTO.from_model(account)
            for code, account in sorted(merged.items())
            if include_inactive or account.is_active
        ]
        return result

    def _accounts_in_scope(
        self,
        scope: str,
        account_type: AccountType | str | None,
    ) -> list[Account]:
        query = select(Account).where(Account.tenant_id == scope)
        if account_type is not None:
            type_value = (
                account_type.value if isinstance(account_type, AccountType) else account_type
            )
            query = query.where(Account.account_type == type_value)
        return list(self.session.scalars(query).all())
