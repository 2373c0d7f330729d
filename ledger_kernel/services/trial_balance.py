"""
TrialBalanceCompiler -- per-period proof that debits equal credits.

Responsibility:
    Compiles a tenant's trial balance for one month and currency from the
    materialized monthly balances, and reconciles the column totals against
    a direct ledger-wide aggregation of the same lines.

Architecture position:
    Kernel > Services.  Reads through BalanceMaterializer, which may refresh
    stale cache rows (flush only; the caller commits).

Rows:
    Every active account of the tenant's effective chart, plus every account
    that carries the tenant's lines in the period, so a deactivated or
    overridden account with activity is never dropped.

Columns:
    The account's raw net (sum(debit) - sum(credit)) goes to the debit
    column when >= 0 and to the credit column otherwise.  For accounts on
    their normal side this is the positive DEBIT-type balances in
    total_debits and the positive CREDIT-type balances in total_credits.

Integrity:
    balanced is True only when total_debits == total_credits and the
    ledger-wide debit and credit sums for the period agree as well.  The
    second check reads the lines directly and so does not trust the balance
    cache.  A False result is logged at
    ERROR as trial_balance_integrity_violation and reported as-is; nothing
    is corrected.  assert_balanced turns it into DataIntegrityViolationError.
"""

from sqlalchemy.orm import Session

from ledger_kernel.db.types import ZERO, validate_currency
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import TrialBalanceDTO, TrialBalanceRow
from ledger_kernel.domain.settings import LedgerSettings
from ledger_kernel.exceptions import DataIntegrityViolationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.balance_materializer import BalanceMaterializer, month_bounds
from ledger_kernel.services.base import BaseService

logger = get_logger("services.trial_balance")


class TrialBalanceCompiler(BaseService):
    """Builds trial balances from materialized monthly balances."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        materializer: BalanceMaterializer | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.settings = settings or LedgerSettings()
        self._accounts = AccountSelector(session, self.settings.system_tenant_id)
        self._ledger = LedgerSelector(session)
        self._materializer = materializer or BalanceMaterializer(
            session, self._clock, self.settings
        )

    def get_trial_balance(
        self,
        tenant_id: str,
        year: int,
        month: int,
        currency: str | None = None,
    ) -> TrialBalanceDTO:
        start, end = month_bounds(year, month)
        currency = validate_currency(currency or self.settings.default_currency)

        accounts = {a.id: a for a in self._accounts.list_accounts(tenant_id)}
        active_ids = self._ledger.accounts_with_activity(tenant_id, currency, start, end)
        extra_ids = active_ids - accounts.keys()
        if extra_ids:
            accounts.update(self._accounts.get_many(extra_ids, tenant_id))

        rows: list[TrialBalanceRow] = []
        total_debits = ZERO
        total_credits = ZERO
        for account in sorted(accounts.values(), key=lambda a: (a.code, a.tenant_id)):
            balance = self._materializer.get_balance(
                account.id, tenant_id, year, month, currency
            )
            net = balance.net_debit
            debit = net if net >= ZERO else ZERO
            credit = -net if net < ZERO else ZERO
            total_debits += debit
            total_credits += credit
            rows.append(
                TrialBalanceRow(
                    account_id=account.id,
                    account_code=account.code,
                    account_name=account.name,
                    account_type=account.account_type,
                    balance_type=account.balance_type,
                    debit=debit,
                    credit=credit,
                    balance=balance.balance,
                )
            )

        ledger_totals = self._ledger.period_totals(tenant_id, currency, start, end)
        balanced = total_debits == total_credits and ledger_totals.net_debit == ZERO

        result = TrialBalanceDTO(
            tenant_id=tenant_id,
            year=year,
            month=month,
            currency=currency,
            rows=tuple(rows),
            total_debits=total_debits,
            total_credits=total_credits,
            balanced=balanced,
        )

        if not result.balanced:
            logger.error(
                "trial_balance_integrity_violation",
                extra={
                    "tenant_id": tenant_id,
                    "period": f"{year}-{month:02d}",
                    "currency": currency,
                    "total_debits": total_debits,
                    "total_credits": total_credits,
                    "ledger_debits": ledger_totals.total_debits,
                    "ledger_credits": ledger_totals.total_credits,
                },
            )
        else:
            logger.info(
                "trial_balance_compiled",
                extra={
                    "tenant_id": tenant_id,
                    "period": f"{year}-{month:02d}",
                    "currency": currency,
                    "rows": len(rows),
                    "total_debits": total_debits,
                },
            )
        return result

    def assert_balanced(
        self,
        tenant_id: str,
        year: int,
        month: int,
        currency: str | None = None,
    ) -> TrialBalanceDTO:
        """
        Same as get_trial_balance but fails hard.

        Raises:
            DataIntegrityViolationError: If the trial balance is not balanced.
        """
        result = self.get_trial_balance(tenant_id, year, month, currency)
        if not result.balanced:
            raise DataIntegrityViolationError(
                tenant_id,
                year,
                month,
                result.total_debits,
                result.total_credits,
            )
        return result

