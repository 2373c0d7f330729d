"""
BalanceMaterializer -- write-through cache of monthly account balances.

Responsibility:
    Serves per-account, per-month, per-currency balances from the
    account_balances cache, recomputing from journal lines whenever the
    cached row is missing or stale, and serves point-in-time closing
    balances straight from the lines.

Architecture position:
    Kernel > Services.  Flushes only; the caller commits.

Invariants enforced:
    - DEBIT accounts:  balance = sum(debit) - sum(credit)
      CREDIT accounts: balance = sum(credit) - sum(debit)
      over the tenant's lines on the account whose entry_date is in the month.
    - Freshness: journal lines are insert-only, so a cached row whose
      line_count equals the current line count was computed from exactly the
      current lines.  Anything else is recomputed.
    - Recomputation is pure aggregation.  Two workers racing on the same key
      compute the same value; the loser of the INSERT race updates the
      winner's row with that same value.

Failure modes:
    - AccountNotFoundError if the account resolves in neither scope.
    - InvalidPeriodError for year outside 1..9999 or month outside 1..12.
    - InvalidCurrencyError for an unknown currency code.
"""

import calendar
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import validate_currency
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountDTO, BalanceDTO, ClosingBalanceDTO
from ledger_kernel.domain.settings import LedgerSettings
from ledger_kernel.exceptions import InvalidPeriodError, StorageError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.balance import AccountBalance
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector, LineActivity
from ledger_kernel.services.base import BaseService

logger = get_logger("services.balance_materializer")


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """
    First and last calendar day of a month.

    Raises:
        InvalidPeriodError: If year or month is out of range.
    """
    if not (1 <= year <= 9999) or not (1 <= month <= 12):
        raise InvalidPeriodError(year, month)
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def signed_balance(account: AccountDTO, activity: LineActivity):
    """Apply the account's balance side to raw activity."""
    if account.is_debit_normal:
        return activity.total_debits - activity.total_credits
    return activity.total_credits - activity.total_debits


class BalanceMaterializer(BaseService):
    """Monthly balance cache over journal lines."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.settings = settings or LedgerSettings()
        self._accounts = AccountSelector(session, self.settings.system_tenant_id)
        self._ledger = LedgerSelector(session)

    def get_balance(
        self,
        account_id: UUID,
        tenant_id: str,
        year: int,
        month: int,
        currency: str | None = None,
    ) -> BalanceDTO:
        """Cached balance if current, otherwise recomputed and stored."""
        start, end = month_bounds(year, month)
        currency = validate_currency(currency or self.settings.default_currency)
        account = self._accounts.get_by_id(account_id, tenant_id)

        cached = self._cached_row(tenant_id, account.id, year, month, currency)
        if cached is not None:
            current_count = self._ledger.count_lines(
                tenant_id, account.id, currency, start, end
            )
            if cached.line_count == current_count:
                logger.debug(
                    "balance_cache_hit",
                    extra={
                        "account_id": str(account.id),
                        "period": f"{year}-{month:02d}",
                        "currency": currency,
                    },
                )
                return self._to_dto(account, cached, from_cache=True)
            logger.info(
                "balance_cache_stale",
                extra={
                    "account_id": str(account.id),
                    "period": f"{year}-{month:02d}",
                    "cached_lines": cached.line_count,
                    "current_lines": current_count,
                },
            )

        return self._recompute(account, tenant_id, year, month, currency, start, end)

    def recompute_balance(
        self,
        account_id: UUID,
        tenant_id: str,
        year: int,
        month: int,
        currency: str | None = None,
    ) -> BalanceDTO:
        """Unconditionally rebuild one cached row from journal lines."""
        start, end = month_bounds(year, month)
        currency = validate_currency(currency or self.settings.default_currency)
        account = self._accounts.get_by_id(account_id, tenant_id)
        return self._recompute(account, tenant_id, year, month, currency, start, end)

    def rebuild_period(self, tenant_id: str, year: int, month: int) -> int:
        """
        Recompute every balance row for a tenant's month.

        Covers keys already cached and keys with line activity.  Returns the
        number of rows written.
        """
        start, end = month_bounds(year, month)
        keys = self._ledger.activity_keys(tenant_id, start, end)
        cached_keys = self.session.execute(
            select(AccountBalance.account_id, AccountBalance.currency).where(
                AccountBalance.tenant_id == tenant_id,
                AccountBalance.period_year == year,
                AccountBalance.period_month == month,
            )
        ).all()
        keys.update((row.account_id, row.currency) for row in cached_keys)

        for account_id, currency in sorted(keys, key=lambda k: (str(k[0]), k[1])):
            account = self._accounts.get_by_id(account_id, tenant_id)
            self._recompute(account, tenant_id, year, month, currency, start, end)

        logger.info(
            "balance_period_rebuilt",
            extra={"period": f"{year}-{month:02d}", "rows": len(keys)},
        )
        return len(keys)

    def get_closing_balance(
        self,
        account_id: UUID,
        tenant_id: str,
        year: int,
        month: int,
        currency: str | None = None,
    ) -> ClosingBalanceDTO:
        """Cumulative balance of all lines dated on or before month end."""
        _, end = month_bounds(year, month)
        currency = validate_currency(currency or self.settings.default_currency)
        account = self._accounts.get_by_id(account_id, tenant_id)
        activity = self._ledger.account_activity(tenant_id, account.id, currency, None, end)
        return ClosingBalanceDTO(
            tenant_id=tenant_id,
            account_id=account.id,
            account_code=account.code,
            balance_type=account.balance_type,
            as_of=end,
            currency=currency,
            total_debits=activity.total_debits,
            total_credits=activity.total_credits,
            balance=signed_balance(account, activity),
        )

    # ------------------------------------------------------------------

    def _cached_row(
        self,
        tenant_id: str,
        account_id: UUID,
        year: int,
        month: int,
        currency: str,
    ) -> AccountBalance | None:
        return self.session.scalars(
            select(AccountBalance)
            .where(
                AccountBalance.tenant_id == tenant_id,
                AccountBalance.account_id == account_id,
                AccountBalance.period_year == year,
                AccountBalance.period_month == month,
                AccountBalance.currency == currency,
            )
            .execution_options(populate_existing=True)
        ).one_or_none()

    def _recompute(
        self,
        account: AccountDTO,
        tenant_id: str,
        year: int,
        month: int,
        currency: str,
        start: date,
        end: date,
    ) -> BalanceDTO:
        activity = self._ledger.account_activity(tenant_id, account.id, currency, start, end)
        balance = signed_balance(account, activity)
        computed_at = self._clock.now()

        row = self._cached_row(tenant_id, account.id, year, month, currency)
        if row is None:
            row = self._insert_row(
                tenant_id, account.id, year, month, currency, activity, balance, computed_at
            )
        else:
            self._apply(row, activity, balance, computed_at)
            self.session.flush()

        logger.debug(
            "balance_materialized",
            extra={
                "account_id": str(account.id),
                "period": f"{year}-{month:02d}",
                "currency": currency,
                "balance": balance,
                "line_count": activity.line_count,
            },
        )
        return self._to_dto(account, row, from_cache=False)

    def _insert_row(
        self,
        tenant_id: str,
        account_id: UUID,
        year: int,
        month: int,
        currency: str,
        activity: LineActivity,
        balance,
        computed_at,
    ) -> AccountBalance:
        row = AccountBalance(
            tenant_id=tenant_id,
            account_id=account_id,
            period_year=year,
            period_month=month,
            currency=currency,
        )
        self._apply(row, activity, balance, computed_at)

        savepoint = self.session.begin_nested()
        try:
            self.session.add(row)
            self.session.flush()
            savepoint.commit()
            return row
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "balance_upsert_race",
                extra={"account_id": str(account_id), "period": f"{year}-{month:02d}"},
            )
        except SQLAlchemyError as exc:
            savepoint.rollback()
            raise StorageError("materialize_balance", str(exc)) from exc

        # Another worker inserted the same key; overwrite with our equal value
        existing = self._cached_row(tenant_id, account_id, year, month, currency)
        if existing is None:
            raise StorageError(
                "materialize_balance",
                f"balance row for {account_id} {year}-{month:02d} vanished after conflict",
            )
        self._apply(existing, activity, balance, computed_at)
        self.session.flush()
        return existing

    @staticmethod
    def _apply(row: AccountBalance, activity: LineActivity, balance, computed_at) -> None:
        row.total_debits = activity.total_debits
        row.total_credits = activity.total_credits
        row.balance = balance
        row.line_count = activity.line_count
        row.computed_at = computed_at

    @staticmethod
    def _to_dto(account: AccountDTO, row: AccountBalance, from_cache: bool) -> BalanceDTO:
        return BalanceDTO(
            tenant_id=row.tenant_id,
            account_id=account.id,
            account_code=account.code,
            balance_type=account.balance_type,
            year=row.period_year,
            month=row.period_month,
            currency=row.currency,
            total_debits=row.total_debits,
            total_credits=row.total_credits,
            balance=row.balance,
            line_count=row.line_count,
            computed_at=row.computed_at,
            from_cache=from_cache,
        )
