"""
General Ledger facade -- one object for the whole query and posting surface.

The facade ties together:
- AccountService / AccountSelector: chart of accounts
- JournalWriter / JournalSelector: posting and entry queries
- BalanceMaterializer: monthly and closing balances, ledger lines
- TrialBalanceCompiler: period self-check
- OutboxRelay: ledger.posted delivery after commit (optional)

Transaction boundary:
    Every operation flushes only.  ``commit()`` is the single commit point.
    When a publisher is wired, ``commit()`` relays pending outbox rows in a
    second transaction, so a publish failure never touches the posting.
"""

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountDTO,
    BalanceDTO,
    ClosingBalanceDTO,
    JournalEntryDTO,
    LedgerLineDTO,
    Page,
    PostEntryRequest,
    TrialBalanceDTO,
)
from ledger_kernel.domain.settings import LedgerSettings
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountType, BalanceType
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.journal_selector import DEFAULT_PAGE_SIZE, JournalSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService, AccountSpec
from ledger_kernel.services.balance_materializer import BalanceMaterializer
from ledger_kernel.services.journal_writer import JournalWriter, PostingResult
from ledger_kernel.services.ledger_events import (
    LedgerEventEmitter,
    OutboxRelay,
    Publisher,
    RelayResult,
)
from ledger_kernel.services.trial_balance import TrialBalanceCompiler

logger = get_logger("services.general_ledger")


class GeneralLedger:
    """
    Tenant-scoped general ledger operations over one session.

    Every method takes the tenant id explicitly; nothing is resolved from
    ambient state.
    """

    def __init__(
        self,
        session: Session,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        publisher: Publisher | None = None,
    ):
        """
        Args:
            session: SQLAlchemy session; the facade never opens its own.
            settings: Tenancy defaults.  Defaults to LedgerSettings().
            clock: Clock for timestamps.  Defaults to SystemClock.
            publisher: Where ledger.posted notifications go.  Without one,
                outbox rows stay PENDING for an external relay.
        """
        self._session = session
        self._clock = clock or SystemClock()
        self.settings = settings or LedgerSettings()

        self._account_service = AccountService(session, self.settings)
        self._accounts = AccountSelector(session, self.settings.system_tenant_id)
        self._journal = JournalSelector(session)
        self._ledger = LedgerSelector(session)
        self._writer = JournalWriter(
            session,
            self._clock,
            self.settings,
            LedgerEventEmitter(session, self._clock),
        )
        self._materializer = BalanceMaterializer(session, self._clock, self.settings)
        self._trial_balance = TrialBalanceCompiler(
            session, self._clock, self.settings, self._materializer
        )
        self._relay = (
            OutboxRelay(session, publisher, self._clock) if publisher is not None else None
        )

    # -- Chart of accounts -------------------------------------------------

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
        return self._account_service.create_account(
            tenant_id, code, name, account_type, balance_type, parent_id, description
        )

    def seed_chart(self, tenant_id: str, specs: list[AccountSpec]) -> int:
        return self._account_service.seed_chart(tenant_id, specs)

    def deactivate_account(self, account_id: UUID, tenant_id: str) -> AccountDTO:
        return self._account_service.deactivate_account(account_id, tenant_id)

    def reactivate_account(self, account_id: UUID, tenant_id: str) -> AccountDTO:
        return self._account_service.reactivate_account(account_id, tenant_id)

    def list_accounts(
        self,
        tenant_id: str,
        account_type: AccountType | str | None = None,
        include_inactive: bool = False,
    ) -> list[AccountDTO]:
        return self._accounts.list_accounts(tenant_id, account_type, include_inactive)

    def get_account(self, account_id: UUID, tenant_id: str) -> AccountDTO:
        return self._accounts.get_by_id(account_id, tenant_id)

    def get_account_by_code(self, code: str, tenant_id: str) -> AccountDTO:
        return self._accounts.get_by_code(code, tenant_id)

    # -- Journal -----------------------------------------------------------

    def post_entry(self, tenant_id: str, request: PostEntryRequest) -> PostingResult:
        return self._writer.post_entry(tenant_id, request)

    def get_entry(self, entry_id: UUID, tenant_id: str) -> JournalEntryDTO:
        return self._journal.get_entry(entry_id, tenant_id)

    def list_entries(
        self,
        tenant_id: str,
        date_from: date | None = None,
        date_to: date | None = None,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[JournalEntryDTO]:
        return self._journal.list_entries(tenant_id, date_from, date_to, page, size)

    # -- Balances ----------------------------------------------------------

    def get_balance(
        self,
        account_id: UUID,
        tenant_id: str,
        year: int,
        month: int,
        currency: str | None = None,
    ) -> BalanceDTO:
        return self._materializer.get_balance(account_id, tenant_id, year, month, currency)

    def get_closing_balance(
        self,
        account_id: UUID,
        tenant_id: str,
        year: int,
        month: int,
        currency: str | None = None,
    ) -> ClosingBalanceDTO:
        return self._materializer.get_closing_balance(
            account_id, tenant_id, year, month, currency
        )

    def get_ledger(self, account_id: UUID, tenant_id: str) -> list[LedgerLineDTO]:
        """Full audit trail of an account, in posting order."""
        account = self._accounts.get_by_id(account_id, tenant_id)
        return self._ledger.get_ledger(account.id, tenant_id)

    def get_trial_balance(
        self,
        tenant_id: str,
        year: int,
        month: int,
        currency: str | None = None,
    ) -> TrialBalanceDTO:
        return self._trial_balance.get_trial_balance(tenant_id, year, month, currency)

    def rebuild_period(self, tenant_id: str, year: int, month: int) -> int:
        return self._materializer.rebuild_period(tenant_id, year, month)

    # -- Transaction -------------------------------------------------------

    def commit(self) -> RelayResult | None:
        """
        Commit the unit of work, then deliver pending notifications.

        Returns the relay result, or None when no publisher is wired.
        """
        self._session.commit()
        if self._relay is None:
            return None

        result = self._relay.publish_pending()
        self._session.commit()
        if result.failed:
            logger.warning(
                "ledger_notifications_pending",
                extra={"failed": result.failed, "published": result.published},
            )
        return result
