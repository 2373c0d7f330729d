"""
JournalWriter -- validates and atomically persists journal entries.

Responsibility:
    The only write path for journal entries.  Validates a PostEntryRequest,
    writes the entry header, its lines and its ledger.posted outbox row in
    one savepoint, and collapses duplicate deliveries of the same source
    event into the entry that was posted first.

Architecture position:
    Kernel > Services.  Flushes only; the caller commits.

Validation order (first failure aborts, nothing is written):
    1. At least two lines                      -> InvalidEntryError
    2. Every line account resolves             -> UnknownAccountError
       (tenant, then system), and is active    -> AccountInactiveError
    3. Each line has exactly one side > 0,     -> InvalidLineError
       the other exactly 0, neither negative,
       no digits past the ninth decimal place,
       and a valid ISO 4217 currency
    4. Debits == credits per currency, exact   -> UnbalancedEntryError
    5. Known (source_event, source_id)         -> ALREADY_POSTED (not an error)

Concurrency:
    The source key is protected by UNIQUE(tenant_id, source_event,
    source_id).  The pre-read in step 5 is an optimization; the insert is
    the authority.  When two deliveries race, the loser's INSERT raises
    IntegrityError, only its savepoint is rolled back, and the winner's
    entry is re-read and returned as ALREADY_POSTED.  The only lock taken
    is the tenant's posting-sequence counter row, held until commit, so
    posting_seq follows write order within a tenant.

Failure modes:
    - The typed validation errors above.
    - StorageError for any persistence failure other than the source-key
      conflict.
"""

import time
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ledger_kernel.db.types import (
    MONEY_PRECISION,
    MONEY_SCALE,
    ZERO,
    InvalidCurrencyError,
    fits_money_column,
    validate_currency,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountDTO,
    JournalEntryDTO,
    LineRequest,
    PostEntryRequest,
)
from ledger_kernel.domain.settings import LedgerSettings
from ledger_kernel.exceptions import (
    AccountInactiveError,
    InvalidEntryError,
    InvalidLineError,
    StorageError,
    UnbalancedEntryError,
    UnknownAccountError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import JournalEntry, JournalEntryStatus, JournalLine
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_events import LedgerEventEmitter
from ledger_kernel.services.sequence_service import SequenceService, journal_sequence_name
from ledger_kernel.utils.idempotency import format_source_key, normalize_source_key

logger = get_logger("services.journal_writer")

MIN_LINES = 2
MAX_REFERENCE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MAX_LINE_DESCRIPTION_LENGTH = 300
MAX_SOURCE_LENGTH = 100
MAX_POSTED_BY_LENGTH = 100


class PostingStatus(str, Enum):
    POSTED = "posted"
    ALREADY_POSTED = "already_posted"


@dataclass(frozen=True)
class PostingResult:
    """
    Outcome of post_entry.

    Both statuses are successes.  ALREADY_POSTED carries the entry that was
    posted first for the same source key.
    """

    status: PostingStatus
    entry: JournalEntryDTO

    @classmethod
    def posted(cls, entry: JournalEntryDTO) -> "PostingResult":
        return cls(status=PostingStatus.POSTED, entry=entry)

    @classmethod
    def already_posted(cls, entry: JournalEntryDTO) -> "PostingResult":
        return cls(status=PostingStatus.ALREADY_POSTED, entry=entry)

    @property
    def is_replay(self) -> bool:
        return self.status == PostingStatus.ALREADY_POSTED

    @property
    def entry_id(self):
        return self.entry.id


@dataclass(frozen=True)
class _ValidatedLine:
    line_no: int
    request: LineRequest
    account: AccountDTO
    currency: str


class JournalWriter(BaseService):
    """
    Posts balanced journal entries.

    Contract:
        post_entry either returns a PostingResult or raises; on raise, no
        entry, line or outbox row from this call remains in the session.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        emitter: LedgerEventEmitter | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.settings = settings or LedgerSettings()
        self._accounts = AccountSelector(session, self.settings.system_tenant_id)
        self._journal = JournalSelector(session)
        self._emitter = emitter or LedgerEventEmitter(session, self._clock)
        self._sequences = SequenceService(session)

    def post_entry(self, tenant_id: str, request: PostEntryRequest) -> PostingResult:
        """
        Validate and persist one journal entry.

        Raises:
            InvalidEntryError, UnknownAccountError, AccountInactiveError,
            InvalidLineError, UnbalancedEntryError, StorageError.
        """
        t0 = time.monotonic()
        with LogContext.bind(
            tenant_id=tenant_id,
            actor_id=request.posted_by,
            source_event=request.source_event,
            source_id=request.source_id,
        ):
            logger.info(
                "journal_write_started",
                extra={"reference": request.reference, "line_count": len(request.lines)},
            )

            source_key = self._validate_header(request)
            lines = self._validate_lines(tenant_id, request.lines)
            self._validate_balance(lines)

            if source_key is not None:
                existing = self._journal.find_by_source(tenant_id, *source_key)
                if existing is not None:
                    logger.info(
                        "journal_write_idempotent",
                        extra={
                            "entry_id": str(existing.id),
                            "source_key": format_source_key(tenant_id, *source_key),
                        },
                    )
                    return PostingResult.already_posted(existing)

            result = self._insert(tenant_id, request, source_key, lines)

            logger.info(
                "journal_write_completed",
                extra={
                    "entry_id": str(result.entry.id),
                    "status": result.status.value,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_header(self, request: PostEntryRequest) -> tuple[str, str] | None:
        if len(request.lines) < MIN_LINES:
            raise InvalidEntryError(
                "TOO_FEW_LINES",
                f"a journal entry needs at least {MIN_LINES} lines, got {len(request.lines)}",
            )

        reference = (request.reference or "").strip()
        if not reference:
            raise InvalidEntryError("MISSING_REFERENCE", "reference must not be empty")
        if len(reference) > MAX_REFERENCE_LENGTH:
            raise InvalidEntryError(
                "FIELD_TOO_LONG", f"reference exceeds {MAX_REFERENCE_LENGTH} characters"
            )
        if not (request.posted_by or "").strip():
            raise InvalidEntryError("MISSING_POSTED_BY", "posted_by must not be empty")
        if len(request.posted_by) > MAX_POSTED_BY_LENGTH:
            raise InvalidEntryError(
                "FIELD_TOO_LONG", f"posted_by exceeds {MAX_POSTED_BY_LENGTH} characters"
            )
        if request.description and len(request.description) > MAX_DESCRIPTION_LENGTH:
            raise InvalidEntryError(
                "FIELD_TOO_LONG", f"description exceeds {MAX_DESCRIPTION_LENGTH} characters"
            )

        source_key = normalize_source_key(request.source_event, request.source_id)
        if source_key is not None and max(len(part) for part in source_key) > MAX_SOURCE_LENGTH:
            raise InvalidEntryError(
                "FIELD_TOO_LONG", f"source key parts exceed {MAX_SOURCE_LENGTH} characters"
            )
        return source_key

    def _validate_lines(
        self,
        tenant_id: str,
        requests: tuple[LineRequest, ...],
    ) -> list[_ValidatedLine]:
        accounts = self._accounts.get_many(
            {line.account_id for line in requests}, tenant_id
        )

        for line_no, line in enumerate(requests, start=1):
            account = accounts.get(line.account_id)
            if account is None:
                logger.warning(
                    "unknown_account_rejected",
                    extra={"account_id": str(line.account_id), "line_no": line_no},
                )
                raise UnknownAccountError(tenant_id, str(line.account_id), line_no)
            if not account.is_active:
                raise AccountInactiveError(tenant_id, str(line.account_id), line_no)

        validated = []
        for line_no, line in enumerate(requests, start=1):
            currency = self._validate_line_shape(line_no, line)
            validated.append(
                _ValidatedLine(
                    line_no=line_no,
                    request=line,
                    account=accounts[line.account_id],
                    currency=currency,
                )
            )
        return validated

    def _validate_line_shape(self, line_no: int, line: LineRequest) -> str:
        debit, credit = line.debit_amount, line.credit_amount
        if debit < ZERO or credit < ZERO:
            raise InvalidLineError(line_no, "amounts must not be negative")
        if debit > ZERO and credit > ZERO:
            raise InvalidLineError(line_no, "a line cannot carry both a debit and a credit")
        if debit == ZERO and credit == ZERO:
            raise InvalidLineError(line_no, "a line must carry a debit or a credit")
        if not (fits_money_column(debit) and fits_money_column(credit)):
            raise InvalidLineError(
                line_no,
                f"amounts are limited to {MONEY_SCALE} decimal places"
                f" and {MONEY_PRECISION - MONEY_SCALE} integer digits",
            )
        if line.description and len(line.description) > MAX_LINE_DESCRIPTION_LENGTH:
            raise InvalidLineError(
                line_no, f"description exceeds {MAX_LINE_DESCRIPTION_LENGTH} characters"
            )
        try:
            return validate_currency(line.currency or self.settings.default_currency)
        except InvalidCurrencyError as exc:
            raise InvalidLineError(line_no, str(exc)) from exc

    def _validate_balance(self, lines: list[_ValidatedLine]) -> None:
        debits: dict[str, Decimal] = defaultdict(lambda: ZERO)
        credits: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for line in lines:
            debits[line.currency] += line.request.debit_amount
            credits[line.currency] += line.request.credit_amount

        for currency in sorted(set(debits) | set(credits)):
            if debits[currency] != credits[currency]:
                logger.warning(
                    "unbalanced_entry_rejected",
                    extra={
                        "currency": currency,
                        "debits": debits[currency],
                        "credits": credits[currency],
                    },
                )
                raise UnbalancedEntryError(
                    str(debits[currency]), str(credits[currency]), currency
                )

        logger.debug("balance_validated", extra={"currencies": sorted(debits)})

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _insert(
        self,
        tenant_id: str,
        request: PostEntryRequest,
        source_key: tuple[str, str] | None,
        lines: list[_ValidatedLine],
    ) -> PostingResult:
        entry = JournalEntry(
            tenant_id=tenant_id,
            reference=request.reference.strip(),
            description=request.description,
            entry_date=request.entry_date or self._clock.today(),
            status=JournalEntryStatus.POSTED.value,
            source_event=source_key[0] if source_key else None,
            source_id=source_key[1] if source_key else None,
            total_debit=sum((l.request.debit_amount for l in lines), ZERO),
            total_credit=sum((l.request.credit_amount for l in lines), ZERO),
            posted_by=request.posted_by.strip(),
            posted_at=self._clock.now(),
        )
        entry.lines = [
            JournalLine(
                tenant_id=tenant_id,
                account_id=line.account.id,
                line_no=line.line_no,
                debit_amount=line.request.debit_amount,
                credit_amount=line.request.credit_amount,
                currency=line.currency,
                description=line.request.description,
            )
            for line in lines
        ]

        savepoint = self.session.begin_nested()
        try:
            entry.posting_seq = self._sequences.next_value(journal_sequence_name(tenant_id))
            self.session.add(entry)
            self.session.flush()
            self._emitter.entry_posted(entry)
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            if source_key is not None:
                existing = self._journal.find_by_source(tenant_id, *source_key)
                if existing is not None:
                    logger.warning(
                        "concurrent_insert_conflict",
                        extra={
                            "entry_id": str(existing.id),
                            "source_key": format_source_key(tenant_id, *source_key),
                        },
                    )
                    return PostingResult.already_posted(existing)
            logger.error("journal_write_storage_failure", exc_info=True)
            raise StorageError("post_entry", str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            savepoint.rollback()
            logger.error("journal_write_storage_failure", exc_info=True)
            raise StorageError("post_entry", str(exc)) from exc

        for line in entry.lines:
            logger.debug(
                "line_written",
                extra={
                    "entry_id": str(entry.id),
                    "line_no": line.line_no,
                    "account_code": lines[line.line_no - 1].account.code,
                    "debit": line.debit_amount,
                    "credit": line.credit_amount,
                    "currency": line.currency,
                },
            )
        logger.info(
            "journal_entry_posted",
            extra={
                "entry_id": str(entry.id),
                "reference": entry.reference,
                "entry_date": entry.entry_date,
                "total_debit": entry.total_debit,
                "total_credit": entry.total_credit,
            },
        )
        return PostingResult.posted(JournalEntryDTO.from_model(entry))
