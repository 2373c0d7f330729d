"""
LedgerEventConsumer -- one inbound bus message, one unit of work.

Responsibility:
    Decodes a message, maps it through the configured posting rules,
    resolves account codes and posts the entry, then hands pending
    ledger.posted notifications to the outbox relay.

Outcomes:
    POSTED     a new entry was committed
    DUPLICATE  the (source_event, source_id) pair was already posted
    SKIPPED    informational event, no rule, or a skip_when match
    DROPPED    malformed, unsupported or invalid; never retried
    FAILED     storage failure; left to the transport's redelivery

Retry:
    Transient errors (an account code that does not resolve yet, an unknown
    or unprovisioned account) are retried up to retry.max_attempts times in
    a fresh unit of work, sleeping retry.delay_for(attempt) in between, and
    dropped after the last attempt.  Validation errors are never retried.

The consumer never raises for a message; every path returns a HandleResult
and logs.  The transport acknowledges everything except FAILED.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ledger_config.bridges import build_ledger_settings
from ledger_config.schema import LedgerConfig
from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import IngestionError, LedgerError, StorageError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.selectors.account_selector import AccountSelector
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.services.journal_writer import JournalWriter
from ledger_kernel.services.ledger_events import OutboxRelay, Publisher

from ledger_ingestion.domain.events import decode_event
from ledger_ingestion.mapping.engine import EventMapper, PostingPlan

logger = get_logger("ingestion.consumer")


class HandleOutcome(str, Enum):
    POSTED = "posted"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    DROPPED = "dropped"
    FAILED = "failed"


@dataclass(frozen=True)
class HandleResult:
    """What happened to one message."""

    outcome: HandleOutcome
    event_type: str | None = None
    tenant_id: str | None = None
    source_id: str | None = None
    entry_id: UUID | None = None
    attempts: int = 0
    error_code: str | None = None
    message: str | None = None

    @property
    def should_ack(self) -> bool:
        return self.outcome != HandleOutcome.FAILED


class LedgerEventConsumer:
    """
    Turns bus messages into journal entries.

    Each call to handle() opens its own sessions from session_factory, so
    one consumer instance can serve a single-threaded transport loop.  Use
    one instance per worker thread.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: LedgerConfig,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
        publisher: Publisher | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._settings = build_ledger_settings(config)
        self._clock = clock or SystemClock()
        self._sleep = sleep
        self._publisher = publisher
        self._mapper = EventMapper(config.posting_rules, config.informational_events)

    def handle(self, message: dict[str, Any] | bytes | str) -> HandleResult:
        with LogContext.bind(correlation_id=str(uuid4())):
            try:
                event = decode_event(message)
            except IngestionError as exc:
                logger.error(
                    "event_dropped",
                    extra={
                        "event_type": getattr(exc, "event_type", None),
                        "error_code": exc.code,
                        "reason": str(exc),
                    },
                )
                return HandleResult(
                    outcome=HandleOutcome.DROPPED,
                    event_type=getattr(exc, "event_type", None),
                    error_code=exc.code,
                    message=str(exc),
                )

            with LogContext.bind(
                tenant_id=event.tenant_id,
                source_event=event.event_type,
                source_id=event.source_id,
            ):
                logger.info("event_received", extra={"event_type": event.event_type})
                outcome = self._mapper.map(event)
                if outcome.plan is None:
                    logger.info(
                        "event_skipped",
                        extra={"event_type": event.event_type, "reason": outcome.reason},
                    )
                    return HandleResult(
                        outcome=HandleOutcome.SKIPPED,
                        event_type=event.event_type,
                        tenant_id=event.tenant_id,
                        source_id=event.source_id,
                        message=outcome.reason,
                    )
                result = self._post_with_retry(outcome.plan)

            if result.outcome == HandleOutcome.POSTED:
                self._relay_pending()
            return result

    # ------------------------------------------------------------------

    def _post_with_retry(self, plan: PostingPlan) -> HandleResult:
        max_attempts = self._config.retry.max_attempts
        base = {
            "event_type": plan.source_event,
            "tenant_id": plan.tenant_id,
            "source_id": plan.source_id,
        }

        for attempt in range(1, max_attempts + 1):
            try:
                entry_id, duplicate = self._post(plan)
            except StorageError as exc:
                logger.error(
                    "event_post_failed",
                    extra={"error_code": exc.code, "attempt": attempt},
                    exc_info=True,
                )
                return HandleResult(
                    outcome=HandleOutcome.FAILED,
                    attempts=attempt,
                    error_code=exc.code,
                    message=str(exc),
                    **base,
                )
            except SQLAlchemyError as exc:
                logger.error(
                    "event_post_failed",
                    extra={"error_code": StorageError.code, "attempt": attempt},
                    exc_info=True,
                )
                return HandleResult(
                    outcome=HandleOutcome.FAILED,
                    attempts=attempt,
                    error_code=StorageError.code,
                    message=str(exc),
                    **base,
                )
            except LedgerError as exc:
                if exc.is_transient and attempt < max_attempts:
                    delay = self._config.retry.delay_for(attempt)
                    logger.warning(
                        "event_post_retrying",
                        extra={
                            "error_code": exc.code,
                            "attempt": attempt,
                            "max_attempts": max_attempts,
                            "delay_seconds": delay,
                            "reason": str(exc),
                        },
                    )
                    self._sleep(delay)
                    continue
                logger.error(
                    "event_dropped",
                    extra={
                        "error_code": exc.code,
                        "attempt": attempt,
                        "transient": exc.is_transient,
                        "reason": str(exc),
                    },
                )
                return HandleResult(
                    outcome=HandleOutcome.DROPPED,
                    attempts=attempt,
                    error_code=exc.code,
                    message=str(exc),
                    **base,
                )

            if duplicate:
                logger.info("event_duplicate", extra={"entry_id": str(entry_id)})
                return HandleResult(
                    outcome=HandleOutcome.DUPLICATE,
                    entry_id=entry_id,
                    attempts=attempt,
                    **base,
                )

            logger.info("event_posted", extra={"entry_id": str(entry_id), "attempt": attempt})
            return HandleResult(
                outcome=HandleOutcome.POSTED,
                entry_id=entry_id,
                attempts=attempt,
                **base,
            )

        # range() is never empty: parse_retry enforces max_attempts >= 1
        raise AssertionError("retry loop exited without a result")

    def _post(self, plan: PostingPlan) -> tuple[UUID, bool]:
        """One unit of work.  Returns (entry_id, already_posted)."""
        with session_scope(self._session_factory) as session:
            existing = JournalSelector(session).find_by_source(
                plan.tenant_id, plan.source_event, plan.source_id
            )
            if existing is not None:
                return existing.id, True

            accounts = AccountSelector(session, self._settings.system_tenant_id)
            debit = accounts.get_by_code(plan.debit_account, plan.tenant_id)
            credit = accounts.get_by_code(plan.credit_account, plan.tenant_id)

            writer = JournalWriter(session, self._clock, self._settings)
            result = writer.post_entry(plan.tenant_id, plan.to_request(debit.id, credit.id))
            return result.entry_id, result.is_replay

    def _relay_pending(self) -> None:
        if self._publisher is None:
            return
        try:
            with session_scope(self._session_factory) as session:
                OutboxRelay(session, self._publisher, self._clock).publish_pending()
        except SQLAlchemyError:
            # Rows stay PENDING; the next relay run picks them up
            logger.error("outbox_relay_failed", exc_info=True)
