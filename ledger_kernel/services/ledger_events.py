"""
Ledger notifications -- outbox emitter, relay and publishers.

Responsibility:
    LedgerEventEmitter writes a ``ledger.posted`` row to ledger_outbox in the
    posting transaction.  OutboxRelay later hands pending rows to a
    Publisher and records the outcome.

Architecture position:
    Kernel > Services.  The message-bus client is outside the kernel; it only
    has to satisfy the Publisher protocol.

Invariants enforced:
    - A committed journal entry always has exactly one ledger.posted row.
    - Publishing never raises into the caller.  A failed publish is logged at
      ERROR, the row stays PENDING with attempts and last_error recorded, and
      the next relay run retries it.  The posting itself is already durable.

Published message (DomainEvent envelope):

    {
      "type": "ledger.posted",
      "source": "ledger",
      "tenantId": "...",
      "occurredAt": "2024-01-15T12:00:00+00:00",
      "payload": {
        "entryId", "reference", "entryDate", "sourceEvent", "sourceId",
        "totalDebit", "totalCredit"
      }
    }

sourceEvent and sourceId are empty strings for entries posted without a
source key.  Amounts are decimal strings.
"""

from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.models.outbox import LedgerOutbox, OutboxStatus
from ledger_kernel.services.base import BaseService
from ledger_kernel.utils.hashing import format_decimal

logger = get_logger("services.ledger_events")

LEDGER_POSTED = "ledger.posted"
EVENT_SOURCE = "ledger"
MAX_ERROR_LENGTH = 500


class Publisher(Protocol):
    """Anything that can put a message on the bus."""

    def publish(self, routing_key: str, message: dict[str, Any]) -> None:
        ...


class InMemoryPublisher:
    """Collects published messages.  Used by tests and local runs."""

    def __init__(self):
        self.messages: list[tuple[str, dict[str, Any]]] = []

    def publish(self, routing_key: str, message: dict[str, Any]) -> None:
        self.messages.append((routing_key, message))


class LoggingPublisher:
    """Writes each message to the structured log instead of a bus."""

    def publish(self, routing_key: str, message: dict[str, Any]) -> None:
        logger.info(
            "ledger_event_published",
            extra={"routing_key": routing_key, "event_message": message},
        )


def build_posted_payload(entry: JournalEntry) -> dict[str, str]:
    return {
        "entryId": str(entry.id),
        "reference": entry.reference,
        "entryDate": entry.entry_date.isoformat(),
        "sourceEvent": entry.source_event or "",
        "sourceId": entry.source_id or "",
        "totalDebit": format_decimal(entry.total_debit),
        "totalCredit": format_decimal(entry.total_credit),
    }


class LedgerEventEmitter(BaseService):
    """Adds outbox rows to the caller's transaction."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def entry_posted(self, entry: JournalEntry) -> LedgerOutbox:
        row = LedgerOutbox(
            tenant_id=entry.tenant_id,
            event_type=LEDGER_POSTED,
            aggregate_id=entry.id,
            payload=build_posted_payload(entry),
            status=OutboxStatus.PENDING.value,
            enqueued_at=self._clock.now(),
            attempts=0,
        )
        self.session.add(row)
        self.session.flush()
        logger.debug(
            "ledger_event_enqueued",
            extra={"event_type": LEDGER_POSTED, "entry_id": str(entry.id)},
        )
        return row


@dataclass(frozen=True)
class RelayResult:
    published: int
    failed: int

    @property
    def attempted(self) -> int:
        return self.published + self.failed


class OutboxRelay(BaseService):
    """
    Delivers pending outbox rows through a Publisher.

    Run it after the posting transaction commits, in its own transaction.
    Rows are taken oldest first.  On PostgreSQL concurrent relays skip rows
    another relay holds.
    """

    def __init__(
        self,
        session: Session,
        publisher: Publisher,
        clock: Clock | None = None,
        max_attempts: int | None = None,
    ):
        super().__init__(session)
        self._publisher = publisher
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts

    def publish_pending(self, limit: int = 100) -> RelayResult:
        query = (
            select(LedgerOutbox)
            .where(LedgerOutbox.status == OutboxStatus.PENDING.value)
            .order_by(LedgerOutbox.enqueued_at, LedgerOutbox.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        if self._max_attempts is not None:
            query = query.where(LedgerOutbox.attempts < self._max_attempts)

        published = 0
        failed = 0
        for row in self.session.scalars(query).all():
            message = {
                "type": row.event_type,
                "source": EVENT_SOURCE,
                "tenantId": row.tenant_id,
                "occurredAt": row.enqueued_at.isoformat(),
                "payload": dict(row.payload),
            }
            row.attempts += 1
            try:
                self._publisher.publish(row.event_type, message)
            except Exception as exc:
                # Delivery is retried on the next run; the entry stays posted.
                row.last_error = str(exc)[:MAX_ERROR_LENGTH]
                failed += 1
                logger.error(
                    "ledger_event_publish_failed",
                    extra={
                        "outbox_id": str(row.id),
                        "entry_id": str(row.aggregate_id),
                        "attempts": row.attempts,
                    },
                    exc_info=True,
                )
                continue

            row.status = OutboxStatus.PUBLISHED.value
            row.published_at = self._clock.now()
            row.last_error = None
            published += 1

        self.session.flush()
        if published or failed:
            logger.info(
                "outbox_relay_completed",
                extra={"published": published, "failed": failed},
            )
        return RelayResult(published=published, failed=failed)
