"""
ledger.posted notifications: outbox rows and the relay that publishes them.
"""

import pytest
from sqlalchemy import select

from ledger_kernel.models.outbox import LedgerOutbox, OutboxStatus
from ledger_kernel.services.ledger_events import (
    LEDGER_POSTED,
    InMemoryPublisher,
    LoggingPublisher,
    OutboxRelay,
)


class _FailingPublisher:
    def __init__(self):
        self.calls = 0

    def publish(self, routing_key, message):
        self.calls += 1
        raise ConnectionError("broker unavailable")


@pytest.fixture
def post_two(writer, make_entry, tenant_accounts, tenant_id, deterministic_clock):
    cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
    first = writer.post_entry(
        tenant_id,
        make_entry([(cash.id, "10", "0"), (revenue.id, "0", "10")],
                   reference="FIRST", source_event="fee.collected", source_id="f-1"),
    )
    deterministic_clock.advance(5)
    second = writer.post_entry(
        tenant_id,
        make_entry([(cash.id, "20", "0"), (revenue.id, "0", "20")], reference="SECOND"),
    )
    return first, second


def _outbox(session, tenant_id):
    return session.scalars(
        select(LedgerOutbox)
        .where(LedgerOutbox.tenant_id == tenant_id)
        .order_by(LedgerOutbox.enqueued_at)
    ).all()


class TestOutboxRelay:

    def test_publishes_oldest_first(self, session, post_two, deterministic_clock, tenant_id):
        publisher = InMemoryPublisher()

        result = OutboxRelay(session, publisher, deterministic_clock).publish_pending()

        assert result.published == 2
        assert result.failed == 0
        routing_keys = [key for key, _ in publisher.messages]
        assert routing_keys == [LEDGER_POSTED, LEDGER_POSTED]
        references = [msg["payload"]["reference"] for _, msg in publisher.messages]
        assert references == ["FIRST", "SECOND"]

    def test_envelope_shape(self, session, post_two, deterministic_clock, tenant_id):
        publisher = InMemoryPublisher()
        OutboxRelay(session, publisher, deterministic_clock).publish_pending()

        _, message = publisher.messages[0]
        assert message["type"] == "ledger.posted"
        assert message["source"] == "ledger"
        assert message["tenantId"] == tenant_id
        assert "occurredAt" in message
        assert message["payload"]["sourceEvent"] == "fee.collected"
        assert message["payload"]["sourceId"] == "f-1"
        assert message["payload"]["totalCredit"] == "10"

        _, unkeyed = publisher.messages[1]
        assert unkeyed["payload"]["sourceEvent"] == ""
        assert unkeyed["payload"]["sourceId"] == ""

    def test_rows_marked_published(self, session, post_two, deterministic_clock, tenant_id):
        OutboxRelay(session, InMemoryPublisher(), deterministic_clock).publish_pending()

        rows = _outbox(session, tenant_id)
        assert {row.status for row in rows} == {OutboxStatus.PUBLISHED.value}
        assert all(row.attempts == 1 and row.published_at is not None for row in rows)

    def test_published_rows_not_resent(self, session, post_two, deterministic_clock):
        publisher = InMemoryPublisher()
        relay = OutboxRelay(session, publisher, deterministic_clock)

        relay.publish_pending()
        again = relay.publish_pending()

        assert again.attempted == 0
        assert len(publisher.messages) == 2

    def test_limit(self, session, post_two, deterministic_clock):
        publisher = InMemoryPublisher()

        assert OutboxRelay(session, publisher, deterministic_clock).publish_pending(limit=1).published == 1
        assert publisher.messages[0][1]["payload"]["reference"] == "FIRST"

    def test_failure_leaves_row_pending(
        self, session, post_two, deterministic_clock, tenant_id, captured_logs
    ):
        publisher = _FailingPublisher()

        result = OutboxRelay(session, publisher, deterministic_clock).publish_pending()

        assert result.failed == 2
        assert result.published == 0
        rows = _outbox(session, tenant_id)
        assert {row.status for row in rows} == {OutboxStatus.PENDING.value}
        assert all(row.attempts == 1 for row in rows)
        assert all(row.last_error == "broker unavailable" for row in rows)
        errors = [r for r in captured_logs() if r["message"] == "ledger_event_publish_failed"]
        assert len(errors) == 2
        assert errors[0]["level"] == "ERROR"

    def test_retry_after_failure(self, session, post_two, deterministic_clock, tenant_id):
        OutboxRelay(session, _FailingPublisher(), deterministic_clock).publish_pending()
        publisher = InMemoryPublisher()

        result = OutboxRelay(session, publisher, deterministic_clock).publish_pending()

        assert result.published == 2
        rows = _outbox(session, tenant_id)
        assert all(row.attempts == 2 and row.last_error is None for row in rows)

    def test_max_attempts_parks_rows(self, session, post_two, deterministic_clock):
        failing = _FailingPublisher()
        relay = OutboxRelay(session, failing, deterministic_clock, max_attempts=1)

        relay.publish_pending()
        second = relay.publish_pending()

        assert second.attempted == 0
        assert failing.calls == 2

    def test_logging_publisher(self, session, post_two, deterministic_clock, captured_logs):
        OutboxRelay(session, LoggingPublisher(), deterministic_clock).publish_pending()

        published = [r for r in captured_logs() if r["message"] == "ledger_event_published"]
        assert len(published) == 2
        assert published[0]["routing_key"] == "ledger.posted"
        assert published[0]["event_message"]["payload"]["reference"] == "FIRST"
