"""
Posted entries and lines are never updated or deleted.
"""

from decimal import Decimal

import pytest

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.models.journal import JournalEntry, JournalLine


@pytest.fixture
def posted_entry(writer, make_entry, tenant_accounts, tenant_id, session):
    cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
    result = writer.post_entry(
        tenant_id, make_entry([(cash.id, "100", "0"), (revenue.id, "0", "100")])
    )
    return session.get(JournalEntry, result.entry_id)


class TestPostedRecords:

    def test_entry_update_blocked(self, session, posted_entry, captured_logs):
        posted_entry.reference = "CHANGED"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "JournalEntry"
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"
        session.rollback()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["field"] == "reference"

    def test_line_amount_update_blocked(self, session, posted_entry):
        line = posted_entry.lines[0]
        line.debit_amount = Decimal("1")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "JournalLine"
        session.rollback()

    def test_line_delete_blocked(self, session, posted_entry):
        line = session.get(JournalLine, posted_entry.lines[0].id)
        session.delete(line)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_entry_delete_blocked(self, session, posted_entry):
        session.delete(posted_entry)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
