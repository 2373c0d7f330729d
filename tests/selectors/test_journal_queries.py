"""
Journal entry queries: fetch by id, lookup by source key, paginated listing.
"""

from datetime import date
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import EntryNotFoundError, InvalidPageError
from ledger_kernel.selectors.journal_selector import MAX_PAGE_SIZE, JournalSelector


@pytest.fixture
def journal(session):
    return JournalSelector(session)


@pytest.fixture
def posted(writer, make_entry, tenant_accounts, tenant_id, deterministic_clock):
    """Five entries dated Jan 1..5, posted in date order."""
    cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
    results = []
    for day in range(1, 6):
        results.append(
            writer.post_entry(
                tenant_id,
                make_entry(
                    [(cash.id, str(day), "0"), (revenue.id, "0", str(day))],
                    reference=f"REF-{day}",
                    entry_date=date(2024, 1, day),
                    source_event="fee.collected",
                    source_id=f"fee-{day}",
                ),
            )
        )
        deterministic_clock.advance(1)
    return results


class TestGetEntry:

    def test_get_entry_with_lines(self, journal, posted, tenant_id):
        entry = journal.get_entry(posted[0].entry_id, tenant_id)

        assert entry.reference == "REF-1"
        assert [line.line_no for line in entry.lines] == [1, 2]
        assert entry.posted_by == "test-user"

    def test_other_tenant_sees_not_found(self, journal, posted):
        with pytest.raises(EntryNotFoundError) as exc_info:
            journal.get_entry(posted[0].entry_id, "tenant-intruder")
        assert exc_info.value.code == "NOT_FOUND"

    def test_missing_entry(self, journal, tenant_id):
        with pytest.raises(EntryNotFoundError):
            journal.get_entry(uuid4(), tenant_id)

    def test_find_by_source(self, journal, posted, tenant_id):
        found = journal.find_by_source(tenant_id, "fee.collected", "fee-3")

        assert found.id == posted[2].entry_id
        assert journal.find_by_source(tenant_id, "fee.collected", "fee-99") is None
        assert journal.find_by_source("tenant-intruder", "fee.collected", "fee-3") is None


class TestListEntries:

    def test_newest_first(self, journal, posted, tenant_id):
        page = journal.list_entries(tenant_id)

        assert [e.reference for e in page.items] == ["REF-5", "REF-4", "REF-3", "REF-2", "REF-1"]
        assert page.total == 5
        assert page.has_next is False

    def test_pagination(self, journal, posted, tenant_id):
        first = journal.list_entries(tenant_id, page=0, size=2)
        last = journal.list_entries(tenant_id, page=2, size=2)

        assert [e.reference for e in first.items] == ["REF-5", "REF-4"]
        assert first.total_pages == 3
        assert first.has_next is True
        assert [e.reference for e in last.items] == ["REF-1"]
        assert last.has_next is False

    def test_page_past_end_is_empty(self, journal, posted, tenant_id):
        page = journal.list_entries(tenant_id, page=10, size=2)

        assert page.items == ()
        assert page.total == 5

    def test_inclusive_date_range(self, journal, posted, tenant_id):
        page = journal.list_entries(tenant_id, date_from=date(2024, 1, 2), date_to=date(2024, 1, 4))

        assert [e.reference for e in page.items] == ["REF-4", "REF-3", "REF-2"]

    def test_bounds_apply_independently(self, journal, posted, tenant_id):
        since = journal.list_entries(tenant_id, date_from=date(2024, 1, 4))
        until = journal.list_entries(tenant_id, date_to=date(2024, 1, 2))

        assert [e.reference for e in since.items] == ["REF-5", "REF-4"]
        assert [e.reference for e in until.items] == ["REF-2", "REF-1"]

    def test_same_date_and_instant_newest_posted_first(
        self, journal, writer, make_entry, tenant_accounts, tenant_id
    ):
        cash, revenue = tenant_accounts["cash"], tenant_accounts["revenue"]
        for i in range(6):
            writer.post_entry(
                tenant_id,
                make_entry(
                    [(cash.id, "1", "0"), (revenue.id, "0", "1")],
                    reference=f"SAME-{i}",
                    entry_date=date(2024, 2, 1),
                ),
            )

        first = journal.list_entries(tenant_id, size=4)
        rest = journal.list_entries(tenant_id, page=1, size=4)

        assert [e.reference for e in first.items + rest.items] == [
            "SAME-5", "SAME-4", "SAME-3", "SAME-2", "SAME-1", "SAME-0",
        ]
        assert [e.posting_seq for e in first.items] == [6, 5, 4, 3]

    def test_size_capped(self, journal, tenant_id):
        assert journal.list_entries(tenant_id, size=10_000).size == MAX_PAGE_SIZE

    @pytest.mark.parametrize("page,size", [(-1, 20), (0, 0), (0, -5)])
    def test_invalid_page(self, journal, tenant_id, page, size):
        with pytest.raises(InvalidPageError) as exc_info:
            journal.list_entries(tenant_id, page=page, size=size)
        assert exc_info.value.code == "INVALID_PAGE"

    def test_tenant_scoped(self, journal, posted):
        assert journal.list_entries("tenant-intruder").total == 0
