"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only queries over journal entries: fetch by id, find by
    source key, and paginated newest-first listings.
Architecture position: Kernel > Selectors.

Every query is tenant-scoped.  An entry owned by another tenant is reported
as not found, never as forbidden.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.dtos import JournalEntryDTO, Page
from ledger_kernel.exceptions import EntryNotFoundError, InvalidPageError
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.selectors.base import BaseSelector

MAX_PAGE_SIZE = 200
DEFAULT_PAGE_SIZE = 20


class JournalSelector(BaseSelector):
    """Journal entry queries."""

    def get_entry(self, entry_id: UUID, tenant_id: str) -> JournalEntryDTO:
        """
        Raises:
            EntryNotFoundError: If the entry is missing or belongs to another tenant.
        """
        entry = self.session.scalars(
            select(JournalEntry).where(
                JournalEntry.id == entry_id,
                JournalEntry.tenant_id == tenant_id,
            )
        ).one_or_none()
        if entry is None:
            raise EntryNotFoundError(tenant_id, str(entry_id))
        return JournalEntryDTO.from_model(entry)

    def find_by_source(
        self,
        tenant_id: str,
        source_event: str,
        source_id: str,
    ) -> JournalEntryDTO | None:
        entry = self.session.scalars(
            select(JournalEntry).where(
                JournalEntry.tenant_id == tenant_id,
                JournalEntry.source_event == source_event,
                JournalEntry.source_id == source_id,
            )
        ).one_or_none()
        if entry is None:
            return None
        return JournalEntryDTO.from_model(entry)

    def list_entries(
        self,
        tenant_id: str,
        date_from: date | None = None,
        date_to: date | None = None,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[JournalEntryDTO]:
        """
        Newest entry_date first, then most recently posted.

        Each date bound is inclusive and optional.  size is capped at
        MAX_PAGE_SIZE.

        Raises:
            InvalidPageError: If page < 0 or size < 1.
        """
        if page < 0 or size < 1:
            raise InvalidPageError(page, size)
        size = min(size, MAX_PAGE_SIZE)

        filters = [JournalEntry.tenant_id == tenant_id]
        if date_from is not None:
            filters.append(JournalEntry.entry_date >= date_from)
        if date_to is not None:
            filters.append(JournalEntry.entry_date <= date_to)

        total = self.session.scalar(
            select(func.count()).select_from(JournalEntry).where(*filters)
        ) or 0

        entries = self.session.scalars(
            select(JournalEntry)
            .where(*filters)
            .order_by(
                JournalEntry.entry_date.desc(),
                JournalEntry.posting_seq.desc(),
            )
            .offset(page * size)
            .limit(size)
        ).all()

        return Page(
            items=tuple(JournalEntryDTO.from_model(entry) for entry in entries),
            page=page,
            size=size,
            total=total,
        )
