"""
Module: ledger_kernel.models.outbox
Responsibility: ORM persistence for ledger notifications awaiting delivery.
Architecture position: Kernel > Models.  May import from db/ only.

A row is written in the same transaction as the journal entry it announces,
so a committed entry always has its notification and a rolled-back entry
never does.  OutboxRelay moves rows from PENDING to PUBLISHED after commit.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class OutboxStatus(str, Enum):
    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"


class LedgerOutbox(TrackedBase):
    """Pending or delivered notification about a posted journal entry."""

    __tablename__ = "ledger_outbox"

    __table_args__ = (
        Index("idx_outbox_status_created", "status", "created_at"),
    )

    tenant_id: Mapped[str] = mapped_column(String(50), nullable=False)

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)

    aggregate_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    status: Mapped[OutboxStatus] = mapped_column(
        String(10),
        default=OutboxStatus.PENDING,
        nullable=False,
    )

    # Ordering key for delivery; set from the injected clock at post time
    enqueued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    last_error: Mapped[str | None] = mapped_column(String(500), nullable=True)

    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<LedgerOutbox {self.event_type} {self.aggregate_id} {self.status}>"
