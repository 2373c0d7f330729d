"""
Module: ledger_kernel.models.sequence
Responsibility: Named counters behind the per-tenant posting sequence.
Architecture position: Kernel > Models.  May import from db/ only.

Each row holds the last value handed out for one sequence name.
SequenceService locks the row while incrementing it.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """Current value of one named sequence."""

    __tablename__ = "sequence_counters"

    # e.g. "journal_entry:<tenant_id>"
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
