"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing integers per sequence name.  JournalWriter
    draws one per posted entry from the tenant's journal sequence, and that
    value is the posting order used by the ledger and entry listings.

Architecture position:
    Kernel > Services.  Flushes only; the caller commits.

Concurrency:
    ``SELECT ... FOR UPDATE`` on the counter row serializes allocations for
    one sequence.  Creating the first row races on UNIQUE(name); the loser
    rolls back its savepoint and locks the winner's row.  Max-plus-one over
    journal_entries is never used.

Transactionality:
    The increment becomes visible only when the caller commits.  A rolled
    back savepoint or transaction returns the value.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")

JOURNAL_ENTRY = "journal_entry"


def journal_sequence_name(tenant_id: str) -> str:
    return f"{JOURNAL_ENTRY}:{tenant_id}"


class SequenceService:
    """Allocates transactional sequence numbers."""

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the named counter (creating it on first use), increment it and
        return the new value.  The first value of a sequence is 1.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                self._session.add(SequenceCounter(name=sequence_name, current_value=1))
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                savepoint.rollback()
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last value handed out, or None if the sequence was never used."""
        return self._session.scalar(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        )

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
