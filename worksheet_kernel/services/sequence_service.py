"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers per named series: audit event
    sequence, global worksheet numbers, per-year order numbers and
    per-order worksheet revisions.  Uses a dedicated counter table with
    row-level locking (``SELECT ... FOR UPDATE``) so concurrent callers
    never receive the same value.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by AuditorService (audit_event) and WorksheetService
    (worksheet_number, worksheet_revision.<order>).

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth
      for the next value.  MAX(column)+1 is never used.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value, so the numbered
      entity and its number are never split across transactions.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
    - Deadlock: avoided by locking a single counter row per call.

Audit relevance:
    Allocation is logged at DEBUG with series name and value.  Audit event
    ordering (seq) comes from this service.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from worksheet_kernel.db.base import Base
from worksheet_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named series with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # e.g. "audit_event", "worksheet_number", "worksheet_revision.<order uuid>"
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a series name and returns the next strictly increasing
        integer.  The increment commits with the caller's transaction.

    Guarantees:
        - ``SELECT ... FOR UPDATE`` serializes concurrent allocations for
          the same series; the lock is held only on that one row.
        - No gaps under normal operation; a rolled-back caller gives its
          value back.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT format display identifiers (see domain.numbering).
    """

    AUDIT_EVENT = "audit_event"
    WORKSHEET_NUMBER = "worksheet_number"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        # populate_existing refreshes a counter already in the identity map
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named series.

        1. Locks the counter row (or creates it at 1 if absent)
        2. Increments the counter
        3. Returns the new value

        Preconditions:
            - ``sequence_name`` is a non-empty string.
            - The caller is within an active database transaction.

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              committed value for this series.
            - The counter row stays locked until the transaction completes.
        """
        if not sequence_name:
            raise ValueError("sequence_name must be non-empty")

        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use.  Another caller may create the same row concurrently;
            # the savepoint keeps the rest of the transaction intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
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
        """Current value of a series without incrementing, or None if unused."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a series to a specific value.

        WARNING: tests and migration scripts only.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=value)
            self._session.add(counter)
        else:
            counter.current_value = value

        self._session.flush()

    def initialize_sequences(self) -> None:
        """Create the well-known series at 0 if they do not exist."""
        for name in (self.AUDIT_EVENT, self.WORKSHEET_NUMBER):
            existing = self._session.execute(
                select(SequenceCounter)
                .where(SequenceCounter.name == name)
            ).scalar_one_or_none()

            if existing is None:
                self._session.add(SequenceCounter(name=name, current_value=0))

        self._session.flush()
