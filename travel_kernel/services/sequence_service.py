"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for audit records and
    the per-year business keys (``APR-2026-00001``, ``TR-...``, ``CLM-...``,
    ``BLT-...``).  Uses a dedicated counter table with row-level locking
    (``SELECT ... FOR UPDATE``) so concurrent chain builds never hand out
    the same key.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by ChainBuilder, BailoutService, EntityService and
    AuditorService.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth for
      the next value.  Aggregate max-plus-one over the business table is
      never used.
    - Transactional: an increment is only visible after the caller's
      transaction commits; a rollback returns the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from travel_kernel.db.base import Base
from travel_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # e.g. "audit_record", "APR-2026"
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


def format_business_key(prefix: str, year: int, value: int, padding: int = 5) -> str:
    """``format_business_key("APR", 2026, 1)`` -> ``"APR-2026-00001"``."""
    return f"{prefix}-{year}-{value:0{padding}d}"


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    AUDIT_RECORD = "audit_record"

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Locks the sequence row (creating it on first use), increments it and
        returns the new value.  The increment commits with the caller's
        transaction.

        Returns:
            The next sequence value (always > 0).
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            # First use: another transaction may create the row concurrently,
            # so insert under a savepoint and fall back to the locked read.
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
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_business_key(self, prefix: str, year: int, padding: int = 5) -> str:
        """Allocate the next ``PREFIX-YEAR-NNNNN`` key; numbering restarts yearly."""
        value = self.next_value(f"{prefix}-{year}")
        return format_business_key(prefix, year, value, padding)

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: only for tests and data migration scripts.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=value)
            self._session.add(counter)
        else:
            counter.current_value = value

        self._session.flush()
