"""
SequenceService -- document number allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers for transactions, payments, and
    audit events.  A dedicated counter table is locked with
    ``SELECT ... FOR UPDATE`` so numbers are unique under concurrency.

Invariants enforced:
    - Numbers are strictly monotonic per sequence name.  The
      aggregate-max-plus-one pattern is never used.
    - The increment is transactional: a rolled-back unit of work returns
      its number.

Failure modes:
    - IntegrityError on a concurrent first use of a sequence name, handled
      with a savepoint and a locked re-read.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One row per named sequence holding its current value."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Usage:
        number = SequenceService(session).next_formatted(SequenceService.TRANSACTION)
        # "TX-000001"
    """

    TRANSACTION = "transaction"
    PAYMENT = "payment"
    AUDIT_EVENT = "audit_event"

    _PREFIXES = {
        TRANSACTION: "TX",
        PAYMENT: "PMT",
    }

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the counter row (creating it on first use), increment, and
        return the new value.  The value is consumed only if the caller's
        transaction commits.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use; another unit of work may create the row concurrently
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

    def next_formatted(self, sequence_name: str) -> str:
        """Next value rendered as a document number, e.g. ``TX-000042``."""
        prefix = self._PREFIXES.get(sequence_name, sequence_name.upper())
        return f"{prefix}-{self.next_value(sequence_name):06d}"

    def current_value(self, sequence_name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
