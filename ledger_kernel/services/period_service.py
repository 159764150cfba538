"""
PeriodService -- fiscal period lifecycle and posting-date validation.

Responsibility:
    Creates non-overlapping fiscal periods, resolves the period for a
    transaction date, rejects postings into closed periods, and closes
    periods once no unapproved transactions remain in them.

Invariants enforced:
    - No posting into a CLOSED period (``validate_posting_date``).
    - A period closes only when no DRAFT or PENDING_APPROVAL transaction
      is dated inside it.
    - Closed periods never reopen.
    - Flush-only.

Failure modes:
    - PeriodOverlapError: new range overlaps an existing period.
    - PeriodNotFoundError: unknown period code.
    - ClosedPeriodError: date falls in a closed period.
    - PeriodHasOpenTransactionsError: close blocked by unapproved work.
    - IllegalStateTransitionError: closing an already closed period.

Transactions dated outside every defined period are accepted and carry no
fiscal_period_id; period control applies only where periods exist.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    ClosedPeriodError,
    IllegalStateTransitionError,
    PeriodHasOpenTransactionsError,
    PeriodNotFoundError,
    PeriodOverlapError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ledger_kernel.models.transaction import UNAPPROVED_STATUSES, LedgerTransaction
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService[FiscalPeriod]):
    """Fiscal period lifecycle."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def create_period(
        self,
        period_code: str,
        name: str,
        fiscal_year: int,
        period_number: int,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FiscalPeriod:
        if start_date > end_date:
            raise ValidationError(f"Period {period_code} ends before it starts")

        overlapping = self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.start_date <= end_date,
                FiscalPeriod.end_date >= start_date,
            )
        ).scalars().first()
        if overlapping is not None:
            raise PeriodOverlapError(period_code, overlapping.period_code)

        period = FiscalPeriod(
            period_code=period_code,
            name=name,
            fiscal_year=fiscal_year,
            period_number=period_number,
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.OPEN,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "period_code": period_code,
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
            },
        )
        return period

    def get_by_code(self, period_code: str, for_update: bool = False) -> FiscalPeriod:
        stmt = select(FiscalPeriod).where(FiscalPeriod.period_code == period_code)
        if for_update:
            stmt = stmt.with_for_update()
        period = self.session.execute(stmt).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(period_code)
        return period

    def get_period_for_date(self, effective_date: date) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.start_date <= effective_date,
                FiscalPeriod.end_date >= effective_date,
            )
        ).scalar_one_or_none()

    def validate_posting_date(self, effective_date: date) -> FiscalPeriod | None:
        """
        Return the period covering ``effective_date`` (or None).

        Raises:
            ClosedPeriodError: if that period is closed.
        """
        period = self.get_period_for_date(effective_date)
        if period is not None and period.is_closed:
            logger.warning(
                "closed_period_posting_rejected",
                extra={
                    "period_code": period.period_code,
                    "effective_date": effective_date.isoformat(),
                },
            )
            raise ClosedPeriodError(period.period_code, effective_date.isoformat())
        return period

    def close_period(self, period_code: str, actor_id: UUID) -> FiscalPeriod:
        period = self.get_by_code(period_code, for_update=True)
        if period.is_closed:
            raise IllegalStateTransitionError(
                "FiscalPeriod", period_code, PeriodStatus.CLOSED.value, "close"
            )

        open_count = self.session.execute(
            select(func.count(LedgerTransaction.id)).where(
                LedgerTransaction.transaction_date >= period.start_date,
                LedgerTransaction.transaction_date <= period.end_date,
                LedgerTransaction.status.in_([s.value for s in UNAPPROVED_STATUSES]),
            )
        ).scalar_one()
        if open_count:
            raise PeriodHasOpenTransactionsError(period_code, open_count)

        period.status = PeriodStatus.CLOSED
        period.closed_at = self._clock.now()
        period.closed_by_id = actor_id
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info("period_closed", extra={"period_code": period_code})
        return period

    def open_periods(self) -> list[FiscalPeriod]:
        return list(
            self.session.execute(
                select(FiscalPeriod)
                .where(FiscalPeriod.status == PeriodStatus.OPEN.value)
                .order_by(FiscalPeriod.start_date)
            ).scalars()
        )
