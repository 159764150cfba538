"""
Module: ledger_kernel.models.fiscal_period
Responsibility: ORM persistence for fiscal periods -- controls which date
    ranges accept postings.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - No transaction may be posted with a date inside a CLOSED period.
    - A period cannot close while DRAFT or PENDING_APPROVAL transactions
      are dated inside it (PeriodService).
    - Periods do not overlap (PeriodService at creation time).
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class PeriodStatus(str, Enum):
    """OPEN -> CLOSED.  Closed periods never reopen."""

    OPEN = "open"
    CLOSED = "closed"


class FiscalPeriod(TrackedBase):
    """Fiscal period for posting control."""

    __tablename__ = "fiscal_periods"
    __table_args__ = (
        UniqueConstraint("period_code", name="uq_period_code"),
        Index("idx_period_dates", "start_date", "end_date"),
    )

    # e.g. "2024-01", "FY2024-Q1"
    period_code: Mapped[str] = mapped_column(String(20), nullable=False)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)

    period_number: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(20),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.period_code}: {self.start_date} to {self.end_date}>"

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date
