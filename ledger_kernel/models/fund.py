"""
Module: ledger_kernel.models.fund
Responsibility: ORM persistence for funds -- named pools that ledger entries
    may be tagged with.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A restricted fund's running balance never goes negative as a result of
      a posting (checked by FundService at allocation/transfer time and by
      LedgerService when the deltas are applied).
    - The running balance changes only when a transaction is posted or a
      posted transaction is voided; the version counter detects lost
      updates.

Audit relevance:
    ``balance`` is a cache of posted activity.  FundService.reconcile_fund
    recomputes it from entries and surfaces, never corrects, a discrepancy.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase


class FundType(str, Enum):
    """Fund classification.  Everything except GENERAL is restricted."""

    GENERAL = "general"
    RESTRICTED = "restricted"
    PERMANENTLY_RESTRICTED = "permanently_restricted"
    BOARD_DESIGNATED = "board_designated"


class Fund(TrackedBase):
    """A named pool with a running balance."""

    __tablename__ = "funds"
    __table_args__ = (
        UniqueConstraint("code", name="uq_fund_code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    fund_type: Mapped[FundType] = mapped_column(String(30), nullable=False)

    balance: Mapped[Decimal] = mapped_column(
        Numeric(38, 9),
        default=Decimal("0"),
        nullable=False,
    )

    restriction_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Optional validity window for restricted funds (inclusive)
    valid_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    valid_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Fund {self.code} ({self.fund_type}): {self.balance}>"

    @property
    def is_restricted(self) -> bool:
        return self.fund_type != FundType.GENERAL

    def is_available_on(self, on_date: date) -> bool:
        """True when the fund is active and ``on_date`` is inside its window."""
        if not self.is_active:
            return False
        if self.valid_from is not None and on_date < self.valid_from:
            return False
        if self.valid_to is not None and on_date > self.valid_to:
            return False
        return True
