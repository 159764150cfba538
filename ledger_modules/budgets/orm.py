"""
Budget ORM models (``ledger_modules.budgets.orm``).

A Budget covers a date window; each BudgetLine budgets one account.
Lines can change only while the budget is DRAFT.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.models.account import Account


class BudgetStatus(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"


class Budget(TrackedBase):
    __tablename__ = "budgets"
    __table_args__ = (
        UniqueConstraint("name", "fiscal_year", name="uq_budget_name_year"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[BudgetStatus] = mapped_column(
        String(20), default=BudgetStatus.DRAFT, nullable=False
    )
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    lines: Mapped[list["BudgetLine"]] = relationship(
        back_populates="budget",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class BudgetLine(Base):
    __tablename__ = "budget_lines"
    __table_args__ = (
        UniqueConstraint("budget_id", "account_id", name="uq_budget_line_account"),
    )

    budget_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("budgets.id"), nullable=False)
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    budget: Mapped[Budget] = relationship(back_populates="lines")
    account: Mapped[Account] = relationship()
