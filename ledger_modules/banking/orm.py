"""
Bank reconciliation ORM models (``ledger_modules.banking.orm``).

Responsibility
--------------
Persistence for bank accounts, imported bank statement lines,
reconciliations and statement adjustments.

Invariants enforced
-------------------
* A ledger transaction is held by at most one bank line
  (unique matched_transaction_id; NULLs are not compared).
* At most one IN_PROGRESS reconciliation per bank account (service guard
  under a bank-account row lock).
* A COMPLETED reconciliation and its adjustments are immutable except for
  appended notes.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.models.account import Account


class BankMatchStatus(str, Enum):
    UNMATCHED = "unmatched"
    MATCHED = "matched"
    POTENTIAL_MATCH = "potential_match"
    EXCLUDED = "excluded"
    NEEDS_REVIEW = "needs_review"


# Lines in these statuses are picked up by an auto-match run
AUTO_MATCHABLE_STATUSES = (BankMatchStatus.UNMATCHED, BankMatchStatus.POTENTIAL_MATCH)

# Lines in these statuses block completion
PENDING_STATUSES = (
    BankMatchStatus.UNMATCHED,
    BankMatchStatus.POTENTIAL_MATCH,
    BankMatchStatus.NEEDS_REVIEW,
)


class ReconciliationStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class AdjustmentType(str, Enum):
    FEE = "fee"
    INTEREST = "interest"
    CORRECTION = "correction"
    EXCLUDED_ITEM = "excluded_item"


class BankAccount(TrackedBase):
    __tablename__ = "bank_accounts"
    __table_args__ = (
        UniqueConstraint("name", name="uq_bank_account_name"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number_masked: Mapped[str | None] = mapped_column(String(20), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Cash account in the chart of accounts this bank account reconciles to
    gl_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    gl_account: Mapped[Account] = relationship()


class BankTransaction(TrackedBase):
    """One statement line; amount is signed, deposits positive."""

    __tablename__ = "bank_transactions"
    __table_args__ = (
        UniqueConstraint("matched_transaction_id", name="uq_bank_txn_matched_transaction"),
        Index("idx_bank_txn_account_date", "bank_account_id", "transaction_date"),
        Index("idx_bank_txn_status", "match_status"),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bank_accounts.id"), nullable=False
    )
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    match_status: Mapped[BankMatchStatus] = mapped_column(
        String(20), default=BankMatchStatus.UNMATCHED, nullable=False
    )
    matched_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_transactions.id"), nullable=True
    )
    # Offered by an auto-match run for a POTENTIAL_MATCH line; not held
    suggested_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_transactions.id"), nullable=True
    )
    matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    matched_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    match_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    import_batch: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<BankTransaction {self.transaction_date} {self.amount} {self.match_status}>"


class BankReconciliation(TrackedBase):
    __tablename__ = "bank_reconciliations"
    __table_args__ = (
        Index("idx_bank_recon_account_status", "bank_account_id", "status"),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bank_accounts.id"), nullable=False
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    statement_beginning_balance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    statement_ending_balance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    # Posted GL cash balance before period_start, fixed at creation
    beginning_ledger_balance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    status: Mapped[ReconciliationStatus] = mapped_column(
        String(20), default=ReconciliationStatus.IN_PROGRESS, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    bank_account: Mapped[BankAccount] = relationship()
    adjustments: Mapped[list["BankStatementAdjustment"]] = relationship(
        back_populates="reconciliation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def is_in_progress(self) -> bool:
        return self.status == ReconciliationStatus.IN_PROGRESS


class BankStatementAdjustment(Base):
    """Signed amount added to the statement ending balance."""

    __tablename__ = "bank_statement_adjustments"

    reconciliation_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("bank_reconciliations.id"), nullable=False
    )
    adjustment_type: Mapped[AdjustmentType] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    bank_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("bank_transactions.id"), nullable=True
    )
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reconciliation: Mapped[BankReconciliation] = relationship(back_populates="adjustments")
