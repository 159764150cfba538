"""
Module: ledger_kernel.models.transaction
Responsibility: ORM persistence for ledger transactions and their entries,
    the double-entry record every other component posts through.
Architecture position: Kernel > Models.  May import from db/base.py and
    sibling models.

Invariants enforced:
    - sum(debit_amount) == sum(credit_amount) for every transaction
      (LedgerService rejects unbalanced entry sets before anything is
      written).
    - Each entry has exactly one positive side and no negative side
      (CheckConstraint plus service validation).
    - Entries are exclusively owned by their transaction (delete-orphan
      cascade) and are never shared.
    - Status follows DRAFT -> PENDING_APPROVAL -> APPROVED -> POSTED, with
      VOIDED terminal.  Voiding a POSTED transaction creates a reversing
      transaction linked through reversal_of_id.

Failure modes:
    - IntegrityError if an entry row violates the side check constraint.
    - StaleDataError (translated to ConcurrencyConflictError by module
      services) if two units of work update the same transaction.

Audit relevance:
    posted_at marks the moment a transaction became authoritative for
    balances.  A voided transaction keeps its posted_at; its reversal
    cancels it from the void date forward, so balances as of any earlier
    date are unchanged.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.domain.values import ZERO

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.fund import Fund


class TransactionType(str, Enum):
    """Business origin of a transaction."""

    JOURNAL_ENTRY = "journal_entry"
    ACCOUNTS_PAYABLE = "accounts_payable"
    ACCOUNTS_RECEIVABLE = "accounts_receivable"
    TUITION_CREDIT = "tuition_credit"
    FUND_TRANSFER = "fund_transfer"


class TransactionStatus(str, Enum):
    """Lifecycle status of a transaction."""

    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    POSTED = "posted"
    VOIDED = "voided"


# Membership is tested with ==; loaded column values are plain str
APPROVABLE_STATUSES = (TransactionStatus.DRAFT, TransactionStatus.PENDING_APPROVAL)
UNAPPROVED_STATUSES = APPROVABLE_STATUSES


class LedgerTransaction(TrackedBase):
    """
    Transaction header.

    Contract:
        Owns its entries.  Mutated only through LedgerService.
    """

    __tablename__ = "ledger_transactions"
    __table_args__ = (
        UniqueConstraint("transaction_number", name="uq_transaction_number"),
        Index("idx_transaction_status_date", "status", "transaction_date"),
        Index("idx_transaction_reversal_of", "reversal_of_id"),
    )

    transaction_number: Mapped[str] = mapped_column(String(30), nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(String(30), nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # External reference (check number, remittance id) used by bank matching
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Total debits; equal to total credits
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    status: Mapped[TransactionStatus] = mapped_column(
        String(20),
        default=TransactionStatus.DRAFT,
        nullable=False,
    )

    fiscal_period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("fiscal_periods.id"),
        nullable=True,
    )

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Set on reversing transactions, points at the voided original
    reversal_of_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_transactions.id"),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    entries: Mapped[list["TransactionEntry"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionEntry.line_number",
        lazy="selectin",
    )

    reversal_of: Mapped["LedgerTransaction | None"] = relationship(
        remote_side="LedgerTransaction.id",
        foreign_keys=[reversal_of_id],
    )

    def __repr__(self) -> str:
        return f"<LedgerTransaction {self.transaction_number} {self.status} {self.amount}>"

    @property
    def total_debits(self) -> Decimal:
        return sum((e.debit_amount for e in self.entries), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((e.credit_amount for e in self.entries), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def is_posted(self) -> bool:
        return self.status == TransactionStatus.POSTED

    @property
    def is_voided(self) -> bool:
        return self.status == TransactionStatus.VOIDED

    @property
    def was_posted(self) -> bool:
        """True if the transaction ever affected balances."""
        return self.posted_at is not None


class TransactionEntry(Base):
    """
    One debit or credit line of a transaction.

    Exactly one of debit_amount / credit_amount is non-zero; both are
    non-negative.
    """

    __tablename__ = "transaction_entries"
    __table_args__ = (
        UniqueConstraint("transaction_id", "line_number", name="uq_entry_line"),
        CheckConstraint(
            "debit_amount >= 0 AND credit_amount >= 0",
            name="ck_entry_non_negative",
        ),
        CheckConstraint(
            "(debit_amount > 0 AND credit_amount = 0) OR "
            "(credit_amount > 0 AND debit_amount = 0)",
            name="ck_entry_one_side",
        ),
        Index("idx_entry_account", "account_id"),
        Index("idx_entry_fund", "fund_id"),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("ledger_transactions.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    fund_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("funds.id"),
        nullable=True,
    )

    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    transaction: Mapped["LedgerTransaction"] = relationship(back_populates="entries")

    account: Mapped["Account"] = relationship()

    fund: Mapped["Fund | None"] = relationship()

    def __repr__(self) -> str:
        side = "Dr" if self.debit_amount > 0 else "Cr"
        return f"<TransactionEntry {self.line_number} {side} {self.signed_amount}>"

    @property
    def signed_amount(self) -> Decimal:
        """Debit-positive amount."""
        return self.debit_amount - self.credit_amount

    @property
    def fund_delta(self) -> Decimal:
        """Effect on the tagged fund's balance: credits add, debits subtract."""
        return self.credit_amount - self.debit_amount
