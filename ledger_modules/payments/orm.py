"""
Payment ORM model (``ledger_modules.payments.orm``).

A Payment applies cash against exactly one Bill or Invoice.  While its
status is PENDING, PROCESSING or COMPLETED it counts toward the document's
amount_paid; FAILED and VOIDED payments do not.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class DocumentKind(str, Enum):
    BILL = "bill"
    INVOICE = "invoice"


class PaymentMethod(str, Enum):
    CHECK = "check"
    ACH = "ach"
    WIRE = "wire"
    CREDIT_CARD = "credit_card"
    CASH = "cash"
    OTHER = "other"


class PaymentState(str, Enum):
    """Lifecycle of a payment."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    VOIDED = "voided"


# Statuses whose amount counts toward the document's amount_paid
APPLIED_STATES = (PaymentState.PENDING, PaymentState.PROCESSING, PaymentState.COMPLETED)

VOIDABLE_STATES = (PaymentState.PENDING, PaymentState.COMPLETED)

PROCESSABLE_STATES = (PaymentState.PENDING, PaymentState.PROCESSING)

FAILABLE_STATES = (PaymentState.PENDING, PaymentState.PROCESSING)


class Payment(TrackedBase):
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("payment_number", name="uq_payment_number"),
        CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        CheckConstraint(
            "(bill_id IS NULL) <> (invoice_id IS NULL)",
            name="ck_payment_single_document",
        ),
        Index("idx_payment_bill", "bill_id"),
        Index("idx_payment_invoice", "invoice_id"),
        Index("idx_payment_transaction", "transaction_id"),
    )

    payment_number: Mapped[str] = mapped_column(String(30), nullable=False)
    document_kind: Mapped[DocumentKind] = mapped_column(String(10), nullable=False)
    bill_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("bills.id"), nullable=True
    )
    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)
    status: Mapped[PaymentState] = mapped_column(
        String(20), default=PaymentState.PENDING, nullable=False
    )
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cash_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
    # The POSTED ledger transaction this payment generated
    transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_transactions.id"), nullable=True
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Payment {self.payment_number} {self.status} {self.amount}>"

    @property
    def document_id(self) -> UUID:
        return self.bill_id if self.bill_id is not None else self.invoice_id

    @property
    def is_applied(self) -> bool:
        return any(self.status == state for state in APPLIED_STATES)
