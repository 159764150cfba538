"""
Accounts payable ORM models (``ledger_modules.payables.orm``).

Responsibility
--------------
Persistence for vendors, bills, bill line items and recurring bill
templates.  A Bill owns exactly one LedgerTransaction (the accrual) and
mirrors its approval status; payment position lives on the Bill.

Invariants enforced
-------------------
* ``0 <= amount_paid <= amount_due`` (CheckConstraint and service guard).
* invoice_number is unique per vendor.
* Bill rows carry a version counter; concurrent payment application on the
  same bill is serialized by row lock and detected by the counter.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_engines.payment_status import PaymentStatus
from ledger_engines.recurrence import Frequency
from ledger_kernel.db.base import Base, TrackedBase, UUIDString
from ledger_kernel.models.transaction import LedgerTransaction


class Vendor(TrackedBase):
    """Supplier.  ytd_payments applies to the calendar year in ytd_year."""

    __tablename__ = "vendors"
    __table_args__ = (
        UniqueConstraint("code", name="uq_vendor_code"),
        Index("idx_vendor_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_terms: Mapped[str] = mapped_column(String(50), default="Net 30", nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    ytd_payments: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    ytd_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<Vendor {self.code}: {self.name}>"


class Bill(TrackedBase):
    __tablename__ = "bills"
    __table_args__ = (
        UniqueConstraint("vendor_id", "invoice_number", name="uq_bill_vendor_number"),
        UniqueConstraint("transaction_id", name="uq_bill_transaction"),
        CheckConstraint(
            "amount_paid >= 0 AND amount_paid <= amount_due",
            name="ck_bill_amount_paid_bounds",
        ),
        Index("idx_bill_vendor", "vendor_id"),
        Index("idx_bill_payment_status_due", "payment_status", "due_date"),
    )

    vendor_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("vendors.id"), nullable=False)
    transaction_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ledger_transactions.id"), nullable=False
    )
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_terms: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), default=Decimal("0"), nullable=False
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20), default=PaymentStatus.UNPAID, nullable=False
    )
    recurring_template_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("recurring_bill_templates.id"), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    vendor: Mapped[Vendor] = relationship()
    transaction: Mapped[LedgerTransaction] = relationship()
    line_items: Mapped[list["BillLineItem"]] = relationship(
        back_populates="bill",
        cascade="all, delete-orphan",
        order_by="BillLineItem.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Bill {self.invoice_number} {self.payment_status} {self.amount_paid}/{self.amount_due}>"

    @property
    def status(self) -> str:
        """Approval status of the owned transaction."""
        return self.transaction.status

    @property
    def balance_due(self) -> Decimal:
        return self.amount_due - self.amount_paid


class BillLineItem(Base):
    __tablename__ = "bill_line_items"
    __table_args__ = (
        UniqueConstraint("bill_id", "line_number", name="uq_bill_line"),
    )

    bill_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("bills.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
    fund_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("funds.id"), nullable=True
    )
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    taxable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    bill: Mapped[Bill] = relationship(back_populates="line_items")


class RecurringBillTemplate(TrackedBase):
    """
    Template for generating bills on a schedule.

    next_generation_date, last_generated_date and generated_count change only
    when a bill has actually been created from the template.
    """

    __tablename__ = "recurring_bill_templates"
    __table_args__ = (
        UniqueConstraint("template_code", name="uq_recurring_bill_code"),
        CheckConstraint(
            "day_of_month IS NULL OR (day_of_month >= 1 AND day_of_month <= 31)",
            name="ck_recurring_bill_day_of_month",
        ),
    )

    template_code: Mapped[str] = mapped_column(String(50), nullable=False)
    vendor_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("vendors.id"), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )
    fund_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("funds.id"), nullable=True
    )
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_terms: Mapped[str | None] = mapped_column(String(50), nullable=True)
    frequency: Mapped[Frequency] = mapped_column(String(20), nullable=False)
    day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    next_generation_date: Mapped[date] = mapped_column(Date, nullable=False)
    last_generated_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    generated_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    vendor: Mapped[Vendor] = relationship()
