"""
Accounts payable module service (``ledger_modules.payables.service``).

Responsibility
--------------
Vendors, bills and recurring bills.  A bill debits each line's expense
(or asset) account and credits the configured accounts payable account
for the total; posting the bill makes it payable.

Architecture position
---------------------
**Modules layer**.  ``PayablesService`` owns the unit of work for every
public method and delegates ledger work to ``LedgerService``.

Usage::

    payables = PayablesService(session, clock=clock, settings=settings)
    vendor = payables.create_vendor("ACME", "Acme Supplies", actor_id=user)
    bill = payables.create_bill(
        vendor.id, "INV-1001", date(2024, 3, 1),
        [LineItemSpec("Paper", supplies.id, Decimal("250.00"))],
        actor_id=user,
    )
    payables.approve(bill.id, approver_id=manager)
    payables.post(bill.id, actor_id=manager)
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.dtos import EntrySpec
from ledger_kernel.exceptions import VendorNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.transaction import TransactionType
from ledger_modules._document_lifecycle import DocumentLifecycleService, LineItemSpec
from ledger_modules.payables.orm import Bill, BillLineItem, RecurringBillTemplate, Vendor

logger = get_logger("modules.payables")


class PayablesService(DocumentLifecycleService):
    """Bill lifecycle."""

    entity_type = "Bill"
    document_model = Bill
    line_model = BillLineItem
    counterparty_model = Vendor
    template_model = RecurringBillTemplate
    counterparty_field = "vendor_id"
    transaction_type = TransactionType.ACCOUNTS_PAYABLE
    control_account_role = "accounts_payable"
    counterparty_not_found = VendorNotFoundError

    _logger = logger

    def _document_entries(
        self,
        lines: Sequence[LineItemSpec],
        control_account_id: UUID,
        total: Decimal,
    ) -> list[EntrySpec]:
        entries = [
            EntrySpec.debit(line.account_id, line.amount, fund_id=line.fund_id, memo=line.description)
            for line in lines
        ]
        entries.append(EntrySpec.credit(control_account_id, total, memo="Accounts payable"))
        return entries

    def create_vendor(
        self,
        code: str,
        name: str,
        actor_id: UUID,
        email: str | None = None,
        payment_terms: str | None = None,
    ) -> Vendor:
        return self._create_counterparty(code, name, actor_id, email=email, payment_terms=payment_terms)

    def get_vendor(self, vendor_id: UUID) -> Vendor:
        return self._get_counterparty(vendor_id)

    def create_bill(
        self,
        vendor_id: UUID,
        invoice_number: str,
        invoice_date: date,
        line_items: Sequence[LineItemSpec],
        actor_id: UUID,
        due_date: date | None = None,
        payment_terms: str | None = None,
        description: str | None = None,
    ) -> Bill:
        return self.create_document(
            vendor_id,
            invoice_number,
            invoice_date,
            line_items,
            actor_id,
            due_date=due_date,
            payment_terms=payment_terms,
            description=description,
        )

    def vendor_summary(self, vendor_id: UUID):
        return self.counterparty_summary(vendor_id)
