"""
Accounts receivable module service (``ledger_modules.receivables.service``).

Mirror of payables: an invoice credits each line's revenue account and
debits the configured accounts receivable account for the total.  Posting
the invoice makes it eligible to receive payment.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.dtos import EntrySpec
from ledger_kernel.exceptions import CustomerNotFoundError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.transaction import TransactionType
from ledger_modules._document_lifecycle import DocumentLifecycleService, LineItemSpec
from ledger_modules.receivables.orm import (
    Customer,
    Invoice,
    InvoiceLineItem,
    RecurringInvoiceTemplate,
)

logger = get_logger("modules.receivables")


class ReceivablesService(DocumentLifecycleService):
    """Invoice lifecycle."""

    entity_type = "Invoice"
    document_model = Invoice
    line_model = InvoiceLineItem
    counterparty_model = Customer
    template_model = RecurringInvoiceTemplate
    counterparty_field = "customer_id"
    transaction_type = TransactionType.ACCOUNTS_RECEIVABLE
    control_account_role = "accounts_receivable"
    counterparty_not_found = CustomerNotFoundError

    _logger = logger

    def _document_entries(
        self,
        lines: Sequence[LineItemSpec],
        control_account_id: UUID,
        total: Decimal,
    ) -> list[EntrySpec]:
        entries = [EntrySpec.debit(control_account_id, total, memo="Accounts receivable")]
        entries.extend(
            EntrySpec.credit(line.account_id, line.amount, fund_id=line.fund_id, memo=line.description)
            for line in lines
        )
        return entries

    def create_customer(
        self,
        code: str,
        name: str,
        actor_id: UUID,
        email: str | None = None,
        payment_terms: str | None = None,
    ) -> Customer:
        return self._create_counterparty(code, name, actor_id, email=email, payment_terms=payment_terms)

    def get_customer(self, customer_id: UUID) -> Customer:
        return self._get_counterparty(customer_id)

    def create_invoice(
        self,
        customer_id: UUID,
        invoice_number: str,
        invoice_date: date,
        line_items: Sequence[LineItemSpec],
        actor_id: UUID,
        due_date: date | None = None,
        payment_terms: str | None = None,
        description: str | None = None,
    ) -> Invoice:
        return self.create_document(
            customer_id,
            invoice_number,
            invoice_date,
            line_items,
            actor_id,
            due_date=due_date,
            payment_terms=payment_terms,
            description=description,
        )

    def customer_summary(self, customer_id: UUID):
        return self.counterparty_summary(customer_id)
