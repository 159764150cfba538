"""Accounts receivable: customers, invoices, recurring invoices."""

from ledger_modules._document_lifecycle import CounterpartySummary, LineItemSpec
from ledger_modules.receivables.service import ReceivablesService

__all__ = ["CounterpartySummary", "LineItemSpec", "ReceivablesService"]
