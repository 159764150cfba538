"""Accounts payable: vendors, bills, recurring bills."""

from ledger_modules._document_lifecycle import CounterpartySummary, LineItemSpec
from ledger_modules.payables.service import PayablesService

__all__ = ["CounterpartySummary", "LineItemSpec", "PayablesService"]
