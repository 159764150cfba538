"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountService",
    "AuditorService",
    "LedgerService",
    "PeriodService",
    "SequenceService",
]
