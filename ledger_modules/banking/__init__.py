"""Bank accounts, statement import and reconciliation."""

from ledger_modules.banking.orm import (
    AdjustmentType,
    BankMatchStatus,
    ReconciliationStatus,
)
from ledger_modules.banking.service import (
    BankReconciliationService,
    BankTransactionRecord,
    MatchRunResult,
    ReconciliationSummary,
)

__all__ = [
    "AdjustmentType",
    "BankMatchStatus",
    "BankReconciliationService",
    "BankTransactionRecord",
    "MatchRunResult",
    "ReconciliationStatus",
    "ReconciliationSummary",
]
