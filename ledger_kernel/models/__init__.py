"""Domain models for the ledger kernel."""

from ledger_kernel.models.account import (
    NORMAL_BALANCE_BY_TYPE,
    Account,
    AccountType,
    NormalBalance,
    normal_balance_for,
)
from ledger_kernel.models.audit_event import AuditAction, AuditEvent
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ledger_kernel.models.fund import Fund, FundType
from ledger_kernel.models.transaction import (
    LedgerTransaction,
    TransactionEntry,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "Account",
    "AccountType",
    "AuditAction",
    "AuditEvent",
    "FiscalPeriod",
    "Fund",
    "FundType",
    "LedgerTransaction",
    "NORMAL_BALANCE_BY_TYPE",
    "NormalBalance",
    "PeriodStatus",
    "TransactionEntry",
    "TransactionStatus",
    "TransactionType",
    "normal_balance_for",
]
