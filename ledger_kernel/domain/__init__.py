"""
Pure domain layer: clock, monetary helpers, and DTOs.

Nothing here touches the ORM or the database.
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.dtos import (
    AccountBalance,
    CashActivity,
    EntrySpec,
    TrialBalanceRow,
)
from ledger_kernel.domain.values import ZERO, quantize_money, state_value, to_decimal

__all__ = [
    "AccountBalance",
    "CashActivity",
    "Clock",
    "DeterministicClock",
    "EntrySpec",
    "SystemClock",
    "TrialBalanceRow",
    "ZERO",
    "quantize_money",
    "state_value",
    "to_decimal",
]
