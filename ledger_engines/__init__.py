"""
Pure calculation engines for the ledger.

Engines take plain values and frozen dataclasses, never a session, and never
read the clock.  Each public entry point is wrapped with ``@traced_engine``.
"""

from ledger_engines.aging import AgingCalculator, AgingDocument, AgingReport, classify, days_overdue
from ledger_engines.bank_matching import (
    BankLine,
    BankMatchingEngine,
    LedgerCandidate,
    MatchDecision,
    MatchOutcome,
)
from ledger_engines.payment_status import PaymentPosition, PaymentStatus, derive_payment_status
from ledger_engines.recurrence import Frequency, next_occurrence, parse_payment_terms
from ledger_engines.variance import BudgetActual, VarianceCalculator, VarianceReport

__all__ = [
    "AgingCalculator",
    "AgingDocument",
    "AgingReport",
    "BankLine",
    "BankMatchingEngine",
    "BudgetActual",
    "Frequency",
    "LedgerCandidate",
    "MatchDecision",
    "MatchOutcome",
    "PaymentPosition",
    "PaymentStatus",
    "VarianceCalculator",
    "VarianceReport",
    "classify",
    "days_overdue",
    "derive_payment_status",
    "next_occurrence",
    "parse_payment_terms",
]
