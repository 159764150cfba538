"""
ledger_engines.variance -- Budget-versus-actual variance.

Responsibility:
    Compare actual posted activity with budgeted amounts per account and
    classify each variance as favorable or unfavorable.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  BudgetService and
    ReportingService feed it budget lines and actuals already signed by
    each account's normal balance.

Invariants enforced:
    - variance = actual - budget.
    - variance_percent = variance / budget * 100, None when budget is zero.
    - Favorable when an expense comes in under budget or revenue comes in
      over budget.  For other account types a non-negative variance is
      reported as favorable.

Failure modes:
    - None; every input produces a result.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.values import ZERO

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class BudgetActual:
    """One budget line paired with its actual amount."""

    account_id: UUID
    account_number: str
    account_name: str
    account_type: str
    budget_amount: Decimal
    actual_amount: Decimal


@dataclass(frozen=True)
class VarianceResult:
    account_id: UUID
    account_number: str
    account_name: str
    account_type: str
    budget_amount: Decimal
    actual_amount: Decimal
    variance: Decimal
    variance_percent: Decimal | None
    is_favorable: bool


@dataclass(frozen=True)
class VarianceReport:
    lines: tuple[VarianceResult, ...]

    @property
    def total_budget(self) -> Decimal:
        return sum((line.budget_amount for line in self.lines), ZERO)

    @property
    def total_actual(self) -> Decimal:
        return sum((line.actual_amount for line in self.lines), ZERO)

    @property
    def total_variance(self) -> Decimal:
        return self.total_actual - self.total_budget

    def unfavorable(self) -> tuple[VarianceResult, ...]:
        return tuple(line for line in self.lines if not line.is_favorable)


def variance_percent(variance: Decimal, budget: Decimal) -> Decimal | None:
    if budget == ZERO:
        return None
    return variance / budget * HUNDRED


def is_favorable(account_type: str, variance: Decimal) -> bool:
    if account_type == "expense":
        return variance <= ZERO
    return variance >= ZERO


class VarianceCalculator:
    """Pure budget variance calculator."""

    def line_variance(self, line: BudgetActual) -> VarianceResult:
        variance = line.actual_amount - line.budget_amount
        return VarianceResult(
            account_id=line.account_id,
            account_number=line.account_number,
            account_name=line.account_name,
            account_type=line.account_type,
            budget_amount=line.budget_amount,
            actual_amount=line.actual_amount,
            variance=variance,
            variance_percent=variance_percent(variance, line.budget_amount),
            is_favorable=is_favorable(line.account_type, variance),
        )

    @traced_engine("variance", "1.0", fingerprint_fields=("lines",))
    def budget_variance(self, lines: Sequence[BudgetActual]) -> VarianceReport:
        return VarianceReport(lines=tuple(self.line_variance(line) for line in lines))
