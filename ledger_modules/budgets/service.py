"""
Budget module service (``ledger_modules.budgets.service``).

Budgets are drafted with one line per account, approved once, and then
compared with posted activity.  Actuals are read through LedgerSelector
over the budget window, signed by each account's normal balance, and
handed to the pure VarianceCalculator.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engines.variance import BudgetActual, VarianceCalculator, VarianceReport
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import state_value, to_decimal
from ledger_kernel.exceptions import (
    BudgetNotFoundError,
    IllegalStateTransitionError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import NormalBalance
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_modules._posting_helpers import unit_of_work
from ledger_modules.budgets.orm import Budget, BudgetLine, BudgetStatus

logger = get_logger("modules.budgets")

ENTITY_TYPE = "Budget"


@dataclass(frozen=True)
class BudgetLineSpec:
    account_id: UUID
    amount: Decimal
    notes: str | None = None


class BudgetService:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._accounts = AccountService(session)
        self._selector = LedgerSelector(session)
        self._calculator = VarianceCalculator()

    def get_budget(self, budget_id: UUID) -> Budget:
        budget = self._session.get(Budget, budget_id)
        if budget is None:
            raise BudgetNotFoundError(budget_id)
        return budget

    def _lock_budget(self, budget_id: UUID) -> Budget:
        budget = self._session.execute(
            select(Budget)
            .where(Budget.id == budget_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if budget is None:
            raise BudgetNotFoundError(budget_id)
        return budget

    def create_budget(
        self,
        name: str,
        fiscal_year: int,
        period_start: date,
        period_end: date,
        lines: Sequence[BudgetLineSpec],
        actor_id: UUID,
    ) -> Budget:
        if period_end < period_start:
            raise ValidationError(
                f"Budget period ends ({period_end}) before it starts ({period_start})"
            )
        account_ids = [line.account_id for line in lines]
        if len(set(account_ids)) != len(account_ids):
            raise ValidationError("A budget may carry only one line per account")

        with unit_of_work(self._session, logger, "create_budget", ENTITY_TYPE):
            budget = Budget(
                name=name,
                fiscal_year=fiscal_year,
                period_start=period_start,
                period_end=period_end,
                status=BudgetStatus.DRAFT.value,
                created_by_id=actor_id,
            )
            for spec in lines:
                self._accounts.get(spec.account_id)
                budget.lines.append(
                    BudgetLine(
                        account_id=spec.account_id,
                        amount=to_decimal(spec.amount),
                        notes=spec.notes,
                    )
                )
            self._session.add(budget)
            self._session.flush()
            logger.info(
                "budget_created",
                extra={
                    "budget_id": str(budget.id),
                    "fiscal_year": fiscal_year,
                    "line_count": len(budget.lines),
                },
            )
        return budget

    def set_line_amount(
        self,
        budget_id: UUID,
        account_id: UUID,
        amount: Decimal | int | str,
        actor_id: UUID,
    ) -> Budget:
        """Add or change one account's budget while the budget is DRAFT."""
        with unit_of_work(self._session, logger, "set_line_amount", ENTITY_TYPE, budget_id):
            budget = self._lock_budget(budget_id)
            if budget.status != BudgetStatus.DRAFT:
                raise IllegalStateTransitionError(
                    ENTITY_TYPE, budget_id, state_value(budget.status), "edit"
                )
            self._accounts.get(account_id)
            for line in budget.lines:
                if line.account_id == account_id:
                    line.amount = to_decimal(amount)
                    break
            else:
                budget.lines.append(BudgetLine(account_id=account_id, amount=to_decimal(amount)))
            budget.updated_by_id = actor_id
            self._session.flush()
        return budget

    def approve_budget(self, budget_id: UUID, approver_id: UUID) -> Budget:
        with unit_of_work(self._session, logger, "approve_budget", ENTITY_TYPE, budget_id):
            budget = self._lock_budget(budget_id)
            if budget.status != BudgetStatus.DRAFT:
                raise IllegalStateTransitionError(
                    ENTITY_TYPE, budget_id, state_value(budget.status), "approve"
                )
            budget.status = BudgetStatus.APPROVED.value
            budget.approved_by_id = approver_id
            budget.approved_at = self._clock.now()
            self._session.flush()
            logger.info("budget_approved", extra={"budget_id": str(budget_id)})
        return budget

    def budget_variance(self, budget_id: UUID, as_of_date: date | None = None) -> VarianceReport:
        """
        Budget against posted activity from period_start through the
        earlier of period_end and ``as_of_date``.
        """
        budget = self.get_budget(budget_id)
        end = budget.period_end if as_of_date is None else min(budget.period_end, as_of_date)

        actuals = []
        for line in sorted(budget.lines, key=lambda b: b.account.account_number):
            account = line.account
            debits, credits = self._selector.account_totals(
                account.id, as_of_date=end, start_date=budget.period_start
            )
            if account.normal_balance == NormalBalance.DEBIT:
                actual = debits - credits
            else:
                actual = credits - debits
            actuals.append(
                BudgetActual(
                    account_id=account.id,
                    account_number=account.account_number,
                    account_name=account.name,
                    account_type=state_value(account.account_type),
                    budget_amount=line.amount,
                    actual_amount=actual,
                )
            )
        return self._calculator.budget_variance(lines=actuals)
