"""
Reporting module service (``ledger_modules.reporting.service``).

Read-only.  Assembles report inputs from the database and hands them to
the pure engines (AgingCalculator, VarianceCalculator); nothing here
writes or commits.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engines.aging import AgingCalculator, AgingDocument, AgingReport
from ledger_engines.payment_status import SETTLED_STATUSES
from ledger_engines.variance import VarianceReport
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountBalance, TrialBalanceRow
from ledger_kernel.domain.values import ZERO
from ledger_kernel.exceptions import ValidationError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import AccountType
from ledger_kernel.models.transaction import LedgerTransaction, TransactionStatus
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_modules.budgets.service import BudgetService
from ledger_modules.payables.orm import Bill
from ledger_modules.receivables.orm import Invoice

logger = get_logger("modules.reporting")


@dataclass(frozen=True)
class IncomeStatementLine:
    account_id: UUID
    account_number: str
    account_name: str
    amount: Decimal


@dataclass(frozen=True)
class IncomeStatement:
    start_date: date
    end_date: date
    revenue: tuple[IncomeStatementLine, ...]
    expenses: tuple[IncomeStatementLine, ...]

    @property
    def total_revenue(self) -> Decimal:
        return sum((line.amount for line in self.revenue), ZERO)

    @property
    def total_expenses(self) -> Decimal:
        return sum((line.amount for line in self.expenses), ZERO)

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expenses


def _statement_line(balance: AccountBalance, amount: Decimal) -> IncomeStatementLine:
    return IncomeStatementLine(
        account_id=balance.account_id,
        account_number=balance.account_number,
        account_name=balance.account_name,
        amount=amount,
    )


class ReportingService:
    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._selector = LedgerSelector(session)
        self._aging = AgingCalculator()
        self._budgets = BudgetService(session, self._clock)

    # =========================================================================
    # Aging
    # =========================================================================

    def _open_documents(self, model, counterparty_attr: str, as_of_date: date) -> list[AgingDocument]:
        """Posted documents issued on or before as_of_date with a balance due."""
        rows = self._session.execute(
            select(model)
            .join(LedgerTransaction, model.transaction_id == LedgerTransaction.id)
            .where(
                LedgerTransaction.status == TransactionStatus.POSTED.value,
                model.payment_status.not_in([s.value for s in SETTLED_STATUSES]),
                model.invoice_date <= as_of_date,
            )
            .order_by(model.due_date, model.invoice_number)
        ).scalars()
        documents = []
        for document in rows:
            counterparty = getattr(document, counterparty_attr)
            documents.append(
                AgingDocument(
                    document_id=document.id,
                    document_number=document.invoice_number,
                    counterparty_id=counterparty.id,
                    counterparty_name=counterparty.name,
                    due_date=document.due_date,
                    amount_due=document.amount_due,
                    amount_paid=document.amount_paid,
                    payment_status=document.payment_status,
                )
            )
        return documents

    def payables_aging(self, as_of_date: date | None = None) -> AgingReport:
        as_of_date = as_of_date or self._clock.today()
        documents = self._open_documents(Bill, "vendor", as_of_date)
        return self._aging.build_report(documents=documents, as_of_date=as_of_date, report_type="AP")

    def receivables_aging(self, as_of_date: date | None = None) -> AgingReport:
        as_of_date = as_of_date or self._clock.today()
        documents = self._open_documents(Invoice, "customer", as_of_date)
        return self._aging.build_report(documents=documents, as_of_date=as_of_date, report_type="AR")

    # =========================================================================
    # Ledger statements
    # =========================================================================

    def trial_balance(self, as_of_date: date | None = None) -> list[TrialBalanceRow]:
        rows = self._selector.trial_balance(as_of_date)
        debits = sum((r.debit_balance for r in rows), ZERO)
        credits = sum((r.credit_balance for r in rows), ZERO)
        if debits != credits:
            logger.error(
                "trial_balance_out_of_balance",
                extra={
                    "as_of_date": as_of_date.isoformat() if as_of_date else None,
                    "debit_total": str(debits),
                    "credit_total": str(credits),
                },
            )
        return rows

    def income_statement(self, start_date: date, end_date: date) -> IncomeStatement:
        if end_date < start_date:
            raise ValidationError(
                f"Income statement range ends ({end_date}) before it starts ({start_date})"
            )
        revenue: list[IncomeStatementLine] = []
        expenses: list[IncomeStatementLine] = []
        for balance in self._selector.account_balances(as_of_date=end_date, start_date=start_date):
            if balance.account_type == AccountType.REVENUE:
                revenue.append(_statement_line(balance, -balance.net_debit))
            elif balance.account_type == AccountType.EXPENSE:
                expenses.append(_statement_line(balance, balance.net_debit))
        return IncomeStatement(
            start_date=start_date,
            end_date=end_date,
            revenue=tuple(revenue),
            expenses=tuple(expenses),
        )

    def budget_variance(self, budget_id: UUID, as_of_date: date | None = None) -> VarianceReport:
        return self._budgets.budget_variance(budget_id, as_of_date)
