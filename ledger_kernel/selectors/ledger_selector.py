"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only balance queries over posted transaction entries:
    account balances, trial balance, fund balances and activity, and the
    per-transaction cash activity consumed by bank reconciliation.
Architecture position: Kernel > Selectors.  May import from models/ and
    domain/dtos.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - An entry counts toward balances when its transaction has been posted
      (``posted_at`` set).  A voided original keeps counting; its reversal
      cancels it from the reversal date on, so historical balances are
      stable.
    - Account-level results are computed at query time; the only stored
      balance in the system is Fund.balance, which reconcile_fund checks
      against ``fund_balance`` here.

Audit relevance:
    The trial balance must always show equal debit and credit totals; a
    difference would indicate an unbalanced posting.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import AccountBalance, CashActivity, TrialBalanceRow
from ledger_kernel.domain.values import ZERO, state_value
from ledger_kernel.models.account import Account
from ledger_kernel.models.transaction import (
    LedgerTransaction,
    TransactionEntry,
    TransactionStatus,
)
from ledger_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[TransactionEntry]):
    """Selector for ledger balances."""

    def __init__(self, session: Session):
        super().__init__(session)

    @staticmethod
    def _posted(query, start_date: date | None = None, as_of_date: date | None = None):
        query = query.where(LedgerTransaction.posted_at.is_not(None))
        if start_date is not None:
            query = query.where(LedgerTransaction.transaction_date >= start_date)
        if as_of_date is not None:
            query = query.where(LedgerTransaction.transaction_date <= as_of_date)
        return query

    def account_totals(
        self,
        account_id: UUID,
        as_of_date: date | None = None,
        start_date: date | None = None,
    ) -> tuple[Decimal, Decimal]:
        """(debit_total, credit_total) of posted entries on one account."""
        query = (
            select(
                func.coalesce(func.sum(TransactionEntry.debit_amount), ZERO),
                func.coalesce(func.sum(TransactionEntry.credit_amount), ZERO),
            )
            .join(LedgerTransaction, TransactionEntry.transaction_id == LedgerTransaction.id)
            .where(TransactionEntry.account_id == account_id)
        )
        debits, credits = self.session.execute(
            self._posted(query, start_date, as_of_date)
        ).one()
        return Decimal(debits), Decimal(credits)

    def account_balance(self, account_id: UUID, as_of_date: date | None = None) -> Decimal:
        """Debit-positive balance of one account."""
        debits, credits = self.account_totals(account_id, as_of_date)
        return debits - credits

    def balance_before(self, account_id: UUID, before_date: date) -> Decimal:
        """Debit-positive balance of everything posted before ``before_date``."""
        return self.account_balance(account_id, before_date - timedelta(days=1))

    def account_balances(
        self,
        as_of_date: date | None = None,
        start_date: date | None = None,
    ) -> list[AccountBalance]:
        """Posted totals per account, ordered by account number."""
        query = (
            select(
                Account.id,
                Account.account_number,
                Account.name,
                Account.account_type,
                func.coalesce(func.sum(TransactionEntry.debit_amount), ZERO),
                func.coalesce(func.sum(TransactionEntry.credit_amount), ZERO),
            )
            .join(TransactionEntry, TransactionEntry.account_id == Account.id)
            .join(LedgerTransaction, TransactionEntry.transaction_id == LedgerTransaction.id)
            .group_by(Account.id, Account.account_number, Account.name, Account.account_type)
            .order_by(Account.account_number)
        )
        rows = self.session.execute(self._posted(query, start_date, as_of_date)).all()
        return [
            AccountBalance(
                account_id=row[0],
                account_number=row[1],
                account_name=row[2],
                account_type=state_value(row[3]),
                debit_total=Decimal(row[4]),
                credit_total=Decimal(row[5]),
            )
            for row in rows
        ]

    def trial_balance(self, as_of_date: date | None = None) -> list[TrialBalanceRow]:
        """
        One row per account with activity, net balance on its natural side.

        sum(debit_balance) == sum(credit_balance) for any posted ledger.
        """
        rows: list[TrialBalanceRow] = []
        for bal in self.account_balances(as_of_date):
            net = bal.net_debit
            rows.append(
                TrialBalanceRow(
                    account_id=bal.account_id,
                    account_number=bal.account_number,
                    account_name=bal.account_name,
                    account_type=bal.account_type,
                    debit_balance=net if net > ZERO else ZERO,
                    credit_balance=-net if net < ZERO else ZERO,
                )
            )
        return rows

    def fund_totals(
        self,
        fund_id: UUID,
        as_of_date: date | None = None,
        start_date: date | None = None,
    ) -> tuple[Decimal, Decimal]:
        """(credit_total, debit_total) of posted entries tagged with a fund."""
        query = (
            select(
                func.coalesce(func.sum(TransactionEntry.credit_amount), ZERO),
                func.coalesce(func.sum(TransactionEntry.debit_amount), ZERO),
            )
            .join(LedgerTransaction, TransactionEntry.transaction_id == LedgerTransaction.id)
            .where(TransactionEntry.fund_id == fund_id)
        )
        credits, debits = self.session.execute(
            self._posted(query, start_date, as_of_date)
        ).one()
        return Decimal(credits), Decimal(debits)

    def fund_balance(self, fund_id: UUID, as_of_date: date | None = None) -> Decimal:
        """Fund balance recomputed from posted entries: credits minus debits."""
        credits, debits = self.fund_totals(fund_id, as_of_date)
        return credits - debits

    def cash_activity(
        self,
        account_id: UUID,
        start_date: date,
        end_date: date,
    ) -> list[CashActivity]:
        """
        Signed (debit-positive) effect on ``account_id`` of each currently
        POSTED, non-reversal transaction dated in the window.

        Voided originals and their reversals are left out: as a pair they
        net to zero and neither corresponds to a bank line.
        """
        query = (
            select(
                LedgerTransaction.id,
                LedgerTransaction.transaction_number,
                LedgerTransaction.transaction_date,
                LedgerTransaction.reference,
                func.sum(TransactionEntry.debit_amount) - func.sum(TransactionEntry.credit_amount),
            )
            .join(TransactionEntry, TransactionEntry.transaction_id == LedgerTransaction.id)
            .where(
                TransactionEntry.account_id == account_id,
                LedgerTransaction.status == TransactionStatus.POSTED.value,
                LedgerTransaction.reversal_of_id.is_(None),
                LedgerTransaction.transaction_date >= start_date,
                LedgerTransaction.transaction_date <= end_date,
            )
            .group_by(
                LedgerTransaction.id,
                LedgerTransaction.transaction_number,
                LedgerTransaction.transaction_date,
                LedgerTransaction.reference,
            )
            .order_by(LedgerTransaction.transaction_date, LedgerTransaction.transaction_number)
        )
        return [
            CashActivity(
                transaction_id=row[0],
                transaction_number=row[1],
                transaction_date=row[2],
                reference=row[3],
                amount=Decimal(row[4]),
            )
            for row in self.session.execute(query).all()
        ]

    def transaction_cash_amount(self, transaction_id: UUID, account_id: UUID) -> Decimal | None:
        """Signed effect of one transaction on a cash account, None if untouched."""
        debits, credits, count = self.session.execute(
            select(
                func.coalesce(func.sum(TransactionEntry.debit_amount), ZERO),
                func.coalesce(func.sum(TransactionEntry.credit_amount), ZERO),
                func.count(TransactionEntry.id),
            ).where(
                TransactionEntry.transaction_id == transaction_id,
                TransactionEntry.account_id == account_id,
            )
        ).one()
        if not count:
            return None
        return Decimal(debits) - Decimal(credits)
