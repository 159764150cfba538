"""
General ledger module service (``ledger_modules.general_ledger.service``).

Responsibility
--------------
Unit-of-work facade over the kernel's ledger, account and period services
for manual journal work: chart of accounts maintenance, fiscal periods,
and the DRAFT -> PENDING_APPROVAL -> APPROVED -> POSTED -> VOIDED path
of journal transactions.

Invariants enforced
-------------------
* Void guard: a transaction owned by a Bill or Invoice is voided through
  the document (CannotVoidPaidDocumentError once it has received payment);
  a transaction generated by a live payment must be voided through
  ``PaymentApplicationService.void_payment``.
* Each public method commits on success and rolls back then re-raises on
  failure.

Audit relevance
---------------
Account creation and deactivation and period close record AuditEvents
here; transaction events are recorded by LedgerService.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntrySpec, TrialBalanceRow
from ledger_kernel.domain.values import state_value
from ledger_kernel.exceptions import CannotVoidPaidDocumentError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.audit_event import AuditAction, AuditEvent
from ledger_kernel.models.fiscal_period import FiscalPeriod
from ledger_kernel.models.transaction import LedgerTransaction, TransactionType
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.ledger_service import ENTITY_TYPE, LedgerService
from ledger_kernel.services.period_service import PeriodService
from ledger_modules._document_lifecycle import void_document
from ledger_modules._posting_helpers import unit_of_work
from ledger_modules.payables.orm import Bill
from ledger_modules.payments.orm import Payment, PaymentState
from ledger_modules.receivables.orm import Invoice

logger = get_logger("modules.general_ledger")

# Payments in these states no longer hold their ledger transaction
_RELEASED_PAYMENT_STATES = (PaymentState.VOIDED, PaymentState.FAILED)


class GeneralLedgerService:
    """
    Usage::

        gl = GeneralLedgerService(session, clock)
        tx = gl.create_transaction(
            [EntrySpec.debit(cash.id, "100"), EntrySpec.credit(revenue.id, "100")],
            date(2024, 3, 1), actor_id=user,
        )
        gl.approve(tx.id, approver_id=manager)
        gl.post(tx.id, actor_id=manager)
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._ledger = LedgerService(session, self._clock)
        self._accounts = AccountService(session)
        self._periods = PeriodService(session, self._clock)
        self._auditor = AuditorService(session, self._clock)
        self._selector = LedgerSelector(session)

    # =========================================================================
    # Chart of accounts
    # =========================================================================

    def create_account(
        self,
        account_number: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        parent_id: UUID | None = None,
        description: str | None = None,
    ) -> Account:
        with unit_of_work(self._session, logger, "create_account", "Account"):
            account = self._accounts.create_account(
                account_number,
                name,
                account_type,
                actor_id,
                parent_id=parent_id,
                description=description,
            )
            self._auditor.record(
                AuditAction.ACCOUNT_CREATED,
                "Account",
                account.id,
                actor_id,
                {"account_number": account_number, "account_type": state_value(account_type)},
            )
        return account

    def set_account_parent(self, account_id: UUID, parent_id: UUID | None, actor_id: UUID) -> Account:
        with unit_of_work(self._session, logger, "set_account_parent", "Account", account_id):
            account = self._accounts.set_parent(account_id, parent_id, actor_id)
        return account

    def deactivate_account(self, account_id: UUID, actor_id: UUID) -> Account:
        with unit_of_work(self._session, logger, "deactivate_account", "Account", account_id):
            account = self._accounts.deactivate(account_id, actor_id)
            self._auditor.record(AuditAction.ACCOUNT_DEACTIVATED, "Account", account_id, actor_id)
        return account

    def get_account_by_number(self, account_number: str) -> Account:
        return self._accounts.get_by_number(account_number)

    # =========================================================================
    # Fiscal periods
    # =========================================================================

    def create_period(
        self,
        period_code: str,
        name: str,
        fiscal_year: int,
        period_number: int,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> FiscalPeriod:
        with unit_of_work(self._session, logger, "create_period", "FiscalPeriod"):
            period = self._periods.create_period(
                period_code, name, fiscal_year, period_number, start_date, end_date, actor_id
            )
        return period

    def close_period(self, period_code: str, actor_id: UUID) -> FiscalPeriod:
        with unit_of_work(self._session, logger, "close_period", "FiscalPeriod", period_code):
            period = self._periods.close_period(period_code, actor_id)
            self._auditor.record(
                AuditAction.PERIOD_CLOSED,
                "FiscalPeriod",
                period.id,
                actor_id,
                {"period_code": period_code},
            )
        return period

    # =========================================================================
    # Transactions
    # =========================================================================

    def create_transaction(
        self,
        entries: Sequence[EntrySpec],
        transaction_date: date,
        actor_id: UUID,
        transaction_type: TransactionType = TransactionType.JOURNAL_ENTRY,
        description: str | None = None,
        reference: str | None = None,
    ) -> LedgerTransaction:
        with unit_of_work(self._session, logger, "create_transaction", ENTITY_TYPE):
            transaction = self._ledger.create_transaction(
                entries,
                transaction_date,
                actor_id,
                transaction_type=transaction_type,
                description=description,
                reference=reference,
            )
        return transaction

    def submit_for_approval(self, transaction_id: UUID, actor_id: UUID) -> LedgerTransaction:
        with unit_of_work(self._session, logger, "submit", ENTITY_TYPE, transaction_id):
            transaction = self._ledger.submit_for_approval(transaction_id, actor_id)
        return transaction

    def approve(self, transaction_id: UUID, approver_id: UUID) -> LedgerTransaction:
        with unit_of_work(self._session, logger, "approve", ENTITY_TYPE, transaction_id):
            transaction = self._ledger.approve(transaction_id, approver_id)
        return transaction

    def post(self, transaction_id: UUID, actor_id: UUID) -> LedgerTransaction:
        with unit_of_work(self._session, logger, "post", ENTITY_TYPE, transaction_id):
            transaction = self._ledger.post(transaction_id, actor_id)
        return transaction

    def void(self, transaction_id: UUID, reason: str, actor_id: UUID) -> LedgerTransaction:
        """
        Void a transaction, honouring dependent documents and payments.

        Raises:
            CannotVoidPaidDocumentError: the owning document has received
                payment, or a live payment generated the transaction.
        """
        with unit_of_work(self._session, logger, "void", ENTITY_TYPE, transaction_id):
            self._ledger.get(transaction_id)

            payment = self._session.execute(
                select(Payment).where(Payment.transaction_id == transaction_id)
            ).scalar_one_or_none()
            if payment is not None and not any(
                payment.status == state for state in _RELEASED_PAYMENT_STATES
            ):
                raise CannotVoidPaidDocumentError(
                    payment.id, payment.amount, state_value(payment.status)
                )

            for model, entity_type in ((Bill, "Bill"), (Invoice, "Invoice")):
                document = self._session.execute(
                    select(model)
                    .where(model.transaction_id == transaction_id)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one_or_none()
                if document is not None:
                    void_document(
                        self._session,
                        self._ledger,
                        self._auditor,
                        document,
                        entity_type,
                        reason,
                        actor_id,
                    )
                    break
            else:
                self._ledger.void(transaction_id, reason, actor_id)

            transaction = self._ledger.get(transaction_id)
        return transaction

    def get_transaction(self, transaction_id: UUID) -> LedgerTransaction:
        return self._ledger.get(transaction_id)

    def get_reversal(self, transaction_id: UUID) -> LedgerTransaction | None:
        return self._ledger.get_reversal(transaction_id)

    # =========================================================================
    # Read side
    # =========================================================================

    def account_balance(self, account_id: UUID, as_of_date: date | None = None) -> Decimal:
        return self._selector.account_balance(account_id, as_of_date)

    def trial_balance(self, as_of_date: date | None = None) -> list[TrialBalanceRow]:
        return self._selector.trial_balance(as_of_date)

    def audit_trail(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        return self._auditor.get_trail(entity_type, entity_id)
