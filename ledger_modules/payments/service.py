"""
Payment application module service (``ledger_modules.payments.service``).

Responsibility
--------------
Applies cash payments against posted Bills and Invoices, keeps each
document's amount_paid and payment_status in step with its applied
payments, and reverses the ledger and counterparty effects on void.

Invariants enforced
-------------------
* ``0 <= amount_paid <= amount_due``: a payment that would push
  amount_paid past amount_due is rejected with OverpaymentError (strict,
  never clamped) and nothing changes.
* amount_paid is recomputed from the applied payments
  (``derive_payment_status``) on create, void and fail, never adjusted
  by subtraction.
* At most one payment mutation per document at a time: the document row
  is locked with ``SELECT ... FOR UPDATE`` and carries a version counter.
  A lost update surfaces as ConcurrencyConflictError.  Nothing is retried
  here; retry is the caller's decision.

Failure modes
-------------
* DocumentNotFoundError, PaymentNotFoundError.
* DocumentNotPayableError when the document is not POSTED or is voided.
* InvalidAmountError for a non-positive amount.
* IllegalStateTransitionError for a process/void/fail from the wrong status.

Audit relevance
---------------
Each payment generates a POSTED ledger transaction (bill: debit AP,
credit cash; invoice: debit cash, credit AR).  Voids reverse it and
record a PAYMENT_VOIDED audit event.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerSettings
from ledger_engines.payment_status import PaymentStatus, derive_payment_status
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntrySpec
from ledger_kernel.domain.values import ZERO, state_value, to_decimal
from ledger_kernel.exceptions import (
    DocumentNotFoundError,
    DocumentNotPayableError,
    IllegalStateTransitionError,
    InvalidAmountError,
    OverpaymentError,
    PaymentNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.transaction import (
    LedgerTransaction,
    TransactionStatus,
    TransactionType,
)
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_modules._posting_helpers import unit_of_work
from ledger_modules.payables.orm import Bill, Vendor
from ledger_modules.payments.orm import (
    APPLIED_STATES,
    FAILABLE_STATES,
    PROCESSABLE_STATES,
    VOIDABLE_STATES,
    DocumentKind,
    Payment,
    PaymentMethod,
    PaymentState,
)
from ledger_modules.receivables.orm import Customer, Invoice

logger = get_logger("modules.payments")

ENTITY_TYPE = "Payment"

_DOCUMENT_MODELS = {
    DocumentKind.BILL.value: Bill,
    DocumentKind.INVOICE.value: Invoice,
}


class PaymentApplicationService:
    """
    Payment lifecycle: PENDING -> PROCESSING -> COMPLETED (PROCESSING is
    optional), PENDING/COMPLETED -> VOIDED, PENDING/PROCESSING -> FAILED.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings()
        self._ledger = LedgerService(session, self._clock)
        self._accounts = AccountService(session)
        self._sequences = SequenceService(session)
        self._auditor = AuditorService(session, self._clock)

    # =========================================================================
    # Lookup and locking
    # =========================================================================

    def get(self, payment_id: UUID) -> Payment:
        payment = self._session.get(Payment, payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def payments_for(self, document_kind: DocumentKind | str, document_id: UUID) -> list[Payment]:
        column = Payment.bill_id if DocumentKind(document_kind) == DocumentKind.BILL else Payment.invoice_id
        return list(
            self._session.execute(
                select(Payment)
                .where(column == document_id)
                .order_by(Payment.payment_number)
            ).scalars()
        )

    def _lock_document(self, kind: DocumentKind, document_id: UUID) -> Any:
        model = _DOCUMENT_MODELS[kind.value]
        document = self._session.execute(
            select(model)
            .where(model.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def _lock_payment(self, payment_id: UUID) -> Payment:
        payment = self._session.execute(
            select(Payment)
            .where(Payment.id == payment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def _lock_counterparty(self, kind: DocumentKind, document: Any) -> Vendor | Customer:
        if kind == DocumentKind.BILL:
            model, counterparty_id = Vendor, document.vendor_id
        else:
            model, counterparty_id = Customer, document.customer_id
        return self._session.execute(
            select(model)
            .where(model.id == counterparty_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

    # =========================================================================
    # Derived state
    # =========================================================================

    def _refresh_position(self, kind: DocumentKind, document: Any) -> None:
        """Recompute amount_paid and payment_status from applied payments."""
        column = Payment.bill_id if kind == DocumentKind.BILL else Payment.invoice_id
        applied = self._session.execute(
            select(Payment.amount).where(
                column == document.id,
                Payment.status.in_([s.value for s in APPLIED_STATES]),
            )
        ).scalars().all()
        position = derive_payment_status(
            amount_due=document.amount_due,
            applied_amounts=list(applied),
            is_voided=document.payment_status == PaymentStatus.VOIDED,
        )
        document.amount_paid = position.amount_paid
        document.payment_status = position.status

    def _adjust_ytd(self, kind: DocumentKind, document: Any, payment: Payment, sign: int) -> None:
        counterparty = self._lock_counterparty(kind, document)
        field = "ytd_payments" if kind == DocumentKind.BILL else "ytd_receipts"
        year = payment.payment_date.year
        if sign > 0:
            if counterparty.ytd_year != year:
                setattr(counterparty, field, ZERO)
                counterparty.ytd_year = year
            setattr(counterparty, field, getattr(counterparty, field) + payment.amount)
            if counterparty.last_payment_date is None or payment.payment_date > counterparty.last_payment_date:
                counterparty.last_payment_date = payment.payment_date
        elif counterparty.ytd_year == year:
            setattr(counterparty, field, getattr(counterparty, field) - payment.amount)

    def _payment_entries(
        self, kind: DocumentKind, amount: Decimal, cash_account_id: UUID
    ) -> tuple[list[EntrySpec], TransactionType]:
        if kind == DocumentKind.BILL:
            ap = self._accounts.get_by_number(self._settings.accounts.accounts_payable)
            return (
                [EntrySpec.debit(ap.id, amount), EntrySpec.credit(cash_account_id, amount)],
                TransactionType.ACCOUNTS_PAYABLE,
            )
        ar = self._accounts.get_by_number(self._settings.accounts.accounts_receivable)
        return (
            [EntrySpec.debit(cash_account_id, amount), EntrySpec.credit(ar.id, amount)],
            TransactionType.ACCOUNTS_RECEIVABLE,
        )

    # =========================================================================
    # Operations
    # =========================================================================

    def create_payment(
        self,
        document_kind: DocumentKind | str,
        document_id: UUID,
        amount: Decimal | int | str,
        payment_date: date,
        method: PaymentMethod | str,
        actor_id: UUID,
        reference: str | None = None,
        memo: str | None = None,
        cash_account_id: UUID | None = None,
    ) -> Payment:
        """
        Apply a payment to a posted Bill or Invoice.

        Postconditions:
            - Payment PENDING, linked to a POSTED ledger transaction.
            - Document amount_paid / payment_status recomputed.
            - Counterparty YTD counter and last_payment_date updated.
        """
        kind = DocumentKind(document_kind)
        amount = to_decimal(amount)

        with unit_of_work(self._session, logger, "create_payment", kind.value, document_id):
            if amount <= ZERO:
                raise InvalidAmountError("amount", amount)

            document = self._lock_document(kind, document_id)
            transaction = self._session.get(LedgerTransaction, document.transaction_id)
            if (
                transaction.status != TransactionStatus.POSTED
                or document.payment_status == PaymentStatus.VOIDED
            ):
                raise DocumentNotPayableError(document_id, state_value(transaction.status))

            if document.amount_paid + amount > document.amount_due:
                logger.info(
                    "payment_rejected_overpayment",
                    extra={
                        "document_id": str(document_id),
                        "amount_due": str(document.amount_due),
                        "amount_paid": str(document.amount_paid),
                        "amount": str(amount),
                    },
                )
                raise OverpaymentError(
                    document_id,
                    document.amount_due,
                    document.amount_paid,
                    amount,
                    state_value(document.payment_status),
                )

            if cash_account_id is None:
                cash_account_id = self._accounts.get_by_number(self._settings.accounts.cash).id
            payment_number = self._sequences.next_formatted(SequenceService.PAYMENT)
            entries, transaction_type = self._payment_entries(kind, amount, cash_account_id)
            ledger_tx = self._ledger.create_and_post(
                entries,
                payment_date,
                actor_id,
                transaction_type=transaction_type,
                description=f"Payment {payment_number} on {document.invoice_number}",
                reference=reference or payment_number,
            )

            payment = Payment(
                payment_number=payment_number,
                document_kind=kind,
                bill_id=document.id if kind == DocumentKind.BILL else None,
                invoice_id=document.id if kind == DocumentKind.INVOICE else None,
                amount=amount,
                payment_date=payment_date,
                method=PaymentMethod(method),
                status=PaymentState.PENDING,
                reference=reference,
                memo=memo,
                cash_account_id=cash_account_id,
                transaction_id=ledger_tx.id,
                created_by_id=actor_id,
            )
            self._session.add(payment)
            self._session.flush()

            self._refresh_position(kind, document)
            document.updated_by_id = actor_id
            self._adjust_ytd(kind, document, payment, +1)
            self._session.flush()

            logger.info(
                "payment_created",
                extra={
                    "payment_id": str(payment.id),
                    "payment_number": payment_number,
                    "document_id": str(document_id),
                    "amount": str(amount),
                    "amount_paid": str(document.amount_paid),
                    "payment_status": state_value(document.payment_status),
                },
            )
        return payment

    def start_processing(self, payment_id: UUID, actor_id: UUID) -> Payment:
        """PENDING -> PROCESSING.  The amount stays applied to the document."""
        with unit_of_work(self._session, logger, "start_processing", ENTITY_TYPE, payment_id):
            payment = self._lock_payment(payment_id)
            if payment.status != PaymentState.PENDING:
                raise IllegalStateTransitionError(
                    ENTITY_TYPE, payment_id, state_value(payment.status), "start_processing"
                )
            payment.status = PaymentState.PROCESSING
            payment.updated_by_id = actor_id
            self._session.flush()
            logger.info(
                "payment_processing",
                extra={"payment_id": str(payment_id), "payment_number": payment.payment_number},
            )
        return payment

    def process_payment(self, payment_id: UUID, actor_id: UUID) -> Payment:
        """PENDING or PROCESSING -> COMPLETED.  Balances already moved at creation."""
        with unit_of_work(self._session, logger, "process_payment", ENTITY_TYPE, payment_id):
            payment = self._lock_payment(payment_id)
            if not any(payment.status == state for state in PROCESSABLE_STATES):
                raise IllegalStateTransitionError(
                    ENTITY_TYPE, payment_id, state_value(payment.status), "process"
                )
            payment.status = PaymentState.COMPLETED
            payment.processed_at = self._clock.now()
            payment.updated_by_id = actor_id
            self._session.flush()
            logger.info(
                "payment_processed",
                extra={"payment_id": str(payment_id), "payment_number": payment.payment_number},
            )
        return payment

    def void_payment(self, payment_id: UUID, reason: str, actor_id: UUID) -> Payment:
        """
        PENDING or COMPLETED -> VOIDED.

        Reverses the generated ledger transaction, recomputes the document's
        position from its remaining applied payments, and backs the payment
        out of the counterparty's YTD counter.
        """
        return self._release(
            payment_id, reason, actor_id,
            allowed=VOIDABLE_STATES, new_state=PaymentState.VOIDED, action="void",
        )

    def fail_payment(self, payment_id: UUID, reason: str, actor_id: UUID) -> Payment:
        """PENDING or PROCESSING -> FAILED; releases the amount like a void."""
        return self._release(
            payment_id, reason, actor_id,
            allowed=FAILABLE_STATES, new_state=PaymentState.FAILED, action="fail",
        )

    def _release(
        self,
        payment_id: UUID,
        reason: str,
        actor_id: UUID,
        allowed: tuple[PaymentState, ...],
        new_state: PaymentState,
        action: str,
    ) -> Payment:
        with unit_of_work(self._session, logger, f"{action}_payment", ENTITY_TYPE, payment_id):
            current = self.get(payment_id)
            kind = DocumentKind(current.document_kind)
            # Document before payment: the same order create_payment locks in
            document = self._lock_document(kind, current.document_id)
            payment = self._lock_payment(payment_id)
            if not any(payment.status == state for state in allowed):
                raise IllegalStateTransitionError(
                    ENTITY_TYPE, payment_id, state_value(payment.status), action
                )

            if payment.transaction_id is not None:
                self._ledger.void(payment.transaction_id, reason, actor_id)

            now = self._clock.now()
            payment.status = new_state
            if new_state == PaymentState.VOIDED:
                payment.voided_at = now
            else:
                payment.failed_at = now
            payment.void_reason = reason
            payment.updated_by_id = actor_id
            self._session.flush()

            self._refresh_position(kind, document)
            document.updated_by_id = actor_id
            self._adjust_ytd(kind, document, payment, -1)
            self._session.flush()

            if new_state == PaymentState.VOIDED:
                self._auditor.record(
                    AuditAction.PAYMENT_VOIDED,
                    ENTITY_TYPE,
                    payment.id,
                    actor_id,
                    {"reason": reason, "amount": str(payment.amount)},
                )
            logger.info(
                f"payment_{new_state.value}",
                extra={
                    "payment_id": str(payment_id),
                    "document_id": str(document.id),
                    "amount_paid": str(document.amount_paid),
                    "payment_status": state_value(document.payment_status),
                },
            )
        return payment
