"""
Shared Bill / Invoice lifecycle (``ledger_modules._document_lifecycle``).

Responsibility
--------------
Payables and receivables are mirror images: a document owns one ledger
transaction, follows that transaction's approval status
(DRAFT -> PENDING_APPROVAL -> APPROVED -> POSTED, VOIDED terminal) and
carries an orthogonal payment position (UNPAID -> PARTIALLY_PAID -> PAID,
collapsing to VOIDED).  ``DocumentLifecycleService`` implements the shared
operations; ``PayablesService`` and ``ReceivablesService`` bind the models
and the direction of the ledger entries.

Invariants enforced
-------------------
* sum(line amounts) == subtotal == amount_due (no tax computation).
* A document with amount_paid > 0 cannot be voided
  (CannotVoidPaidDocumentError).
* Recurring generation changes the template's counters only after the
  generated document has been flushed; any failure rolls back both.
* Each public method owns the unit of work (``unit_of_work``).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerSettings
from ledger_engines.payment_status import PaymentStatus, derive_payment_status
from ledger_engines.recurrence import Frequency, due_date_for, next_occurrence
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntrySpec
from ledger_kernel.domain.values import ZERO, state_value, to_decimal
from ledger_kernel.exceptions import (
    CannotVoidPaidDocumentError,
    DocumentNotFoundError,
    IllegalStateTransitionError,
    InvalidAmountError,
    RecurringTemplateInactiveError,
    TemplateNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.transaction import LedgerTransaction, TransactionType
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.ledger_service import LedgerService
from ledger_modules._posting_helpers import unit_of_work


@dataclass(frozen=True)
class LineItemSpec:
    """One line of a bill or invoice; amount = quantity * unit_price."""

    description: str
    account_id: UUID
    unit_price: Decimal
    quantity: Decimal = Decimal("1")
    fund_id: UUID | None = None
    category: str | None = None
    taxable: bool = False

    @property
    def amount(self) -> Decimal:
        return to_decimal(self.quantity) * to_decimal(self.unit_price)


@dataclass(frozen=True)
class CounterpartySummary:
    """Totals over a vendor's bills or a customer's invoices, voided excluded."""

    counterparty_id: UUID
    document_count: int
    open_count: int
    total_billed: Decimal
    total_paid: Decimal

    @property
    def outstanding(self) -> Decimal:
        return self.total_billed - self.total_paid


def void_document(
    session: Session,
    ledger: LedgerService,
    auditor: AuditorService,
    document: Any,
    entity_type: str,
    reason: str,
    actor_id: UUID,
) -> Any:
    """
    Void a locked Bill or Invoice and its ledger transaction.

    Raises:
        CannotVoidPaidDocumentError: the document has received payment.
        IllegalStateTransitionError: the document is already voided.
    """
    if document.amount_paid > ZERO:
        raise CannotVoidPaidDocumentError(
            document.id, document.amount_paid, state_value(document.payment_status)
        )
    if document.payment_status == PaymentStatus.VOIDED:
        raise IllegalStateTransitionError(
            entity_type, document.id, PaymentStatus.VOIDED.value, "void"
        )

    ledger.void(document.transaction_id, reason, actor_id)
    position = derive_payment_status(
        amount_due=document.amount_due, applied_amounts=[], is_voided=True
    )
    document.amount_paid = position.amount_paid
    document.payment_status = position.status
    document.updated_by_id = actor_id
    session.flush()

    auditor.record(
        AuditAction.DOCUMENT_VOIDED,
        entity_type,
        document.id,
        actor_id,
        {"reason": reason, "invoice_number": document.invoice_number},
    )
    return document


class DocumentLifecycleService:
    """
    Base for PayablesService and ReceivablesService.

    Subclasses set the model bindings below and implement
    ``_document_entries``.
    """

    entity_type: str
    document_model: type
    line_model: type
    counterparty_model: type
    template_model: type
    counterparty_field: str
    transaction_type: TransactionType
    control_account_role: str
    counterparty_not_found: type
    _logger = get_logger("modules.documents")

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
        self._auditor = AuditorService(session, self._clock)

    # =========================================================================
    # Hooks
    # =========================================================================

    def _document_entries(
        self,
        lines: Sequence[LineItemSpec],
        control_account_id: UUID,
        total: Decimal,
    ) -> list[EntrySpec]:
        raise NotImplementedError

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, document_id: UUID) -> Any:
        document = self._session.get(self.document_model, document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def _lock_document(self, document_id: UUID) -> Any:
        model = self.document_model
        document = self._session.execute(
            select(model)
            .where(model.id == document_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def _get_counterparty(self, counterparty_id: UUID) -> Any:
        counterparty = self._session.get(self.counterparty_model, counterparty_id)
        if counterparty is None:
            raise self.counterparty_not_found(counterparty_id)
        return counterparty

    def _get_template(self, template_id: UUID, for_update: bool = False) -> Any:
        model = self.template_model
        stmt = select(model).where(model.id == template_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        template = self._session.execute(stmt).scalar_one_or_none()
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    # =========================================================================
    # Counterparties
    # =========================================================================

    def _create_counterparty(
        self,
        code: str,
        name: str,
        actor_id: UUID,
        email: str | None = None,
        payment_terms: str | None = None,
    ) -> Any:
        with unit_of_work(self._session, self._logger, "create_counterparty", self.entity_type):
            counterparty = self.counterparty_model(
                code=code,
                name=name,
                email=email,
                payment_terms=payment_terms or self._settings.payables.default_payment_terms,
                is_active=True,
                created_by_id=actor_id,
            )
            self._session.add(counterparty)
            self._session.flush()
            self._logger.info(
                "counterparty_created",
                extra={"counterparty_id": str(counterparty.id), "code": code},
            )
        return counterparty

    # =========================================================================
    # Documents
    # =========================================================================

    def create_document(
        self,
        counterparty_id: UUID,
        invoice_number: str,
        invoice_date: date,
        line_items: Sequence[LineItemSpec],
        actor_id: UUID,
        due_date: date | None = None,
        payment_terms: str | None = None,
        description: str | None = None,
    ) -> Any:
        """
        Create a DRAFT document and its DRAFT ledger transaction.

        due_date defaults to invoice_date plus the terms in days; terms come
        from the argument, else the counterparty, else the configured default.
        """
        with unit_of_work(self._session, self._logger, "create_document", self.entity_type):
            document = self._build_document(
                counterparty_id=counterparty_id,
                invoice_number=invoice_number,
                invoice_date=invoice_date,
                line_items=line_items,
                actor_id=actor_id,
                due_date=due_date,
                payment_terms=payment_terms,
                description=description,
            )
        return document

    def _build_document(
        self,
        counterparty_id: UUID,
        invoice_number: str,
        invoice_date: date,
        line_items: Sequence[LineItemSpec],
        actor_id: UUID,
        due_date: date | None = None,
        payment_terms: str | None = None,
        description: str | None = None,
        recurring_template_id: UUID | None = None,
    ) -> Any:
        counterparty = self._get_counterparty(counterparty_id)
        if not line_items:
            raise ValidationError(f"{self.entity_type} {invoice_number} has no line items")
        for line_number, line in enumerate(line_items, start=1):
            if line.amount <= ZERO:
                raise InvalidAmountError(f"line {line_number} amount", line.amount)
        self._check_unique_number(counterparty_id, invoice_number)

        subtotal = sum((line.amount for line in line_items), ZERO)
        terms = payment_terms or counterparty.payment_terms
        if due_date is None:
            due_date = due_date_for(
                invoice_date, terms, self._settings.payables.default_payment_terms_days
            )

        control = self._accounts.get_by_number(
            getattr(self._settings.accounts, self.control_account_role)
        )
        transaction = self._ledger.create_transaction(
            self._document_entries(line_items, control.id, subtotal),
            invoice_date,
            actor_id,
            transaction_type=self.transaction_type,
            description=description or f"{self.entity_type} {invoice_number}",
            reference=invoice_number,
        )

        document = self.document_model(
            **{self.counterparty_field: counterparty_id},
            transaction_id=transaction.id,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            due_date=due_date,
            payment_terms=terms,
            description=description,
            subtotal=subtotal,
            amount_due=subtotal,
            amount_paid=ZERO,
            payment_status=PaymentStatus.UNPAID,
            recurring_template_id=recurring_template_id,
            created_by_id=actor_id,
        )
        for line_number, line in enumerate(line_items, start=1):
            document.line_items.append(
                self.line_model(
                    line_number=line_number,
                    description=line.description,
                    quantity=to_decimal(line.quantity),
                    unit_price=to_decimal(line.unit_price),
                    amount=line.amount,
                    account_id=line.account_id,
                    fund_id=line.fund_id,
                    category=line.category,
                    taxable=line.taxable,
                )
            )
        self._session.add(document)
        self._session.flush()

        self._logger.info(
            "document_created",
            extra={
                "entity_type": self.entity_type,
                "document_id": str(document.id),
                "invoice_number": invoice_number,
                "amount_due": str(subtotal),
                "due_date": due_date.isoformat(),
            },
        )
        return document

    def _check_unique_number(self, counterparty_id: UUID, invoice_number: str) -> None:
        model = self.document_model
        existing = self._session.execute(
            select(func.count(model.id)).where(
                getattr(model, self.counterparty_field) == counterparty_id,
                model.invoice_number == invoice_number,
            )
        ).scalar_one()
        if existing:
            raise ValidationError(
                f"{self.entity_type} number {invoice_number} already exists for this counterparty"
            )

    def submit_for_approval(self, document_id: UUID, actor_id: UUID) -> Any:
        with unit_of_work(self._session, self._logger, "submit", self.entity_type, document_id):
            document = self._lock_document(document_id)
            self._ledger.submit_for_approval(document.transaction_id, actor_id)
        return document

    def approve(self, document_id: UUID, approver_id: UUID) -> Any:
        with unit_of_work(self._session, self._logger, "approve", self.entity_type, document_id):
            document = self._lock_document(document_id)
            self._ledger.approve(document.transaction_id, approver_id)
        return document

    def post(self, document_id: UUID, actor_id: UUID) -> Any:
        """Post the owned transaction; the document becomes payable."""
        with unit_of_work(self._session, self._logger, "post", self.entity_type, document_id):
            document = self._lock_document(document_id)
            self._ledger.post(document.transaction_id, actor_id)
            self._logger.info(
                "document_posted",
                extra={
                    "entity_type": self.entity_type,
                    "document_id": str(document_id),
                    "amount_due": str(document.amount_due),
                },
            )
        return document

    def void(self, document_id: UUID, reason: str, actor_id: UUID) -> Any:
        with unit_of_work(self._session, self._logger, "void", self.entity_type, document_id):
            document = self._lock_document(document_id)
            void_document(
                self._session,
                self._ledger,
                self._auditor,
                document,
                self.entity_type,
                reason,
                actor_id,
            )
            self._logger.info(
                "document_voided",
                extra={"entity_type": self.entity_type, "document_id": str(document_id)},
            )
        return document

    def approval_status(self, document_id: UUID) -> str:
        document = self.get(document_id)
        transaction = self._session.get(LedgerTransaction, document.transaction_id)
        return state_value(transaction.status)

    def counterparty_summary(self, counterparty_id: UUID) -> CounterpartySummary:
        self._get_counterparty(counterparty_id)
        model = self.document_model
        documents = self._session.execute(
            select(model).where(
                getattr(model, self.counterparty_field) == counterparty_id,
                model.payment_status != PaymentStatus.VOIDED.value,
            )
        ).scalars().all()
        return CounterpartySummary(
            counterparty_id=counterparty_id,
            document_count=len(documents),
            open_count=sum(1 for d in documents if d.payment_status != PaymentStatus.PAID),
            total_billed=sum((d.amount_due for d in documents), ZERO),
            total_paid=sum((d.amount_paid for d in documents), ZERO),
        )

    # =========================================================================
    # Recurring templates
    # =========================================================================

    def create_recurring_template(
        self,
        counterparty_id: UUID,
        template_code: str,
        description: str,
        amount: Decimal,
        account_id: UUID,
        frequency: Frequency,
        next_generation_date: date,
        actor_id: UUID,
        day_of_month: int | None = None,
        fund_id: UUID | None = None,
        category: str | None = None,
        payment_terms: str | None = None,
        end_date: date | None = None,
    ) -> Any:
        with unit_of_work(self._session, self._logger, "create_template", self.entity_type):
            self._get_counterparty(counterparty_id)
            amount = to_decimal(amount)
            if amount <= ZERO:
                raise InvalidAmountError("amount", amount)
            if day_of_month is not None and not 1 <= day_of_month <= 31:
                raise ValidationError(f"day_of_month must be between 1 and 31, got {day_of_month}")
            self._accounts.get_active(account_id)

            template = self.template_model(
                **{self.counterparty_field: counterparty_id},
                template_code=template_code,
                description=description,
                amount=amount,
                account_id=account_id,
                fund_id=fund_id,
                category=category,
                payment_terms=payment_terms,
                frequency=Frequency(frequency),
                day_of_month=day_of_month,
                next_generation_date=next_generation_date,
                end_date=end_date,
                is_active=True,
                generated_count=0,
                created_by_id=actor_id,
            )
            self._session.add(template)
            self._session.flush()
            self._logger.info(
                "recurring_template_created",
                extra={
                    "template_id": str(template.id),
                    "template_code": template_code,
                    "frequency": state_value(frequency),
                },
            )
        return template

    def deactivate_recurring_template(self, template_id: UUID, actor_id: UUID) -> Any:
        with unit_of_work(self._session, self._logger, "deactivate_template", self.entity_type, template_id):
            template = self._get_template(template_id, for_update=True)
            template.is_active = False
            template.updated_by_id = actor_id
            self._session.flush()
        return template

    def due_templates(self, as_of_date: date) -> list[Any]:
        """Active templates whose next generation date has arrived."""
        model = self.template_model
        return list(
            self._session.execute(
                select(model)
                .where(model.is_active.is_(True), model.next_generation_date <= as_of_date)
                .order_by(model.next_generation_date, model.template_code)
            ).scalars()
        )

    def generate_from_recurring(self, template_id: UUID, actor_id: UUID) -> Any:
        """
        Create one DRAFT document from a template, dated today.

        The document number is ``AUTO-{template_code}-{YYYYMMDD}``; the
        template's next_generation_date advances from today by its
        frequency, pinned to day_of_month where configured.

        Raises:
            RecurringTemplateInactiveError: inactive or past end_date.
        """
        with unit_of_work(self._session, self._logger, "generate_from_recurring", self.entity_type, template_id):
            template = self._get_template(template_id, for_update=True)
            today = self._clock.today()
            if not template.is_active:
                raise RecurringTemplateInactiveError(template_id, "template is inactive")
            if template.end_date is not None and today > template.end_date:
                raise RecurringTemplateInactiveError(
                    template_id, f"template ended on {template.end_date.isoformat()}"
                )

            document = self._build_document(
                counterparty_id=getattr(template, self.counterparty_field),
                invoice_number=f"AUTO-{template.template_code}-{today:%Y%m%d}",
                invoice_date=today,
                line_items=[
                    LineItemSpec(
                        description=template.description,
                        account_id=template.account_id,
                        unit_price=template.amount,
                        fund_id=template.fund_id,
                        category=template.category,
                    )
                ],
                actor_id=actor_id,
                payment_terms=template.payment_terms,
                description=template.description,
                recurring_template_id=template.id,
            )

            # Counters move only once the document exists
            template.last_generated_date = today
            template.next_generation_date = next_occurrence(
                current=today,
                frequency=template.frequency,
                day_of_month=template.day_of_month,
            )
            template.generated_count = template.generated_count + 1
            template.updated_by_id = actor_id
            self._session.flush()

            self._logger.info(
                "recurring_document_generated",
                extra={
                    "template_id": str(template_id),
                    "document_id": str(document.id),
                    "invoice_number": document.invoice_number,
                    "next_generation_date": template.next_generation_date.isoformat(),
                },
            )
        return document
