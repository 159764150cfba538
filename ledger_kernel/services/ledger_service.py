"""
LedgerService -- the double-entry write path.

Responsibility:
    Creates balanced transactions and drives them through the status
    machine DRAFT -> PENDING_APPROVAL -> APPROVED -> POSTED, with VOIDED
    terminal.  Posting applies fund deltas to Fund running balances;
    voiding a posted transaction writes a reversing transaction instead of
    deleting history.

Architecture position:
    Kernel > Services -- imperative shell.  Every module (payables,
    receivables, payments, funds, banking) posts through this service.

Invariants enforced:
    - sum(debits) == sum(credits) before anything is written
      (UnbalancedEntriesError); an empty entry list is EmptyEntriesError.
    - Every entry has exactly one positive side (InvalidEntryError).
    - Entries reference active accounts and available funds.
    - approve only from DRAFT/PENDING_APPROVAL; post only from APPROVED;
      posting an already POSTED transaction is a no-op so callers may
      retry safely.
    - Fund rows are locked in id order before their balances change; a
      restricted fund going negative raises InsufficientFundBalanceError.
    - Flush-only.  A rejected call leaves no partial write once the caller
      rolls back.

Failure modes:
    - TransactionNotFoundError, AccountNotFoundError, FundNotFoundError.
    - IllegalStateTransitionError for any non-edge transition.
    - ClosedPeriodError for dates in a closed fiscal period.

Audit relevance:
    create/approve/post/void each append an AuditEvent and emit a
    structured log record with the transaction number and amount.
"""

from collections import defaultdict
from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntrySpec
from ledger_kernel.domain.values import ZERO, state_value
from ledger_kernel.exceptions import (
    EmptyEntriesError,
    FundNotAvailableError,
    FundNotFoundError,
    IllegalStateTransitionError,
    InsufficientFundBalanceError,
    InvalidEntryError,
    TransactionNotFoundError,
    UnbalancedEntriesError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.fund import Fund
from ledger_kernel.models.transaction import (
    APPROVABLE_STATUSES,
    LedgerTransaction,
    TransactionEntry,
    TransactionStatus,
    TransactionType,
)
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.ledger")

ENTITY_TYPE = "LedgerTransaction"


def validate_entries(entries: Sequence[EntrySpec]) -> Decimal:
    """
    Check shape and balance of an entry set; return the debit total.

    Raises:
        EmptyEntriesError: no entries.
        InvalidEntryError: an entry with a negative side, both sides, or none.
        UnbalancedEntriesError: debits != credits.
    """
    if not entries:
        raise EmptyEntriesError()

    for line_number, spec in enumerate(entries, start=1):
        if spec.debit_amount < ZERO or spec.credit_amount < ZERO:
            raise InvalidEntryError(line_number, "amounts must be non-negative")
        if (spec.debit_amount > ZERO) == (spec.credit_amount > ZERO):
            raise InvalidEntryError(line_number, "exactly one of debit/credit must be non-zero")

    debits = sum((e.debit_amount for e in entries), ZERO)
    credits = sum((e.credit_amount for e in entries), ZERO)
    if debits != credits:
        raise UnbalancedEntriesError(debits, credits)
    return debits


def fund_deltas(entries: Sequence[EntrySpec] | Sequence[TransactionEntry]) -> dict[UUID, Decimal]:
    """Net credit-minus-debit effect per fund for fund-tagged entries."""
    deltas: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    for entry in entries:
        if entry.fund_id is not None:
            deltas[entry.fund_id] += entry.credit_amount - entry.debit_amount
    return dict(deltas)


class LedgerService(BaseService[LedgerTransaction]):
    """
    Write-side service for ledger transactions.

    Usage:
        ledger = LedgerService(session, clock)
        tx = ledger.create_transaction(entries, date(2024, 3, 1), actor_id=user)
        ledger.approve(tx.id, approver_id=manager)
        ledger.post(tx.id, actor_id=manager)
    """

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._accounts = AccountService(session)
        self._periods = PeriodService(session, self._clock)
        self._sequences = SequenceService(session)
        self._auditor = AuditorService(session, self._clock)

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, transaction_id: UUID) -> LedgerTransaction:
        transaction = self.session.get(LedgerTransaction, transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def get_for_update(self, transaction_id: UUID) -> LedgerTransaction:
        """Load and row-lock a transaction, refreshing any cached state."""
        transaction = self.session.execute(
            select(LedgerTransaction)
            .where(LedgerTransaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    def get_reversal(self, transaction_id: UUID) -> LedgerTransaction | None:
        return self.session.execute(
            select(LedgerTransaction).where(LedgerTransaction.reversal_of_id == transaction_id)
        ).scalar_one_or_none()

    # =========================================================================
    # Create
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
        """
        Create a DRAFT transaction from a balanced entry set.

        Preconditions:
            - entries is non-empty and balanced.
            - every account is active; every fund exists and is available
              on ``transaction_date``.
        Postconditions:
            - a DRAFT LedgerTransaction with one TransactionEntry per spec,
              numbered from the transaction sequence, flushed.
        """
        total = validate_entries(entries)
        self._validate_references(entries, transaction_date)
        period = self._periods.validate_posting_date(transaction_date)

        transaction = LedgerTransaction(
            transaction_number=self._sequences.next_formatted(SequenceService.TRANSACTION),
            transaction_type=transaction_type,
            transaction_date=transaction_date,
            description=description,
            reference=reference,
            amount=total,
            status=TransactionStatus.DRAFT,
            fiscal_period_id=period.id if period is not None else None,
            created_by_id=actor_id,
        )
        for line_number, spec in enumerate(entries, start=1):
            transaction.entries.append(
                TransactionEntry(
                    line_number=line_number,
                    account_id=spec.account_id,
                    fund_id=spec.fund_id,
                    debit_amount=spec.debit_amount,
                    credit_amount=spec.credit_amount,
                    memo=spec.memo,
                )
            )
        self.session.add(transaction)
        self.session.flush()

        self._auditor.record(
            AuditAction.TRANSACTION_CREATED,
            ENTITY_TYPE,
            transaction.id,
            actor_id,
            {"transaction_number": transaction.transaction_number, "amount": str(total)},
        )
        logger.info(
            "transaction_created",
            extra={
                "transaction_id": str(transaction.id),
                "transaction_number": transaction.transaction_number,
                "transaction_type": state_value(transaction_type),
                "amount": str(total),
                "entry_count": len(entries),
            },
        )
        return transaction

    def _validate_references(self, entries: Sequence[EntrySpec], on_date: date) -> None:
        for spec in entries:
            self._accounts.get_active(spec.account_id)
        for fund_id in {e.fund_id for e in entries if e.fund_id is not None}:
            fund = self.session.get(Fund, fund_id)
            if fund is None:
                raise FundNotFoundError(fund_id)
            if not fund.is_available_on(on_date):
                raise FundNotAvailableError(
                    fund_id, f"not available on {on_date.isoformat()}"
                )

    # =========================================================================
    # Status transitions
    # =========================================================================

    def submit_for_approval(self, transaction_id: UUID, actor_id: UUID) -> LedgerTransaction:
        transaction = self.get_for_update(transaction_id)
        if transaction.status != TransactionStatus.DRAFT:
            raise IllegalStateTransitionError(
                ENTITY_TYPE, transaction_id, state_value(transaction.status), "submit"
            )
        transaction.status = TransactionStatus.PENDING_APPROVAL
        transaction.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "transaction_submitted",
            extra={"transaction_id": str(transaction_id)},
        )
        return transaction

    def approve(self, transaction_id: UUID, approver_id: UUID) -> LedgerTransaction:
        """DRAFT or PENDING_APPROVAL -> APPROVED; records approver and time."""
        transaction = self.get_for_update(transaction_id)
        if transaction.status not in APPROVABLE_STATUSES:
            raise IllegalStateTransitionError(
                ENTITY_TYPE, transaction_id, state_value(transaction.status), "approve"
            )
        transaction.status = TransactionStatus.APPROVED
        transaction.approved_by_id = approver_id
        transaction.approved_at = self._clock.now()
        transaction.updated_by_id = approver_id
        self.session.flush()

        self._auditor.record(
            AuditAction.TRANSACTION_APPROVED, ENTITY_TYPE, transaction.id, approver_id
        )
        logger.info(
            "transaction_approved",
            extra={
                "transaction_id": str(transaction_id),
                "transaction_number": transaction.transaction_number,
            },
        )
        return transaction

    def post(self, transaction_id: UUID, actor_id: UUID) -> LedgerTransaction:
        """
        APPROVED -> POSTED.  Already POSTED is a no-op.

        Posting is when fund and account balances become authoritative: fund
        deltas are applied to Fund.balance here under row locks.
        """
        transaction = self.get_for_update(transaction_id)
        if transaction.status == TransactionStatus.POSTED:
            logger.info(
                "transaction_post_idempotent",
                extra={"transaction_id": str(transaction_id)},
            )
            return transaction
        if transaction.status != TransactionStatus.APPROVED:
            raise IllegalStateTransitionError(
                ENTITY_TYPE, transaction_id, state_value(transaction.status), "post"
            )

        self._periods.validate_posting_date(transaction.transaction_date)
        self.apply_fund_deltas(fund_deltas(transaction.entries))

        transaction.status = TransactionStatus.POSTED
        transaction.posted_by_id = actor_id
        transaction.posted_at = self._clock.now()
        transaction.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record(
            AuditAction.TRANSACTION_POSTED,
            ENTITY_TYPE,
            transaction.id,
            actor_id,
            {"amount": str(transaction.amount)},
        )
        logger.info(
            "transaction_posted",
            extra={
                "transaction_id": str(transaction_id),
                "transaction_number": transaction.transaction_number,
                "amount": str(transaction.amount),
            },
        )
        return transaction

    def create_and_post(
        self,
        entries: Sequence[EntrySpec],
        transaction_date: date,
        actor_id: UUID,
        transaction_type: TransactionType = TransactionType.JOURNAL_ENTRY,
        description: str | None = None,
        reference: str | None = None,
    ) -> LedgerTransaction:
        """System-generated postings (payments, transfers) skip manual approval."""
        transaction = self.create_transaction(
            entries,
            transaction_date,
            actor_id,
            transaction_type=transaction_type,
            description=description,
            reference=reference,
        )
        self.approve(transaction.id, actor_id)
        return self.post(transaction.id, actor_id)

    def void(self, transaction_id: UUID, reason: str, actor_id: UUID) -> LedgerTransaction:
        """
        Void a transaction.

        A POSTED transaction gets a POSTED reversing transaction dated on the
        void date (or the original date, if later) with every entry's sides
        swapped, and its fund deltas are undone.  A transaction that never
        posted is simply marked VOIDED.

        Dependent-document guards (payments received) are the caller's
        responsibility; see GeneralLedgerService.void.
        """
        transaction = self.get_for_update(transaction_id)
        if transaction.status == TransactionStatus.VOIDED:
            raise IllegalStateTransitionError(
                ENTITY_TYPE, transaction_id, state_value(transaction.status), "void"
            )

        reversal = None
        if transaction.status == TransactionStatus.POSTED:
            reversal = self._write_reversal(transaction, actor_id)

        transaction.status = TransactionStatus.VOIDED
        transaction.voided_by_id = actor_id
        transaction.voided_at = self._clock.now()
        transaction.void_reason = reason
        transaction.updated_by_id = actor_id
        self.session.flush()

        self._auditor.record(
            AuditAction.TRANSACTION_VOIDED,
            ENTITY_TYPE,
            transaction.id,
            actor_id,
            {
                "reason": reason,
                "reversal_id": str(reversal.id) if reversal is not None else None,
            },
        )
        logger.info(
            "transaction_voided",
            extra={
                "transaction_id": str(transaction_id),
                "transaction_number": transaction.transaction_number,
                "reversed": reversal is not None,
            },
        )
        return transaction

    def _write_reversal(self, original: LedgerTransaction, actor_id: UUID) -> LedgerTransaction:
        reversal_date = max(original.transaction_date, self._clock.today())
        period = self._periods.validate_posting_date(reversal_date)
        now = self._clock.now()

        reversal = LedgerTransaction(
            transaction_number=self._sequences.next_formatted(SequenceService.TRANSACTION),
            transaction_type=original.transaction_type,
            transaction_date=reversal_date,
            description=f"Reversal of {original.transaction_number}",
            reference=original.reference,
            amount=original.amount,
            status=TransactionStatus.POSTED,
            fiscal_period_id=period.id if period is not None else None,
            approved_by_id=actor_id,
            approved_at=now,
            posted_by_id=actor_id,
            posted_at=now,
            reversal_of_id=original.id,
            created_by_id=actor_id,
        )
        for entry in original.entries:
            reversal.entries.append(
                TransactionEntry(
                    line_number=entry.line_number,
                    account_id=entry.account_id,
                    fund_id=entry.fund_id,
                    debit_amount=entry.credit_amount,
                    credit_amount=entry.debit_amount,
                    memo=entry.memo,
                )
            )
        self.apply_fund_deltas(fund_deltas(reversal.entries))
        self.session.add(reversal)
        self.session.flush()

        logger.info(
            "transaction_reversal_posted",
            extra={
                "original_id": str(original.id),
                "reversal_id": str(reversal.id),
                "reversal_date": reversal_date.isoformat(),
            },
        )
        return reversal

    # =========================================================================
    # Fund balances
    # =========================================================================

    def lock_funds(self, fund_ids: Sequence[UUID]) -> dict[UUID, Fund]:
        """Row-lock funds in id order (a fixed order avoids deadlocks)."""
        ordered = sorted(set(fund_ids), key=str)
        if not ordered:
            return {}
        funds = self.session.execute(
            select(Fund)
            .where(Fund.id.in_(ordered))
            .order_by(Fund.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
        found = {fund.id: fund for fund in funds}
        for fund_id in ordered:
            if fund_id not in found:
                raise FundNotFoundError(fund_id)
        return found

    def apply_fund_deltas(self, deltas: dict[UUID, Decimal]) -> None:
        """
        Add each delta to its fund's running balance.

        Raises:
            InsufficientFundBalanceError: a restricted fund would go negative.
                No balance is changed in that case.
        """
        funds = self.lock_funds(list(deltas))
        for fund_id, delta in deltas.items():
            fund = funds[fund_id]
            if fund.is_restricted and fund.balance + delta < ZERO:
                raise InsufficientFundBalanceError(fund_id, fund.balance, -delta)
        for fund_id, delta in deltas.items():
            if delta != ZERO:
                funds[fund_id].balance = funds[fund_id].balance + delta
        self.session.flush()
