"""
Bank reconciliation module service (``ledger_modules.banking.service``).

Responsibility
--------------
Bank accounts, statement line import, and the reconciliation workflow:
open a reconciliation for a statement period, auto-match statement lines
against posted cash activity, resolve the rest by hand (match, exclude,
reset), and complete once the adjusted statement balance agrees with
the ledger side.

Architecture position
---------------------
Modules layer.  Candidate selection reads through LedgerSelector; the
assignment itself is the pure ``BankMatchingEngine``.  Each public
method owns its unit of work.

Invariants enforced
-------------------
* A ledger transaction is held by at most one bank line.
* One IN_PROGRESS reconciliation per bank account, guarded by a row lock
  on the bank account.
* Auto-match runs lock the reconciliation and bank account rows, so two
  runs for the same account serialize.
* Completion requires no pending lines in the period and
  ``statement_ending_balance + sum(adjustments) ==
  sum(matched amounts) + beginning_ledger_balance`` exactly.
* COMPLETED and ABANDONED reconciliations are immutable except for notes.

Audit relevance
---------------
Completion and abandonment record AuditEvents.  Exclusions carry a
statement adjustment so every excluded line is visible on the statement
side of the equation.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerSettings
from ledger_engines.bank_matching import (
    BankLine,
    BankMatchingEngine,
    LedgerCandidate,
    MatchOutcome,
)
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.values import ZERO, state_value, to_decimal
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    AmountMismatchError,
    BankAccountNotFoundError,
    BankTransactionNotFoundError,
    IllegalStateTransitionError,
    ReconciliationClosedError,
    ReconciliationIncompleteError,
    ReconciliationInProgressError,
    ReconciliationNotFoundError,
    StateConflictError,
    TransactionAlreadyMatchedError,
    UnbalancedReconciliationError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.transaction import LedgerTransaction, TransactionStatus
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.auditor_service import AuditorService
from ledger_modules._posting_helpers import unit_of_work
from ledger_modules.banking.orm import (
    AUTO_MATCHABLE_STATUSES,
    PENDING_STATUSES,
    AdjustmentType,
    BankAccount,
    BankMatchStatus,
    BankReconciliation,
    BankStatementAdjustment,
    BankTransaction,
    ReconciliationStatus,
)

logger = get_logger("modules.banking")

ENTITY_TYPE = "BankReconciliation"

# Statuses reset_transaction_match returns to UNMATCHED
_RESETTABLE_STATUSES = (
    BankMatchStatus.MATCHED,
    BankMatchStatus.EXCLUDED,
    BankMatchStatus.POTENTIAL_MATCH,
    BankMatchStatus.NEEDS_REVIEW,
)


@dataclass(frozen=True)
class BankTransactionRecord:
    """One statement line, already mapped from the bank's export format."""

    transaction_date: date
    description: str
    amount: Decimal
    reference: str | None = None


@dataclass(frozen=True)
class MatchRunResult:
    reconciliation_id: UUID
    considered: int
    matched: int
    potential_matches: int
    unmatched: int
    needs_review: int


@dataclass(frozen=True)
class ReconciliationSummary:
    reconciliation_id: UUID
    status: str
    counts_by_status: dict[str, int]
    matched_total: Decimal
    adjustment_total: Decimal
    statement_ending_balance: Decimal
    beginning_ledger_balance: Decimal

    @property
    def adjusted_statement_balance(self) -> Decimal:
        return self.statement_ending_balance + self.adjustment_total

    @property
    def expected_balance(self) -> Decimal:
        return self.matched_total + self.beginning_ledger_balance

    @property
    def difference(self) -> Decimal:
        return self.adjusted_statement_balance - self.expected_balance

    @property
    def is_balanced(self) -> bool:
        return self.difference == ZERO

    @property
    def pending_count(self) -> int:
        return sum(self.counts_by_status.get(s.value, 0) for s in PENDING_STATUSES)


class BankReconciliationService:
    """
    Usage::

        banking = BankReconciliationService(session, clock, settings)
        recon = banking.create_reconciliation(
            account.id, date(2024, 3, 1), date(2024, 3, 31),
            Decimal("10000"), Decimal("11275"), actor_id=user,
        )
        banking.match_transactions(recon.id)
        banking.complete_reconciliation(recon.id, actor_id=user)
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
        self._selector = LedgerSelector(session)
        self._auditor = AuditorService(session, self._clock)
        self._engine = BankMatchingEngine()

    # =========================================================================
    # Lookup and locking
    # =========================================================================

    def get_bank_account(self, bank_account_id: UUID) -> BankAccount:
        account = self._session.get(BankAccount, bank_account_id)
        if account is None:
            raise BankAccountNotFoundError(bank_account_id)
        return account

    def get_reconciliation(self, reconciliation_id: UUID) -> BankReconciliation:
        reconciliation = self._session.get(BankReconciliation, reconciliation_id)
        if reconciliation is None:
            raise ReconciliationNotFoundError(reconciliation_id)
        return reconciliation

    def get_bank_transaction(self, bank_transaction_id: UUID) -> BankTransaction:
        line = self._session.get(BankTransaction, bank_transaction_id)
        if line is None:
            raise BankTransactionNotFoundError(bank_transaction_id)
        return line

    def _lock(self, model, entity_id: UUID, not_found):
        row = self._session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise not_found(entity_id)
        return row

    def _lock_reconciliation(self, reconciliation_id: UUID) -> BankReconciliation:
        reconciliation = self._lock(
            BankReconciliation, reconciliation_id, ReconciliationNotFoundError
        )
        self._lock(BankAccount, reconciliation.bank_account_id, BankAccountNotFoundError)
        return reconciliation

    @staticmethod
    def _require_in_progress(reconciliation: BankReconciliation) -> None:
        if not reconciliation.is_in_progress:
            raise ReconciliationClosedError(reconciliation.id, state_value(reconciliation.status))

    def _in_progress_for(self, bank_account_id: UUID) -> BankReconciliation | None:
        return self._session.execute(
            select(BankReconciliation).where(
                BankReconciliation.bank_account_id == bank_account_id,
                BankReconciliation.status == ReconciliationStatus.IN_PROGRESS.value,
            )
        ).scalar_one_or_none()

    def _guard_line_editable(self, line: BankTransaction) -> None:
        """A line inside a completed reconciliation period is frozen."""
        completed = self._session.execute(
            select(BankReconciliation.id).where(
                BankReconciliation.bank_account_id == line.bank_account_id,
                BankReconciliation.status == ReconciliationStatus.COMPLETED.value,
                BankReconciliation.period_start <= line.transaction_date,
                BankReconciliation.period_end >= line.transaction_date,
            )
        ).scalars().first()
        if completed is not None:
            raise ReconciliationClosedError(completed, ReconciliationStatus.COMPLETED.value)

    def _period_lines(self, reconciliation: BankReconciliation, statuses=None) -> list[BankTransaction]:
        query = select(BankTransaction).where(
            BankTransaction.bank_account_id == reconciliation.bank_account_id,
            BankTransaction.transaction_date >= reconciliation.period_start,
            BankTransaction.transaction_date <= reconciliation.period_end,
        )
        if statuses is not None:
            query = query.where(BankTransaction.match_status.in_([s.value for s in statuses]))
        query = query.order_by(BankTransaction.transaction_date, BankTransaction.id)
        return list(self._session.execute(query).scalars())

    def _holder_of(self, transaction_id: UUID) -> BankTransaction | None:
        return self._session.execute(
            select(BankTransaction).where(BankTransaction.matched_transaction_id == transaction_id)
        ).scalar_one_or_none()

    # =========================================================================
    # Accounts and import
    # =========================================================================

    def create_bank_account(
        self,
        name: str,
        gl_account_id: UUID,
        actor_id: UUID,
        bank_name: str | None = None,
        account_number_masked: str | None = None,
    ) -> BankAccount:
        with unit_of_work(self._session, logger, "create_bank_account", "BankAccount"):
            if self._session.get(Account, gl_account_id) is None:
                raise AccountNotFoundError(gl_account_id)
            account = BankAccount(
                name=name,
                gl_account_id=gl_account_id,
                bank_name=bank_name,
                account_number_masked=account_number_masked,
                is_active=True,
                created_by_id=actor_id,
            )
            self._session.add(account)
            self._session.flush()
        return account

    def import_transactions(
        self,
        bank_account_id: UUID,
        records: Sequence[BankTransactionRecord | Mapping],
        actor_id: UUID,
    ) -> list[BankTransaction]:
        """Persist statement lines as UNMATCHED under one import batch id."""
        batch = uuid.uuid4().hex
        with unit_of_work(self._session, logger, "import_transactions", "BankAccount", bank_account_id):
            self.get_bank_account(bank_account_id)
            lines = []
            for record in records:
                if isinstance(record, Mapping):
                    record = BankTransactionRecord(**record)
                line = BankTransaction(
                    bank_account_id=bank_account_id,
                    transaction_date=record.transaction_date,
                    description=record.description,
                    amount=to_decimal(record.amount),
                    reference=record.reference,
                    match_status=BankMatchStatus.UNMATCHED.value,
                    import_batch=batch,
                    created_by_id=actor_id,
                )
                self._session.add(line)
                lines.append(line)
            self._session.flush()
            logger.info(
                "bank_transactions_imported",
                extra={
                    "bank_account_id": str(bank_account_id),
                    "import_batch": batch,
                    "line_count": len(lines),
                },
            )
        return lines

    # =========================================================================
    # Reconciliation lifecycle
    # =========================================================================

    def create_reconciliation(
        self,
        bank_account_id: UUID,
        period_start: date,
        period_end: date,
        statement_beginning_balance: Decimal | int | str,
        statement_ending_balance: Decimal | int | str,
        actor_id: UUID,
    ) -> BankReconciliation:
        if period_end < period_start:
            raise ValidationError(
                f"Reconciliation period ends ({period_end}) before it starts ({period_start})"
            )
        with unit_of_work(self._session, logger, "create_reconciliation", ENTITY_TYPE):
            account = self._lock(BankAccount, bank_account_id, BankAccountNotFoundError)
            existing = self._in_progress_for(bank_account_id)
            if existing is not None:
                raise ReconciliationInProgressError(bank_account_id, existing.id)

            reconciliation = BankReconciliation(
                bank_account_id=bank_account_id,
                period_start=period_start,
                period_end=period_end,
                statement_beginning_balance=to_decimal(statement_beginning_balance),
                statement_ending_balance=to_decimal(statement_ending_balance),
                beginning_ledger_balance=self._selector.balance_before(
                    account.gl_account_id, period_start
                ),
                status=ReconciliationStatus.IN_PROGRESS.value,
                created_by_id=actor_id,
            )
            self._session.add(reconciliation)
            self._session.flush()
            logger.info(
                "reconciliation_created",
                extra={
                    "reconciliation_id": str(reconciliation.id),
                    "bank_account_id": str(bank_account_id),
                    "period_start": period_start.isoformat(),
                    "period_end": period_end.isoformat(),
                    "beginning_ledger_balance": str(reconciliation.beginning_ledger_balance),
                },
            )
        return reconciliation

    def match_transactions(
        self,
        reconciliation_id: UUID,
        tolerance_days: int | None = None,
    ) -> MatchRunResult:
        """
        Auto-match the period's UNMATCHED and POTENTIAL_MATCH lines.

        MATCHED lines whose ledger transaction has since been voided are
        first moved to NEEDS_REVIEW and release it.
        """
        if tolerance_days is None:
            tolerance_days = self._settings.matching.date_tolerance_days

        with unit_of_work(self._session, logger, "match_transactions", ENTITY_TYPE, reconciliation_id):
            reconciliation = self._lock_reconciliation(reconciliation_id)
            self._require_in_progress(reconciliation)
            gl_account_id = reconciliation.bank_account.gl_account_id

            needs_review = self._flag_voided_matches(reconciliation)

            lines = self._period_lines(reconciliation, AUTO_MATCHABLE_STATUSES)
            held = set(
                self._session.execute(
                    select(BankTransaction.matched_transaction_id).where(
                        BankTransaction.matched_transaction_id.is_not(None)
                    )
                ).scalars()
            )
            candidates = [
                LedgerCandidate(
                    transaction_id=activity.transaction_id,
                    transaction_number=activity.transaction_number,
                    transaction_date=activity.transaction_date,
                    amount=activity.amount,
                    reference=activity.reference,
                )
                for activity in self._selector.cash_activity(
                    gl_account_id,
                    reconciliation.period_start - timedelta(days=tolerance_days),
                    reconciliation.period_end + timedelta(days=tolerance_days),
                )
                if activity.transaction_id not in held
            ]

            decisions = self._engine.assign(
                lines=[
                    BankLine(
                        bank_transaction_id=line.id,
                        transaction_date=line.transaction_date,
                        amount=line.amount,
                        reference=line.reference,
                    )
                    for line in lines
                ],
                candidates=candidates,
                tolerance_days=tolerance_days,
            )

            by_id = {line.id: line for line in lines}
            now = self._clock.now()
            counts = {outcome: 0 for outcome in MatchOutcome}
            for decision in decisions:
                line = by_id[decision.bank_transaction_id]
                counts[decision.outcome] += 1
                if decision.outcome == MatchOutcome.MATCHED:
                    line.match_status = BankMatchStatus.MATCHED.value
                    line.matched_transaction_id = decision.transaction_id
                    line.suggested_transaction_id = None
                    line.matched_at = now
                    line.matched_by_id = None
                    line.match_notes = decision.notes
                elif decision.outcome == MatchOutcome.POTENTIAL_MATCH:
                    line.match_status = BankMatchStatus.POTENTIAL_MATCH.value
                    line.suggested_transaction_id = decision.transaction_id
                    line.match_notes = decision.notes
                else:
                    line.match_status = BankMatchStatus.UNMATCHED.value
                    line.suggested_transaction_id = None
            self._session.flush()

            result = MatchRunResult(
                reconciliation_id=reconciliation_id,
                considered=len(lines),
                matched=counts[MatchOutcome.MATCHED],
                potential_matches=counts[MatchOutcome.POTENTIAL_MATCH],
                unmatched=counts[MatchOutcome.UNMATCHED],
                needs_review=needs_review,
            )
            logger.info(
                "match_run_completed",
                extra={
                    "reconciliation_id": str(reconciliation_id),
                    "tolerance_days": tolerance_days,
                    "considered": result.considered,
                    "matched": result.matched,
                    "potential_matches": result.potential_matches,
                    "unmatched": result.unmatched,
                    "needs_review": result.needs_review,
                },
            )
        return result

    def _flag_voided_matches(self, reconciliation: BankReconciliation) -> int:
        flagged = 0
        for line in self._period_lines(reconciliation, (BankMatchStatus.MATCHED,)):
            transaction = self._session.get(LedgerTransaction, line.matched_transaction_id)
            if transaction is not None and transaction.status == TransactionStatus.POSTED:
                continue
            logger.warning(
                "matched_transaction_no_longer_posted",
                extra={
                    "bank_transaction_id": str(line.id),
                    "transaction_id": str(line.matched_transaction_id),
                },
            )
            line.match_status = BankMatchStatus.NEEDS_REVIEW.value
            line.match_notes = f"matched transaction {line.matched_transaction_id} was voided"
            line.matched_transaction_id = None
            line.matched_at = None
            flagged += 1
        if flagged:
            self._session.flush()
        return flagged

    def manually_match_transaction(
        self,
        bank_transaction_id: UUID,
        ledger_transaction_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
    ) -> BankTransaction:
        """
        Pair a statement line with a posted ledger transaction by hand.

        Raises:
            TransactionAlreadyMatchedError: another line holds the transaction.
            AmountMismatchError: the transaction's cash effect differs from
                the bank amount.
        """
        with unit_of_work(self._session, logger, "manual_match", "BankTransaction", bank_transaction_id):
            line = self._lock(BankTransaction, bank_transaction_id, BankTransactionNotFoundError)
            self._lock(BankAccount, line.bank_account_id, BankAccountNotFoundError)
            self._guard_line_editable(line)
            if line.match_status == BankMatchStatus.EXCLUDED:
                raise IllegalStateTransitionError(
                    "BankTransaction", line.id, state_value(line.match_status), "match"
                )

            transaction = self._session.get(LedgerTransaction, ledger_transaction_id)
            if transaction is None or transaction.status != TransactionStatus.POSTED:
                raise ValidationError(
                    f"Ledger transaction {ledger_transaction_id} is not posted"
                )
            gl_account_id = self.get_bank_account(line.bank_account_id).gl_account_id
            cash_amount = self._selector.transaction_cash_amount(ledger_transaction_id, gl_account_id)
            if cash_amount is None:
                raise ValidationError(
                    f"Ledger transaction {ledger_transaction_id} does not touch the bank's cash account"
                )

            holder = self._holder_of(ledger_transaction_id)
            if holder is not None and holder.id != line.id:
                raise TransactionAlreadyMatchedError(ledger_transaction_id, holder.id)
            if cash_amount != line.amount:
                raise AmountMismatchError(line.amount, cash_amount, "manual bank match")

            line.match_status = BankMatchStatus.MATCHED.value
            line.matched_transaction_id = ledger_transaction_id
            line.suggested_transaction_id = None
            line.matched_at = self._clock.now()
            line.matched_by_id = actor_id
            line.match_notes = notes
            self._session.flush()
            logger.info(
                "bank_transaction_matched",
                extra={
                    "bank_transaction_id": str(line.id),
                    "transaction_id": str(ledger_transaction_id),
                    "manual": True,
                },
            )
        return line

    def exclude_transaction(
        self,
        bank_transaction_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
        adjustment_type: AdjustmentType = AdjustmentType.EXCLUDED_ITEM,
    ) -> BankTransaction:
        """
        Take a statement line out of matching.

        The in-progress reconciliation gets an adjustment of the negated
        bank amount, so the line leaves the statement side.  The line must
        be dated inside that reconciliation's period.
        """
        with unit_of_work(self._session, logger, "exclude", "BankTransaction", bank_transaction_id):
            line = self._lock(BankTransaction, bank_transaction_id, BankTransactionNotFoundError)
            self._lock(BankAccount, line.bank_account_id, BankAccountNotFoundError)
            self._guard_line_editable(line)
            if line.match_status == BankMatchStatus.EXCLUDED:
                raise IllegalStateTransitionError(
                    "BankTransaction", line.id, state_value(line.match_status), "exclude"
                )
            reconciliation = self._in_progress_for(line.bank_account_id)
            if reconciliation is None:
                raise StateConflictError(
                    f"Bank account {line.bank_account_id} has no reconciliation in progress"
                )
            if not reconciliation.period_start <= line.transaction_date <= reconciliation.period_end:
                raise ValidationError(
                    f"Bank transaction dated {line.transaction_date} is outside reconciliation "
                    f"period {reconciliation.period_start} to {reconciliation.period_end}"
                )

            line.match_status = BankMatchStatus.EXCLUDED.value
            line.matched_transaction_id = None
            line.suggested_transaction_id = None
            line.matched_at = self._clock.now()
            line.matched_by_id = actor_id
            line.match_notes = notes
            reconciliation.adjustments.append(
                BankStatementAdjustment(
                    adjustment_type=AdjustmentType(adjustment_type).value,
                    amount=-line.amount,
                    description=notes or f"Excluded: {line.description}",
                    bank_transaction_id=line.id,
                    created_by_id=actor_id,
                )
            )
            self._session.flush()
            logger.info(
                "bank_transaction_excluded",
                extra={
                    "bank_transaction_id": str(line.id),
                    "reconciliation_id": str(reconciliation.id),
                    "amount": str(line.amount),
                },
            )
        return line

    def reset_transaction_match(self, bank_transaction_id: UUID, actor_id: UUID) -> BankTransaction:
        """Return a line to UNMATCHED, releasing any held transaction or exclusion."""
        with unit_of_work(self._session, logger, "reset_match", "BankTransaction", bank_transaction_id):
            line = self._lock(BankTransaction, bank_transaction_id, BankTransactionNotFoundError)
            self._lock(BankAccount, line.bank_account_id, BankAccountNotFoundError)
            self._guard_line_editable(line)
            if not any(line.match_status == s for s in _RESETTABLE_STATUSES):
                raise IllegalStateTransitionError(
                    "BankTransaction", line.id, state_value(line.match_status), "reset"
                )

            if line.match_status == BankMatchStatus.EXCLUDED:
                adjustments = self._session.execute(
                    select(BankStatementAdjustment)
                    .join(BankReconciliation)
                    .where(
                        BankStatementAdjustment.bank_transaction_id == line.id,
                        BankReconciliation.status == ReconciliationStatus.IN_PROGRESS.value,
                    )
                ).scalars().all()
                for adjustment in adjustments:
                    adjustment.reconciliation.adjustments.remove(adjustment)

            line.match_status = BankMatchStatus.UNMATCHED.value
            line.matched_transaction_id = None
            line.suggested_transaction_id = None
            line.matched_at = None
            line.matched_by_id = None
            line.match_notes = None
            line.updated_by_id = actor_id
            self._session.flush()
            logger.info("bank_transaction_reset", extra={"bank_transaction_id": str(line.id)})
        return line

    # =========================================================================
    # Adjustments and notes
    # =========================================================================

    def add_adjustment(
        self,
        reconciliation_id: UUID,
        adjustment_type: AdjustmentType,
        amount: Decimal | int | str,
        description: str,
        actor_id: UUID,
    ) -> BankStatementAdjustment:
        with unit_of_work(self._session, logger, "add_adjustment", ENTITY_TYPE, reconciliation_id):
            reconciliation = self._lock_reconciliation(reconciliation_id)
            self._require_in_progress(reconciliation)
            adjustment = BankStatementAdjustment(
                adjustment_type=AdjustmentType(adjustment_type).value,
                amount=to_decimal(amount),
                description=description,
                created_by_id=actor_id,
            )
            reconciliation.adjustments.append(adjustment)
            self._session.flush()
        return adjustment

    def remove_adjustment(self, reconciliation_id: UUID, adjustment_id: UUID) -> None:
        with unit_of_work(self._session, logger, "remove_adjustment", ENTITY_TYPE, reconciliation_id):
            reconciliation = self._lock_reconciliation(reconciliation_id)
            self._require_in_progress(reconciliation)
            for adjustment in reconciliation.adjustments:
                if adjustment.id == adjustment_id:
                    if adjustment.bank_transaction_id is not None:
                        raise ValidationError(
                            "Exclusion adjustments are removed by resetting the bank transaction"
                        )
                    reconciliation.adjustments.remove(adjustment)
                    break
            else:
                raise ValidationError(
                    f"Adjustment {adjustment_id} is not part of reconciliation {reconciliation_id}"
                )
            self._session.flush()

    def add_note(self, reconciliation_id: UUID, note: str) -> BankReconciliation:
        with unit_of_work(self._session, logger, "add_note", ENTITY_TYPE, reconciliation_id):
            reconciliation = self._lock_reconciliation(reconciliation_id)
            reconciliation.notes = f"{reconciliation.notes}\n{note}" if reconciliation.notes else note
            self._session.flush()
        return reconciliation

    # =========================================================================
    # Summary and completion
    # =========================================================================

    def reconciliation_summary(self, reconciliation_id: UUID) -> ReconciliationSummary:
        reconciliation = self.get_reconciliation(reconciliation_id)
        return self._summarize(reconciliation)

    def _summarize(self, reconciliation: BankReconciliation) -> ReconciliationSummary:
        rows = self._session.execute(
            select(
                BankTransaction.match_status,
                func.count(BankTransaction.id),
                func.coalesce(func.sum(BankTransaction.amount), ZERO),
            )
            .where(
                BankTransaction.bank_account_id == reconciliation.bank_account_id,
                BankTransaction.transaction_date >= reconciliation.period_start,
                BankTransaction.transaction_date <= reconciliation.period_end,
            )
            .group_by(BankTransaction.match_status)
        ).all()
        counts = {state_value(status): count for status, count, _ in rows}
        matched_total = sum(
            (Decimal(total) for status, _, total in rows if status == BankMatchStatus.MATCHED),
            ZERO,
        )
        adjustment_total = sum((a.amount for a in reconciliation.adjustments), ZERO)
        return ReconciliationSummary(
            reconciliation_id=reconciliation.id,
            status=state_value(reconciliation.status),
            counts_by_status=counts,
            matched_total=matched_total,
            adjustment_total=adjustment_total,
            statement_ending_balance=reconciliation.statement_ending_balance,
            beginning_ledger_balance=reconciliation.beginning_ledger_balance,
        )

    def complete_reconciliation(self, reconciliation_id: UUID, actor_id: UUID) -> BankReconciliation:
        """
        Close the reconciliation.

        Matches whose ledger transaction is no longer posted are moved to
        NEEDS_REVIEW first, and that change is kept even when completion
        is then refused.

        Raises:
            ReconciliationIncompleteError: lines still pending in the period.
            UnbalancedReconciliationError: adjusted statement balance differs
                from matched total plus beginning ledger balance.
        """
        with unit_of_work(self._session, logger, "review_matches", ENTITY_TYPE, reconciliation_id):
            reconciliation = self._lock_reconciliation(reconciliation_id)
            self._require_in_progress(reconciliation)
            self._flag_voided_matches(reconciliation)

        with unit_of_work(self._session, logger, "complete_reconciliation", ENTITY_TYPE, reconciliation_id):
            reconciliation = self._lock_reconciliation(reconciliation_id)
            self._require_in_progress(reconciliation)
            self._session.flush()

            summary = self._summarize(reconciliation)
            if summary.pending_count:
                raise ReconciliationIncompleteError(reconciliation_id, summary.pending_count)
            if not summary.is_balanced:
                raise UnbalancedReconciliationError(
                    reconciliation_id,
                    summary.adjusted_statement_balance,
                    summary.expected_balance,
                )

            reconciliation.status = ReconciliationStatus.COMPLETED.value
            reconciliation.completed_at = self._clock.now()
            reconciliation.completed_by_id = actor_id
            self._auditor.record(
                AuditAction.RECONCILIATION_COMPLETED,
                ENTITY_TYPE,
                reconciliation_id,
                actor_id,
                {
                    "statement_ending_balance": str(summary.statement_ending_balance),
                    "matched_total": str(summary.matched_total),
                    "adjustment_total": str(summary.adjustment_total),
                },
            )
            logger.info(
                "reconciliation_completed",
                extra={
                    "reconciliation_id": str(reconciliation_id),
                    "matched_total": str(summary.matched_total),
                },
            )
        return reconciliation

    def abandon_reconciliation(
        self,
        reconciliation_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> BankReconciliation:
        with unit_of_work(self._session, logger, "abandon_reconciliation", ENTITY_TYPE, reconciliation_id):
            reconciliation = self._lock_reconciliation(reconciliation_id)
            self._require_in_progress(reconciliation)
            reconciliation.status = ReconciliationStatus.ABANDONED.value
            if reason:
                reconciliation.notes = (
                    f"{reconciliation.notes}\n{reason}" if reconciliation.notes else reason
                )
            self._auditor.record(
                AuditAction.RECONCILIATION_ABANDONED,
                ENTITY_TYPE,
                reconciliation_id,
                actor_id,
                {"reason": reason},
            )
        return reconciliation
