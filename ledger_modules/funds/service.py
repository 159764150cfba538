"""
Fund accounting module service (``ledger_modules.funds.service``).

Responsibility
--------------
Fund creation, fund-tagged allocations, inter-fund transfers, and the
fund read side: reconciliation of stored running balances against the
posted ledger, activity over a range, and the restriction report.

Invariants enforced
-------------------
* Every allocation entry names a fund (MissingFundError).
* A restricted fund's balance never goes negative: allocations are
  checked against the posted balance as of their date, transfers and
  postings against the locked running balance.
* Transfers lock both funds in id order before reading balances.

Failure modes
-------------
* FundNotFoundError, FundNotAvailableError.
* InsufficientFundBalanceError (both balances unchanged).
* ValidationError for a transfer into the same fund;
  InvalidAmountError for a non-positive amount.

Audit relevance
---------------
Transfers post immediately and record a FUND_TRANSFERRED event.
``reconcile_fund`` never corrects a discrepancy, it only reports and
logs it.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerSettings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import EntrySpec
from ledger_kernel.domain.values import ZERO, state_value, to_decimal
from ledger_kernel.exceptions import (
    FundNotAvailableError,
    FundNotFoundError,
    InsufficientFundBalanceError,
    InvalidAmountError,
    MissingFundError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.fund import Fund, FundType
from ledger_kernel.models.transaction import LedgerTransaction, TransactionType
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.auditor_service import AuditorService
from ledger_kernel.services.ledger_service import (
    LedgerService,
    fund_deltas,
    validate_entries,
)
from ledger_modules._posting_helpers import unit_of_work

logger = get_logger("modules.funds")

ENTITY_TYPE = "Fund"

_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class FundReconciliation:
    """Stored running balance compared with the posted ledger."""

    fund_id: UUID
    as_of_date: date
    gl_balance: Decimal
    stored_balance: Decimal

    @property
    def discrepancy(self) -> Decimal:
        return self.stored_balance - self.gl_balance

    @property
    def is_reconciled(self) -> bool:
        return self.discrepancy == ZERO


@dataclass(frozen=True)
class FundActivity:
    fund_id: UUID
    start_date: date
    end_date: date
    opening_balance: Decimal
    inflows: Decimal
    outflows: Decimal

    @property
    def net(self) -> Decimal:
        return self.inflows - self.outflows

    @property
    def closing_balance(self) -> Decimal:
        return self.opening_balance + self.net


@dataclass(frozen=True)
class FundRestriction:
    """One row of the restriction report."""

    fund_id: UUID
    code: str
    name: str
    fund_type: str
    is_restricted: bool
    balance: Decimal
    restriction_text: str | None
    valid_from: date | None
    valid_to: date | None


class FundService:
    """
    Usage::

        funds = FundService(session, clock)
        scholarship = funds.create_fund("SCH", "Scholarship", FundType.RESTRICTED, actor)
        funds.transfer(general.id, scholarship.id, Decimal("500"), date(2024, 3, 1), actor)
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
        self._auditor = AuditorService(session, self._clock)
        self._selector = LedgerSelector(session)

    def get_fund(self, fund_id: UUID) -> Fund:
        fund = self._session.get(Fund, fund_id)
        if fund is None:
            raise FundNotFoundError(fund_id)
        return fund

    def get_fund_by_code(self, code: str) -> Fund:
        fund = self._session.execute(
            select(Fund).where(Fund.code == code)
        ).scalar_one_or_none()
        if fund is None:
            raise FundNotFoundError(code)
        return fund

    def create_fund(
        self,
        code: str,
        name: str,
        fund_type: FundType,
        actor_id: UUID,
        restriction_text: str | None = None,
        valid_from: date | None = None,
        valid_to: date | None = None,
    ) -> Fund:
        if valid_from is not None and valid_to is not None and valid_to < valid_from:
            raise ValidationError(
                f"Fund {code} validity window ends ({valid_to}) before it starts ({valid_from})"
            )
        with unit_of_work(self._session, logger, "create_fund", ENTITY_TYPE):
            existing = self._session.execute(
                select(Fund.id).where(Fund.code == code)
            ).scalar_one_or_none()
            if existing is not None:
                raise ValidationError(f"Fund code {code} already exists")
            fund = Fund(
                code=code,
                name=name,
                fund_type=FundType(fund_type).value,
                balance=ZERO,
                restriction_text=restriction_text,
                valid_from=valid_from,
                valid_to=valid_to,
                is_active=True,
                created_by_id=actor_id,
            )
            self._session.add(fund)
            self._session.flush()
            logger.info(
                "fund_created",
                extra={"fund_id": str(fund.id), "code": code, "fund_type": fund.fund_type},
            )
        return fund

    # =========================================================================
    # Allocation and transfer
    # =========================================================================

    def allocate(
        self,
        entries: Sequence[EntrySpec],
        transaction_date: date,
        actor_id: UUID,
        description: str | None = None,
        reference: str | None = None,
    ) -> LedgerTransaction:
        """
        Create a DRAFT transaction whose every entry is fund-tagged.

        Restricted funds are checked against their posted balance as of
        ``transaction_date``; posting re-checks the running balance.
        """
        with unit_of_work(self._session, logger, "allocate", ENTITY_TYPE):
            validate_entries(entries)
            for line_number, spec in enumerate(entries, start=1):
                if spec.fund_id is None:
                    raise MissingFundError(line_number)

            for fund_id, delta in fund_deltas(entries).items():
                fund = self.get_fund(fund_id)
                if not fund.is_available_on(transaction_date):
                    raise FundNotAvailableError(
                        fund_id, f"not available on {transaction_date.isoformat()}"
                    )
                if not fund.is_restricted:
                    continue
                available = self._selector.fund_balance(fund_id, as_of_date=transaction_date)
                if available + delta < ZERO:
                    raise InsufficientFundBalanceError(fund_id, available, -delta)

            transaction = self._ledger.create_transaction(
                entries,
                transaction_date,
                actor_id,
                transaction_type=TransactionType.JOURNAL_ENTRY,
                description=description,
                reference=reference,
            )
        return transaction

    def transfer(
        self,
        source_fund_id: UUID,
        destination_fund_id: UUID,
        amount: Decimal | int | str,
        transfer_date: date,
        actor_id: UUID,
        description: str | None = None,
    ) -> LedgerTransaction:
        """
        Move ``amount`` between funds as a posted FUND_TRANSFER transaction.

        Raises:
            InsufficientFundBalanceError: the source is restricted and
                holds less than ``amount``.
        """
        amount = to_decimal(amount)
        if source_fund_id == destination_fund_id:
            raise ValidationError("Cannot transfer a fund to itself")
        if amount <= ZERO:
            raise InvalidAmountError("amount", amount)

        with unit_of_work(self._session, logger, "transfer", ENTITY_TYPE, source_fund_id):
            funds = self._ledger.lock_funds([source_fund_id, destination_fund_id])
            source = funds[source_fund_id]
            if source.is_restricted and source.balance < amount:
                raise InsufficientFundBalanceError(source_fund_id, source.balance, amount)

            roles = self._settings.accounts
            transfer_out = self._accounts.get_by_number(roles.fund_transfer_out)
            transfer_in = self._accounts.get_by_number(roles.fund_transfer_in)
            entries = [
                EntrySpec.debit(transfer_out.id, amount, fund_id=source_fund_id),
                EntrySpec.credit(transfer_in.id, amount, fund_id=destination_fund_id),
            ]
            transaction = self._ledger.create_and_post(
                entries,
                transfer_date,
                actor_id,
                transaction_type=TransactionType.FUND_TRANSFER,
                description=description or f"Transfer {source.code} -> {funds[destination_fund_id].code}",
            )
            self._auditor.record(
                AuditAction.FUND_TRANSFERRED,
                "LedgerTransaction",
                transaction.id,
                actor_id,
                {
                    "source_fund_id": str(source_fund_id),
                    "destination_fund_id": str(destination_fund_id),
                    "amount": str(amount),
                },
            )
            logger.info(
                "fund_transfer_posted",
                extra={
                    "transaction_id": str(transaction.id),
                    "source_fund_id": str(source_fund_id),
                    "destination_fund_id": str(destination_fund_id),
                    "amount": str(amount),
                },
            )
        return transaction

    # =========================================================================
    # Read side
    # =========================================================================

    def reconcile_fund(self, fund_id: UUID, as_of_date: date | None = None) -> FundReconciliation:
        fund = self.get_fund(fund_id)
        as_of_date = as_of_date or self._clock.today()
        result = FundReconciliation(
            fund_id=fund_id,
            as_of_date=as_of_date,
            gl_balance=self._selector.fund_balance(fund_id, as_of_date=as_of_date),
            stored_balance=fund.balance,
        )
        if not result.is_reconciled:
            logger.warning(
                "fund_balance_discrepancy",
                extra={
                    "fund_id": str(fund_id),
                    "as_of_date": as_of_date.isoformat(),
                    "gl_balance": str(result.gl_balance),
                    "stored_balance": str(result.stored_balance),
                    "discrepancy": str(result.discrepancy),
                },
            )
        return result

    def fund_activity(self, fund_id: UUID, start_date: date, end_date: date) -> FundActivity:
        if end_date < start_date:
            raise ValidationError(f"Activity range ends ({end_date}) before it starts ({start_date})")
        self.get_fund(fund_id)
        credits, debits = self._selector.fund_totals(
            fund_id, as_of_date=end_date, start_date=start_date
        )
        opening_credits, opening_debits = self._selector.fund_totals(
            fund_id, as_of_date=start_date - _ONE_DAY
        )
        return FundActivity(
            fund_id=fund_id,
            start_date=start_date,
            end_date=end_date,
            opening_balance=opening_credits - opening_debits,
            inflows=credits,
            outflows=debits,
        )

    def restriction_report(self) -> list[FundRestriction]:
        funds = self._session.execute(select(Fund).order_by(Fund.code)).scalars()
        return [
            FundRestriction(
                fund_id=fund.id,
                code=fund.code,
                name=fund.name,
                fund_type=state_value(fund.fund_type),
                is_restricted=fund.is_restricted,
                balance=fund.balance,
                restriction_text=fund.restriction_text,
                valid_from=fund.valid_from,
                valid_to=fund.valid_to,
            )
            for fund in funds
        ]

