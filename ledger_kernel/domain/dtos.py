"""
DTOs -- immutable data passed into and out of kernel services.

Services accept these instead of ORM entities so that callers (module
services, the import layer, tests) can describe entries and results
without touching the session.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.values import ZERO, to_decimal


@dataclass(frozen=True)
class EntrySpec:
    """
    Specification for one transaction entry.

    Exactly one of ``debit_amount`` / ``credit_amount`` must be positive;
    LedgerService rejects anything else with InvalidEntryError.
    """

    account_id: UUID
    debit_amount: Decimal = ZERO
    credit_amount: Decimal = ZERO
    fund_id: UUID | None = None
    memo: str | None = None

    @classmethod
    def debit(
        cls,
        account_id: UUID,
        amount: Decimal | int | str,
        fund_id: UUID | None = None,
        memo: str | None = None,
    ) -> EntrySpec:
        return cls(account_id, debit_amount=to_decimal(amount), fund_id=fund_id, memo=memo)

    @classmethod
    def credit(
        cls,
        account_id: UUID,
        amount: Decimal | int | str,
        fund_id: UUID | None = None,
        memo: str | None = None,
    ) -> EntrySpec:
        return cls(account_id, credit_amount=to_decimal(amount), fund_id=fund_id, memo=memo)

    @property
    def fund_delta(self) -> Decimal:
        """Effect on the tagged fund's balance: credits add, debits subtract."""
        return self.credit_amount - self.debit_amount

    def reversed(self) -> EntrySpec:
        return EntrySpec(
            account_id=self.account_id,
            debit_amount=self.credit_amount,
            credit_amount=self.debit_amount,
            fund_id=self.fund_id,
            memo=self.memo,
        )


@dataclass(frozen=True)
class AccountBalance:
    """Posted balance of one account as of a date."""

    account_id: UUID
    account_number: str
    account_name: str
    account_type: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def net_debit(self) -> Decimal:
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class TrialBalanceRow:
    """One row of a trial balance, presented on the account's normal side."""

    account_id: UUID
    account_number: str
    account_name: str
    account_type: str
    debit_balance: Decimal
    credit_balance: Decimal


@dataclass(frozen=True)
class CashActivity:
    """Signed effect of one posted transaction on a cash account."""

    transaction_id: UUID
    transaction_number: str
    transaction_date: date
    amount: Decimal
    reference: str | None
