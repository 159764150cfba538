"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the Chart of Accounts -- the target of
    every transaction entry.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - normal_balance is determined by account_type (ASSET/EXPENSE are debit
      normal, LIABILITY/EQUITY/REVENUE credit normal).
    - account_type and normal_balance never change after creation; the
      attribute validator rejects reassignment.
    - The parent tree has no cycles (enforced by AccountService.set_parent).

Failure modes:
    - AccountClassificationImmutableError on reassignment of type or side.

Audit relevance:
    Changing an account's classification would silently change the meaning
    of every historical entry posted to it, so classification is fixed.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.values import state_value
from ledger_kernel.exceptions import AccountClassificationImmutableError


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


NORMAL_BALANCE_BY_TYPE: dict[AccountType, NormalBalance] = {
    AccountType.ASSET: NormalBalance.DEBIT,
    AccountType.EXPENSE: NormalBalance.DEBIT,
    AccountType.LIABILITY: NormalBalance.CREDIT,
    AccountType.EQUITY: NormalBalance.CREDIT,
    AccountType.REVENUE: NormalBalance.CREDIT,
}


def normal_balance_for(account_type: AccountType | str) -> NormalBalance:
    return NORMAL_BALANCE_BY_TYPE[AccountType(account_type)]


class Account(TrackedBase):
    """
    Chart of Accounts entry.

    Contract:
        account_number is globally unique.  Classification (type and normal
        balance) is write-once.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("account_number", name="uq_account_number"),
        Index("idx_account_type", "account_type"),
        Index("idx_account_parent", "parent_id"),
    )

    account_number: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    parent: Mapped["Account | None"] = relationship(
        remote_side="Account.id",
        foreign_keys=[parent_id],
    )

    def __repr__(self) -> str:
        return f"<Account {self.account_number}: {self.name}>"

    @validates("account_type", "normal_balance")
    def _validate_classification_write_once(self, key, value):
        current = getattr(self, key, None)
        if current is not None and state_value(current) != state_value(value):
            raise AccountClassificationImmutableError(
                getattr(self, "account_number", None), key
            )
        return value

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    @property
    def is_credit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.CREDIT
