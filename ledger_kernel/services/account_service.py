"""
AccountService -- chart of accounts maintenance.

Responsibility:
    Creates accounts with the normal balance derived from their type,
    maintains the parent tree without cycles, deactivates accounts, and
    resolves account numbers (used for configured roles such as AP and AR)
    to ORM rows.

Invariants enforced:
    - normal_balance = f(account_type), fixed at creation.
    - The parent chain of any account terminates (no cycles).
    - Flush-only.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType, normal_balance_for
from ledger_kernel.services.base import BaseService
from ledger_kernel.exceptions import (
    AccountHierarchyCycleError,
    AccountNotFoundError,
    InactiveAccountError,
)

logger = get_logger("services.account")


class AccountService(BaseService[Account]):
    """Write-side service for the chart of accounts."""

    def create_account(
        self,
        account_number: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        parent_id: UUID | None = None,
        description: str | None = None,
    ) -> Account:
        account_type = AccountType(account_type)
        account = Account(
            account_number=account_number,
            name=name,
            account_type=account_type,
            normal_balance=normal_balance_for(account_type),
            description=description,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        if parent_id is not None:
            self.set_parent(account.id, parent_id, actor_id)

        logger.info(
            "account_created",
            extra={
                "account_id": str(account.id),
                "account_number": account_number,
                "account_type": account_type.value,
            },
        )
        return account

    def get(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def get_by_number(self, account_number: str) -> Account:
        account = self.session.execute(
            select(Account).where(Account.account_number == account_number)
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_number)
        return account

    def get_active(self, account_id: UUID) -> Account:
        """Resolve an account for posting; inactive accounts are rejected."""
        account = self.get(account_id)
        if not account.is_active:
            raise InactiveAccountError(account.account_number)
        return account

    def set_parent(self, account_id: UUID, parent_id: UUID | None, actor_id: UUID) -> Account:
        """
        Re-parent an account.

        Raises:
            AccountHierarchyCycleError: if ``parent_id`` is the account itself
                or one of its descendants.
        """
        account = self.get(account_id)
        if parent_id is not None:
            ancestor: Account | None = self.get(parent_id)
            while ancestor is not None:
                if ancestor.id == account.id:
                    raise AccountHierarchyCycleError(account_id, parent_id)
                ancestor = (
                    self.session.get(Account, ancestor.parent_id)
                    if ancestor.parent_id is not None
                    else None
                )
        account.parent_id = parent_id
        account.updated_by_id = actor_id
        self.session.flush()
        return account

    def deactivate(self, account_id: UUID, actor_id: UUID) -> Account:
        account = self.get(account_id)
        account.is_active = False
        account.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "account_deactivated",
            extra={"account_id": str(account_id), "account_number": account.account_number},
        )
        return account

    def children_of(self, account_id: UUID) -> list[Account]:
        return list(
            self.session.execute(
                select(Account)
                .where(Account.parent_id == account_id)
                .order_by(Account.account_number)
            ).scalars()
        )
