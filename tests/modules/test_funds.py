"""
Tests for fund accounting.

Covers:
- Fund creation and validity window
- Allocation requires fund tags and respects restricted balances
- Transfers: restricted source protection leaves both funds unchanged
- Fund reconciliation against posted entries
- Activity and restriction report
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import EntrySpec
from ledger_kernel.exceptions import (
    FundNotAvailableError,
    InsufficientFundBalanceError,
    InvalidAmountError,
    MissingFundError,
    ValidationError,
)
from ledger_kernel.models.audit_event import AuditAction
from ledger_kernel.models.fund import FundType
from ledger_kernel.models.transaction import TransactionStatus, TransactionType


@pytest.fixture
def restricted_fund(fund_service, standard_accounts, test_actor_id):
    return fund_service.create_fund(
        "SCHOLAR", "Scholarship Fund", FundType.RESTRICTED, test_actor_id,
        restriction_text="Student aid only",
    )


@pytest.fixture
def general_fund(fund_service, standard_accounts, test_actor_id):
    return fund_service.create_fund("GEN", "General Fund", FundType.GENERAL, test_actor_id)


@pytest.fixture
def fund_gift(session, post_entries, standard_accounts):
    """Post and commit a donation of ``amount`` into ``fund``."""

    def _gift(fund, amount, on=date(2024, 3, 1)):
        tx = post_entries(
            [
                EntrySpec.debit(standard_accounts["cash"].id, amount),
                EntrySpec.credit(standard_accounts["donations"].id, amount, fund_id=fund.id),
            ],
            on,
        )
        session.commit()
        return tx

    return _gift


class TestCreateFund:
    def test_duplicate_code_rejected(self, fund_service, restricted_fund, test_actor_id):
        with pytest.raises(ValidationError):
            fund_service.create_fund("SCHOLAR", "Again", FundType.RESTRICTED, test_actor_id)

    def test_inverted_window_rejected(self, fund_service, test_actor_id):
        with pytest.raises(ValidationError):
            fund_service.create_fund(
                "GRANT", "Grant", FundType.RESTRICTED, test_actor_id,
                valid_from=date(2024, 6, 1), valid_to=date(2024, 1, 1),
            )

    def test_lookup_by_code(self, fund_service, restricted_fund):
        assert fund_service.get_fund_by_code("SCHOLAR").id == restricted_fund.id


class TestAllocate:
    def test_allocation_creates_draft(self, fund_service, restricted_fund, fund_gift, standard_accounts, test_actor_id):
        fund_gift(restricted_fund, "500")

        tx = fund_service.allocate(
            [
                EntrySpec.debit(standard_accounts["supplies"].id, "200", fund_id=restricted_fund.id),
                EntrySpec.credit(standard_accounts["cash"].id, "200", fund_id=restricted_fund.id),
            ],
            date(2024, 3, 5),
            test_actor_id,
        )

        assert tx.status == TransactionStatus.DRAFT

    def test_untagged_entry_rejected(self, fund_service, restricted_fund, standard_accounts, test_actor_id):
        with pytest.raises(MissingFundError):
            fund_service.allocate(
                [
                    EntrySpec.debit(standard_accounts["supplies"].id, "10", fund_id=restricted_fund.id),
                    EntrySpec.credit(standard_accounts["cash"].id, "10"),
                ],
                date(2024, 3, 5),
                test_actor_id,
            )

    def test_restricted_overdraw_rejected(
        self, fund_service, restricted_fund, general_fund, fund_gift, standard_accounts, test_actor_id
    ):
        fund_gift(restricted_fund, "100")

        with pytest.raises(InsufficientFundBalanceError):
            fund_service.allocate(
                [
                    EntrySpec.debit(standard_accounts["supplies"].id, "150", fund_id=restricted_fund.id),
                    EntrySpec.credit(standard_accounts["cash"].id, "150", fund_id=general_fund.id),
                ],
                date(2024, 3, 5),
                test_actor_id,
            )

    def test_fund_outside_window_rejected(self, fund_service, standard_accounts, general_fund, test_actor_id):
        grant = fund_service.create_fund(
            "GRANT", "Grant", FundType.RESTRICTED, test_actor_id, valid_to=date(2024, 2, 29)
        )

        with pytest.raises(FundNotAvailableError):
            fund_service.allocate(
                [
                    EntrySpec.debit(standard_accounts["cash"].id, "10", fund_id=grant.id),
                    EntrySpec.credit(standard_accounts["donations"].id, "10", fund_id=grant.id),
                ],
                date(2024, 3, 5),
                test_actor_id,
            )


class TestTransfer:
    def test_transfer_moves_balance(
        self, fund_service, auditor_service, restricted_fund, general_fund, fund_gift, test_actor_id
    ):
        fund_gift(restricted_fund, "500")

        tx = fund_service.transfer(restricted_fund.id, general_fund.id, "200", date(2024, 3, 10), test_actor_id)

        assert tx.transaction_type == TransactionType.FUND_TRANSFER
        assert tx.status == TransactionStatus.POSTED
        assert fund_service.get_fund(restricted_fund.id).balance == Decimal("300")
        assert fund_service.get_fund(general_fund.id).balance == Decimal("200")
        trail = auditor_service.get_trail("LedgerTransaction", tx.id)
        assert any(e.action == AuditAction.FUND_TRANSFERRED for e in trail)

    def test_restricted_overdraw_leaves_both_funds_unchanged(
        self, fund_service, restricted_fund, general_fund, fund_gift, test_actor_id
    ):
        fund_gift(restricted_fund, "500")

        with pytest.raises(InsufficientFundBalanceError):
            fund_service.transfer(restricted_fund.id, general_fund.id, "600", date(2024, 3, 10), test_actor_id)

        assert fund_service.get_fund(restricted_fund.id).balance == Decimal("500")
        assert fund_service.get_fund(general_fund.id).balance == Decimal("0")

    def test_rejection_logged_with_operation_context(
        self, fund_service, restricted_fund, general_fund, fund_gift, test_actor_id, captured_logs
    ):
        fund_gift(restricted_fund, "500")

        with pytest.raises(InsufficientFundBalanceError):
            fund_service.transfer(restricted_fund.id, general_fund.id, "600", date(2024, 3, 10), test_actor_id)

        (record,) = [r for r in captured_logs() if r["message"] == "invariant_violation_rejected"]
        assert record["level"] == "WARNING"
        assert record["error_code"] == "INSUFFICIENT_FUND_BALANCE"
        assert record["operation"] == "transfer"
        assert record["entity_id"] == str(restricted_fund.id)

    def test_general_fund_may_overdraw(
        self, fund_service, restricted_fund, general_fund, test_actor_id
    ):
        fund_service.transfer(general_fund.id, restricted_fund.id, "50", date(2024, 3, 10), test_actor_id)

        assert fund_service.get_fund(general_fund.id).balance == Decimal("-50")

    def test_same_fund_rejected(self, fund_service, general_fund, test_actor_id):
        with pytest.raises(ValidationError):
            fund_service.transfer(general_fund.id, general_fund.id, "1", date(2024, 3, 10), test_actor_id)

    def test_non_positive_amount_rejected(self, fund_service, restricted_fund, general_fund, test_actor_id):
        with pytest.raises(InvalidAmountError):
            fund_service.transfer(restricted_fund.id, general_fund.id, "0", date(2024, 3, 10), test_actor_id)


class TestReconcileFund:
    def test_reconciled(self, fund_service, restricted_fund, fund_gift):
        fund_gift(restricted_fund, "500")

        result = fund_service.reconcile_fund(restricted_fund.id)

        assert result.is_reconciled
        assert result.gl_balance == Decimal("500")

    def test_discrepancy_logged(self, session, fund_service, restricted_fund, fund_gift, captured_logs):
        fund_gift(restricted_fund, "500")
        restricted_fund.balance = Decimal("450")
        session.flush()

        result = fund_service.reconcile_fund(restricted_fund.id)

        assert result.discrepancy == Decimal("-50")
        warnings = [r for r in captured_logs() if r["message"] == "fund_balance_discrepancy"]
        assert len(warnings) == 1
        assert warnings[0]["level"] == "WARNING"


class TestReports:
    def test_activity(self, fund_service, restricted_fund, general_fund, fund_gift, test_actor_id):
        fund_gift(restricted_fund, "500", on=date(2024, 2, 1))
        fund_gift(restricted_fund, "300", on=date(2024, 3, 2))
        fund_service.transfer(restricted_fund.id, general_fund.id, "100", date(2024, 3, 20), test_actor_id)

        activity = fund_service.fund_activity(restricted_fund.id, date(2024, 3, 1), date(2024, 3, 31))

        assert activity.opening_balance == Decimal("500")
        assert activity.inflows == Decimal("300")
        assert activity.outflows == Decimal("100")
        assert activity.closing_balance == Decimal("700")

    def test_restriction_report(self, fund_service, restricted_fund, general_fund):
        report = fund_service.restriction_report()

        assert [r.code for r in report] == ["GEN", "SCHOLAR"]
        assert [r.is_restricted for r in report] == [False, True]
        assert report[1].restriction_text == "Student aid only"
