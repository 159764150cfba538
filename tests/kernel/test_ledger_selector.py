"""
Tests for LedgerSelector.

Covers:
- Account balances count posted transactions only
- As-of and start-date windows
- Trial balance stays balanced across postings and voids
- Fund balances recomputed from entries
- Cash activity excludes voided originals and reversals
"""

from datetime import date
from decimal import Decimal

from ledger_kernel.domain.dtos import EntrySpec
from ledger_kernel.models.fund import Fund, FundType


def total(rows, attr):
    return sum((getattr(r, attr) for r in rows), Decimal("0"))


class TestAccountBalances:
    def test_unposted_transactions_do_not_count(
        self, ledger_service, ledger_selector, standard_accounts, test_actor_id
    ):
        tx = ledger_service.create_transaction(
            [
                EntrySpec.debit(standard_accounts["cash"].id, "100"),
                EntrySpec.credit(standard_accounts["tuition"].id, "100"),
            ],
            date(2024, 3, 1),
            test_actor_id,
        )
        ledger_service.approve(tx.id, test_actor_id)

        assert ledger_selector.account_balance(standard_accounts["cash"].id) == Decimal("0")

    def test_as_of_date(self, ledger_selector, post_entries, standard_accounts):
        cash = standard_accounts["cash"]
        tuition = standard_accounts["tuition"]
        post_entries([EntrySpec.debit(cash.id, "100"), EntrySpec.credit(tuition.id, "100")], date(2024, 3, 1))
        post_entries([EntrySpec.debit(cash.id, "50"), EntrySpec.credit(tuition.id, "50")], date(2024, 4, 1))

        assert ledger_selector.account_balance(cash.id, as_of_date=date(2024, 3, 31)) == Decimal("100")
        assert ledger_selector.account_balance(cash.id) == Decimal("150")
        assert ledger_selector.balance_before(cash.id, date(2024, 4, 1)) == Decimal("100")

    def test_window_totals(self, ledger_selector, post_entries, standard_accounts):
        cash = standard_accounts["cash"]
        tuition = standard_accounts["tuition"]
        post_entries([EntrySpec.debit(cash.id, "100"), EntrySpec.credit(tuition.id, "100")], date(2024, 3, 1))
        post_entries([EntrySpec.debit(tuition.id, "30"), EntrySpec.credit(cash.id, "30")], date(2024, 4, 2))

        debits, credits = ledger_selector.account_totals(
            cash.id, as_of_date=date(2024, 4, 30), start_date=date(2024, 4, 1)
        )

        assert debits == Decimal("0")
        assert credits == Decimal("30")


class TestTrialBalance:
    def test_balanced_after_postings_and_void(
        self, ledger_service, ledger_selector, post_entries, standard_accounts, test_actor_id
    ):
        cash = standard_accounts["cash"]
        post_entries(
            [EntrySpec.debit(cash.id, "1000"), EntrySpec.credit(standard_accounts["tuition"].id, "1000")],
            date(2024, 3, 1),
        )
        post_entries(
            [
                EntrySpec.debit(standard_accounts["supplies"].id, "120"),
                EntrySpec.debit(standard_accounts["utilities"].id, "80"),
                EntrySpec.credit(cash.id, "200"),
            ],
            date(2024, 3, 5),
        )
        voided = post_entries(
            [EntrySpec.debit(cash.id, "75"), EntrySpec.credit(standard_accounts["donations"].id, "75")],
            date(2024, 3, 6),
        )
        ledger_service.void(voided.id, "bounced", test_actor_id)

        rows = ledger_selector.trial_balance()

        assert total(rows, "debit_balance") == total(rows, "credit_balance")
        by_number = {r.account_number: r for r in rows}
        assert by_number["1000"].debit_balance == Decimal("800")
        assert by_number["4000"].credit_balance == Decimal("1000")
        assert by_number["4100"].credit_balance == Decimal("0")

    def test_rows_ordered_by_account_number(self, ledger_selector, post_entries, standard_accounts):
        post_entries(
            [
                EntrySpec.debit(standard_accounts["supplies"].id, "5"),
                EntrySpec.credit(standard_accounts["cash"].id, "5"),
            ],
            date(2024, 3, 1),
        )

        assert [r.account_number for r in ledger_selector.trial_balance()] == ["1000", "5000"]


class TestFundBalance:
    def test_fund_balance_matches_stored_balance(
        self, session, ledger_selector, post_entries, standard_accounts, test_actor_id
    ):
        fund = Fund(code="CAP", name="Capital", fund_type=FundType.RESTRICTED, created_by_id=test_actor_id)
        session.add(fund)
        session.flush()
        post_entries(
            [
                EntrySpec.debit(standard_accounts["cash"].id, "900"),
                EntrySpec.credit(standard_accounts["donations"].id, "900", fund_id=fund.id),
            ],
            date(2024, 3, 1),
        )
        post_entries(
            [
                EntrySpec.debit(standard_accounts["supplies"].id, "250", fund_id=fund.id),
                EntrySpec.credit(standard_accounts["cash"].id, "250"),
            ],
            date(2024, 3, 2),
        )

        assert ledger_selector.fund_balance(fund.id) == Decimal("650")
        assert ledger_selector.fund_balance(fund.id) == fund.balance
        assert ledger_selector.fund_balance(fund.id, as_of_date=date(2024, 3, 1)) == Decimal("900")


class TestCashActivity:
    def test_voided_pairs_excluded(self, ledger_service, ledger_selector, post_entries, standard_accounts, test_actor_id):
        cash = standard_accounts["cash"]
        kept = post_entries(
            [EntrySpec.debit(cash.id, "100"), EntrySpec.credit(standard_accounts["tuition"].id, "100")],
            date(2024, 3, 1),
            reference="DEP-1",
        )
        voided = post_entries(
            [EntrySpec.debit(standard_accounts["supplies"].id, "40"), EntrySpec.credit(cash.id, "40")],
            date(2024, 3, 2),
        )
        ledger_service.void(voided.id, "duplicate", test_actor_id)

        activity = ledger_selector.cash_activity(cash.id, date(2024, 1, 1), date(2024, 12, 31))

        assert [a.transaction_id for a in activity] == [kept.id]
        assert activity[0].amount == Decimal("100")
        assert activity[0].reference == "DEP-1"

    def test_signed_amounts(self, ledger_selector, post_entries, standard_accounts):
        cash = standard_accounts["cash"]
        tx = post_entries(
            [EntrySpec.debit(standard_accounts["supplies"].id, "40"), EntrySpec.credit(cash.id, "40")],
            date(2024, 3, 2),
        )

        assert ledger_selector.transaction_cash_amount(tx.id, cash.id) == Decimal("-40")
        assert ledger_selector.transaction_cash_amount(tx.id, standard_accounts["ap"].id) is None
