"""
Tests for fiscal periods.

Covers:
- Overlap and inverted range rejection
- Close blocked by unapproved transactions
- Closed periods never reopen or accept postings
"""

from datetime import date

import pytest

from ledger_kernel.domain.dtos import EntrySpec
from ledger_kernel.exceptions import (
    ClosedPeriodError,
    IllegalStateTransitionError,
    PeriodHasOpenTransactionsError,
    PeriodNotFoundError,
    PeriodOverlapError,
    ValidationError,
)
from ledger_kernel.models.fiscal_period import PeriodStatus


@pytest.fixture
def march(period_service, test_actor_id):
    return period_service.create_period(
        "2024-03", "March 2024", 2024, 3, date(2024, 3, 1), date(2024, 3, 31), test_actor_id
    )


class TestCreatePeriod:
    def test_overlap_rejected(self, period_service, march, test_actor_id):
        with pytest.raises(PeriodOverlapError):
            period_service.create_period(
                "2024-03B", "Overlap", 2024, 4, date(2024, 3, 31), date(2024, 4, 30), test_actor_id
            )

    def test_adjacent_period_allowed(self, period_service, march, test_actor_id):
        april = period_service.create_period(
            "2024-04", "April 2024", 2024, 4, date(2024, 4, 1), date(2024, 4, 30), test_actor_id
        )

        assert [p.period_code for p in period_service.open_periods()] == ["2024-03", "2024-04"]
        assert april.status == PeriodStatus.OPEN

    def test_inverted_range_rejected(self, period_service, test_actor_id):
        with pytest.raises(ValidationError):
            period_service.create_period(
                "BAD", "Bad", 2024, 1, date(2024, 2, 1), date(2024, 1, 1), test_actor_id
            )


class TestClosePeriod:
    def test_close(self, period_service, march, test_actor_id):
        period_service.close_period("2024-03", test_actor_id)

        assert march.is_closed
        assert march.closed_by_id == test_actor_id
        assert period_service.open_periods() == []

    def test_draft_transaction_blocks_close(
        self, period_service, ledger_service, march, standard_accounts, test_actor_id
    ):
        ledger_service.create_transaction(
            [
                EntrySpec.debit(standard_accounts["cash"].id, "10"),
                EntrySpec.credit(standard_accounts["tuition"].id, "10"),
            ],
            date(2024, 3, 10),
            test_actor_id,
        )

        with pytest.raises(PeriodHasOpenTransactionsError):
            period_service.close_period("2024-03", test_actor_id)

    def test_posted_transactions_do_not_block_close(
        self, period_service, post_entries, march, standard_accounts, test_actor_id
    ):
        post_entries(
            [
                EntrySpec.debit(standard_accounts["cash"].id, "10"),
                EntrySpec.credit(standard_accounts["tuition"].id, "10"),
            ],
            date(2024, 3, 10),
        )

        period_service.close_period("2024-03", test_actor_id)

        assert march.is_closed

    def test_closed_period_cannot_close_again(self, period_service, march, test_actor_id):
        period_service.close_period("2024-03", test_actor_id)

        with pytest.raises(IllegalStateTransitionError):
            period_service.close_period("2024-03", test_actor_id)

    def test_closed_period_rejects_posting_date(self, period_service, march, test_actor_id):
        period_service.close_period("2024-03", test_actor_id)

        with pytest.raises(ClosedPeriodError):
            period_service.validate_posting_date(date(2024, 3, 31))

    def test_date_outside_periods_is_accepted(self, period_service, march):
        assert period_service.validate_posting_date(date(2024, 5, 1)) is None

    def test_unknown_period(self, period_service, test_actor_id):
        with pytest.raises(PeriodNotFoundError):
            period_service.close_period("1999-01", test_actor_id)
