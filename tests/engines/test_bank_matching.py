"""
Tests for the bank matching engine.

Covers:
- Unique amount/date match
- Tolerance window
- Tie broken by reference
- Unresolved tie offered as a potential match without being consumed
- One-to-one consumption across bank lines
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_engines.bank_matching import (
    BankLine,
    BankMatchingEngine,
    LedgerCandidate,
    MatchOutcome,
)


def bank_line(day: date, amount: str, reference: str | None = None) -> BankLine:
    return BankLine(
        bank_transaction_id=uuid4(),
        transaction_date=day,
        amount=Decimal(amount),
        reference=reference,
    )


def candidate(number: str, day: date, amount: str, reference: str | None = None) -> LedgerCandidate:
    return LedgerCandidate(
        transaction_id=uuid4(),
        transaction_number=number,
        transaction_date=day,
        amount=Decimal(amount),
        reference=reference,
    )


class TestBankMatchingEngine:
    def setup_method(self):
        self.engine = BankMatchingEngine()

    def test_unique_match(self):
        line = bank_line(date(2024, 3, 5), "-250.00")
        tx = candidate("TX-000001", date(2024, 3, 4), "-250.00")

        (decision,) = self.engine.assign(lines=[line], candidates=[tx], tolerance_days=3)

        assert decision.outcome == MatchOutcome.MATCHED
        assert decision.transaction_id == tx.transaction_id
        assert decision.date_distance == 1

    def test_amount_must_match_exactly(self):
        line = bank_line(date(2024, 3, 5), "-250.00")
        tx = candidate("TX-000001", date(2024, 3, 5), "-250.01")

        (decision,) = self.engine.assign(lines=[line], candidates=[tx], tolerance_days=3)

        assert decision.outcome == MatchOutcome.UNMATCHED
        assert decision.transaction_id is None

    def test_outside_tolerance_is_unmatched(self):
        line = bank_line(date(2024, 3, 10), "100")
        tx = candidate("TX-000001", date(2024, 3, 6), "100")

        (decision,) = self.engine.assign(lines=[line], candidates=[tx], tolerance_days=3)

        assert decision.outcome == MatchOutcome.UNMATCHED

    def test_tolerance_edge_is_inclusive(self):
        line = bank_line(date(2024, 3, 10), "100")
        tx = candidate("TX-000001", date(2024, 3, 7), "100")

        (decision,) = self.engine.assign(lines=[line], candidates=[tx], tolerance_days=3)

        assert decision.outcome == MatchOutcome.MATCHED

    def test_closest_date_wins(self):
        line = bank_line(date(2024, 3, 10), "100")
        far = candidate("TX-000001", date(2024, 3, 8), "100")
        near = candidate("TX-000002", date(2024, 3, 11), "100")

        (decision,) = self.engine.assign(lines=[line], candidates=[far, near], tolerance_days=3)

        assert decision.outcome == MatchOutcome.MATCHED
        assert decision.transaction_id == near.transaction_id
        assert decision.candidate_count == 2

    def test_reference_breaks_tie(self):
        line = bank_line(date(2024, 3, 10), "100", reference="CHK-1042")
        first = candidate("TX-000001", date(2024, 3, 10), "100", reference="CHK-1041")
        second = candidate("TX-000002", date(2024, 3, 10), "100", reference="CHK-1042")

        (decision,) = self.engine.assign(lines=[line], candidates=[first, second], tolerance_days=3)

        assert decision.outcome == MatchOutcome.MATCHED
        assert decision.transaction_id == second.transaction_id

    def test_unresolved_tie_is_potential_match(self):
        line = bank_line(date(2024, 3, 10), "100")
        later = candidate("TX-000002", date(2024, 3, 10), "100")
        earlier = candidate("TX-000001", date(2024, 3, 10), "100")

        (decision,) = self.engine.assign(lines=[line], candidates=[later, earlier], tolerance_days=3)

        assert decision.outcome == MatchOutcome.POTENTIAL_MATCH
        assert decision.transaction_id == earlier.transaction_id
        assert decision.candidate_count == 2

    def test_potential_match_does_not_consume_candidate(self):
        a = bank_line(date(2024, 3, 10), "100")
        b = bank_line(date(2024, 3, 12), "100")
        c1 = candidate("TX-000001", date(2024, 3, 11), "100")
        c2 = candidate("TX-000002", date(2024, 3, 11), "100")

        decisions = self.engine.assign(lines=[a, b], candidates=[c1, c2], tolerance_days=3)

        assert [d.outcome for d in decisions] == [
            MatchOutcome.POTENTIAL_MATCH,
            MatchOutcome.POTENTIAL_MATCH,
        ]

    def test_matched_candidate_is_consumed(self):
        first = bank_line(date(2024, 3, 10), "100")
        second = bank_line(date(2024, 3, 11), "100")
        tx = candidate("TX-000001", date(2024, 3, 10), "100")

        decisions = self.engine.assign(lines=[second, first], candidates=[tx], tolerance_days=3)

        by_line = {d.bank_transaction_id: d for d in decisions}
        assert by_line[first.bank_transaction_id].outcome == MatchOutcome.MATCHED
        assert by_line[second.bank_transaction_id].outcome == MatchOutcome.UNMATCHED

    def test_no_lines(self):
        assert self.engine.assign(lines=[], candidates=[], tolerance_days=3) == ()

    def test_negative_tolerance_rejected(self):
        with pytest.raises(ValueError):
            self.engine.assign(lines=[], candidates=[], tolerance_days=-1)
