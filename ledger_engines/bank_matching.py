"""
Module: ledger_engines.bank_matching
Responsibility:
    One-to-one assignment of bank statement lines to posted ledger cash
    transactions for a single reconciliation run.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  BankReconciliationService
    loads the open bank lines and the unheld ledger candidates, calls
    ``assign`` and persists the decisions.

Invariants enforced:
    - A candidate qualifies for a bank line when its signed cash amount
      equals the bank amount exactly and its date is within
      ``tolerance_days`` of the bank date.
    - Bank lines are processed in (date, id) order.  A MATCHED decision
      consumes its candidate; no later line in the run can take it.
    - Score is the absolute date distance.  A unique best candidate is
      MATCHED.  Several candidates at the best distance are MATCHED only if
      exactly one of them carries the bank line's reference; otherwise the
      line is POTENTIAL_MATCH and the earliest-dated tied candidate (then
      lowest transaction number) is offered as a suggestion without being
      consumed.
    - No qualifying candidate -> UNMATCHED.

Audit relevance:
    Decisions carry the candidate count and distance so a reviewer can see
    why a line was or was not matched automatically.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.bank_matching")

DEFAULT_TOLERANCE_DAYS = 3


class MatchOutcome(str, Enum):
    MATCHED = "matched"
    POTENTIAL_MATCH = "potential_match"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class BankLine:
    bank_transaction_id: UUID
    transaction_date: date
    amount: Decimal
    reference: str | None = None


@dataclass(frozen=True)
class LedgerCandidate:
    transaction_id: UUID
    transaction_number: str
    transaction_date: date
    amount: Decimal
    reference: str | None = None


@dataclass(frozen=True)
class MatchDecision:
    bank_transaction_id: UUID
    outcome: MatchOutcome
    transaction_id: UUID | None = None
    date_distance: int | None = None
    candidate_count: int = 0
    notes: str | None = None

    @property
    def is_matched(self) -> bool:
        return self.outcome == MatchOutcome.MATCHED


class BankMatchingEngine:
    """
    Greedy one-to-one matcher.

    Usage:
        decisions = BankMatchingEngine().assign(
            lines=bank_lines, candidates=ledger_candidates, tolerance_days=3,
        )
    """

    @traced_engine("bank_matching", "1.0", fingerprint_fields=("lines", "candidates", "tolerance_days"))
    def assign(
        self,
        lines: Sequence[BankLine],
        candidates: Sequence[LedgerCandidate],
        tolerance_days: int = DEFAULT_TOLERANCE_DAYS,
    ) -> tuple[MatchDecision, ...]:
        if tolerance_days < 0:
            raise ValueError(f"tolerance_days must be non-negative, got {tolerance_days}")

        pool = sorted(candidates, key=lambda c: (c.transaction_date, c.transaction_number))
        consumed: set[UUID] = set()
        decisions: list[MatchDecision] = []

        for line in sorted(lines, key=lambda b: (b.transaction_date, str(b.bank_transaction_id))):
            eligible = [
                c for c in pool
                if c.transaction_id not in consumed
                and c.amount == line.amount
                and abs((c.transaction_date - line.transaction_date).days) <= tolerance_days
            ]
            decision = self._decide(line, eligible)
            if decision.is_matched:
                consumed.add(decision.transaction_id)
            decisions.append(decision)

        logger.debug(
            "bank_matching_assigned",
            extra={
                "line_count": len(decisions),
                "candidate_count": len(pool),
                "matched": sum(1 for d in decisions if d.is_matched),
            },
        )
        return tuple(decisions)

    def _decide(self, line: BankLine, eligible: list[LedgerCandidate]) -> MatchDecision:
        if not eligible:
            return MatchDecision(
                bank_transaction_id=line.bank_transaction_id,
                outcome=MatchOutcome.UNMATCHED,
            )

        def distance(c: LedgerCandidate) -> int:
            return abs((c.transaction_date - line.transaction_date).days)

        best = min(distance(c) for c in eligible)
        tied = [c for c in eligible if distance(c) == best]

        if len(tied) == 1:
            return MatchDecision(
                bank_transaction_id=line.bank_transaction_id,
                outcome=MatchOutcome.MATCHED,
                transaction_id=tied[0].transaction_id,
                date_distance=best,
                candidate_count=len(eligible),
                notes="auto: unique amount and date match",
            )

        if line.reference:
            by_reference = [c for c in tied if c.reference == line.reference]
            if len(by_reference) == 1:
                return MatchDecision(
                    bank_transaction_id=line.bank_transaction_id,
                    outcome=MatchOutcome.MATCHED,
                    transaction_id=by_reference[0].transaction_id,
                    date_distance=best,
                    candidate_count=len(eligible),
                    notes="auto: reference breaks tie",
                )

        # eligible is in (date, number) order, so tied[0] is the earliest
        return MatchDecision(
            bank_transaction_id=line.bank_transaction_id,
            outcome=MatchOutcome.POTENTIAL_MATCH,
            transaction_id=tied[0].transaction_id,
            date_distance=best,
            candidate_count=len(tied),
            notes=f"{len(tied)} candidates at {best} day(s)",
        )
