"""
Module: ledger_engines.aging
Responsibility:
    Classify open payables and receivables into aging buckets by days past
    due and total the outstanding amount per bucket.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The reporting module
    loads documents and passes them in as ``AgingDocument`` values.

Invariants enforced:
    - days_overdue = (as_of_date - due_date).days, whole days.
    - Buckets: <= 0 "current", 1-30, 31-60, 61-90, > 90 "90Plus".  Upper
      edges are inclusive, so 30 days lands in "1-30" and 31 in "31-60".
    - Only documents whose payment status is neither PAID nor VOIDED are
      aged; each contributes amount_due - amount_paid.

Failure modes:
    - ValueError from AgeBucket for a malformed range.

Audit relevance:
    Aging totals back the payables and receivables subledger balances;
    every report build is traced via ``@traced_engine``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_engines.payment_status import PaymentStatus, is_settled
from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.values import ZERO
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.aging")


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of days overdue.

    ``min_days`` of None means unbounded below (everything not yet past
    due); ``max_days`` of None means unbounded above.
    """

    name: str
    min_days: int | None
    max_days: int | None

    def __post_init__(self) -> None:
        if (
            self.min_days is not None
            and self.max_days is not None
            and self.max_days < self.min_days
        ):
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, days: int) -> bool:
        if self.min_days is not None and days < self.min_days:
            return False
        if self.max_days is not None and days > self.max_days:
            return False
        return True


CURRENT = "current"
DAYS_1_30 = "1-30"
DAYS_31_60 = "31-60"
DAYS_61_90 = "61-90"
DAYS_90_PLUS = "90Plus"

STANDARD_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket(CURRENT, None, 0),
    AgeBucket(DAYS_1_30, 1, 30),
    AgeBucket(DAYS_31_60, 31, 60),
    AgeBucket(DAYS_61_90, 61, 90),
    AgeBucket(DAYS_90_PLUS, 91, None),
)

BUCKET_NAMES: tuple[str, ...] = tuple(b.name for b in STANDARD_BUCKETS)


def days_overdue(due_date: date, as_of_date: date) -> int:
    return (as_of_date - due_date).days


def classify(days: int) -> str:
    """Name of the standard bucket containing ``days`` overdue."""
    for bucket in STANDARD_BUCKETS:
        if bucket.contains(days):
            return bucket.name
    # Unreachable: the standard buckets cover every integer
    raise ValueError(f"{days} days overdue does not fit any bucket")


@dataclass(frozen=True)
class AgingDocument:
    """An open Bill or Invoice as seen by the aging engine."""

    document_id: UUID
    document_number: str
    counterparty_id: UUID
    counterparty_name: str
    due_date: date
    amount_due: Decimal
    amount_paid: Decimal
    payment_status: PaymentStatus | str

    @property
    def outstanding(self) -> Decimal:
        return self.amount_due - self.amount_paid


@dataclass(frozen=True)
class AgedItem:
    document: AgingDocument
    days_overdue: int
    bucket: str

    @property
    def amount(self) -> Decimal:
        return self.document.outstanding


@dataclass(frozen=True)
class AgingReport:
    """
    Aging snapshot as of one date.

    ``totals`` always carries every standard bucket, zero when empty.
    """

    as_of_date: date
    report_type: str
    items: tuple[AgedItem, ...]
    totals: dict[str, Decimal] = field(default_factory=dict)

    @property
    def total_outstanding(self) -> Decimal:
        return sum(self.totals.values(), ZERO)

    def items_in_bucket(self, bucket_name: str) -> tuple[AgedItem, ...]:
        return tuple(i for i in self.items if i.bucket == bucket_name)

    def totals_by_counterparty(self) -> dict[UUID, dict[str, Decimal]]:
        result: dict[UUID, dict[str, Decimal]] = {}
        for item in self.items:
            per_bucket = result.setdefault(
                item.document.counterparty_id, {name: ZERO for name in BUCKET_NAMES}
            )
            per_bucket[item.bucket] += item.amount
        return result


class AgingCalculator:
    """
    Pure aging calculator.

    Usage:
        report = AgingCalculator().build_report(
            documents=docs, as_of_date=date(2024, 6, 30), report_type="AP",
        )
        report.totals["31-60"]
    """

    @traced_engine("aging", "1.0", fingerprint_fields=("as_of_date", "report_type"))
    def build_report(
        self,
        documents: Sequence[AgingDocument],
        as_of_date: date,
        report_type: str = "AP",
    ) -> AgingReport:
        totals = {name: ZERO for name in BUCKET_NAMES}
        items: list[AgedItem] = []
        skipped = 0

        for document in documents:
            if is_settled(document.payment_status):
                skipped += 1
                continue
            overdue = days_overdue(document.due_date, as_of_date)
            bucket = classify(overdue)
            items.append(AgedItem(document=document, days_overdue=overdue, bucket=bucket))
            totals[bucket] += document.outstanding

        logger.debug(
            "aging_report_built",
            extra={
                "report_type": report_type,
                "as_of_date": as_of_date.isoformat(),
                "item_count": len(items),
                "skipped_settled": skipped,
            },
        )
        return AgingReport(
            as_of_date=as_of_date,
            report_type=report_type,
            items=tuple(items),
            totals=totals,
        )
