"""
ledger_engines.payment_status -- Single source of truth for a document's
payment position.

Responsibility:
    Derive amount_paid and payment_status of a Bill or Invoice from its
    amount_due and the amounts of the payments currently applied to it.
    Payment creation, payment void, payment failure and document void all
    call ``derive_payment_status``; nothing else computes the status.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - amount_paid is always the sum of applied payment amounts, so voiding
      a payment and re-deriving gives exactly the position the document
      would have had if that payment never existed.
    - amount_paid >= amount_due -> PAID; 0 < amount_paid -> PARTIALLY_PAID;
      otherwise UNPAID.  A voided document is VOIDED regardless.

Failure modes:
    - ValueError for a negative amount_due or a negative payment amount.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.values import ZERO


class PaymentStatus(str, Enum):
    """Payment position of a Bill or Invoice."""

    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    VOIDED = "voided"


# Documents in these statuses have nothing outstanding
SETTLED_STATUSES = (PaymentStatus.PAID, PaymentStatus.VOIDED)


@dataclass(frozen=True)
class PaymentPosition:
    amount_paid: Decimal
    status: PaymentStatus

    def outstanding(self, amount_due: Decimal) -> Decimal:
        return amount_due - self.amount_paid


@traced_engine("payment_status", "1.0", fingerprint_fields=("amount_due", "applied_amounts"))
def derive_payment_status(
    amount_due: Decimal,
    applied_amounts: Iterable[Decimal],
    is_voided: bool = False,
) -> PaymentPosition:
    """
    Recompute a document's payment position from its applied payments.

    Args:
        amount_due: The document total.
        applied_amounts: Amounts of the payments still applied (PENDING,
            PROCESSING or COMPLETED).
        is_voided: True when the document itself has been voided.
    """
    if amount_due < ZERO:
        raise ValueError(f"amount_due must be non-negative, got {amount_due}")

    amount_paid = ZERO
    for amount in applied_amounts:
        if amount < ZERO:
            raise ValueError(f"payment amount must be non-negative, got {amount}")
        amount_paid += amount

    if is_voided:
        status = PaymentStatus.VOIDED
    elif amount_paid > ZERO and amount_paid >= amount_due:
        status = PaymentStatus.PAID
    elif amount_paid > ZERO:
        status = PaymentStatus.PARTIALLY_PAID
    else:
        status = PaymentStatus.UNPAID

    return PaymentPosition(amount_paid=amount_paid, status=status)


def is_settled(status: PaymentStatus | str) -> bool:
    """True if nothing is outstanding on a document in ``status``."""
    return any(status == settled for settled in SETTLED_STATUSES)
