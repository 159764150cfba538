"""
Tests for payment status derivation.

Covers:
- UNPAID / PARTIALLY_PAID / PAID / VOIDED derivation
- Outstanding balance
- Rejection of negative inputs
"""

from decimal import Decimal

import pytest

from ledger_engines.payment_status import (
    PaymentPosition,
    PaymentStatus,
    derive_payment_status,
    is_settled,
)


class TestDerivePaymentStatus:
    """Status is a pure function of amount_due and applied amounts."""

    def test_no_payments_is_unpaid(self):
        position = derive_payment_status(amount_due=Decimal("100"), applied_amounts=[])

        assert position.status == PaymentStatus.UNPAID
        assert position.amount_paid == Decimal("0")

    def test_partial_payment(self):
        position = derive_payment_status(
            amount_due=Decimal("100"),
            applied_amounts=[Decimal("30"), Decimal("20")],
        )

        assert position.status == PaymentStatus.PARTIALLY_PAID
        assert position.amount_paid == Decimal("50")
        assert position.outstanding(Decimal("100")) == Decimal("50")

    def test_exact_payment_is_paid(self):
        position = derive_payment_status(
            amount_due=Decimal("100"),
            applied_amounts=[Decimal("60"), Decimal("40")],
        )

        assert position.status == PaymentStatus.PAID

    def test_voided_wins_over_payments(self):
        position = derive_payment_status(
            amount_due=Decimal("100"),
            applied_amounts=[],
            is_voided=True,
        )

        assert position.status == PaymentStatus.VOIDED

    def test_negative_amount_due_rejected(self):
        with pytest.raises(ValueError):
            derive_payment_status(amount_due=Decimal("-1"), applied_amounts=[])

    def test_negative_applied_amount_rejected(self):
        with pytest.raises(ValueError):
            derive_payment_status(amount_due=Decimal("10"), applied_amounts=[Decimal("-5")])


class TestSettled:
    def test_paid_and_voided_are_settled(self):
        assert is_settled(PaymentStatus.PAID)
        assert is_settled(PaymentStatus.VOIDED)

    def test_loaded_string_values_are_recognised(self):
        assert is_settled("paid")
        assert not is_settled("partially_paid")

    def test_position_is_immutable(self):
        position = PaymentPosition(amount_paid=Decimal("1"), status=PaymentStatus.PARTIALLY_PAID)

        with pytest.raises(AttributeError):
            position.amount_paid = Decimal("2")
