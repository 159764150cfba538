"""Tests for monetary value helpers and entry specs."""

from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import EntrySpec
from ledger_kernel.domain.values import quantize_money, state_value, to_decimal
from ledger_kernel.models.transaction import TransactionStatus


class TestToDecimal:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("10.10", Decimal("10.10")),
            (7, Decimal("7")),
            (Decimal("0.1"), Decimal("0.1")),
        ],
    )
    def test_exact_conversion(self, value, expected):
        assert to_decimal(value) == expected

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            to_decimal(0.1)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            to_decimal(True)


class TestQuantize:
    def test_half_up(self):
        assert quantize_money(Decimal("2.345")) == Decimal("2.35")
        assert quantize_money(Decimal("-2.345")) == Decimal("-2.35")


class TestStateValue:
    def test_enum_and_string(self):
        assert state_value(TransactionStatus.POSTED) == "posted"
        assert state_value("posted") == "posted"


class TestEntrySpec:
    def test_debit_credit_builders(self):
        account_id = uuid4()

        debit = EntrySpec.debit(account_id, "12.50")
        credit = EntrySpec.credit(account_id, 3)

        assert (debit.debit_amount, debit.credit_amount) == (Decimal("12.50"), Decimal("0"))
        assert (credit.debit_amount, credit.credit_amount) == (Decimal("0"), Decimal("3"))

    def test_fund_delta_and_reverse(self):
        spec = EntrySpec.debit(uuid4(), "40", fund_id=uuid4())

        assert spec.fund_delta == Decimal("-40")
        assert spec.reversed().fund_delta == Decimal("40")
        assert spec.reversed().fund_id == spec.fund_id
