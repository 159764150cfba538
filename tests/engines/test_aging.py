"""
Tests for the aging calculator.

Covers:
- Days overdue and bucket classification, including every bucket edge
- Report totals and settled-document exclusion
- Per-counterparty totals
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_engines.aging import (
    BUCKET_NAMES,
    CURRENT,
    DAYS_1_30,
    DAYS_31_60,
    DAYS_61_90,
    DAYS_90_PLUS,
    AgeBucket,
    AgingCalculator,
    AgingDocument,
    classify,
    days_overdue,
)
from ledger_engines.payment_status import PaymentStatus

AS_OF = date(2024, 6, 30)


def make_document(
    days_past_due: int,
    amount_due: str = "100",
    amount_paid: str = "0",
    status: PaymentStatus = PaymentStatus.UNPAID,
    counterparty_id=None,
) -> AgingDocument:
    return AgingDocument(
        document_id=uuid4(),
        document_number=f"INV-{days_past_due}",
        counterparty_id=counterparty_id or uuid4(),
        counterparty_name="Acme Supply",
        due_date=AS_OF - timedelta(days=days_past_due),
        amount_due=Decimal(amount_due),
        amount_paid=Decimal(amount_paid),
        payment_status=status,
    )


class TestDaysOverdue:
    def test_past_due(self):
        assert days_overdue(date(2024, 5, 31), AS_OF) == 30

    def test_not_yet_due_is_negative(self):
        assert days_overdue(date(2024, 7, 10), AS_OF) == -10

    def test_due_today_is_zero(self):
        assert days_overdue(AS_OF, AS_OF) == 0


class TestBucketClassification:
    """Upper edges are inclusive."""

    @pytest.mark.parametrize(
        "days, bucket",
        [
            (-15, CURRENT),
            (0, CURRENT),
            (1, DAYS_1_30),
            (30, DAYS_1_30),
            (31, DAYS_31_60),
            (60, DAYS_31_60),
            (61, DAYS_61_90),
            (90, DAYS_61_90),
            (91, DAYS_90_PLUS),
            (400, DAYS_90_PLUS),
        ],
    )
    def test_bucket_edges(self, days, bucket):
        assert classify(days) == bucket

    def test_bucket_names_in_order(self):
        assert BUCKET_NAMES == ("current", "1-30", "31-60", "61-90", "90Plus")

    def test_inverted_bucket_rejected(self):
        with pytest.raises(ValueError):
            AgeBucket("bad", 10, 5)


class TestAgingReport:
    def setup_method(self):
        self.calculator = AgingCalculator()

    def test_boundary_documents_land_in_expected_buckets(self):
        documents = [make_document(days) for days in (30, 31, 60, 61, 90, 91)]

        report = self.calculator.build_report(documents=documents, as_of_date=AS_OF)

        assert report.totals[DAYS_1_30] == Decimal("100")
        assert report.totals[DAYS_31_60] == Decimal("200")
        assert report.totals[DAYS_61_90] == Decimal("200")
        assert report.totals[DAYS_90_PLUS] == Decimal("100")
        assert report.totals[CURRENT] == Decimal("0")

    def test_outstanding_is_due_minus_paid(self):
        documents = [
            make_document(
                45, amount_due="500", amount_paid="200", status=PaymentStatus.PARTIALLY_PAID
            )
        ]

        report = self.calculator.build_report(documents=documents, as_of_date=AS_OF)

        assert report.totals[DAYS_31_60] == Decimal("300")
        assert report.total_outstanding == Decimal("300")

    def test_paid_and_voided_documents_skipped(self):
        documents = [
            make_document(10, amount_paid="100", status=PaymentStatus.PAID),
            make_document(10, status=PaymentStatus.VOIDED),
            make_document(10),
        ]

        report = self.calculator.build_report(documents=documents, as_of_date=AS_OF)

        assert len(report.items) == 1
        assert report.totals[DAYS_1_30] == Decimal("100")

    def test_settled_status_as_loaded_string_skipped(self):
        documents = [make_document(10, status="paid")]

        report = self.calculator.build_report(documents=documents, as_of_date=AS_OF)

        assert report.items == ()

    def test_items_in_bucket(self):
        documents = [make_document(5), make_document(75)]

        report = self.calculator.build_report(documents=documents, as_of_date=AS_OF)

        assert [i.days_overdue for i in report.items_in_bucket(DAYS_61_90)] == [75]

    def test_totals_by_counterparty(self):
        vendor = uuid4()
        documents = [
            make_document(5, amount_due="40", counterparty_id=vendor),
            make_document(45, amount_due="60", counterparty_id=vendor),
        ]

        report = self.calculator.build_report(documents=documents, as_of_date=AS_OF)
        totals = report.totals_by_counterparty()

        assert totals[vendor][DAYS_1_30] == Decimal("40")
        assert totals[vendor][DAYS_31_60] == Decimal("60")

    def test_empty_report(self):
        report = self.calculator.build_report(documents=[], as_of_date=AS_OF, report_type="AR")

        assert report.report_type == "AR"
        assert report.total_outstanding == Decimal("0")
        assert set(report.totals) == set(BUCKET_NAMES)
