"""
Tests for the payables module.

Covers:
- Bill creation: ledger entries, due date from payment terms
- Approval mirrors the owned transaction
- Duplicate invoice number per vendor
- Void of unpaid and paid bills
- Recurring bill generation, clamping and inactive templates
- Vendor summary
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_engines.payment_status import PaymentStatus
from ledger_engines.recurrence import Frequency
from ledger_kernel.exceptions import (
    CannotVoidPaidDocumentError,
    IllegalStateTransitionError,
    InvalidAmountError,
    RecurringTemplateInactiveError,
    ValidationError,
    VendorNotFoundError,
)
from ledger_kernel.models.transaction import TransactionStatus
from ledger_modules.payables import LineItemSpec
from ledger_modules.payments import DocumentKind, PaymentMethod


class TestCreateBill:
    def test_bill_posts_expense_and_payable(
        self, payables_service, ledger_selector, vendor, standard_accounts, test_actor_id
    ):
        bill = payables_service.create_bill(
            vendor.id,
            "INV-1001",
            date(2024, 3, 1),
            [
                LineItemSpec("Paper", standard_accounts["supplies"].id, Decimal("25.00"), quantity=Decimal("4")),
                LineItemSpec("Power", standard_accounts["utilities"].id, Decimal("150.00")),
            ],
            test_actor_id,
        )

        assert bill.amount_due == Decimal("250.00")
        assert bill.subtotal == bill.amount_due
        assert bill.payment_status == PaymentStatus.UNPAID
        assert payables_service.approval_status(bill.id) == "draft"
        assert ledger_selector.account_balance(standard_accounts["ap"].id) == Decimal("0")

        payables_service.approve(bill.id, test_actor_id)
        payables_service.post(bill.id, test_actor_id)

        assert payables_service.approval_status(bill.id) == TransactionStatus.POSTED.value
        assert ledger_selector.account_balance(standard_accounts["ap"].id) == Decimal("-250.00")
        assert ledger_selector.account_balance(standard_accounts["supplies"].id) == Decimal("100.00")

    def test_due_date_from_vendor_terms(self, payables_service, standard_accounts, test_actor_id):
        vendor = payables_service.create_vendor("NET45", "Slow Payer", test_actor_id, payment_terms="Net 45")

        bill = payables_service.create_bill(
            vendor.id,
            "A-1",
            date(2024, 1, 15),
            [LineItemSpec("Service", standard_accounts["supplies"].id, Decimal("10"))],
            test_actor_id,
        )

        assert bill.due_date == date(2024, 2, 29)
        assert bill.payment_terms == "Net 45"

    def test_explicit_due_date_wins(self, payables_service, vendor, standard_accounts, test_actor_id):
        bill = payables_service.create_bill(
            vendor.id,
            "A-2",
            date(2024, 1, 15),
            [LineItemSpec("Service", standard_accounts["supplies"].id, Decimal("10"))],
            test_actor_id,
            due_date=date(2024, 1, 20),
        )

        assert bill.due_date == date(2024, 1, 20)

    def test_default_terms(self, payables_service, vendor, standard_accounts, test_actor_id):
        bill = payables_service.create_bill(
            vendor.id,
            "A-3",
            date(2024, 1, 1),
            [LineItemSpec("Service", standard_accounts["supplies"].id, Decimal("10"))],
            test_actor_id,
        )

        assert bill.due_date == date(2024, 1, 31)

    def test_duplicate_number_for_vendor_rejected(self, payables_service, vendor, standard_accounts, test_actor_id):
        line = [LineItemSpec("Service", standard_accounts["supplies"].id, Decimal("10"))]
        payables_service.create_bill(vendor.id, "DUP-1", date(2024, 1, 1), line, test_actor_id)

        with pytest.raises(ValidationError):
            payables_service.create_bill(vendor.id, "DUP-1", date(2024, 1, 2), line, test_actor_id)

    def test_same_number_for_other_vendor_allowed(self, payables_service, vendor, standard_accounts, test_actor_id):
        other = payables_service.create_vendor("OTHER", "Other Co", test_actor_id)
        line = [LineItemSpec("Service", standard_accounts["supplies"].id, Decimal("10"))]
        payables_service.create_bill(vendor.id, "SAME-1", date(2024, 1, 1), line, test_actor_id)

        bill = payables_service.create_bill(other.id, "SAME-1", date(2024, 1, 1), line, test_actor_id)

        assert bill.vendor_id == other.id

    def test_no_lines_rejected(self, payables_service, vendor, test_actor_id):
        with pytest.raises(ValidationError):
            payables_service.create_bill(vendor.id, "EMPTY", date(2024, 1, 1), [], test_actor_id)

    def test_non_positive_line_rejected(self, payables_service, vendor, standard_accounts, test_actor_id):
        with pytest.raises(InvalidAmountError):
            payables_service.create_bill(
                vendor.id,
                "ZERO",
                date(2024, 1, 1),
                [LineItemSpec("Nothing", standard_accounts["supplies"].id, Decimal("0"))],
                test_actor_id,
            )

    def test_unknown_vendor(self, payables_service, standard_accounts, test_actor_id):
        with pytest.raises(VendorNotFoundError):
            payables_service.create_bill(
                uuid4(),
                "X",
                date(2024, 1, 1),
                [LineItemSpec("Service", standard_accounts["supplies"].id, Decimal("10"))],
                test_actor_id,
            )

    def test_lifecycle_logged_under_module_logger(
        self, payables_service, vendor, standard_accounts, test_actor_id, captured_logs
    ):
        bill = payables_service.create_bill(
            vendor.id,
            "INV-1002",
            date(2024, 3, 1),
            [LineItemSpec("Paper", standard_accounts["supplies"].id, Decimal("40"))],
            test_actor_id,
        )

        (record,) = [r for r in captured_logs() if r["message"] == "document_created"]
        assert record["logger"] == "ledger_kernel.modules.payables"
        assert record["operation"] == "create_document"
        assert record["entity_type"] == "Bill"
        assert bill.amount_due == Decimal("40")


class TestVoidBill:
    def test_void_unpaid_bill(self, payables_service, ledger_selector, posted_bill, standard_accounts, test_actor_id):
        bill = posted_bill("400")

        payables_service.void(bill.id, "duplicate invoice", test_actor_id)

        assert bill.payment_status == PaymentStatus.VOIDED
        assert payables_service.approval_status(bill.id) == TransactionStatus.VOIDED.value
        assert ledger_selector.account_balance(standard_accounts["ap"].id) == Decimal("0")

    def test_void_paid_bill_rejected(self, payables_service, payment_service, posted_bill, test_actor_id):
        bill = posted_bill("400")
        payment_service.create_payment(
            DocumentKind.BILL, bill.id, "100", date(2024, 3, 10), PaymentMethod.CHECK, test_actor_id
        )

        with pytest.raises(CannotVoidPaidDocumentError):
            payables_service.void(bill.id, "too late", test_actor_id)

        assert payables_service.get(bill.id).payment_status == PaymentStatus.PARTIALLY_PAID

    def test_void_twice_rejected(self, payables_service, posted_bill, test_actor_id):
        bill = posted_bill("400")
        payables_service.void(bill.id, "first", test_actor_id)

        with pytest.raises(IllegalStateTransitionError):
            payables_service.void(bill.id, "second", test_actor_id)


class TestRecurringBills:
    @pytest.fixture
    def template(self, payables_service, vendor, standard_accounts, test_actor_id):
        return payables_service.create_recurring_template(
            vendor.id,
            "RENT",
            "Monthly rent",
            Decimal("1200"),
            standard_accounts["utilities"].id,
            Frequency.MONTHLY,
            date(2024, 6, 30),
            test_actor_id,
            day_of_month=31,
        )

    def test_generate_creates_draft_bill(self, payables_service, template, test_actor_id):
        bill = payables_service.generate_from_recurring(template.id, test_actor_id)

        assert bill.invoice_number == "AUTO-RENT-20240630"
        assert bill.invoice_date == date(2024, 6, 30)
        assert bill.amount_due == Decimal("1200")
        assert bill.recurring_template_id == template.id
        assert payables_service.approval_status(bill.id) == "draft"
        assert template.generated_count == 1
        assert template.last_generated_date == date(2024, 6, 30)
        assert template.next_generation_date == date(2024, 7, 31)

    def test_day_31_clamps_in_short_month(self, payables_service, template, deterministic_clock, test_actor_id):
        deterministic_clock.set_date(date(2024, 3, 31))

        payables_service.generate_from_recurring(template.id, test_actor_id)

        assert template.next_generation_date == date(2024, 4, 30)

    def test_due_templates(self, payables_service, template):
        assert [t.id for t in payables_service.due_templates(date(2024, 6, 30))] == [template.id]
        assert payables_service.due_templates(date(2024, 6, 29)) == []

    def test_inactive_template_rejected(self, payables_service, template, test_actor_id):
        payables_service.deactivate_recurring_template(template.id, test_actor_id)

        with pytest.raises(RecurringTemplateInactiveError):
            payables_service.generate_from_recurring(template.id, test_actor_id)

        assert template.generated_count == 0

    def test_ended_template_rejected(self, payables_service, vendor, standard_accounts, test_actor_id):
        template = payables_service.create_recurring_template(
            vendor.id,
            "OLD",
            "Old contract",
            Decimal("50"),
            standard_accounts["utilities"].id,
            Frequency.MONTHLY,
            date(2024, 1, 1),
            test_actor_id,
            end_date=date(2024, 5, 31),
        )

        with pytest.raises(RecurringTemplateInactiveError):
            payables_service.generate_from_recurring(template.id, test_actor_id)

    def test_repeat_generation_same_day_collides(self, payables_service, template, test_actor_id):
        payables_service.generate_from_recurring(template.id, test_actor_id)

        with pytest.raises(ValidationError):
            payables_service.generate_from_recurring(template.id, test_actor_id)

        assert template.generated_count == 1

    def test_bad_day_of_month_rejected(self, payables_service, vendor, standard_accounts, test_actor_id):
        with pytest.raises(ValidationError):
            payables_service.create_recurring_template(
                vendor.id,
                "BAD",
                "Bad",
                Decimal("10"),
                standard_accounts["utilities"].id,
                Frequency.MONTHLY,
                date(2024, 1, 1),
                test_actor_id,
                day_of_month=32,
            )


class TestVendorSummary:
    def test_summary_excludes_voided(self, payables_service, payment_service, posted_bill, vendor, test_actor_id):
        paid = posted_bill("300")
        posted_bill("200")
        voided = posted_bill("999")
        payables_service.void(voided.id, "wrong vendor", test_actor_id)
        payment_service.create_payment(
            DocumentKind.BILL, paid.id, "300", date(2024, 3, 5), PaymentMethod.ACH, test_actor_id
        )

        summary = payables_service.vendor_summary(vendor.id)

        assert summary.document_count == 2
        assert summary.open_count == 1
        assert summary.total_billed == Decimal("500")
        assert summary.total_paid == Decimal("300")
        assert summary.outstanding == Decimal("200")
