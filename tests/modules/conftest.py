"""
Module-level fixtures: service instances wired to the test session and
factories for posted bills and invoices.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_modules.banking import BankReconciliationService
from ledger_modules.budgets import BudgetService
from ledger_modules.funds import FundService
from ledger_modules.general_ledger import GeneralLedgerService
from ledger_modules.payables import LineItemSpec, PayablesService
from ledger_modules.payments import PaymentApplicationService
from ledger_modules.receivables import ReceivablesService
from ledger_modules.reporting import ReportingService


@pytest.fixture
def payables_service(session, deterministic_clock, settings) -> PayablesService:
    return PayablesService(session, deterministic_clock, settings)


@pytest.fixture
def receivables_service(session, deterministic_clock, settings) -> ReceivablesService:
    return ReceivablesService(session, deterministic_clock, settings)


@pytest.fixture
def payment_service(session, deterministic_clock, settings) -> PaymentApplicationService:
    return PaymentApplicationService(session, deterministic_clock, settings)


@pytest.fixture
def fund_service(session, deterministic_clock, settings) -> FundService:
    return FundService(session, deterministic_clock, settings)


@pytest.fixture
def banking_service(session, deterministic_clock, settings) -> BankReconciliationService:
    return BankReconciliationService(session, deterministic_clock, settings)


@pytest.fixture
def budget_service(session, deterministic_clock) -> BudgetService:
    return BudgetService(session, deterministic_clock)


@pytest.fixture
def reporting_service(session, deterministic_clock) -> ReportingService:
    return ReportingService(session, deterministic_clock)


@pytest.fixture
def gl_service(session, deterministic_clock) -> GeneralLedgerService:
    return GeneralLedgerService(session, deterministic_clock)


@pytest.fixture
def vendor(payables_service, standard_accounts, test_actor_id):
    return payables_service.create_vendor("ACME", "Acme Supplies", test_actor_id)


@pytest.fixture
def customer(receivables_service, standard_accounts, test_actor_id):
    return receivables_service.create_customer("SMITH", "Smith Family", test_actor_id)


@pytest.fixture
def posted_bill(payables_service, vendor, standard_accounts, test_actor_id):
    """
    Factory for posted bills against the standard vendor.

    Usage::

        bill = posted_bill("1000.00")
        bill = posted_bill("250", invoice_date=date(2024, 3, 1), number="INV-7")
    """
    counter = iter(range(1, 1000))

    def _create(amount, invoice_date=date(2024, 3, 1), number=None, due_date=None, account_role="supplies"):
        bill = payables_service.create_bill(
            vendor.id,
            number or f"BILL-{next(counter):03d}",
            invoice_date,
            [LineItemSpec("Supplies", standard_accounts[account_role].id, Decimal(amount))],
            test_actor_id,
            due_date=due_date,
        )
        payables_service.approve(bill.id, test_actor_id)
        payables_service.post(bill.id, test_actor_id)
        return bill

    return _create


@pytest.fixture
def posted_invoice(receivables_service, customer, standard_accounts, test_actor_id):
    """Factory for posted tuition invoices against the standard customer."""
    counter = iter(range(1, 1000))

    def _create(amount, invoice_date=date(2024, 3, 1), number=None, due_date=None):
        invoice = receivables_service.create_invoice(
            customer.id,
            number or f"INV-{next(counter):03d}",
            invoice_date,
            [LineItemSpec("Tuition", standard_accounts["tuition"].id, Decimal(amount))],
            test_actor_id,
            due_date=due_date,
        )
        receivables_service.approve(invoice.id, test_actor_id)
        receivables_service.post(invoice.id, test_actor_id)
        return invoice

    return _create
