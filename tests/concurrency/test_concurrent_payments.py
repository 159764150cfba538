"""
Concurrent payment application against one bill.

Ten threads each try to pay 1.00 against a 5.00 bill at the same moment.
The bill row lock (SELECT ... FOR UPDATE on PostgreSQL, BEGIN IMMEDIATE on
SQLite) serializes the overpayment check, so exactly five payments land,
the other five are rejected with OverpaymentError, and the bill ends PAID
with amount_paid equal to its total.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal
from threading import Barrier

import pytest

from ledger_engines.payment_status import PaymentStatus
from ledger_kernel.db.engine import session_scope
from ledger_kernel.exceptions import OverpaymentError
from ledger_modules.payables import LineItemSpec, PayablesService
from ledger_modules.payments import DocumentKind, PaymentApplicationService, PaymentMethod
from tests.conftest import create_standard_accounts

pytestmark = pytest.mark.slow_locks

THREADS = 10
BILL_TOTAL = Decimal("5.00")


@pytest.fixture
def committed_bill(session_factory, deterministic_clock, settings, test_actor_id):
    with session_scope() as setup:
        accounts = create_standard_accounts(setup, test_actor_id)
        setup.commit()

        payables = PayablesService(setup, deterministic_clock, settings)
        vendor = payables.create_vendor("RACE", "Race Vendor", test_actor_id)
        bill = payables.create_bill(
            vendor.id,
            "RACE-1",
            date(2024, 3, 1),
            [LineItemSpec("Widgets", accounts["supplies"].id, BILL_TOTAL)],
            test_actor_id,
        )
        payables.approve(bill.id, test_actor_id)
        payables.post(bill.id, test_actor_id)
        return bill.id


class TestConcurrentPayments:
    def test_no_overpayment_under_contention(
        self, committed_bill, session_factory, deterministic_clock, settings, test_actor_id
    ):
        barrier = Barrier(THREADS)

        def pay(_):
            session = session_factory()
            service = PaymentApplicationService(session, deterministic_clock, settings)
            barrier.wait()
            try:
                service.create_payment(
                    DocumentKind.BILL,
                    committed_bill,
                    Decimal("1.00"),
                    date(2024, 3, 15),
                    PaymentMethod.CHECK,
                    test_actor_id,
                )
                return "paid"
            except OverpaymentError:
                return "rejected"
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=THREADS) as pool:
            outcomes = list(pool.map(pay, range(THREADS)))

        assert outcomes.count("paid") == 5
        assert outcomes.count("rejected") == 5

        with session_scope() as check:
            bill = PayablesService(check, deterministic_clock, settings).get(committed_bill)
            assert bill.amount_paid == BILL_TOTAL
            assert bill.payment_status == PaymentStatus.PAID
            payments = PaymentApplicationService(check, deterministic_clock, settings).payments_for(
                DocumentKind.BILL, committed_bill
            )
            assert len(payments) == 5
            assert len({p.payment_number for p in payments}) == 5
