"""Payment application against bills and invoices."""

from ledger_modules.payments.orm import DocumentKind, Payment, PaymentMethod, PaymentState
from ledger_modules.payments.service import PaymentApplicationService

__all__ = [
    "DocumentKind",
    "Payment",
    "PaymentApplicationService",
    "PaymentMethod",
    "PaymentState",
]
