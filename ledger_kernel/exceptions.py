"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
CATEGORIES
===============================================================================

Every error raised by the kernel or a module service is an instance of
LedgerKernelError and belongs to exactly one of five categories.  Callers
are expected to branch on the category, never on message text:

    ValidationError           bad input, rejected before any mutation;
                              the caller must correct the request
    StateConflictError        the entity is in the wrong state for the
                              operation; carries ``current_state`` so the
                              UI can re-render accurately
    NotFoundError             unknown id or number
    ConcurrencyConflictError  lost update detected; retry the WHOLE
                              operation (never only the write)
    InvariantViolationError   a ledger-wide invariant would break; always
                              rejected, never auto-corrected, and logged
                              for audit review by module services

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- EmptyEntriesError
    |   +-- UnbalancedEntriesError
    |   +-- InvalidEntryError
    |   +-- InvalidAmountError
    |   +-- MissingFundError
    |   +-- FundNotAvailableError
    |   +-- InactiveAccountError
    |   +-- AccountClassificationImmutableError
    |   +-- AccountHierarchyCycleError
    |   +-- PeriodOverlapError
    |   +-- AmountMismatchError
    |
    +-- StateConflictError
    |   +-- IllegalStateTransitionError
    |   +-- CannotVoidPaidDocumentError
    |   +-- OverpaymentError
    |   +-- DocumentNotPayableError
    |   +-- ClosedPeriodError
    |   +-- PeriodHasOpenTransactionsError
    |   +-- ReconciliationInProgressError
    |   +-- ReconciliationClosedError
    |   +-- ReconciliationIncompleteError
    |   +-- RecurringTemplateInactiveError
    |   +-- TransactionAlreadyMatchedError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError, TransactionNotFoundError,
    |   +-- DocumentNotFoundError, PaymentNotFoundError, FundNotFoundError,
    |   +-- VendorNotFoundError, CustomerNotFoundError,
    |   +-- BankAccountNotFoundError, BankTransactionNotFoundError,
    |   +-- ReconciliationNotFoundError, TemplateNotFoundError,
    |   +-- BudgetNotFoundError, PeriodNotFoundError
    |
    +-- ConcurrencyConflictError
    |
    +-- InvariantViolationError
        +-- UnbalancedReconciliationError
        +-- InsufficientFundBalanceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                           | When Raised
-------------------------------|---------------------------------------------
EMPTY_ENTRIES                  | Transaction submitted with no entries
UNBALANCED_ENTRIES             | sum(debits) != sum(credits)
INVALID_ENTRY                  | Entry with both/neither sides or a negative side
OVERPAYMENT                    | amount_paid + amount > amount_due
CANNOT_VOID_PAID_DOCUMENT      | Void of a document that has received payment
ILLEGAL_STATE_TRANSITION       | e.g. posting a DRAFT transaction
CLOSED_PERIOD                  | Posting into a closed fiscal period
CONCURRENCY_CONFLICT           | Version counter mismatch on flush
UNBALANCED_RECONCILIATION      | Adjusted statement != ledger side
INSUFFICIENT_FUND_BALANCE      | Restricted fund would go negative

Exceptions store their context as attributes (amounts as strings, ids
as UUIDs) so that the structured log formatter can emit them as
``exc_*`` fields without parsing the message.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID


class LedgerKernelError(Exception):
    """
    Base exception for all ledger errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# =============================================================================
# Validation
# =============================================================================


class ValidationError(LedgerKernelError):
    """Input rejected before any mutation."""

    code: str = "VALIDATION_ERROR"


class EmptyEntriesError(ValidationError):
    """A transaction must carry at least one entry."""

    code: str = "EMPTY_ENTRIES"

    def __init__(self) -> None:
        super().__init__("Transaction has no entries")


class UnbalancedEntriesError(ValidationError):
    """Transaction debits do not equal credits."""

    code: str = "UNBALANCED_ENTRIES"

    def __init__(self, debits: Decimal, credits: Decimal):
        self.debits = str(debits)
        self.credits = str(credits)
        super().__init__(
            f"Unbalanced entries: debits={debits}, credits={credits}"
        )


class InvalidEntryError(ValidationError):
    """An entry must have exactly one positive side."""

    code: str = "INVALID_ENTRY"

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Invalid entry at line {line_number}: {reason}")


class InvalidAmountError(ValidationError):
    """Monetary amount out of the permitted range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: Decimal, reason: str = "must be positive"):
        self.field = field
        self.amount = str(amount)
        super().__init__(f"Invalid {field} {amount}: {reason}")


class MissingFundError(ValidationError):
    """Fund allocations require a fund on every entry."""

    code: str = "MISSING_FUND"

    def __init__(self, line_number: int):
        self.line_number = line_number
        super().__init__(f"Entry at line {line_number} has no fund")


class FundNotAvailableError(ValidationError):
    """Fund is inactive or the date falls outside its validity window."""

    code: str = "FUND_NOT_AVAILABLE"

    def __init__(self, fund_id: UUID, reason: str):
        self.fund_id = fund_id
        self.reason = reason
        super().__init__(f"Fund {fund_id} not available: {reason}")


class InactiveAccountError(ValidationError):
    """Entries cannot target a deactivated account."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_number: str):
        self.account_number = account_number
        super().__init__(f"Account {account_number} is inactive")


class AccountClassificationImmutableError(ValidationError):
    """An account's type and normal balance are fixed at creation."""

    code: str = "ACCOUNT_CLASSIFICATION_IMMUTABLE"

    def __init__(self, account_number: str | None, field: str):
        self.account_number = account_number
        self.field = field
        super().__init__(
            f"Account {account_number}: {field} cannot change after creation"
        )


class AccountHierarchyCycleError(ValidationError):
    """Setting the parent would create a cycle in the account tree."""

    code: str = "ACCOUNT_HIERARCHY_CYCLE"

    def __init__(self, account_id: UUID, parent_id: UUID):
        self.account_id = account_id
        self.parent_id = parent_id
        super().__init__(
            f"Parent {parent_id} would create a cycle under account {account_id}"
        )


class PeriodOverlapError(ValidationError):
    """Fiscal periods may not overlap."""

    code: str = "PERIOD_OVERLAP"

    def __init__(self, new_period_code: str, existing_period_code: str):
        self.new_period_code = new_period_code
        self.existing_period_code = existing_period_code
        super().__init__(
            f"Period {new_period_code} overlaps existing period {existing_period_code}"
        )


class AmountMismatchError(ValidationError):
    """Two amounts that must agree do not."""

    code: str = "AMOUNT_MISMATCH"

    def __init__(self, expected: Decimal, actual: Decimal, context: str):
        self.expected = str(expected)
        self.actual = str(actual)
        self.context = context
        super().__init__(f"{context}: expected {expected}, got {actual}")


# =============================================================================
# State conflicts
# =============================================================================


class StateConflictError(LedgerKernelError):
    """The entity's current state does not permit the operation."""

    code: str = "STATE_CONFLICT"

    def __init__(self, message: str, current_state: str | None = None):
        self.current_state = current_state
        super().__init__(message)


class IllegalStateTransitionError(StateConflictError):
    """Requested transition is not an edge of the state machine."""

    code: str = "ILLEGAL_STATE_TRANSITION"

    def __init__(self, entity_type: str, entity_id: Any, current_state: str, action: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in state {current_state}",
            current_state=current_state,
        )


class CannotVoidPaidDocumentError(StateConflictError):
    """A document that has received payment cannot be voided."""

    code: str = "CANNOT_VOID_PAID_DOCUMENT"

    def __init__(self, document_id: UUID, amount_paid: Decimal, current_state: str):
        self.document_id = document_id
        self.amount_paid = str(amount_paid)
        super().__init__(
            f"Document {document_id} has received {amount_paid} in payments",
            current_state=current_state,
        )


class OverpaymentError(StateConflictError):
    """Payment would push amount_paid above amount_due."""

    code: str = "OVERPAYMENT"

    def __init__(
        self,
        document_id: UUID,
        amount_due: Decimal,
        amount_paid: Decimal,
        amount: Decimal,
        current_state: str,
    ):
        self.document_id = document_id
        self.amount_due = str(amount_due)
        self.amount_paid = str(amount_paid)
        self.amount = str(amount)
        super().__init__(
            f"Payment of {amount} on document {document_id} exceeds balance: "
            f"due={amount_due}, paid={amount_paid}",
            current_state=current_state,
        )


class DocumentNotPayableError(StateConflictError):
    """Only posted, non-voided documents accept payments."""

    code: str = "DOCUMENT_NOT_PAYABLE"

    def __init__(self, document_id: UUID, current_state: str):
        self.document_id = document_id
        super().__init__(
            f"Document {document_id} is not payable in state {current_state}",
            current_state=current_state,
        )


class ClosedPeriodError(StateConflictError):
    """Posting into a closed fiscal period."""

    code: str = "CLOSED_PERIOD"

    def __init__(self, period_code: str, effective_date: str):
        self.period_code = period_code
        self.effective_date = effective_date
        super().__init__(
            f"Cannot post to closed period {period_code} for date {effective_date}",
            current_state="CLOSED",
        )


class PeriodHasOpenTransactionsError(StateConflictError):
    """A period cannot close while draft or pending transactions remain."""

    code: str = "PERIOD_HAS_OPEN_TRANSACTIONS"

    def __init__(self, period_code: str, open_count: int):
        self.period_code = period_code
        self.open_count = open_count
        super().__init__(
            f"Period {period_code} has {open_count} unapproved transaction(s)",
            current_state="OPEN",
        )


class ReconciliationInProgressError(StateConflictError):
    """Only one in-progress reconciliation per bank account."""

    code: str = "RECONCILIATION_IN_PROGRESS"

    def __init__(self, bank_account_id: UUID, reconciliation_id: UUID):
        self.bank_account_id = bank_account_id
        self.reconciliation_id = reconciliation_id
        super().__init__(
            f"Bank account {bank_account_id} already has reconciliation "
            f"{reconciliation_id} in progress",
            current_state="IN_PROGRESS",
        )


class ReconciliationClosedError(StateConflictError):
    """Completed or abandoned reconciliations are immutable."""

    code: str = "RECONCILIATION_CLOSED"

    def __init__(self, reconciliation_id: UUID, current_state: str):
        self.reconciliation_id = reconciliation_id
        super().__init__(
            f"Reconciliation {reconciliation_id} is {current_state}",
            current_state=current_state,
        )


class ReconciliationIncompleteError(StateConflictError):
    """Bank lines still need matching, review, or exclusion."""

    code: str = "RECONCILIATION_INCOMPLETE"

    def __init__(self, reconciliation_id: UUID, pending_count: int):
        self.reconciliation_id = reconciliation_id
        self.pending_count = pending_count
        super().__init__(
            f"Reconciliation {reconciliation_id} has {pending_count} "
            "unresolved bank transaction(s)",
            current_state="IN_PROGRESS",
        )


class RecurringTemplateInactiveError(StateConflictError):
    """Template is deactivated or past its end date."""

    code: str = "RECURRING_TEMPLATE_INACTIVE"

    def __init__(self, template_id: UUID, reason: str):
        self.template_id = template_id
        self.reason = reason
        super().__init__(
            f"Recurring template {template_id} cannot generate: {reason}",
            current_state="INACTIVE",
        )


class TransactionAlreadyMatchedError(StateConflictError):
    """The ledger transaction is held by another bank transaction."""

    code: str = "TRANSACTION_ALREADY_MATCHED"

    def __init__(self, transaction_id: UUID, bank_transaction_id: UUID):
        self.transaction_id = transaction_id
        self.bank_transaction_id = bank_transaction_id
        super().__init__(
            f"Ledger transaction {transaction_id} is already matched to "
            f"bank transaction {bank_transaction_id}",
            current_state="MATCHED",
        )


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(LedgerKernelError):
    """Unknown identifier."""

    code: str = "NOT_FOUND"
    entity_type: str = "Entity"

    def __init__(self, entity_id: Any):
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type} not found: {entity_id}")


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"
    entity_type = "Account"


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"
    entity_type = "Transaction"


class DocumentNotFoundError(NotFoundError):
    code: str = "DOCUMENT_NOT_FOUND"
    entity_type = "Document"


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"
    entity_type = "Payment"


class FundNotFoundError(NotFoundError):
    code: str = "FUND_NOT_FOUND"
    entity_type = "Fund"


class VendorNotFoundError(NotFoundError):
    code: str = "VENDOR_NOT_FOUND"
    entity_type = "Vendor"


class CustomerNotFoundError(NotFoundError):
    code: str = "CUSTOMER_NOT_FOUND"
    entity_type = "Customer"


class BankAccountNotFoundError(NotFoundError):
    code: str = "BANK_ACCOUNT_NOT_FOUND"
    entity_type = "BankAccount"


class BankTransactionNotFoundError(NotFoundError):
    code: str = "BANK_TRANSACTION_NOT_FOUND"
    entity_type = "BankTransaction"


class ReconciliationNotFoundError(NotFoundError):
    code: str = "RECONCILIATION_NOT_FOUND"
    entity_type = "BankReconciliation"


class TemplateNotFoundError(NotFoundError):
    code: str = "TEMPLATE_NOT_FOUND"
    entity_type = "RecurringTemplate"


class BudgetNotFoundError(NotFoundError):
    code: str = "BUDGET_NOT_FOUND"
    entity_type = "Budget"


class PeriodNotFoundError(NotFoundError):
    code: str = "PERIOD_NOT_FOUND"
    entity_type = "FiscalPeriod"


# =============================================================================
# Concurrency
# =============================================================================


class ConcurrencyConflictError(LedgerKernelError):
    """Lost update detected: the row changed under this unit of work."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: Any = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}; "
            "retry the whole operation"
        )


# =============================================================================
# Invariant violations
# =============================================================================


class InvariantViolationError(LedgerKernelError):
    """A ledger-wide invariant would be broken. Logged for audit review."""

    code: str = "INVARIANT_VIOLATION"


class UnbalancedReconciliationError(InvariantViolationError):
    """Adjusted statement balance does not equal the ledger side."""

    code: str = "UNBALANCED_RECONCILIATION"

    def __init__(
        self,
        reconciliation_id: UUID,
        adjusted_statement_balance: Decimal,
        expected_balance: Decimal,
    ):
        self.reconciliation_id = reconciliation_id
        self.adjusted_statement_balance = str(adjusted_statement_balance)
        self.expected_balance = str(expected_balance)
        self.difference = str(adjusted_statement_balance - expected_balance)
        super().__init__(
            f"Reconciliation {reconciliation_id} is out of balance: "
            f"adjusted statement {adjusted_statement_balance} != "
            f"ledger {expected_balance}"
        )


class InsufficientFundBalanceError(InvariantViolationError):
    """Restricted fund balance would go negative."""

    code: str = "INSUFFICIENT_FUND_BALANCE"

    def __init__(self, fund_id: UUID, available: Decimal, requested: Decimal):
        self.fund_id = fund_id
        self.available = str(available)
        self.requested = str(requested)
        super().__init__(
            f"Restricted fund {fund_id} has {available} available, "
            f"{requested} requested"
        )
