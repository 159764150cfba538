"""
Ledger modules -- services that own the unit of work.

Each public method of a module service is one unit of work: it commits on
success and rolls back, then re-raises, on any exception.  Kernel services
below them only flush.

    general_ledger   GeneralLedgerService (transactions, periods, accounts)
    funds            FundService (allocation, transfer, fund reconciliation)
    payables         PayablesService (vendors, bills, recurring bills)
    receivables      ReceivablesService (customers, invoices, recurring invoices)
    payments         PaymentApplicationService
    banking          BankReconciliationService
    budgets          BudgetService
    reporting        ReportingService (read-only)
"""
