"""Read-only reports: aging, trial balance, income statement, budget variance."""

from ledger_modules.reporting.service import (
    IncomeStatement,
    IncomeStatementLine,
    ReportingService,
)

__all__ = ["IncomeStatement", "IncomeStatementLine", "ReportingService"]
