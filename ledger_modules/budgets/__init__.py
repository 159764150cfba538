"""Budgets and budget-versus-actual variance."""

from ledger_modules.budgets.service import BudgetLineSpec, BudgetService

__all__ = ["BudgetLineSpec", "BudgetService"]
