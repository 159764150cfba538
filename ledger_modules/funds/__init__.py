"""Fund accounting: allocations, transfers, fund reconciliation."""

from ledger_modules.funds.service import (
    FundActivity,
    FundReconciliation,
    FundRestriction,
    FundService,
)

__all__ = ["FundActivity", "FundReconciliation", "FundRestriction", "FundService"]
