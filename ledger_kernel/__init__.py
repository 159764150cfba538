"""
Ledger Kernel

The double-entry core of the ledger engine:
- Chart of accounts with fixed normal balances
- Balanced transactions with an approval/posting state machine
- Reversal-based voiding (history is never deleted)
- Fund running balances with restricted-fund protection
- Fiscal period control and an append-only audit trail
"""

__version__ = "0.1.0"
