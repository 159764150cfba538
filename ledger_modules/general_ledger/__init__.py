"""General ledger: accounts, fiscal periods, journal transactions."""

from ledger_modules.general_ledger.service import GeneralLedgerService

__all__ = ["GeneralLedgerService"]
