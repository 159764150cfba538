"""
Settings schema.

Frozen dataclasses describing the engine's runtime settings.  YAML files
are parsed into these types by ``ledger_config.loader``; services receive
the parsed values, never the raw mapping.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection parameters passed to ``init_engine_from_url``."""

    url: str = "sqlite:///ledger.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    busy_timeout: int = 30


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MatchingSettings:
    """Bank reconciliation auto-match parameters."""

    date_tolerance_days: int = 3


@dataclass(frozen=True)
class PayablesSettings:
    """Defaults shared by payables and receivables."""

    default_payment_terms: str = "Net 30"
    default_payment_terms_days: int = 30


@dataclass(frozen=True)
class AccountRoles:
    """
    Account numbers that system-generated postings use.

    Resolved to Account rows through ``AccountService.get_by_number`` at
    the time of each posting.
    """

    accounts_payable: str = "2000"
    accounts_receivable: str = "1200"
    cash: str = "1000"
    fund_transfer_out: str = "3900"
    fund_transfer_in: str = "3910"


@dataclass(frozen=True)
class LedgerSettings:
    """Root settings object."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    matching: MatchingSettings = field(default_factory=MatchingSettings)
    payables: PayablesSettings = field(default_factory=PayablesSettings)
    accounts: AccountRoles = field(default_factory=AccountRoles)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
