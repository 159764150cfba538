"""
ledger_config -- runtime settings for the ledger engine.

Responsibility:
    ``get_settings()`` is the entry point services and scripts use to
    obtain settings.  It loads the packaged ``defaults.yaml``, applies an
    optional override file and the ``LEDGER_DATABASE_URL`` environment
    variable, and returns a frozen ``LedgerSettings``.

Architecture position:
    Configuration.  Sits above ``ledger_kernel`` and below
    ``ledger_modules``.  The kernel never imports from here.

Audit relevance:
    Each load emits a ``LEDGER_CONFIG_TRACE`` record with the settings
    checksum so a run can be tied to the exact settings it used.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ledger_config.loader import compute_checksum, load_settings
from ledger_config.schema import (
    AccountRoles,
    DatabaseSettings,
    LedgerSettings,
    LoggingSettings,
    MatchingSettings,
    PayablesSettings,
)

_logger = logging.getLogger("ledger_kernel.config")


def get_settings(path: Path | str | None = None) -> LedgerSettings:
    """Load settings and emit LEDGER_CONFIG_TRACE."""
    settings = load_settings(path)
    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "checksum": compute_checksum(settings),
            "override_path": str(path) if path is not None else None,
            "dialect": settings.database.url.split(":", 1)[0],
        },
    )
    return settings


__all__ = [
    "AccountRoles",
    "DatabaseSettings",
    "LedgerSettings",
    "LoggingSettings",
    "MatchingSettings",
    "PayablesSettings",
    "get_settings",
    "load_settings",
]
