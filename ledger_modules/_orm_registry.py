"""
Module ORM registry (``ledger_modules._orm_registry``).

Imports the kernel models and every ``ledger_modules.*.orm`` module so that
``Base.metadata`` holds every table before ``create_tables()`` runs.
Idempotent.
"""


def import_all_orm_models() -> None:
    """Register kernel and module ORM models with ``Base.metadata``."""
    import ledger_kernel.models  # noqa: F401
    import ledger_kernel.services.sequence_service  # noqa: F401
    # fmt: off
    import ledger_modules.payables.orm  # noqa: F401
    import ledger_modules.receivables.orm  # noqa: F401
    import ledger_modules.payments.orm  # noqa: F401
    import ledger_modules.banking.orm  # noqa: F401
    import ledger_modules.budgets.orm  # noqa: F401
    # fmt: on
