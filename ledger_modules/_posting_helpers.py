"""
Shared helpers for module service transaction boundaries.

Used by ledger_modules/*/service.py so that every public operation commits
on success and leaves no partial write behind on failure.

Architecture: Modules layer.  Imports only from ledger_kernel.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.exceptions import ConcurrencyConflictError, InvariantViolationError
from ledger_kernel.logging_config import LogContext


@contextmanager
def unit_of_work(
    session: Session,
    logger: Any,
    operation: str,
    entity_type: str,
    entity_id: Any = None,
) -> Iterator[Session]:
    """
    Commit the block's work, or roll it back and re-raise.

    The operation and entity are bound into LogContext for the block, so
    every record written underneath carries them.

    StaleDataError (a version counter mismatch on flush or commit) becomes
    ConcurrencyConflictError.  InvariantViolationError is logged at WARNING
    as ``invariant_violation_rejected`` before the rollback so rejected
    imbalances remain visible for audit review.
    """
    with LogContext.bind(operation=operation, entity_type=entity_type, entity_id=entity_id):
        try:
            yield session
            session.commit()
        except StaleDataError as exc:
            session.rollback()
            logger.warning("concurrency_conflict")
            raise ConcurrencyConflictError(entity_type, entity_id) from exc
        except InvariantViolationError as exc:
            session.rollback()
            logger.warning(
                "invariant_violation_rejected",
                extra={"error_code": exc.code, "error_message": str(exc)},
            )
            raise
        except Exception:
            session.rollback()
            raise
