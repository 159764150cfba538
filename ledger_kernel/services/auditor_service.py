"""
AuditorService -- append-only audit trail writer.

Responsibility:
    Records one AuditEvent per significant ledger action, numbered from the
    ``audit_event`` sequence and timestamped by the injected Clock.  Also
    answers "what happened to this entity" queries for reviewers.

Invariants enforced:
    - Audit rows are inserted, never updated.
    - Flush-only; the event commits or rolls back with the action it
      describes, so a rejected operation leaves no audit row behind.
"""

from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_event import AuditAction, AuditEvent
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.auditor")


def _jsonable(details: dict[str, Any] | None) -> dict[str, Any] | None:
    if details is None:
        return None
    out: dict[str, Any] = {}
    for key, value in details.items():
        if isinstance(value, Enum):
            out[key] = value.value
        elif value is None or isinstance(value, (bool, int, str)):
            out[key] = value
        else:
            out[key] = str(value)
    return out


class AuditorService:
    """Writes and reads AuditEvent rows."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)

    def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
        actor_id: UUID,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Append one audit event within the caller's transaction."""
        event = AuditEvent(
            seq=self._sequences.next_value(SequenceService.AUDIT_EVENT),
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            details=_jsonable(details),
        )
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_recorded",
            extra={
                "seq": event.seq,
                "action": action.value,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return event

    def get_trail(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        """All events for one entity in sequence order."""
        return list(
            self._session.execute(
                select(AuditEvent)
                .where(
                    AuditEvent.entity_type == entity_type,
                    AuditEvent.entity_id == entity_id,
                )
                .order_by(AuditEvent.seq)
            ).scalars()
        )

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(
            self._session.execute(
                select(AuditEvent).order_by(AuditEvent.seq.desc()).limit(limit)
            ).scalars()
        )
