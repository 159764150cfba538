"""
Module: ledger_kernel.models.audit_event
Responsibility: Append-only audit trail of significant ledger actions.
Architecture position: Kernel > Models.  May import from db/base.py only.

Every approval, posting, void, period close, payment void, and completed
reconciliation produces one AuditEvent.  Rows are written by
AuditorService and never updated.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_APPROVED = "transaction_approved"
    TRANSACTION_POSTED = "transaction_posted"
    TRANSACTION_VOIDED = "transaction_voided"
    PERIOD_CLOSED = "period_closed"
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_DEACTIVATED = "account_deactivated"
    DOCUMENT_VOIDED = "document_voided"
    PAYMENT_VOIDED = "payment_voided"
    FUND_TRANSFERRED = "fund_transferred"
    RECONCILIATION_COMPLETED = "reconciliation_completed"
    RECONCILIATION_ABANDONED = "reconciliation_abandoned"


class AuditEvent(Base):
    """One immutable audit record."""

    __tablename__ = "audit_events"
    __table_args__ = (
        UniqueConstraint("seq", name="uq_audit_seq"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    action: Mapped[AuditAction] = mapped_column(String(50), nullable=False)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.seq} {self.action} {self.entity_type}:{self.entity_id}>"
