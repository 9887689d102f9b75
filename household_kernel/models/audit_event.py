"""
Module: household_kernel.models.audit_event
Responsibility: ORM persistence for the best-effort audit trail written by
    ledger posting, sweeps and suggestion review.
Architecture position: Kernel > Models.

Invariants enforced:
    - Audit rows are append-only by convention; nothing in this codebase
      updates or deletes them.

Failure modes:
    - Writes go through AuditorService, which isolates them in a SAVEPOINT
      so a failed audit insert never aborts the primary operation.
"""

from enum import Enum

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from household_kernel.db.base import OwnedBase


class AuditAction(str, Enum):
    """Classes of auditable actions."""

    PURCHASE_POSTED = "purchase_posted"
    ALERT_CREATED = "alert_created"
    ALERT_UPDATED = "alert_updated"
    ALERT_RESOLVED = "alert_resolved"
    SUGGESTION_CREATED = "suggestion_created"
    SUGGESTION_REVIEWED = "suggestion_reviewed"
    ALLOCATION_RULE_CREATED = "allocation_rule_created"
    BILL_AMOUNT_UPDATED = "bill_amount_updated"


class AuditEventModel(OwnedBase):
    """One audit record: who/what/when plus before/after snapshots."""

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_user_action", "user_id", "action"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # source channel, recorded_at, and action-specific context
    metadata_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<AuditEventModel {self.action} {self.entity_type}:{self.entity_id}>"
