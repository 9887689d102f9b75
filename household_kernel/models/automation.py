"""
Module: household_kernel.models.automation
Responsibility: ORM persistence for sweep-produced alerts and suggestions.
Architecture position: Kernel > Models.

Invariants enforced:
    - Alerts and suggestions are never deleted; lifecycle is carried by
      ``status`` (+ ``resolved_at`` / ``reviewed_at`` / ``snooze_until``).
    - ``fingerprint`` is the reconciliation join key.  It is indexed but
      deliberately NOT unique: racing sweeps may both insert, and the next
      reconciliation converges the duplicates.
    - ``source`` records the producing channel (``automation_sweep:{mode}``
      for sweep output).  Only that channel is eligible for auto-resolution.
"""

from decimal import Decimal

from sqlalchemy import Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from household_kernel.db.base import OwnedBase
from household_kernel.domain.records import (
    AlertRecord,
    AlertSeverity,
    AlertStatus,
    SuggestionKind,
    SuggestionRecord,
    SuggestionStatus,
    decimal_or,
    parse_json_object,
)


class AlertModel(OwnedBase):
    """A time-sensitive condition shown to the user (bill due, high utilization...)."""

    __tablename__ = "automation_alerts"

    __table_args__ = (
        Index("idx_alert_user_fingerprint", "user_id", "fingerprint"),
        Index("idx_alert_user_status", "user_id", "status"),
    )

    fingerprint: Mapped[str] = mapped_column(String(255), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    detail: Mapped[str] = mapped_column(Text, nullable=False, default="")

    severity: Mapped[str] = mapped_column(
        String(10), nullable=False, default=AlertSeverity.MEDIUM.value
    )

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    due_at: Mapped[int | None] = mapped_column(nullable=True)

    cycle_key: Mapped[str] = mapped_column(String(7), nullable=False, default="")

    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=AlertStatus.OPEN.value
    )

    source: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    action_label: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    action_href: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    snooze_until: Mapped[int | None] = mapped_column(nullable=True)

    resolved_at: Mapped[int | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<AlertModel {self.fingerprint} [{self.status}]>"

    def to_record(self) -> AlertRecord:
        return AlertRecord(
            id=str(self.id),
            fingerprint=self.fingerprint or "",
            title=self.title or "",
            detail=self.detail or "",
            severity=AlertSeverity.normalize(self.severity),
            entity_type=self.entity_type or "",
            entity_id=self.entity_id or "",
            due_at=self.due_at,
            cycle_key=self.cycle_key or "",
            status=AlertStatus.normalize(self.status),
            source=self.source or "",
            action_label=self.action_label or "",
            action_href=self.action_href or "",
            snooze_until=self.snooze_until or None,
            resolved_at=self.resolved_at or None,
            updated_at=self.updated_at or self.created_at or 0,
        )


class SuggestionModel(OwnedBase):
    """
    A proposed change awaiting user review.

    ``kind`` distinguishes income-allocation proposals from subscription
    price observations.  For subscription rows ``entity_id`` is the bill id
    and ``latest_amount`` the observed bill amount; the most recent row per
    bill is the price baseline for change detection.
    """

    __tablename__ = "automation_suggestions"

    __table_args__ = (
        Index("idx_suggestion_user_fingerprint", "user_id", "fingerprint"),
        Index("idx_suggestion_user_kind", "user_id", "kind"),
    )

    kind: Mapped[str] = mapped_column(String(30), nullable=False)

    fingerprint: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=SuggestionStatus.OPEN.value
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")

    reason: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    latest_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    source: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    payload_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    decision_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    reviewed_at: Mapped[int | None] = mapped_column(nullable=True)

    snooze_until: Mapped[int | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<SuggestionModel {self.kind} {self.fingerprint} [{self.status}]>"

    def to_record(self) -> SuggestionRecord:
        return SuggestionRecord(
            id=str(self.id),
            kind=SuggestionKind.normalize(self.kind),
            fingerprint=self.fingerprint or "",
            status=SuggestionStatus.normalize(self.status),
            entity_id=self.entity_id or "",
            source=self.source or "",
            payload=parse_json_object(self.payload_json),
            latest_amount=(
                decimal_or(self.latest_amount) if self.latest_amount is not None else None
            ),
            snooze_until=self.snooze_until or None,
            updated_at=max(self.updated_at or 0, self.reviewed_at or 0, self.created_at or 0),
        )
