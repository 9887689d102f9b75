"""
AutomationStore -- persistence of sweep-produced alerts and suggestions.

Responsibility:
    Performs the individual writes a reconciliation pass decides on:
    insert an alert, patch an alert back to open with refreshed fields,
    resolve an alert, insert a suggestion.  Each write is audited.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the sweep
    orchestrator, which turns an engine plan into these calls.  Takes
    plain column values so the kernel never depends on engine types.

Invariants enforced:
    - Alerts and suggestions are never deleted.
    - Every write is independent and self-contained; a sweep interrupted
      between writes leaves consistent rows that the next sweep converges.
    - A record that vanished or changed owner before its patch is skipped
      and logged, never raised (someone else already handled it).
    - Rows created by the sweep carry ``source = "{prefix}:{mode}"``.

Failure modes:
    - Database errors propagate to the caller, who owns the transaction.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from household_kernel.domain.clock import Clock
from household_kernel.domain.records import AlertStatus, SuggestionStatus
from household_kernel.logging_config import get_logger
from household_kernel.models.audit_event import AuditAction
from household_kernel.models.automation import AlertModel, SuggestionModel
from household_kernel.services.auditor_service import AuditorService
from household_kernel.services.base import BaseService

logger = get_logger("services.automation_store")

_ALERT_FIELDS = (
    "title",
    "detail",
    "severity",
    "entity_type",
    "entity_id",
    "due_at",
    "cycle_key",
    "action_label",
    "action_href",
)


def _as_uuid(record_id: str | UUID) -> UUID | None:
    if isinstance(record_id, UUID):
        return record_id
    try:
        return UUID(str(record_id))
    except ValueError:
        return None


def _alert_snapshot(alert: AlertModel) -> dict[str, Any]:
    snapshot = {name: getattr(alert, name) for name in _ALERT_FIELDS}
    snapshot.update(
        fingerprint=alert.fingerprint,
        status=alert.status,
        source=alert.source,
        resolved_at=alert.resolved_at,
    )
    return snapshot


class AutomationStore(BaseService):
    """
    Writes alerts and suggestions on behalf of the sweep.

    Contract:
        Every method flushes; none commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)

    def _owned_alert(self, user_id: str, record_id: str | UUID) -> AlertModel | None:
        key = _as_uuid(record_id)
        alert = self.session.get(AlertModel, key) if key is not None else None
        if alert is None or alert.user_id != user_id:
            logger.info(
                "alert_missing_at_patch",
                extra={"alert_id": str(record_id)},
            )
            return None
        return alert

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    def create_alert(
        self,
        user_id: str,
        fingerprint: str,
        fields: dict[str, Any],
        source: str,
    ) -> AlertModel:
        now_ms = self.clock.now_ms()
        alert = AlertModel(
            user_id=user_id,
            fingerprint=fingerprint,
            status=AlertStatus.OPEN.value,
            source=source,
            created_at=now_ms,
            updated_at=now_ms,
            **{name: fields[name] for name in _ALERT_FIELDS if name in fields},
        )
        self.session.add(alert)
        self.session.flush()
        self._auditor.record(
            user_id,
            AuditAction.ALERT_CREATED,
            "alert",
            alert.id,
            after=_alert_snapshot(alert),
            metadata={"source": source},
        )
        return alert

    def update_alert(
        self,
        user_id: str,
        record_id: str | UUID,
        fields: dict[str, Any],
        source: str,
    ) -> bool:
        """Patch ``fields`` onto the alert and force it open."""
        alert = self._owned_alert(user_id, record_id)
        if alert is None:
            return False
        before = _alert_snapshot(alert)
        for name in _ALERT_FIELDS:
            if name in fields:
                setattr(alert, name, fields[name])
        alert.status = AlertStatus.OPEN.value
        alert.snooze_until = None
        alert.resolved_at = None
        alert.updated_at = self.clock.now_ms()
        self.session.flush()
        self._auditor.record(
            user_id,
            AuditAction.ALERT_UPDATED,
            "alert",
            alert.id,
            before=before,
            after=_alert_snapshot(alert),
            metadata={"source": source},
        )
        return True

    def resolve_alert(
        self,
        user_id: str,
        record_id: str | UUID,
        source: str,
        reason: str = "",
    ) -> bool:
        alert = self._owned_alert(user_id, record_id)
        if alert is None:
            return False
        if alert.status == AlertStatus.RESOLVED.value:
            return False
        before = _alert_snapshot(alert)
        now_ms = self.clock.now_ms()
        alert.status = AlertStatus.RESOLVED.value
        alert.resolved_at = now_ms
        alert.updated_at = now_ms
        self.session.flush()
        self._auditor.record(
            user_id,
            AuditAction.ALERT_RESOLVED,
            "alert",
            alert.id,
            before=before,
            after=_alert_snapshot(alert),
            metadata={"source": source, "reason": reason},
        )
        return True

    # -------------------------------------------------------------------------
    # Suggestions
    # -------------------------------------------------------------------------

    def create_suggestion(
        self,
        user_id: str,
        *,
        kind: str,
        fingerprint: str,
        title: str,
        summary: str,
        reason: str,
        entity_type: str,
        entity_id: str,
        payload: dict[str, Any],
        source: str,
        latest_amount: Decimal | None = None,
        currency: str | None = None,
    ) -> SuggestionModel:
        now_ms = self.clock.now_ms()
        suggestion = SuggestionModel(
            user_id=user_id,
            kind=kind,
            fingerprint=fingerprint,
            status=SuggestionStatus.OPEN.value,
            title=title,
            summary=summary,
            reason=reason,
            entity_type=entity_type,
            entity_id=entity_id,
            latest_amount=latest_amount,
            currency=currency,
            source=source,
            payload_json=json.dumps(payload, default=str, sort_keys=True),
            created_at=now_ms,
            updated_at=now_ms,
        )
        self.session.add(suggestion)
        self.session.flush()
        self._auditor.record(
            user_id,
            AuditAction.SUGGESTION_CREATED,
            kind,
            suggestion.id,
            after={
                "fingerprint": fingerprint,
                "entity_id": entity_id,
                "status": suggestion.status,
                "latest_amount": latest_amount,
            },
            metadata={"source": source},
        )
        return suggestion
