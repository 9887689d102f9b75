"""
AuditorService -- best-effort audit trail.

Responsibility:
    Records one ``AuditEventModel`` row per significant state change:
    purchase posting, alert create/update/resolve, suggestion creation and
    review, and the side effects of accepting a suggestion.

Architecture position:
    Kernel > Services -- imperative shell, called by LedgerPoster,
    AutomationStore and SuggestionReviewService.

Invariants enforced:
    - Best effort: every write happens inside a SAVEPOINT.  A failed audit
      insert rolls back only that savepoint and is logged as a warning;
      the caller's operation and transaction are unaffected.
    - Before/after/metadata payloads are stored as JSON-safe values
      (Decimal, UUID and other scalars become strings).

Failure modes:
    - None propagated.  ``record()`` returns the event id, or None when the
      write failed.
"""

from __future__ import annotations

import json
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from household_kernel.logging_config import get_logger
from household_kernel.models.audit_event import AuditAction, AuditEventModel
from household_kernel.services.base import BaseService

logger = get_logger("services.auditor")


def _jsonable(value: Any) -> Any:
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


class AuditorService(BaseService):
    """
    Writes audit events without ever failing the caller.

    Contract:
        ``record()`` may be called from inside any open transaction.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - No hash chaining; the audit trail here is informational.
    """

    def record(
        self,
        user_id: str,
        action: AuditAction,
        entity_type: str,
        entity_id: str | UUID,
        *,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UUID | None:
        now_ms = self.clock.now_ms()
        meta = {"recorded_at": now_ms, **(metadata or {})}
        try:
            with self.session.begin_nested():
                event = AuditEventModel(
                    user_id=user_id,
                    action=action.value,
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    before=_jsonable(before),
                    after=_jsonable(after),
                    metadata_json=_jsonable(meta),
                    created_at=now_ms,
                    updated_at=now_ms,
                )
                self.session.add(event)
                self.session.flush()
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            logger.warning(
                "audit_event_write_failed",
                extra={
                    "action": action.value,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "error": str(exc),
                },
            )
            return None

        logger.debug(
            "audit_event_recorded",
            extra={"action": action.value, "entity_type": entity_type},
        )
        return event.id
