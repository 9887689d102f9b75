"""
SuggestionReviewService -- applies a user's decision to a suggestion.

Responsibility:
    Accept, dismiss or snooze one suggestion.  Accepting applies its
    effect: an income-allocation suggestion becomes an enabled allocation
    rule; a subscription-price suggestion updates the bill amount.

Architecture position:
    Kernel > Services -- imperative shell, called on behalf of an already
    identified user.

Invariants enforced:
    - Only the owner can review a suggestion.
    - Snooze length is clamped to 1..``max_snooze_days`` days.
    - A subscription suggestion whose bill no longer exists is still
      accepted; the acknowledgement is recorded without a bill update.

Failure modes:
    - InvalidDecisionError: decision is not accept / dismiss / snooze.
    - RecordNotFoundError: no suggestion with that id.
    - NotOwnerError: suggestion belongs to someone else.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from household_kernel.domain.clock import Clock
from household_kernel.domain.records import (
    MatchMode,
    ReviewDecision,
    SuggestionKind,
    SuggestionStatus,
    clamp_int,
    decimal_or,
    optional_str,
    parse_json_object,
)
from household_kernel.domain.timezone import DAY_MS
from household_kernel.exceptions import InvalidDecisionError, NotOwnerError, RecordNotFoundError
from household_kernel.logging_config import get_logger
from household_kernel.models.audit_event import AuditAction
from household_kernel.models.automation import SuggestionModel
from household_kernel.models.household import BillModel, IncomeAllocationRuleModel
from household_kernel.services.auditor_service import AuditorService
from household_kernel.services.base import BaseService

logger = get_logger("services.suggestion_review")

ACCEPT_RULE_SOURCE = "suggestion_accept"
AUTO_RULE_PRIORITY = 100


@dataclass(frozen=True)
class ReviewOutcome:
    """What a review changed."""

    suggestion_id: str
    status: SuggestionStatus
    effect: str
    snooze_until: int | None = None
    rule_id: str | None = None
    bill_id: str | None = None
    bill_amount: Decimal | None = None


def _as_uuid(value: str | UUID) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _rule_allocations(payload: dict[str, Any]) -> list[dict[str, Any]]:
    raw = payload.get("allocations")
    rows = [row for row in raw if isinstance(row, dict)] if isinstance(raw, list) else []
    if not rows:
        return [{"label": "General", "percent": 100}]
    allocations: list[dict[str, Any]] = []
    for row in rows:
        entry: dict[str, Any] = {"label": optional_str(row.get("label")) or "Allocation"}
        for key in ("percent", "fixedAmount"):
            if row.get(key) is not None:
                entry[key] = str(decimal_or(row.get(key)))
        for key in ("category", "ownership", "destinationAccountId", "note"):
            value = optional_str(row.get(key))
            if value is not None:
                entry[key] = value
        allocations.append(entry)
    return allocations


class SuggestionReviewService(BaseService):
    """
    Reviews suggestions for their owner.

    Contract:
        ``review`` flushes; the caller commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
        default_snooze_days: int = 7,
        max_snooze_days: int = 90,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._max_snooze_days = max(1, max_snooze_days)
        self._default_snooze_days = clamp_int(default_snooze_days, 1, self._max_snooze_days)

    def _owned_suggestion(self, user_id: str, suggestion_id: str | UUID) -> SuggestionModel:
        key = _as_uuid(suggestion_id)
        suggestion = self.session.get(SuggestionModel, key) if key is not None else None
        if suggestion is None:
            raise RecordNotFoundError("suggestion", str(suggestion_id))
        if suggestion.user_id != user_id:
            raise NotOwnerError("suggestion", str(suggestion_id), user_id)
        return suggestion

    def review(
        self,
        user_id: str,
        suggestion_id: str | UUID,
        decision: str | ReviewDecision,
        apply_effects: bool = True,
        snooze_days: int | None = None,
        note: str | None = None,
    ) -> ReviewOutcome:
        normalized = ReviewDecision.normalize(
            decision.value if isinstance(decision, ReviewDecision) else decision
        )
        if normalized is None:
            raise InvalidDecisionError(str(decision))
        suggestion = self._owned_suggestion(user_id, suggestion_id)

        now_ms = self.clock.now_ms()
        before = {"status": suggestion.status, "snooze_until": suggestion.snooze_until}
        outcome: ReviewOutcome

        if normalized == ReviewDecision.SNOOZE:
            days = clamp_int(
                snooze_days, 1, self._max_snooze_days, default=self._default_snooze_days
            )
            snooze_until = now_ms + days * DAY_MS
            suggestion.status = SuggestionStatus.SNOOZED.value
            suggestion.snooze_until = snooze_until
            outcome = ReviewOutcome(
                str(suggestion.id), SuggestionStatus.SNOOZED, "snoozed", snooze_until
            )
        elif normalized == ReviewDecision.DISMISS:
            suggestion.status = SuggestionStatus.DISMISSED.value
            suggestion.snooze_until = None
            outcome = ReviewOutcome(str(suggestion.id), SuggestionStatus.DISMISSED, "dismissed")
        else:
            suggestion.status = SuggestionStatus.ACCEPTED.value
            suggestion.snooze_until = None
            outcome = ReviewOutcome(str(suggestion.id), SuggestionStatus.ACCEPTED, "accepted")
            if apply_effects:
                outcome = self._apply_accept(user_id, suggestion, now_ms)

        suggestion.reviewed_at = now_ms
        suggestion.updated_at = now_ms
        suggestion.decision_note = optional_str(note)
        self.session.flush()

        logger.info(
            "suggestion_reviewed",
            extra={
                "suggestion_id": str(suggestion.id),
                "decision": normalized.value,
                "effect": outcome.effect,
            },
        )
        self._auditor.record(
            user_id,
            AuditAction.SUGGESTION_REVIEWED,
            suggestion.kind,
            suggestion.id,
            before=before,
            after={"status": suggestion.status, "snooze_until": suggestion.snooze_until},
            metadata={"decision": normalized.value, "effect": outcome.effect},
        )
        return outcome

    # -------------------------------------------------------------------------
    # Accept effects
    # -------------------------------------------------------------------------

    def _apply_accept(
        self, user_id: str, suggestion: SuggestionModel, now_ms: int
    ) -> ReviewOutcome:
        payload = parse_json_object(suggestion.payload_json)
        if SuggestionKind.normalize(suggestion.kind) == SuggestionKind.SUBSCRIPTION_PRICE:
            return self._apply_subscription(user_id, suggestion, payload, now_ms)
        return self._apply_income_rule(user_id, suggestion, payload, now_ms)

    def _apply_income_rule(
        self,
        user_id: str,
        suggestion: SuggestionModel,
        payload: dict[str, Any],
        now_ms: int,
    ) -> ReviewOutcome:
        source_name = optional_str(payload.get("incomeSource")) or "Income"
        pattern = optional_str(payload.get("incomeSourcePattern")) or source_name
        rule = IncomeAllocationRuleModel(
            user_id=user_id,
            name=f"Auto rule · {source_name}",
            income_source_pattern=pattern,
            match_mode=MatchMode.normalize(payload.get("matchMode")).value,
            enabled=True,
            priority=AUTO_RULE_PRIORITY,
            payload_json=json.dumps(
                {
                    "allocations": _rule_allocations(payload),
                    "source": ACCEPT_RULE_SOURCE,
                    "sourceSuggestionId": str(suggestion.id),
                },
                sort_keys=True,
            ),
            created_at=now_ms,
            updated_at=now_ms,
        )
        self.session.add(rule)
        self.session.flush()
        self._auditor.record(
            user_id,
            AuditAction.ALLOCATION_RULE_CREATED,
            "income_allocation_rule",
            rule.id,
            after={"name": rule.name, "pattern": pattern, "match_mode": rule.match_mode},
            metadata={"source_suggestion_id": str(suggestion.id)},
        )
        return ReviewOutcome(
            str(suggestion.id),
            SuggestionStatus.ACCEPTED,
            "income_rule_created",
            rule_id=str(rule.id),
        )

    def _apply_subscription(
        self,
        user_id: str,
        suggestion: SuggestionModel,
        payload: dict[str, Any],
        now_ms: int,
    ) -> ReviewOutcome:
        bill_id = optional_str(payload.get("billId")) or optional_str(suggestion.entity_id)
        raw_amount = payload.get("latestAmount", suggestion.latest_amount)
        amount = decimal_or(raw_amount, default=Decimal("-1")) if raw_amount is not None else None
        key = _as_uuid(bill_id) if bill_id else None
        bill = self.session.get(BillModel, key) if key is not None else None

        if amount is None or amount < 0 or bill is None or bill.user_id != user_id:
            logger.info(
                "subscription_acknowledged_without_update",
                extra={"suggestion_id": str(suggestion.id), "bill_id": bill_id},
            )
            return ReviewOutcome(
                str(suggestion.id),
                SuggestionStatus.ACCEPTED,
                "subscription_acknowledged",
                bill_id=bill_id,
            )

        before = {"amount": bill.amount}
        bill.amount = amount
        bill.updated_at = now_ms
        self.session.flush()
        self._auditor.record(
            user_id,
            AuditAction.BILL_AMOUNT_UPDATED,
            "bill",
            bill.id,
            before=before,
            after={"amount": amount},
            metadata={"source_suggestion_id": str(suggestion.id)},
        )
        return ReviewOutcome(
            str(suggestion.id),
            SuggestionStatus.ACCEPTED,
            "subscription_bill_updated",
            bill_id=str(bill.id),
            bill_amount=amount,
        )
