"""
household_engines.suggestions -- income coverage and subscription price checks.

Responsibility:
    Proposes review items for the user:

    * an income-allocation rule for every positive income whose source no
      enabled allocation rule matches;
    * a baseline or price-change observation for every bill tracked as a
      subscription.

    Output is a list of ``SuggestionDraft`` values with deterministic
    fingerprints; persisting them is the automation store's job.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Matching is case-insensitive for every match mode.  A malformed
      regex never matches and never raises.
    - A draft is not emitted when an outstanding suggestion with the same
      fingerprint already exists, so repeated sweeps do not duplicate.
    - A subscription amount within ``change_epsilon`` of the last recorded
      amount is unchanged.

Failure modes:
    - None raised.  Malformed stored payloads read as empty objects.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from household_engines.tracer import traced_engine
from household_kernel.domain.records import (
    AllocationRuleRecord,
    BillRecord,
    IncomeRecord,
    MatchMode,
    SuggestionKind,
    SuggestionRecord,
    SuggestionStatus,
    decimal_or,
)
from household_kernel.logging_config import get_logger

logger = get_logger("engines.suggestions")

_CENT = Decimal("0.01")
_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SuggestionDraft:
    """A suggestion the sweep wants to create."""

    kind: SuggestionKind
    fingerprint: str
    title: str
    summary: str
    reason: str
    entity_type: str
    entity_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    latest_amount: Decimal | None = None
    currency: str | None = None


def _two_places(amount: Decimal) -> Decimal:
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def _round_percent(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Rule matching
# ---------------------------------------------------------------------------


def rule_matches_source(rule: AllocationRuleRecord, source: str) -> bool:
    """Does ``rule``'s pattern match an income source string?"""
    pattern = rule.income_source_pattern.strip()
    if not pattern:
        return False
    if rule.match_mode == MatchMode.REGEX:
        try:
            return re.search(pattern, source, re.IGNORECASE) is not None
        except re.error:
            logger.debug(
                "allocation_rule_regex_invalid",
                extra={"rule_id": rule.id, "pattern": pattern},
            )
            return False

    needle = pattern.lower()
    value = source.strip().lower()
    if rule.match_mode == MatchMode.EQUALS:
        return value == needle
    if rule.match_mode == MatchMode.STARTS_WITH:
        return value.startswith(needle)
    if rule.match_mode == MatchMode.ENDS_WITH:
        return value.endswith(needle)
    return needle in value


def default_income_allocations(
    income_amount: Decimal,
    monthly_bills_total: Decimal,
    destination_account_id: str | None = None,
) -> list[dict[str, Any]]:
    """
    Three-bucket split proposed for an uncovered income.

    The essentials share follows the bills-to-income ratio, clamped to
    20..70 percent.  Buffer takes 40 percent of the rest (at least 10) and
    flexible spend whatever remains.  Buckets at 0 percent or below are
    dropped.
    """
    ratio = monthly_bills_total / max(income_amount, Decimal("1"))
    needs = min(70, max(20, _round_percent(ratio * _HUNDRED)))
    buffer = max(10, _round_percent(Decimal(100 - needs) * Decimal("0.4")))
    flex = max(0, 100 - needs - buffer)

    buckets = [
        ("Bills & essentials", needs, "bills", "shared"),
        ("Buffer / savings", buffer, "savings", "household"),
        ("Flexible spend", flex, "personal", "personal"),
    ]
    allocations: list[dict[str, Any]] = []
    for label, percent, category, ownership in buckets:
        if percent <= 0:
            continue
        entry: dict[str, Any] = {
            "label": label,
            "percent": percent,
            "category": category,
            "ownership": ownership,
        }
        if destination_account_id:
            entry["destinationAccountId"] = destination_account_id
        allocations.append(entry)
    return allocations


def is_outstanding(suggestion: SuggestionRecord, now_ms: int) -> bool:
    """Open, or snoozed with the snooze still running."""
    if suggestion.status == SuggestionStatus.OPEN:
        return True
    if suggestion.status == SuggestionStatus.SNOOZED:
        return suggestion.snooze_until is not None and suggestion.snooze_until > now_ms
    return False


class SuggestionEngine:
    """
    Emits income-allocation and subscription-price drafts.

    Contract:
        ``change_epsilon`` is the smallest amount difference that counts as
        a subscription price change.
    """

    def __init__(self, change_epsilon: Decimal = Decimal("0.005")):
        self._epsilon = change_epsilon

    def income_suggestions(
        self,
        now_ms: int,
        incomes: Sequence[IncomeRecord],
        rules: Sequence[AllocationRuleRecord],
        bills: Sequence[BillRecord],
        existing: Iterable[SuggestionRecord],
    ) -> list[SuggestionDraft]:
        outstanding = {
            s.fingerprint
            for s in existing
            if s.kind == SuggestionKind.INCOME_ALLOCATION and is_outstanding(s, now_ms)
        }
        enabled_rules = [rule for rule in rules if rule.enabled]
        bills_total = sum((bill.amount for bill in bills), _ZERO)

        drafts: list[SuggestionDraft] = []
        for income in incomes:
            if income.amount <= 0:
                continue
            if any(rule_matches_source(rule, income.source) for rule in enabled_rules):
                continue
            fingerprint = f"income-allocation:{income.id}"
            if fingerprint in outstanding:
                continue
            outstanding.add(fingerprint)
            drafts.append(
                SuggestionDraft(
                    kind=SuggestionKind.INCOME_ALLOCATION,
                    fingerprint=fingerprint,
                    title=f"Create allocation rule for {income.source}",
                    summary="No income allocation rule exists for this income source.",
                    reason="uncovered_income_source",
                    entity_type="income",
                    entity_id=income.id,
                    latest_amount=income.amount,
                    payload={
                        "incomeId": income.id,
                        "incomeSource": income.source,
                        "amount": str(income.amount),
                        "matchMode": MatchMode.CONTAINS.value,
                        "incomeSourcePattern": income.source,
                        "allocations": default_income_allocations(
                            income.amount, bills_total, income.destination_account_id
                        ),
                    },
                )
            )
        return drafts

    def subscription_suggestions(
        self,
        bills: Sequence[BillRecord],
        existing: Iterable[SuggestionRecord],
        currency: str | None = None,
    ) -> list[SuggestionDraft]:
        history: dict[str, list[SuggestionRecord]] = {}
        open_fingerprints: set[str] = set()
        for suggestion in existing:
            if suggestion.kind != SuggestionKind.SUBSCRIPTION_PRICE:
                continue
            history.setdefault(suggestion.entity_id, []).append(suggestion)
            if suggestion.status == SuggestionStatus.OPEN:
                open_fingerprints.add(suggestion.fingerprint)

        drafts: list[SuggestionDraft] = []
        for bill in bills:
            if not bill.tracks_subscription_price:
                continue
            amount = max(_ZERO, bill.amount)
            rows = history.get(bill.id, [])
            latest = max(rows, key=lambda row: row.updated_at) if rows else None

            if latest is None:
                fingerprint = f"subscription:{bill.id}:baseline:{_two_places(amount)}"
                if fingerprint in open_fingerprints:
                    continue
                drafts.append(
                    SuggestionDraft(
                        kind=SuggestionKind.SUBSCRIPTION_PRICE,
                        fingerprint=fingerprint,
                        title=f"Start price monitoring for {bill.name}",
                        summary=(
                            "Baseline subscription amount captured. "
                            "Confirm to begin change tracking."
                        ),
                        reason="baseline_subscription_monitoring",
                        entity_type="bill",
                        entity_id=bill.id,
                        latest_amount=amount,
                        currency=currency,
                        payload={
                            "billId": bill.id,
                            "billName": bill.name,
                            "latestAmount": str(amount),
                            "changeType": "baseline",
                        },
                    )
                )
                open_fingerprints.add(fingerprint)
                continue

            previous = (
                latest.latest_amount
                if latest.latest_amount is not None
                else decimal_or(latest.payload.get("latestAmount"))
            )
            delta = amount - previous
            if abs(delta) < self._epsilon:
                continue
            fingerprint = f"subscription:{bill.id}:change:{_two_places(amount)}"
            if fingerprint in open_fingerprints:
                continue
            delta_pct = _two_places(delta / previous * _HUNDRED) if previous > 0 else None
            drafts.append(
                SuggestionDraft(
                    kind=SuggestionKind.SUBSCRIPTION_PRICE,
                    fingerprint=fingerprint,
                    title=f"{bill.name} amount changed",
                    summary=(
                        "Detected a subscription amount change from "
                        f"{_two_places(previous)} to {_two_places(amount)}."
                    ),
                    reason="subscription_amount_changed",
                    entity_type="bill",
                    entity_id=bill.id,
                    latest_amount=amount,
                    currency=currency,
                    payload={
                        "billId": bill.id,
                        "billName": bill.name,
                        "previousAmount": str(previous),
                        "latestAmount": str(amount),
                        "deltaAmount": str(delta),
                        "deltaPct": str(delta_pct) if delta_pct is not None else None,
                        "changeType": "change",
                    },
                )
            )
            open_fingerprints.add(fingerprint)
        return drafts

    @traced_engine("suggestion_engine", "1.0", fingerprint_fields=("now_ms", "currency"))
    def build(
        self,
        now_ms: int,
        incomes: Sequence[IncomeRecord],
        rules: Sequence[AllocationRuleRecord],
        bills: Sequence[BillRecord],
        existing: Sequence[SuggestionRecord],
        currency: str | None = None,
    ) -> list[SuggestionDraft]:
        """Income drafts followed by subscription drafts."""
        return [
            *self.income_suggestions(now_ms, incomes, rules, bills, existing),
            *self.subscription_suggestions(bills, existing, currency),
        ]
