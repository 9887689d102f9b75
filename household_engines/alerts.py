"""
household_engines.alerts -- desired-alert builder.

Responsibility:
    Computes the set of alerts that SHOULD be open for one user right now:
    upcoming bill and loan due dates, high card utilization, a missing
    monthly cycle run and an overdue reconciliation review.  Each alert
    carries a deterministic fingerprint so the reconciliation engine can
    join it against persisted alerts across sweeps.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Time enters as an
    explicit ``now_ms`` argument; calendar math is delegated to the
    injected ``TimeZoneClock``.

Invariants enforced:
    - Same inputs produce the same alerts in the same order.
    - Days-until-due is the floor of whole days between now and the due
      instant; an alert is desired while that count is within the user's
      reminder window.
    - Utilization and amounts use Decimal arithmetic only.

Usage:
    builder = AlertBuilder(TimeZoneClock())
    desired = builder.build(
        now_ms=now_ms, preferences=prefs, bills=bills, loans=loans,
        cards=cards, cycle_runs=runs,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from household_engines.tracer import traced_engine
from household_kernel.domain.preferences import AutomationPreferences
from household_kernel.domain.records import (
    AlertSeverity,
    BillRecord,
    CardRecord,
    LoanRecord,
    MonthlyCycleRunRecord,
)
from household_kernel.domain.timezone import DAY_MS, IntervalDays, MonthlyByDay, TimeZoneClock

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")
_UNKNOWN_AGE_DAYS = 999


@dataclass(frozen=True)
class AlertPolicy:
    """Thresholds and wall-clock times the builder applies."""

    due_hour: int = 9
    due_minute: int = 0
    card_utilization_warning: Decimal = Decimal("0.85")
    card_utilization_high: Decimal = Decimal("0.95")
    reconciliation_overdue_days: int = 30


@dataclass(frozen=True)
class DesiredAlert:
    """An alert the current state calls for, keyed by ``fingerprint``."""

    fingerprint: str
    title: str
    detail: str
    severity: AlertSeverity
    entity_type: str
    entity_id: str
    due_at: int | None
    cycle_key: str
    action_label: str = ""
    action_href: str = ""

    def fields(self) -> dict[str, object]:
        """Column values an alert row takes from this desired alert."""
        return {
            "title": self.title,
            "detail": self.detail,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "due_at": self.due_at,
            "cycle_key": self.cycle_key,
            "action_label": self.action_label,
            "action_href": self.action_href,
        }


def _money(amount: Decimal) -> str:
    return str(amount.quantize(_CENT, rounding=ROUND_HALF_UP))


def _due_phrase(days_until: int) -> str:
    return "today" if days_until == 0 else f"in {days_until}d"


def _due_severity(days_until: int) -> AlertSeverity:
    return AlertSeverity.HIGH if days_until <= 1 else AlertSeverity.MEDIUM


class AlertBuilder:
    """
    Builds desired alerts from a user's obligations and preferences.

    Contract:
        Holds a ``TimeZoneClock`` and an ``AlertPolicy``; no other state.

    Non-goals:
        - Does not read or write persisted alerts.  Diffing against what is
          stored is ``ReconciliationEngine``'s job.
    """

    def __init__(self, tz_clock: TimeZoneClock, policy: AlertPolicy | None = None):
        self._tz = tz_clock
        self._policy = policy or AlertPolicy()

    def _days_until(self, due_at: int, now_ms: int) -> int:
        return (due_at - now_ms) // DAY_MS

    def bill_alerts(
        self,
        now_ms: int,
        preferences: AutomationPreferences,
        bills: Sequence[BillRecord],
    ) -> list[DesiredAlert]:
        zone = preferences.time_zone
        alerts: list[DesiredAlert] = []
        for bill in bills:
            rule = self._tz.recurrence_for_cadence(
                bill.cadence,
                bill.due_day,
                bill.created_at,
                zone,
                custom_interval=bill.custom_interval,
                custom_unit=bill.custom_unit,
                hour=self._policy.due_hour,
                minute=self._policy.due_minute,
            )
            due_at = self._tz.next_occurrence(now_ms, rule, zone)
            days_until = self._days_until(due_at, now_ms)
            if days_until < 0 or days_until > preferences.due_reminder_days:
                continue

            if isinstance(rule, IntervalDays):
                fingerprint = f"bill-due:{bill.id}:every-{rule.interval_days}d"
            else:
                fingerprint = f"bill-due:{bill.id}:{bill.due_day}"
            amount_note = f" ({_money(bill.amount)} local amount)" if bill.amount > 0 else ""
            alerts.append(
                DesiredAlert(
                    fingerprint=fingerprint,
                    title=f"{bill.name} due {_due_phrase(days_until)}",
                    detail=f"Bill reminder for {bill.name}{amount_note}.",
                    severity=_due_severity(days_until),
                    entity_type="bill",
                    entity_id=bill.id,
                    due_at=due_at,
                    cycle_key=self._tz.cycle_key(due_at, zone),
                    action_label="Review bill",
                    action_href="/?view=bills",
                )
            )
        return alerts

    def loan_alerts(
        self,
        now_ms: int,
        preferences: AutomationPreferences,
        loans: Sequence[LoanRecord],
    ) -> list[DesiredAlert]:
        zone = preferences.time_zone
        alerts: list[DesiredAlert] = []
        for loan in loans:
            rule = MonthlyByDay(
                day=loan.due_day, hour=self._policy.due_hour, minute=self._policy.due_minute
            )
            due_at = self._tz.next_occurrence(now_ms, rule, zone)
            days_until = self._days_until(due_at, now_ms)
            if days_until < 0 or days_until > preferences.due_reminder_days:
                continue
            minimum = max(Decimal("0"), loan.minimum_payment)
            alerts.append(
                DesiredAlert(
                    fingerprint=f"loan-due:{loan.id}:{loan.due_day}",
                    title=f"{loan.name} payment due {_due_phrase(days_until)}",
                    detail=f"Minimum payment {_money(minimum)} due soon.",
                    severity=_due_severity(days_until),
                    entity_type="loan",
                    entity_id=loan.id,
                    due_at=due_at,
                    cycle_key=self._tz.cycle_key(due_at, zone),
                    action_label="Review loan",
                    action_href="/?view=loans",
                )
            )
        return alerts

    def card_alerts(
        self,
        now_ms: int,
        preferences: AutomationPreferences,
        cards: Sequence[CardRecord],
    ) -> list[DesiredAlert]:
        alerts: list[DesiredAlert] = []
        cycle_key = self._tz.cycle_key(now_ms, preferences.time_zone)
        for card in cards:
            credit_limit = max(Decimal("0"), card.credit_limit)
            used = max(Decimal("0"), card.used_limit)
            if credit_limit <= 0:
                continue
            utilization = used / credit_limit
            if utilization < self._policy.card_utilization_warning:
                continue
            pct = int((utilization * _HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
            alerts.append(
                DesiredAlert(
                    fingerprint=f"card-utilization:{card.id}:{pct}",
                    title=f"{card.name} utilization at {pct}%",
                    detail=(
                        "High utilization can increase repayment pressure "
                        "and affect score stability."
                    ),
                    severity=(
                        AlertSeverity.HIGH
                        if utilization >= self._policy.card_utilization_high
                        else AlertSeverity.MEDIUM
                    ),
                    entity_type="card",
                    entity_id=card.id,
                    due_at=now_ms,
                    cycle_key=cycle_key,
                    action_label="Review cards",
                    action_href="/?view=cards",
                )
            )
        return alerts

    def cycle_alerts(
        self,
        now_ms: int,
        preferences: AutomationPreferences,
        cycle_runs: Sequence[MonthlyCycleRunRecord],
    ) -> list[DesiredAlert]:
        """Missing monthly cycle and overdue reconciliation review."""
        zone = preferences.time_zone
        current_key = self._tz.cycle_key(now_ms, zone)
        alerts: list[DesiredAlert] = []

        if preferences.monthly_automation_enabled:
            completed = any(
                run.cycle_key == current_key and run.status == "completed"
                for run in cycle_runs
            )
            if not completed:
                alerts.append(
                    DesiredAlert(
                        fingerprint=f"monthly-cycle-missing:{current_key}",
                        title=f"Monthly cycle not completed for {current_key}",
                        detail=(
                            "Automation is enabled but no completed monthly cycle run "
                            "was found for the current cycle."
                        ),
                        severity=AlertSeverity.HIGH,
                        entity_type="monthly_cycle",
                        entity_id=current_key,
                        due_at=self._tz.next_monthly_run(
                            now_ms,
                            preferences.monthly_run_day,
                            preferences.monthly_run_hour,
                            preferences.monthly_run_minute,
                            zone,
                        ),
                        cycle_key=current_key,
                        action_label="Review cycle",
                        action_href="/?view=automation",
                    )
                )

        if preferences.reconciliation_reminders_enabled and cycle_runs:
            latest = max(cycle_runs, key=lambda run: run.updated_at)
            if latest.ran_at > 0:
                age_days = (now_ms - latest.ran_at) // DAY_MS
            else:
                age_days = _UNKNOWN_AGE_DAYS
            if age_days >= self._policy.reconciliation_overdue_days:
                latest_key = latest.cycle_key or "unknown"
                alerts.append(
                    DesiredAlert(
                        fingerprint=f"reconciliation-reminder:{current_key}:{age_days}",
                        title="Reconciliation review overdue",
                        detail=(
                            f"Last cycle run ({latest_key}) is {age_days} days old "
                            f"({latest.status})."
                        ),
                        severity=AlertSeverity.MEDIUM,
                        entity_type="reconciliation",
                        entity_id=latest_key,
                        due_at=now_ms,
                        cycle_key=current_key,
                        action_label="Review alerts",
                        action_href="/?view=automation",
                    )
                )
        return alerts

    @traced_engine("alert_builder", "1.0", fingerprint_fields=("now_ms", "preferences"))
    def build(
        self,
        now_ms: int,
        preferences: AutomationPreferences,
        bills: Sequence[BillRecord] = (),
        loans: Sequence[LoanRecord] = (),
        cards: Sequence[CardRecord] = (),
        cycle_runs: Sequence[MonthlyCycleRunRecord] = (),
    ) -> list[DesiredAlert]:
        """Every desired alert for one user, in a stable order."""
        alerts: list[DesiredAlert] = []
        if preferences.due_reminders_enabled:
            alerts.extend(self.bill_alerts(now_ms, preferences, bills))
            alerts.extend(self.loan_alerts(now_ms, preferences, loans))
        if preferences.monthly_cycle_alerts_enabled:
            alerts.extend(self.card_alerts(now_ms, preferences, cards))
        alerts.extend(self.cycle_alerts(now_ms, preferences, cycle_runs))
        return alerts
