"""
AutomationSweepOrchestrator -- one automation sweep, per user.

Contract:
    ``run_for_user()`` loads one user's state, runs the suggestion engine
    and the alert builder, reconciles desired alerts against stored ones
    and applies the plan through the AutomationStore.
    ``run_scheduled()`` does the same for every known user, each inside
    its own SAVEPOINT.

Architecture: household_batch (top-level).  Composes kernel selectors and
    services with the pure engines.  Nothing in the kernel or the engines
    imports from here.

Invariants enforced:
    - Idempotent: a second sweep over unchanged inputs writes nothing.
    - One user's failure rolls back only that user's savepoint.
    - ``mode="monthly"`` with ``respect_monthly_gate`` skips users whose
      monthly automation is disabled.
    - All instants come from the injected Clock.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace

from sqlalchemy.orm import Session

from household_config.schema import CoreSettings
from household_engines.alerts import AlertBuilder, AlertPolicy
from household_engines.reconciliation import ReconciliationEngine, ReconciliationPlan
from household_engines.suggestions import SuggestionEngine
from household_kernel.domain.clock import Clock, SystemClock
from household_kernel.domain.preferences import (
    AutomationPreferences,
    resolve_automation_preferences,
)
from household_kernel.domain.records import SuggestionKind
from household_kernel.domain.timezone import TimeZoneClock
from household_kernel.logging_config import LogContext, get_logger
from household_kernel.selectors.user_state import UserState, UserStateSelector
from household_kernel.services.auditor_service import AuditorService
from household_kernel.services.automation_store import AutomationStore

logger = get_logger("batch.sweep")

SWEEP_MODES = ("hourly", "daily", "monthly", "manual")
MONTHLY_GATE_REASON = "monthly_automation_disabled"


def normalize_mode(mode: str | None) -> str:
    token = mode.strip().lower() if isinstance(mode, str) else ""
    return token if token in SWEEP_MODES else "manual"


def respects_monthly_gate(settings: CoreSettings, mode: str) -> bool:
    for cadence in settings.scheduler.cadences:
        if cadence.mode == mode:
            return cadence.respect_monthly_gate
    return mode == "monthly"


def alert_policy_from_settings(settings: CoreSettings) -> AlertPolicy:
    return AlertPolicy(
        due_hour=settings.reminders.due_hour,
        due_minute=settings.reminders.due_minute,
        card_utilization_warning=settings.alerts.card_utilization_warning,
        card_utilization_high=settings.alerts.card_utilization_high,
        reconciliation_overdue_days=settings.reminders.reconciliation_overdue_days,
    )


@dataclass(frozen=True)
class SweepResult:
    """Counts for one user's sweep."""

    user_id: str
    mode: str
    alerts_created: int = 0
    alerts_updated: int = 0
    alerts_resolved: int = 0
    alerts_unchanged: int = 0
    alerts_suppressed: int = 0
    income_suggestions_created: int = 0
    subscription_suggestions_created: int = 0
    skipped: bool = False
    reason: str = ""

    @property
    def suggestions_created(self) -> int:
        return self.income_suggestions_created + self.subscription_suggestions_created

    @property
    def writes(self) -> int:
        return (
            self.alerts_created
            + self.alerts_updated
            + self.alerts_resolved
            + self.suggestions_created
        )


@dataclass(frozen=True)
class ScheduledSweepSummary:
    """Totals for a sweep over every known user."""

    mode: str
    user_count: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    alerts_created: int = 0
    alerts_updated: int = 0
    alerts_resolved: int = 0
    suggestions_created: int = 0
    duration_ms: int = 0


class AutomationSweepOrchestrator:
    """Runs automation sweeps against one session.

    Contract:
        - ``run_for_user()`` flushes; the caller commits.
        - ``run_scheduled()`` isolates users with SAVEPOINTs; the caller
          commits the outer transaction.

    Non-goals:
        - Does NOT open sessions or threads -- see ``SweepRunner``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: CoreSettings | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or CoreSettings()
        self._defaults = self._settings.preference_defaults()
        self._prefix = self._settings.automation.source_prefix
        self._tz = TimeZoneClock(self._settings.clock.default_time_zone)
        self._selector = UserStateSelector(session)
        self._store = AutomationStore(
            session, self._clock, AuditorService(session, self._clock)
        )
        self._alert_builder = AlertBuilder(self._tz, alert_policy_from_settings(self._settings))
        self._reconciler = ReconciliationEngine()
        self._suggestions = SuggestionEngine(self._settings.alerts.subscription_change_epsilon)

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    # -------------------------------------------------------------------------
    # Single user
    # -------------------------------------------------------------------------

    def run_for_user(
        self,
        user_id: str,
        mode: str = "manual",
        respect_monthly_gate: bool = False,
    ) -> SweepResult:
        sweep_mode = normalize_mode(mode)
        with LogContext.bind(user_id=user_id, sweep_mode=sweep_mode):
            state = self._selector.load(user_id)
            preferences = resolve_automation_preferences(
                state.stored_preferences, state.dashboard_preferences, self._defaults
            )
            preferences = _with_zone(preferences, self._tz)

            if (
                sweep_mode == "monthly"
                and respect_monthly_gate
                and not preferences.monthly_automation_enabled
            ):
                logger.info("sweep_skipped", extra={"reason": MONTHLY_GATE_REASON})
                return SweepResult(user_id, sweep_mode, skipped=True, reason=MONTHLY_GATE_REASON)

            now_ms = self._clock.now_ms()
            source = f"{self._prefix}:{sweep_mode}"

            income_created, subscription_created = self._apply_suggestions(
                state, now_ms, preferences.currency, source
            )

            desired = self._alert_builder.build(
                now_ms,
                preferences,
                bills=state.bills,
                loans=state.loans,
                cards=state.cards,
                cycle_runs=state.cycle_runs,
            )
            plan = self._reconciler.plan(desired, state.alerts, now_ms, self._prefix)
            created, updated, resolved = self._apply_plan(user_id, plan, source)

            result = SweepResult(
                user_id=user_id,
                mode=sweep_mode,
                alerts_created=created,
                alerts_updated=updated,
                alerts_resolved=resolved,
                alerts_unchanged=len(plan.unchanged),
                alerts_suppressed=len(plan.suppressed),
                income_suggestions_created=income_created,
                subscription_suggestions_created=subscription_created,
            )
            logger.info(
                "sweep_user_completed",
                extra={
                    "alerts_created": result.alerts_created,
                    "alerts_updated": result.alerts_updated,
                    "alerts_resolved": result.alerts_resolved,
                    "alerts_unchanged": result.alerts_unchanged,
                    "alerts_suppressed": result.alerts_suppressed,
                    "suggestions_created": result.suggestions_created,
                },
            )
            return result

    def _apply_suggestions(
        self, state: UserState, now_ms: int, currency: str, source: str
    ) -> tuple[int, int]:
        drafts = self._suggestions.build(
            now_ms,
            state.incomes,
            state.allocation_rules,
            state.bills,
            state.suggestions,
            currency,
        )
        income_created = 0
        subscription_created = 0
        for draft in drafts:
            self._store.create_suggestion(
                state.user_id,
                kind=draft.kind.value,
                fingerprint=draft.fingerprint,
                title=draft.title,
                summary=draft.summary,
                reason=draft.reason,
                entity_type=draft.entity_type,
                entity_id=draft.entity_id,
                payload=draft.payload,
                source=source,
                latest_amount=draft.latest_amount,
                currency=draft.currency,
            )
            if draft.kind == SuggestionKind.INCOME_ALLOCATION:
                income_created += 1
            else:
                subscription_created += 1
        return income_created, subscription_created

    def _apply_plan(
        self, user_id: str, plan: ReconciliationPlan, source: str
    ) -> tuple[int, int, int]:
        created = 0
        for alert in plan.creates:
            self._store.create_alert(user_id, alert.fingerprint, alert.fields(), source)
            created += 1

        updated = 0
        for update in plan.updates:
            if self._store.update_alert(user_id, update.record_id, update.desired.fields(), source):
                updated += 1

        resolved = 0
        for resolution in plan.resolves:
            if self._store.resolve_alert(
                user_id, resolution.record_id, source, resolution.reason.value
            ):
                resolved += 1
        return created, updated, resolved

    # -------------------------------------------------------------------------
    # All users
    # -------------------------------------------------------------------------

    def run_scheduled(self, mode: str) -> ScheduledSweepSummary:
        """Sweep every known user with SAVEPOINT isolation per user."""
        sweep_mode = normalize_mode(mode)
        respect_gate = respects_monthly_gate(self._settings, sweep_mode)
        start_time = time.monotonic()
        user_ids = self._selector.list_user_ids()

        processed = skipped = failed = 0
        alerts_created = alerts_updated = alerts_resolved = suggestions_created = 0

        for user_id in user_ids:
            savepoint = self._session.begin_nested()
            try:
                result = self.run_for_user(user_id, sweep_mode, respect_gate)
                savepoint.commit()
            except Exception as exc:
                savepoint.rollback()
                failed += 1
                logger.exception(
                    "sweep_user_failed",
                    extra={"user_id": user_id, "sweep_mode": sweep_mode, "error": str(exc)},
                )
                continue

            if result.skipped:
                skipped += 1
                continue
            processed += 1
            alerts_created += result.alerts_created
            alerts_updated += result.alerts_updated
            alerts_resolved += result.alerts_resolved
            suggestions_created += result.suggestions_created

        summary = ScheduledSweepSummary(
            mode=sweep_mode,
            user_count=len(user_ids),
            processed=processed,
            skipped=skipped,
            failed=failed,
            alerts_created=alerts_created,
            alerts_updated=alerts_updated,
            alerts_resolved=alerts_resolved,
            suggestions_created=suggestions_created,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )
        logger.info(
            "scheduled_sweep_completed",
            extra={
                "sweep_mode": sweep_mode,
                "user_count": summary.user_count,
                "processed": summary.processed,
                "skipped": summary.skipped,
                "failed": summary.failed,
                "duration_ms": summary.duration_ms,
            },
        )
        return summary


def _with_zone(preferences: AutomationPreferences, tz: TimeZoneClock) -> AutomationPreferences:
    """Replace an unknown zone name with the clock's default."""
    zone = tz.normalize_time_zone(preferences.time_zone)
    if zone == preferences.time_zone:
        return preferences
    return replace(preferences, time_zone=zone)
