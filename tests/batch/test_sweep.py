"""
Integration tests for AutomationSweepOrchestrator.

Verifies:
- Reference scenario: a bill due on the 31st alerts on the clamped
  29 February at 09:00 local
- A second sweep over unchanged inputs writes nothing
- Alerts are updated, resolved and suppressed through reconciliation
- Manual alerts are never touched
- Monthly gate and mode normalization
- One user's failure in run_scheduled() leaves the others committed
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from household_batch.sweep import (
    MONTHLY_GATE_REASON,
    AutomationSweepOrchestrator,
    normalize_mode,
    respects_monthly_gate,
)
from household_config import CoreSettings
from household_kernel.domain.clock import datetime_to_ms
from household_kernel.domain.timezone import DAY_MS
from household_kernel.models.automation import AlertModel, SuggestionModel

# 2024-02-29 09:00 UTC
FEB_29_DUE_MS = datetime_to_ms(datetime(2024, 2, 29, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def orchestrator(session, clock):
    return AutomationSweepOrchestrator(session, clock)


def alerts_for(session, owner: str) -> list[AlertModel]:
    return list(
        session.execute(
            select(AlertModel).where(AlertModel.user_id == owner).order_by(AlertModel.created_at)
        ).scalars()
    )


def suggestions_for(session, owner: str) -> list[SuggestionModel]:
    return list(
        session.execute(select(SuggestionModel).where(SuggestionModel.user_id == owner)).scalars()
    )


class TestModeHelpers:
    @pytest.mark.parametrize(
        "raw,expected",
        [("daily", "daily"), (" Hourly ", "hourly"), ("MONTHLY", "monthly"), ("weekly", "manual"), (None, "manual")],
    )
    def test_normalize_mode(self, raw, expected):
        assert normalize_mode(raw) == expected

    def test_monthly_gate_from_cadences(self):
        settings = CoreSettings()
        assert respects_monthly_gate(settings, "monthly") is True
        assert respects_monthly_gate(settings, "daily") is False
        assert respects_monthly_gate(settings, "manual") is False


class TestBillDueScenario:
    def test_due_day_clamped_to_month_end(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences()
        bill = make_bill()

        result = orchestrator.run_for_user(user_id, "daily")

        assert result.alerts_created == 1
        [alert] = alerts_for(session, user_id)
        assert alert.fingerprint == f"bill-due:{bill.id}:31"
        assert alert.title == "Rent due in 3d"
        assert alert.detail == "Bill reminder for Rent (50.00 local amount)."
        assert alert.severity == "medium"
        assert alert.due_at == FEB_29_DUE_MS
        assert alert.cycle_key == "2024-02"
        assert alert.status == "open"
        assert alert.source == "automation_sweep:daily"

    def test_second_sweep_is_idempotent(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences()
        make_bill()
        orchestrator.run_for_user(user_id, "daily")

        again = orchestrator.run_for_user(user_id, "daily")

        assert again.writes == 0
        assert again.alerts_unchanged == 1
        assert len(alerts_for(session, user_id)) == 1

    def test_renamed_bill_updates_alert(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences()
        bill = make_bill()
        orchestrator.run_for_user(user_id, "daily")

        bill.name = "Housing"
        session.flush()
        result = orchestrator.run_for_user(user_id, "daily")

        assert result.alerts_updated == 1
        assert result.alerts_created == 0
        [alert] = alerts_for(session, user_id)
        assert alert.title == "Housing due in 3d"

    def test_moved_due_day_resolves_alert(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences()
        bill = make_bill()
        orchestrator.run_for_user(user_id, "daily")

        bill.due_day = 10
        session.flush()
        result = orchestrator.run_for_user(user_id, "daily")

        assert result.alerts_resolved == 1
        [alert] = alerts_for(session, user_id)
        assert alert.status == "resolved"
        assert alert.resolved_at == orchestrator.clock.now_ms()

    def test_active_snooze_suppresses(self, session, orchestrator, user_id, clock, make_preferences, make_bill, make_alert):
        make_preferences()
        bill = make_bill()
        make_alert(
            fingerprint=f"bill-due:{bill.id}:31",
            status="snoozed",
            snooze_until=clock.now_ms() + DAY_MS,
        )

        result = orchestrator.run_for_user(user_id, "daily")

        assert result.alerts_suppressed == 1
        assert result.writes == 0

    def test_manual_alert_untouched(self, session, orchestrator, user_id, make_preferences, make_alert):
        make_preferences()
        manual = make_alert(fingerprint="custom:note", source="manual")

        result = orchestrator.run_for_user(user_id, "daily")

        assert result.alerts_resolved == 0
        session.refresh(manual)
        assert manual.status == "open"

    def test_unknown_zone_behaves_as_utc(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences(time_zone="Mars/Olympus_Mons")
        make_bill()

        orchestrator.run_for_user(user_id, "daily")

        [alert] = alerts_for(session, user_id)
        assert alert.due_at == FEB_29_DUE_MS

    def test_disabled_reminders_create_nothing(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences(due_reminders_enabled=False)
        make_bill()
        assert orchestrator.run_for_user(user_id, "daily").alerts_created == 0


class TestSuggestions:
    def test_income_suggestion_created_once(self, session, orchestrator, user_id, make_preferences, make_income):
        make_preferences()
        make_income()

        first = orchestrator.run_for_user(user_id, "daily")
        second = orchestrator.run_for_user(user_id, "daily")

        assert first.income_suggestions_created == 1
        assert second.income_suggestions_created == 0
        [suggestion] = suggestions_for(session, user_id)
        assert suggestion.kind == "income_allocation"
        assert suggestion.status == "open"

    def test_covered_income_not_suggested(self, session, orchestrator, user_id, make_preferences, make_income, make_rule):
        make_preferences()
        make_income()
        make_rule()

        result = orchestrator.run_for_user(user_id, "daily")

        assert result.income_suggestions_created == 0
        assert suggestions_for(session, user_id) == []

    def test_subscription_baseline_created_once(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences()
        make_bill(name="Stream", amount=Decimal("9.99"), due_day=15, is_subscription=True)

        first = orchestrator.run_for_user(user_id, "daily")
        second = orchestrator.run_for_user(user_id, "daily")

        assert first.subscription_suggestions_created == 1
        assert second.subscription_suggestions_created == 0
        [suggestion] = suggestions_for(session, user_id)
        assert suggestion.fingerprint.endswith(":baseline:9.99")
        assert suggestion.currency == "USD"

    def test_one_cent_price_change_opens_second_suggestion(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences()
        bill = make_bill(name="Stream", amount=Decimal("9.99"), due_day=15, is_subscription=True)
        orchestrator.run_for_user(user_id, "daily")

        bill.amount = Decimal("10.00")
        session.flush()
        result = orchestrator.run_for_user(user_id, "daily")

        assert result.subscription_suggestions_created == 1
        rows = suggestions_for(session, user_id)
        assert len(rows) == 2
        assert all(row.status == "open" for row in rows)
        assert all(row.kind == "subscription_price" for row in rows)
        assert sorted(row.fingerprint.split(":", 2)[2] for row in rows) == [
            "baseline:9.99",
            "change:10.00",
        ]


class TestModes:
    def test_unknown_mode_runs_as_manual(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences()
        make_bill()

        result = orchestrator.run_for_user(user_id, "fortnightly")

        assert result.mode == "manual"
        [alert] = alerts_for(session, user_id)
        assert alert.source == "automation_sweep:manual"

    def test_monthly_gate_skips_when_disabled(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences(monthly_automation_enabled=False)
        make_bill()

        result = orchestrator.run_for_user(user_id, "monthly", respect_monthly_gate=True)

        assert result.skipped is True
        assert result.reason == MONTHLY_GATE_REASON
        assert alerts_for(session, user_id) == []

    def test_monthly_gate_ignored_when_not_respected(self, orchestrator, user_id, make_preferences, make_bill):
        make_preferences(monthly_automation_enabled=False)
        make_bill()
        result = orchestrator.run_for_user(user_id, "monthly", respect_monthly_gate=False)
        assert result.skipped is False
        assert result.alerts_created == 1

    def test_monthly_runs_when_enabled(self, session, orchestrator, user_id, make_preferences, make_bill):
        make_preferences(monthly_automation_enabled=True)
        make_bill()

        result = orchestrator.run_for_user(user_id, "monthly", respect_monthly_gate=True)

        assert result.skipped is False
        fingerprints = {alert.fingerprint for alert in alerts_for(session, user_id)}
        assert "monthly-cycle-missing:2024-02" in fingerprints
        assert result.alerts_created == 2


class TestRunScheduled:
    def test_all_users_swept(self, session, orchestrator, user_id, other_user_id, make_preferences, make_bill):
        make_preferences()
        make_preferences(owner=other_user_id)
        make_bill()
        make_bill(owner=other_user_id)

        summary = orchestrator.run_scheduled("daily")

        assert summary.user_count == 2
        assert summary.processed == 2
        assert summary.failed == 0
        assert summary.alerts_created == 2

    def test_failed_user_rolled_back(self, session, orchestrator, monkeypatch, user_id, other_user_id, make_preferences, make_income):
        make_preferences()
        make_preferences(owner=other_user_id)
        make_income()
        make_income(owner=other_user_id)

        original = orchestrator._apply_plan

        def _failing_apply(owner, plan, source):
            if owner == other_user_id:
                raise RuntimeError("store unavailable")
            return original(owner, plan, source)

        monkeypatch.setattr(orchestrator, "_apply_plan", _failing_apply)
        summary = orchestrator.run_scheduled("daily")

        assert summary.user_count == 2
        assert summary.processed == 1
        assert summary.failed == 1
        assert len(suggestions_for(session, user_id)) == 1
        assert suggestions_for(session, other_user_id) == []

    def test_monthly_skips_disabled_users(self, orchestrator, user_id, other_user_id, make_preferences):
        make_preferences(monthly_automation_enabled=True)
        make_preferences(owner=other_user_id, monthly_automation_enabled=False)

        summary = orchestrator.run_scheduled("monthly")

        assert summary.processed == 1
        assert summary.skipped == 1

    def test_failure_logged(self, orchestrator, monkeypatch, user_id, make_preferences, captured_logs):
        make_preferences()

        def _boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(orchestrator, "_apply_plan", _boom)
        orchestrator.run_scheduled("hourly")

        [record] = [r for r in captured_logs() if r["message"] == "sweep_user_failed"]
        assert record["user_id"] == user_id
        assert record["exc_type"] == "RuntimeError"


class TestLogging:
    def test_completion_carries_context(self, orchestrator, user_id, make_preferences, make_bill, captured_logs):
        make_preferences()
        make_bill()

        orchestrator.run_for_user(user_id, "daily")

        [record] = [r for r in captured_logs() if r["message"] == "sweep_user_completed"]
        assert record["user_id"] == user_id
        assert record["sweep_mode"] == "daily"
        assert record["alerts_created"] == 1
