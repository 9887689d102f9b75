"""
Preferences -- effective automation settings and precedence rules.

Responsibility:
    Turns a stored finance-preferences row (possibly missing, possibly
    partial) plus the dashboard preferences into one fully-populated
    ``AutomationPreferences`` value, and exposes one pure resolver per
    preference whose precedence is explicit:

        explicit argument > stored preference > dashboard preference > default

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Defaults arrive as a
    ``PreferenceDefaults`` value built by the configuration bridge.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from household_kernel.domain.currency import normalize_currency_code
from household_kernel.domain.records import clamp_int, optional_str


@dataclass(frozen=True)
class PreferenceDefaults:
    """Hard defaults used when nothing more specific is stored."""

    currency: str = "USD"
    time_zone: str = "UTC"
    monthly_automation_enabled: bool = False
    monthly_run_day: int = 1
    monthly_run_hour: int = 9
    monthly_run_minute: int = 0
    monthly_cycle_alerts_enabled: bool = True
    due_reminders_enabled: bool = True
    due_reminder_days: int = 3
    reconciliation_reminders_enabled: bool = True


@dataclass(frozen=True)
class StoredPreferences:
    """Raw finance-preferences row; every field may be missing."""

    currency: str | None = None
    time_zone: str | None = None
    monthly_automation_enabled: bool | None = None
    monthly_run_day: int | None = None
    monthly_run_hour: int | None = None
    monthly_run_minute: int | None = None
    monthly_cycle_alerts_enabled: bool | None = None
    due_reminders_enabled: bool | None = None
    due_reminder_days: int | None = None
    reconciliation_reminders_enabled: bool | None = None


@dataclass(frozen=True)
class DashboardPreferences:
    """Display-level preferences that act as a fallback for currency/zone."""

    currency: str | None = None
    time_zone: str | None = None


@dataclass(frozen=True)
class AutomationPreferences:
    """Fully-resolved preferences driving one sweep."""

    currency: str
    time_zone: str
    monthly_automation_enabled: bool
    monthly_run_day: int
    monthly_run_hour: int
    monthly_run_minute: int
    monthly_cycle_alerts_enabled: bool
    due_reminders_enabled: bool
    due_reminder_days: int
    reconciliation_reminders_enabled: bool


def first_present(*candidates: Any) -> Any:
    """First candidate that is neither None nor a blank string."""
    for candidate in candidates:
        if candidate is None:
            continue
        if isinstance(candidate, str) and not candidate.strip():
            continue
        return candidate
    return None


def resolve_currency(
    explicit: str | None,
    stored: StoredPreferences | None,
    dashboard: DashboardPreferences | None,
    defaults: PreferenceDefaults,
) -> str:
    chosen = first_present(
        explicit,
        stored.currency if stored else None,
        dashboard.currency if dashboard else None,
        defaults.currency,
    )
    return normalize_currency_code(chosen, fallback=normalize_currency_code(defaults.currency))


def resolve_time_zone(
    explicit: str | None,
    stored: StoredPreferences | None,
    dashboard: DashboardPreferences | None,
    defaults: PreferenceDefaults,
) -> str:
    """Zone name by precedence; validity is the TimeZoneClock's concern."""
    chosen = first_present(
        explicit,
        stored.time_zone if stored else None,
        dashboard.time_zone if dashboard else None,
        defaults.time_zone,
    )
    return optional_str(chosen) or defaults.time_zone


def resolve_flag(explicit: bool | None, stored: bool | None, default: bool) -> bool:
    chosen = first_present(explicit, stored)
    return default if chosen is None else bool(chosen)


def resolve_due_reminder_days(
    explicit: int | None,
    stored: StoredPreferences | None,
    defaults: PreferenceDefaults,
) -> int:
    chosen = first_present(explicit, stored.due_reminder_days if stored else None)
    return clamp_int(chosen, 0, 30, default=defaults.due_reminder_days)


def resolve_automation_preferences(
    stored: StoredPreferences | None,
    dashboard: DashboardPreferences | None,
    defaults: PreferenceDefaults,
) -> AutomationPreferences:
    """Combine a stored row, dashboard fallbacks and defaults."""
    s = stored or StoredPreferences()
    return AutomationPreferences(
        currency=resolve_currency(None, s, dashboard, defaults),
        time_zone=resolve_time_zone(None, s, dashboard, defaults),
        monthly_automation_enabled=resolve_flag(
            None, s.monthly_automation_enabled, defaults.monthly_automation_enabled
        ),
        monthly_run_day=clamp_int(s.monthly_run_day, 1, 28, default=defaults.monthly_run_day),
        monthly_run_hour=clamp_int(s.monthly_run_hour, 0, 23, default=defaults.monthly_run_hour),
        monthly_run_minute=clamp_int(
            s.monthly_run_minute, 0, 59, default=defaults.monthly_run_minute
        ),
        monthly_cycle_alerts_enabled=resolve_flag(
            None, s.monthly_cycle_alerts_enabled, defaults.monthly_cycle_alerts_enabled
        ),
        due_reminders_enabled=resolve_flag(
            None, s.due_reminders_enabled, defaults.due_reminders_enabled
        ),
        due_reminder_days=resolve_due_reminder_days(None, s, defaults),
        reconciliation_reminders_enabled=resolve_flag(
            None,
            s.reconciliation_reminders_enabled,
            defaults.reconciliation_reminders_enabled,
        ),
    )
