"""
Settings schema.

Typed, frozen view of the YAML settings file.  The loader parses YAML into
these dataclasses; nothing else in the system reads the YAML directly.

The kernel never imports this package.  ``CoreSettings.preference_defaults()``
is the bridge that hands the kernel its ``PreferenceDefaults``.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal

from household_kernel.domain.preferences import PreferenceDefaults


@dataclass(frozen=True)
class ClockSettings:
    default_time_zone: str = "UTC"


@dataclass(frozen=True)
class CurrencySettings:
    default_currency: str = "USD"


@dataclass(frozen=True)
class ReminderSettings:
    """Local wall-clock time at which bills and loans fall due."""

    due_hour: int = 9
    due_minute: int = 0
    reconciliation_overdue_days: int = 30


@dataclass(frozen=True)
class AlertSettings:
    card_utilization_warning: Decimal = Decimal("0.85")
    card_utilization_high: Decimal = Decimal("0.95")
    subscription_change_epsilon: Decimal = Decimal("0.005")


@dataclass(frozen=True)
class AutomationSettings:
    # Records whose source starts with "{source_prefix}:" are sweep-owned
    source_prefix: str = "automation_sweep"
    default_snooze_days: int = 7
    max_snooze_days: int = 90


@dataclass(frozen=True)
class SweepCadence:
    """One scheduled sweep: fire ``mode`` every ``interval_seconds``."""

    mode: str
    interval_seconds: int
    respect_monthly_gate: bool = False


@dataclass(frozen=True)
class SchedulerSettings:
    tick_interval_seconds: int = 60
    max_workers: int = 1
    cadences: tuple[SweepCadence, ...] = (
        SweepCadence("hourly", 3600),
        SweepCadence("daily", 86400),
        SweepCadence("monthly", 21600, respect_monthly_gate=True),
    )


@dataclass(frozen=True)
class CoreSettings:
    """Root settings object."""

    version: int = 1
    clock: ClockSettings = field(default_factory=ClockSettings)
    currency: CurrencySettings = field(default_factory=CurrencySettings)
    reminders: ReminderSettings = field(default_factory=ReminderSettings)
    alerts: AlertSettings = field(default_factory=AlertSettings)
    automation: AutomationSettings = field(default_factory=AutomationSettings)
    preferences: PreferenceDefaults = field(default_factory=PreferenceDefaults)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    checksum: str = ""

    def preference_defaults(self) -> PreferenceDefaults:
        """Preference defaults with the configured zone and currency applied."""
        return replace(
            self.preferences,
            currency=self.currency.default_currency,
            time_zone=self.clock.default_time_zone,
        )
