"""
Settings loader (``household_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen
``household_config.schema`` dataclasses.

Invariants enforced
-------------------
* Every section is optional; an absent key keeps the schema default.
* A present key with the wrong shape raises ``ValueError`` with the
  offending path in the message.  Settings are never silently coerced
  into nonsense (a negative interval, an hour of 25).
* ``compute_checksum`` produces a deterministic SHA-256 hash identifying
  the loaded configuration.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from household_config.schema import (
    AlertSettings,
    AutomationSettings,
    ClockSettings,
    CoreSettings,
    CurrencySettings,
    ReminderSettings,
    SchedulerSettings,
    SweepCadence,
)
from household_kernel.domain.currency import normalize_currency_code
from household_kernel.domain.preferences import PreferenceDefaults

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: settings document must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


# ---------------------------------------------------------------------------
# Field parsers
# ---------------------------------------------------------------------------


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' must be a mapping")
    return value


def _int(section: dict[str, Any], key: str, default: int, path: str, low: int, high: int) -> int:
    if key not in section:
        return default
    value = section[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{path}.{key} must be an integer, got {value!r}")
    if not low <= value <= high:
        raise ValueError(f"{path}.{key} must be within [{low}, {high}], got {value}")
    return value


def _bool(section: dict[str, Any], key: str, default: bool, path: str) -> bool:
    if key not in section:
        return default
    value = section[key]
    if not isinstance(value, bool):
        raise ValueError(f"{path}.{key} must be true or false, got {value!r}")
    return value


def _str(section: dict[str, Any], key: str, default: str, path: str) -> str:
    if key not in section:
        return default
    value = section[key]
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{path}.{key} must be a non-empty string")
    return value.strip()


def _ratio(section: dict[str, Any], key: str, default: Decimal, path: str) -> Decimal:
    if key not in section:
        return default
    try:
        value = Decimal(str(section[key]))
    except InvalidOperation as exc:
        raise ValueError(f"{path}.{key} must be a decimal, got {section[key]!r}") from exc
    if not value.is_finite() or value < 0:
        raise ValueError(f"{path}.{key} must be a non-negative decimal")
    return value


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------


def parse_preferences(section: dict[str, Any]) -> PreferenceDefaults:
    base = PreferenceDefaults()
    path = "preferences"
    return PreferenceDefaults(
        monthly_automation_enabled=_bool(
            section, "monthly_automation_enabled", base.monthly_automation_enabled, path
        ),
        monthly_run_day=_int(section, "monthly_run_day", base.monthly_run_day, path, 1, 28),
        monthly_run_hour=_int(section, "monthly_run_hour", base.monthly_run_hour, path, 0, 23),
        monthly_run_minute=_int(
            section, "monthly_run_minute", base.monthly_run_minute, path, 0, 59
        ),
        monthly_cycle_alerts_enabled=_bool(
            section, "monthly_cycle_alerts_enabled", base.monthly_cycle_alerts_enabled, path
        ),
        due_reminders_enabled=_bool(
            section, "due_reminders_enabled", base.due_reminders_enabled, path
        ),
        due_reminder_days=_int(section, "due_reminder_days", base.due_reminder_days, path, 0, 30),
        reconciliation_reminders_enabled=_bool(
            section,
            "reconciliation_reminders_enabled",
            base.reconciliation_reminders_enabled,
            path,
        ),
    )


def parse_cadence(item: Any, index: int) -> SweepCadence:
    path = f"scheduler.cadences[{index}]"
    if not isinstance(item, dict):
        raise ValueError(f"{path} must be a mapping")
    if "mode" not in item or "interval_seconds" not in item:
        raise KeyError(f"{path} requires 'mode' and 'interval_seconds'")
    return SweepCadence(
        mode=_str(item, "mode", "", path),
        interval_seconds=_int(item, "interval_seconds", 0, path, 60, 31 * 86400),
        respect_monthly_gate=_bool(item, "respect_monthly_gate", False, path),
    )


def parse_scheduler(section: dict[str, Any]) -> SchedulerSettings:
    base = SchedulerSettings()
    path = "scheduler"
    cadences = base.cadences
    if "cadences" in section:
        raw = section["cadences"]
        if not isinstance(raw, list):
            raise ValueError("scheduler.cadences must be a list")
        cadences = tuple(parse_cadence(item, i) for i, item in enumerate(raw))
        modes = [cadence.mode for cadence in cadences]
        if len(set(modes)) != len(modes):
            raise ValueError(f"scheduler.cadences has duplicate modes: {modes}")
    return SchedulerSettings(
        tick_interval_seconds=_int(
            section, "tick_interval_seconds", base.tick_interval_seconds, path, 1, 3600
        ),
        max_workers=_int(section, "max_workers", base.max_workers, path, 1, 64),
        cadences=cadences,
    )


def parse_settings(data: dict[str, Any]) -> CoreSettings:
    """Parse a settings mapping into ``CoreSettings`` (checksum included)."""
    clock = _section(data, "clock")
    currency = _section(data, "currency")
    reminders = _section(data, "reminders")
    alerts = _section(data, "alerts")
    automation = _section(data, "automation")

    default_currency = _str(currency, "default_currency", "USD", "currency")
    if normalize_currency_code(default_currency, fallback="") != default_currency.upper():
        raise ValueError(f"currency.default_currency is not a currency code: {default_currency}")

    warning = _ratio(alerts, "card_utilization_warning", AlertSettings.card_utilization_warning, "alerts")
    high = _ratio(alerts, "card_utilization_high", AlertSettings.card_utilization_high, "alerts")
    if high < warning:
        raise ValueError("alerts.card_utilization_high must be >= card_utilization_warning")

    return CoreSettings(
        version=_int(data, "version", 1, "settings", 1, 1000),
        clock=ClockSettings(
            default_time_zone=_str(clock, "default_time_zone", "UTC", "clock"),
        ),
        currency=CurrencySettings(default_currency=default_currency.upper()),
        reminders=ReminderSettings(
            due_hour=_int(reminders, "due_hour", 9, "reminders", 0, 23),
            due_minute=_int(reminders, "due_minute", 0, "reminders", 0, 59),
            reconciliation_overdue_days=_int(
                reminders, "reconciliation_overdue_days", 30, "reminders", 1, 366
            ),
        ),
        alerts=AlertSettings(
            card_utilization_warning=warning,
            card_utilization_high=high,
            subscription_change_epsilon=_ratio(
                alerts,
                "subscription_change_epsilon",
                AlertSettings.subscription_change_epsilon,
                "alerts",
            ),
        ),
        automation=AutomationSettings(
            source_prefix=_str(automation, "source_prefix", "automation_sweep", "automation"),
            default_snooze_days=_int(automation, "default_snooze_days", 7, "automation", 1, 90),
            max_snooze_days=_int(automation, "max_snooze_days", 90, "automation", 1, 365),
        ),
        preferences=parse_preferences(_section(data, "preferences")),
        scheduler=parse_scheduler(_section(data, "scheduler")),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path | None = None) -> CoreSettings:
    """Load and parse ``path`` (the packaged defaults when None)."""
    return parse_settings(load_yaml_file(path or DEFAULTS_PATH))
