"""
household_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  Returns a frozen ``CoreSettings``.

Architecture position:
    Configuration.  This package sits above ``household_kernel`` and below
    ``household_engines`` / ``household_batch``.  The kernel MUST NEVER
    import from ``household_config``; ``CoreSettings.preference_defaults()``
    translates settings into kernel-compatible inputs.

Invariants enforced:
    - Deterministic loading: the same YAML always produces the same
      ``CoreSettings`` and checksum.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ValueError`` / ``KeyError`` -- structural validation failures.

Audit relevance:
    Every successful ``get_active_settings()`` call emits a
    ``household_config_loaded`` log entry carrying the version and checksum.
"""

from __future__ import annotations

from pathlib import Path

from household_config.loader import load_settings
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
from household_kernel.logging_config import get_logger

logger = get_logger("config")


def get_active_settings(path: Path | None = None) -> CoreSettings:
    """Load settings from ``path``, or the packaged defaults."""
    settings = load_settings(path)
    logger.info(
        "household_config_loaded",
        extra={
            "config_path": str(path) if path else "defaults",
            "config_version": settings.version,
            "checksum": settings.checksum,
        },
    )
    return settings


__all__ = [
    "AlertSettings",
    "AutomationSettings",
    "ClockSettings",
    "CoreSettings",
    "CurrencySettings",
    "ReminderSettings",
    "SchedulerSettings",
    "SweepCadence",
    "get_active_settings",
    "load_settings",
]
