"""
household_batch -- automation sweeps and their in-process scheduler.

Provides the per-user sweep orchestrator (SAVEPOINT isolation per user
when sweeping everyone) and a polling scheduler that fires the hourly,
daily and monthly sweep cadences.

Architecture:
    household_batch/ is a top-level package.  Nothing in household_kernel/
    or household_engines/ imports from household_batch.
"""

from household_batch.scheduler import SweepRunner, SweepScheduler, cadence_is_due
from household_batch.sweep import (
    MONTHLY_GATE_REASON,
    SWEEP_MODES,
    AutomationSweepOrchestrator,
    ScheduledSweepSummary,
    SweepResult,
    alert_policy_from_settings,
    normalize_mode,
    respects_monthly_gate,
)

__all__ = [
    "MONTHLY_GATE_REASON",
    "SWEEP_MODES",
    "AutomationSweepOrchestrator",
    "ScheduledSweepSummary",
    "SweepResult",
    "SweepRunner",
    "SweepScheduler",
    "alert_policy_from_settings",
    "cadence_is_due",
    "normalize_mode",
    "respects_monthly_gate",
]
