"""
Module: household_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by
    the automation sweep.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import household_kernel.domain and household_kernel.logging_config.
    MUST NOT import household_batch or household_kernel.services.

Invariants enforced:
    - Engines never read the clock.  ``now_ms`` is always an argument.
    - Decimal-only arithmetic for money and ratios.
    - Identical inputs produce identical outputs.

Usage:
    from household_engines import AlertBuilder, ReconciliationEngine, SuggestionEngine
"""

from household_engines.alerts import AlertBuilder, AlertPolicy, DesiredAlert
from household_engines.reconciliation import (
    DEFAULT_SOURCE_PREFIX,
    AlertResolution,
    AlertUpdate,
    ReconciliationEngine,
    ReconciliationPlan,
    ResolveReason,
    is_snooze_active,
)
from household_engines.suggestions import (
    SuggestionDraft,
    SuggestionEngine,
    default_income_allocations,
    is_outstanding,
    rule_matches_source,
)

__all__ = [
    "DEFAULT_SOURCE_PREFIX",
    "AlertBuilder",
    "AlertPolicy",
    "AlertResolution",
    "AlertUpdate",
    "DesiredAlert",
    "ReconciliationEngine",
    "ReconciliationPlan",
    "ResolveReason",
    "SuggestionDraft",
    "SuggestionEngine",
    "default_income_allocations",
    "is_outstanding",
    "is_snooze_active",
    "rule_matches_source",
]
