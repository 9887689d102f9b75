"""
household_engines.reconciliation -- fingerprint diff of desired vs. stored alerts.

Responsibility:
    Given the alerts one sweep wants open and the alerts already stored for
    the user, decide per fingerprint whether to create, update or resolve.
    The result is a ``ReconciliationPlan``; applying it is the automation
    store's job.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Only records produced by the automated channel (``source`` starting
      with ``{source_prefix}:``) are matched or auto-resolved.  Manually
      created records are never touched.
    - Resolved records are terminal and ignored.
    - A snoozed record whose deadline (``snooze_until``, else ``due_at``)
      has not passed suppresses its fingerprint entirely: no create, no
      update, no resolve.  Once the deadline passes the record counts as
      open again.
    - Several open records sharing a fingerprint converge: the most
      recently updated one is kept, the others are resolved.
    - Re-planning against the applied result of a plan yields no creates,
      no updates and no resolves.

Usage:
    plan = ReconciliationEngine().plan(desired, current, now_ms)
    for alert in plan.creates: ...
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from household_engines.alerts import DesiredAlert
from household_engines.tracer import traced_engine
from household_kernel.domain.records import AlertRecord, AlertStatus

DEFAULT_SOURCE_PREFIX = "automation_sweep"


class ResolveReason(str, Enum):
    NO_LONGER_DESIRED = "no_longer_desired"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class AlertUpdate:
    record_id: str
    desired: DesiredAlert


@dataclass(frozen=True)
class AlertResolution:
    record_id: str
    fingerprint: str
    reason: ResolveReason


@dataclass(frozen=True)
class ReconciliationPlan:
    """Per-fingerprint operations for one sweep."""

    creates: tuple[DesiredAlert, ...] = ()
    updates: tuple[AlertUpdate, ...] = ()
    resolves: tuple[AlertResolution, ...] = ()
    unchanged: tuple[str, ...] = ()
    suppressed: tuple[str, ...] = ()

    @property
    def is_noop(self) -> bool:
        return not (self.creates or self.updates or self.resolves)


def snooze_deadline(record: AlertRecord) -> int | None:
    return record.snooze_until if record.snooze_until is not None else record.due_at


def is_snooze_active(record: AlertRecord, now_ms: int) -> bool:
    """True while a snoozed record still hides its fingerprint."""
    if record.status != AlertStatus.SNOOZED:
        return False
    deadline = snooze_deadline(record)
    return deadline is not None and deadline > now_ms


def _differs(record: AlertRecord, desired: DesiredAlert) -> bool:
    if record.status != AlertStatus.OPEN:
        return True
    return (
        record.title != desired.title
        or record.detail != desired.detail
        or record.severity != desired.severity
        or record.entity_type != desired.entity_type
        or record.entity_id != desired.entity_id
        or record.due_at != desired.due_at
        or record.cycle_key != desired.cycle_key
        or record.action_label != desired.action_label
        or record.action_href != desired.action_href
    )


class ReconciliationEngine:
    """
    Three-way set reconciliation keyed by fingerprint.

    Contract:
        Stateless.  One ``plan()`` call covers one user's full desired and
        current sets; nothing carries over between calls.

    Guarantees:
        - Output order follows the desired order for creates and updates
          and the stored order for resolves.
    """

    @traced_engine("alert_reconciliation", "1.0", fingerprint_fields=("now_ms", "source_prefix"))
    def plan(
        self,
        desired: Sequence[DesiredAlert],
        current: Sequence[AlertRecord],
        now_ms: int,
        source_prefix: str = DEFAULT_SOURCE_PREFIX,
    ) -> ReconciliationPlan:
        channel = f"{source_prefix}:"

        desired_by_fp: dict[str, DesiredAlert] = {}
        for alert in desired:
            if alert.fingerprint and alert.fingerprint not in desired_by_fp:
                desired_by_fp[alert.fingerprint] = alert

        suppressed: list[str] = []
        open_by_fp: dict[str, list[AlertRecord]] = {}
        for record in current:
            if not record.fingerprint or not record.source.startswith(channel):
                continue
            if record.status == AlertStatus.RESOLVED:
                continue
            if is_snooze_active(record, now_ms):
                if record.fingerprint not in suppressed:
                    suppressed.append(record.fingerprint)
                continue
            open_by_fp.setdefault(record.fingerprint, []).append(record)

        suppressed_set = set(suppressed)
        resolves: list[AlertResolution] = []
        keepers: dict[str, AlertRecord] = {}
        for fingerprint, records in open_by_fp.items():
            if fingerprint in suppressed_set:
                continue
            ordered = sorted(records, key=lambda r: (r.updated_at, r.id), reverse=True)
            keepers[fingerprint] = ordered[0]
            resolves.extend(
                AlertResolution(r.id, fingerprint, ResolveReason.DUPLICATE) for r in ordered[1:]
            )

        creates: list[DesiredAlert] = []
        updates: list[AlertUpdate] = []
        unchanged: list[str] = []
        for fingerprint, alert in desired_by_fp.items():
            if fingerprint in suppressed_set:
                continue
            existing = keepers.get(fingerprint)
            if existing is None:
                creates.append(alert)
            elif _differs(existing, alert):
                updates.append(AlertUpdate(existing.id, alert))
            else:
                unchanged.append(fingerprint)

        for fingerprint, record in keepers.items():
            if fingerprint not in desired_by_fp:
                resolves.append(
                    AlertResolution(record.id, fingerprint, ResolveReason.NO_LONGER_DESIRED)
                )

        return ReconciliationPlan(
            creates=tuple(creates),
            updates=tuple(updates),
            resolves=tuple(resolves),
            unchanged=tuple(unchanged),
            suppressed=tuple(suppressed),
        )
