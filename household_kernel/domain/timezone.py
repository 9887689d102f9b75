"""
TimeZoneClock -- wall-clock arithmetic in named IANA zones.

Responsibility:
    Converts between epoch-millisecond instants and civil calendar fields in
    a named timezone, and computes the next occurrence of monthly
    day-of-month and fixed-interval recurrence rules.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Zone data comes from
    the standard ``zoneinfo`` database (``tzdata`` on platforms without a
    system database).

Invariants enforced:
    - Instants are never timezone-attached; zones are applied only at the
      boundary of a calendar computation.
    - ``zoned_to_instant`` resolves the zone offset in two passes, so a
      civil time on either side of a DST transition maps to the instant
      whose local reading equals it.  Inside a spring-forward gap the
      result is whichever instant the second pass lands on.
    - Day-of-month values clamp to the month length (31 -> 29 in Feb 2024).

Failure modes:
    - None raised.  Unknown or malformed zone names resolve to the
      configured default zone (UTC unless overridden).

Usage:
    clock = TimeZoneClock()
    rule = MonthlyByDay(day=31, hour=9, minute=0)
    due_at = clock.next_occurrence(now_ms, rule, "America/New_York")
    key = clock.cycle_key(due_at, "America/New_York")   # "2024-02"
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from household_kernel.domain.clock import datetime_to_ms, ms_to_datetime
from household_kernel.domain.records import Cadence, CustomUnit
from household_kernel.logging_config import get_logger

logger = get_logger("domain.timezone")

DAY_MS = 24 * 60 * 60 * 1000
DEFAULT_TIME_ZONE = "UTC"


@dataclass(frozen=True, slots=True)
class CalendarParts:
    """Wall-clock reading of an instant inside a named zone."""

    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0


@dataclass(frozen=True, slots=True)
class MonthlyByDay:
    """Recurs on ``day`` of every civil month at ``hour:minute`` local time."""

    day: int
    hour: int = 9
    minute: int = 0


@dataclass(frozen=True, slots=True)
class IntervalDays:
    """Recurs every ``interval_days`` days starting from ``anchor_ms``."""

    interval_days: int
    anchor_ms: int


RecurrenceRule = MonthlyByDay | IntervalDays


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day_for_month(year: int, month: int, day: int) -> int:
    """Return ``min(day, days_in_month)``, floored at 1."""
    return max(1, min(int(day), days_in_month(year, month)))


def add_month(year: int, month: int) -> tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))


class TimeZoneClock:
    """
    Calendar calculator bound to a default zone.

    Contract:
        Every public method accepts a zone name that may be None, blank or
        unknown; such names resolve to the default zone.

    Guarantees:
        - Zone lookups are memoized in a per-instance table.  Two clocks
          never share lookup state.
        - Results depend only on the arguments and the zone database.

    Non-goals:
        - No business-day or holiday calendars.
    """

    def __init__(self, default_zone: str = DEFAULT_TIME_ZONE):
        self._zones: dict[str, ZoneInfo | None] = {}
        self._default_zone = (
            default_zone if self._lookup(default_zone) is not None else DEFAULT_TIME_ZONE
        )

    @property
    def default_zone(self) -> str:
        return self._default_zone

    # -------------------------------------------------------------------------
    # Zone resolution
    # -------------------------------------------------------------------------

    def _lookup(self, name: str) -> ZoneInfo | None:
        if name in self._zones:
            return self._zones[name]
        try:
            zone: ZoneInfo | None = ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            zone = None
        self._zones[name] = zone
        return zone

    def normalize_time_zone(self, name: str | None) -> str:
        """Return ``name`` if it is a known IANA zone, else the default zone."""
        candidate = (name or "").strip()
        if candidate and self._lookup(candidate) is not None:
            return candidate
        if candidate:
            logger.debug(
                "time_zone_fallback",
                extra={"requested": candidate, "resolved": self._default_zone},
            )
        return self._default_zone

    def _zone(self, name: str | None) -> ZoneInfo:
        zone = self._lookup(self.normalize_time_zone(name))
        if zone is None:
            return ZoneInfo(DEFAULT_TIME_ZONE)
        return zone

    # -------------------------------------------------------------------------
    # Instant <-> calendar
    # -------------------------------------------------------------------------

    def resolve_calendar(self, instant_ms: int, time_zone: str | None) -> CalendarParts:
        """Read the wall-clock fields of ``instant_ms`` in ``time_zone``."""
        local = ms_to_datetime(instant_ms).astimezone(self._zone(time_zone))
        return CalendarParts(
            year=local.year,
            month=local.month,
            day=local.day,
            hour=local.hour,
            minute=local.minute,
            second=local.second,
        )

    def offset_ms(self, instant_ms: int, time_zone: str | None) -> int:
        """UTC offset of ``time_zone`` at ``instant_ms``, in milliseconds."""
        local = ms_to_datetime(instant_ms).astimezone(self._zone(time_zone))
        offset = local.utcoffset()
        if offset is None:
            return 0
        return offset.days * DAY_MS + offset.seconds * 1000

    def zoned_to_instant(self, parts: CalendarParts, time_zone: str | None) -> int:
        """
        Map civil fields in ``time_zone`` to an instant.

        Preconditions:
            ``parts.month`` is 1..12.  The day is clamped to the month length;
            hour, minute and second are clamped to their ranges.

        Returns:
            Epoch milliseconds whose wall-clock reading in the zone equals
            ``parts`` (except inside a DST gap).
        """
        as_if_utc = datetime_to_ms(
            datetime(
                parts.year,
                parts.month,
                clamp_day_for_month(parts.year, parts.month, parts.day),
                _clamp(parts.hour, 0, 23),
                _clamp(parts.minute, 0, 59),
                _clamp(parts.second, 0, 59),
                tzinfo=timezone.utc,
            )
        )
        first_offset = self.offset_ms(as_if_utc, time_zone)
        candidate = as_if_utc - first_offset
        second_offset = self.offset_ms(candidate, time_zone)
        if second_offset != first_offset:
            candidate = as_if_utc - second_offset
        return candidate

    def cycle_key(self, instant_ms: int, time_zone: str | None) -> str:
        """Monthly bucket ``YYYY-MM`` of ``instant_ms`` in the zone's calendar."""
        parts = self.resolve_calendar(instant_ms, time_zone)
        return f"{parts.year:04d}-{parts.month:02d}"

    def ymd(self, instant_ms: int, time_zone: str | None) -> str:
        parts = self.resolve_calendar(instant_ms, time_zone)
        return f"{parts.year:04d}-{parts.month:02d}-{parts.day:02d}"

    # -------------------------------------------------------------------------
    # Recurrence
    # -------------------------------------------------------------------------

    def scheduled_in_month(
        self,
        year: int,
        month: int,
        rule: MonthlyByDay,
        time_zone: str | None,
    ) -> int:
        """Instant of ``rule`` within the given civil month (day clamped)."""
        return self.zoned_to_instant(
            CalendarParts(
                year=year,
                month=month,
                day=clamp_day_for_month(year, month, rule.day),
                hour=rule.hour,
                minute=rule.minute,
            ),
            time_zone,
        )

    def next_occurrence(
        self,
        now_ms: int,
        rule: RecurrenceRule,
        time_zone: str | None,
    ) -> int:
        """
        First occurrence of ``rule`` at or after ``now_ms``.

        MonthlyByDay: this month's scheduled instant if it has not passed,
        otherwise next month's.  IntervalDays: the anchor if it is still in
        the future, otherwise the first interval boundary at or after now.
        """
        if isinstance(rule, MonthlyByDay):
            today = self.resolve_calendar(now_ms, time_zone)
            candidate = self.scheduled_in_month(today.year, today.month, rule, time_zone)
            if candidate >= now_ms:
                return candidate
            year, month = add_month(today.year, today.month)
            return self.scheduled_in_month(year, month, rule, time_zone)

        interval_ms = max(1, int(rule.interval_days)) * DAY_MS
        if rule.anchor_ms >= now_ms:
            return rule.anchor_ms
        elapsed = now_ms - rule.anchor_ms
        steps = -(-elapsed // interval_ms)
        return rule.anchor_ms + steps * interval_ms

    def interval_anchor(
        self,
        created_at_ms: int,
        hour: int,
        minute: int,
        time_zone: str | None,
    ) -> int:
        """Local date of ``created_at_ms`` at ``hour:minute``."""
        created = self.resolve_calendar(created_at_ms, time_zone)
        return self.zoned_to_instant(
            CalendarParts(created.year, created.month, created.day, hour, minute),
            time_zone,
        )

    def next_monthly_run(
        self,
        now_ms: int,
        run_day: int,
        run_hour: int,
        run_minute: int,
        time_zone: str | None,
    ) -> int:
        """Next monthly automation run; the run day is limited to 1..28."""
        rule = MonthlyByDay(
            day=_clamp(run_day, 1, 28),
            hour=_clamp(run_hour, 0, 23),
            minute=_clamp(run_minute, 0, 59),
        )
        return self.next_occurrence(now_ms, rule, time_zone)

    def recurrence_for_cadence(
        self,
        cadence: Cadence,
        due_day: int,
        created_at_ms: int,
        time_zone: str | None,
        *,
        custom_interval: int | None = None,
        custom_unit: CustomUnit | None = None,
        hour: int = 9,
        minute: int = 0,
    ) -> RecurrenceRule:
        """
        Recurrence rule for an obligation with the given cadence.

        Weekly, biweekly and day/week custom cadences recur on a fixed
        interval anchored at the creation date.  Every other cadence falls
        due on ``due_day`` of each month.
        """
        interval_days: int | None = None
        if cadence == Cadence.WEEKLY:
            interval_days = 7
        elif cadence == Cadence.BIWEEKLY:
            interval_days = 14
        elif cadence == Cadence.CUSTOM and custom_unit == CustomUnit.DAYS:
            interval_days = max(1, int(custom_interval or 1))
        elif cadence == Cadence.CUSTOM and custom_unit == CustomUnit.WEEKS:
            interval_days = 7 * max(1, int(custom_interval or 1))

        if interval_days is None:
            return MonthlyByDay(day=_clamp(due_day, 1, 31), hour=hour, minute=minute)
        return IntervalDays(
            interval_days=interval_days,
            anchor_ms=self.interval_anchor(created_at_ms, hour, minute, time_zone),
        )
