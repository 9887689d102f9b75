"""
Unit tests for TimeZoneClock.

Verifies:
- Calendar reading and two-pass zoned -> instant resolution
- Day-of-month clamping
- MonthlyByDay and IntervalDays next occurrence
- Cycle keys in the local calendar
- Unknown zones fall back to the default zone
- Cadence -> recurrence rule mapping
"""

from datetime import datetime, timezone

import pytest

from household_kernel.domain.clock import datetime_to_ms
from household_kernel.domain.records import Cadence, CustomUnit
from household_kernel.domain.timezone import (
    DAY_MS,
    CalendarParts,
    IntervalDays,
    MonthlyByDay,
    TimeZoneClock,
    clamp_day_for_month,
)


def utc_ms(*args) -> int:
    return datetime_to_ms(datetime(*args, tzinfo=timezone.utc))


@pytest.fixture
def tz():
    return TimeZoneClock()


class TestClampDayForMonth:
    def test_leap_february(self):
        assert clamp_day_for_month(2024, 2, 31) == 29

    def test_common_february(self):
        assert clamp_day_for_month(2023, 2, 31) == 28

    def test_thirty_day_month(self):
        assert clamp_day_for_month(2024, 4, 31) == 30

    def test_day_in_range_is_unchanged(self):
        assert clamp_day_for_month(2024, 1, 15) == 15

    def test_floor_is_one(self):
        assert clamp_day_for_month(2024, 1, 0) == 1


class TestResolveCalendar:
    def test_utc_reading(self, tz):
        parts = tz.resolve_calendar(utc_ms(2024, 2, 25, 12, 0), "UTC")
        assert parts == CalendarParts(2024, 2, 25, 12, 0, 0)

    def test_reading_crosses_date_line(self, tz):
        parts = tz.resolve_calendar(utc_ms(2024, 3, 1, 3, 0), "America/Los_Angeles")
        assert (parts.year, parts.month, parts.day, parts.hour) == (2024, 2, 29, 19)


class TestZonedToInstant:
    def test_winter_new_york(self, tz):
        instant = tz.zoned_to_instant(CalendarParts(2024, 1, 15, 9, 0), "America/New_York")
        assert instant == utc_ms(2024, 1, 15, 14, 0)

    def test_summer_new_york(self, tz):
        instant = tz.zoned_to_instant(CalendarParts(2024, 7, 1, 9, 0), "America/New_York")
        assert instant == utc_ms(2024, 7, 1, 13, 0)

    def test_day_before_spring_forward(self, tz):
        instant = tz.zoned_to_instant(CalendarParts(2024, 3, 10, 1, 30), "America/New_York")
        assert instant == utc_ms(2024, 3, 10, 6, 30)

    def test_day_after_spring_forward(self, tz):
        instant = tz.zoned_to_instant(CalendarParts(2024, 3, 10, 9, 0), "America/New_York")
        assert instant == utc_ms(2024, 3, 10, 13, 0)

    def test_round_trip_reads_back(self, tz):
        parts = CalendarParts(2024, 10, 27, 8, 45)
        instant = tz.zoned_to_instant(parts, "Europe/Berlin")
        assert tz.resolve_calendar(instant, "Europe/Berlin") == parts

    def test_day_is_clamped(self, tz):
        instant = tz.zoned_to_instant(CalendarParts(2023, 2, 31, 0, 0), "UTC")
        assert instant == utc_ms(2023, 2, 28, 0, 0)


class TestNextOccurrenceMonthly:
    def test_due_later_this_month(self, tz):
        now = utc_ms(2024, 2, 25, 12, 0)
        due = tz.next_occurrence(now, MonthlyByDay(day=31, hour=9, minute=0), "UTC")
        assert due == utc_ms(2024, 2, 29, 9, 0)

    def test_rolls_to_next_month_once_passed(self, tz):
        now = utc_ms(2024, 2, 29, 10, 0)
        due = tz.next_occurrence(now, MonthlyByDay(day=31, hour=9, minute=0), "UTC")
        assert due == utc_ms(2024, 3, 31, 9, 0)

    def test_exact_instant_is_inclusive(self, tz):
        now = utc_ms(2024, 2, 10, 9, 0)
        due = tz.next_occurrence(now, MonthlyByDay(day=10, hour=9, minute=0), "UTC")
        assert due == now

    def test_round_trip_across_dst(self, tz):
        """2024-03-15 09:00 New York, day 10 -> 2024-04-10 09:00 New York."""
        now = tz.zoned_to_instant(CalendarParts(2024, 3, 15, 9, 0), "America/New_York")
        due = tz.next_occurrence(now, MonthlyByDay(day=10, hour=9, minute=0), "America/New_York")
        assert tz.resolve_calendar(due, "America/New_York") == CalendarParts(2024, 4, 10, 9, 0)
        assert due == utc_ms(2024, 4, 10, 13, 0)

    def test_december_rolls_into_january(self, tz):
        now = utc_ms(2024, 12, 20, 0, 0)
        due = tz.next_occurrence(now, MonthlyByDay(day=5, hour=9, minute=0), "UTC")
        assert due == utc_ms(2025, 1, 5, 9, 0)


class TestNextOccurrenceInterval:
    def test_future_anchor_is_returned(self, tz):
        anchor = utc_ms(2024, 3, 1, 9, 0)
        rule = IntervalDays(interval_days=7, anchor_ms=anchor)
        assert tz.next_occurrence(utc_ms(2024, 2, 25, 12, 0), rule, "UTC") == anchor

    def test_first_boundary_after_now(self, tz):
        anchor = utc_ms(2024, 1, 1, 9, 0)
        rule = IntervalDays(interval_days=7, anchor_ms=anchor)
        due = tz.next_occurrence(utc_ms(2024, 1, 10, 0, 0), rule, "UTC")
        assert due == anchor + 14 * DAY_MS

    def test_boundary_itself_counts(self, tz):
        anchor = utc_ms(2024, 1, 1, 9, 0)
        rule = IntervalDays(interval_days=14, anchor_ms=anchor)
        now = anchor + 14 * DAY_MS
        assert tz.next_occurrence(now, rule, "UTC") == now


class TestCycleKey:
    def test_utc_key(self, tz):
        assert tz.cycle_key(utc_ms(2024, 3, 1, 3, 0), "UTC") == "2024-03"

    def test_local_key_differs_from_utc(self, tz):
        assert tz.cycle_key(utc_ms(2024, 3, 1, 3, 0), "America/Los_Angeles") == "2024-02"

    def test_ymd(self, tz):
        assert tz.ymd(utc_ms(2024, 3, 1, 3, 0), "Asia/Tokyo") == "2024-03-01"


class TestNormalizeTimeZone:
    def test_known_zone_kept(self, tz):
        assert tz.normalize_time_zone("Europe/Berlin") == "Europe/Berlin"

    def test_unknown_zone_falls_back(self, tz):
        assert tz.normalize_time_zone("Mars/Olympus_Mons") == "UTC"

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_missing_zone_falls_back(self, tz, name):
        assert tz.normalize_time_zone(name) == "UTC"

    def test_configured_default_zone(self):
        berlin = TimeZoneClock("Europe/Berlin")
        assert berlin.normalize_time_zone("not a zone") == "Europe/Berlin"

    def test_invalid_default_zone_becomes_utc(self):
        assert TimeZoneClock("Bogus/Zone").default_zone == "UTC"

    def test_unknown_zone_computes_in_default(self, tz):
        now = utc_ms(2024, 2, 25, 12, 0)
        assert tz.cycle_key(now, "Nowhere/Land") == tz.cycle_key(now, "UTC")

    def test_clocks_do_not_share_lookup_state(self):
        first = TimeZoneClock()
        second = TimeZoneClock()
        first.normalize_time_zone("Asia/Tokyo")
        assert first._zones is not second._zones
        assert "Asia/Tokyo" not in second._zones

    def test_unresolvable_default_zone_computes_in_utc(self):
        berlin = TimeZoneClock("Europe/Berlin")
        berlin._zones[berlin.default_zone] = None

        parts = berlin.resolve_calendar(utc_ms(2024, 2, 25, 23, 30), "Europe/Berlin")

        assert parts == CalendarParts(2024, 2, 25, 23, 30, 0)


class TestMonthlyRunHelpers:
    def test_run_day_is_limited_to_28(self, tz):
        now = utc_ms(2024, 1, 29, 0, 0)
        run = tz.next_monthly_run(now, 31, 9, 0, "UTC")
        assert run == utc_ms(2024, 2, 28, 9, 0)


class TestRecurrenceForCadence:
    created = utc_ms(2024, 1, 3, 17, 30)

    def test_monthly_uses_due_day(self, tz):
        rule = tz.recurrence_for_cadence(Cadence.MONTHLY, 31, self.created, "UTC")
        assert rule == MonthlyByDay(day=31, hour=9, minute=0)

    def test_due_day_is_clamped(self, tz):
        rule = tz.recurrence_for_cadence(Cadence.QUARTERLY, 45, self.created, "UTC")
        assert rule == MonthlyByDay(day=31, hour=9, minute=0)

    def test_weekly_is_anchored_at_creation_date(self, tz):
        rule = tz.recurrence_for_cadence(Cadence.WEEKLY, 1, self.created, "UTC")
        assert rule == IntervalDays(interval_days=7, anchor_ms=utc_ms(2024, 1, 3, 9, 0))

    def test_biweekly(self, tz):
        rule = tz.recurrence_for_cadence(Cadence.normalize("fortnightly"), 1, self.created, "UTC")
        assert isinstance(rule, IntervalDays)
        assert rule.interval_days == 14

    def test_custom_days(self, tz):
        rule = tz.recurrence_for_cadence(
            Cadence.CUSTOM, 1, self.created, "UTC",
            custom_interval=10, custom_unit=CustomUnit.DAYS,
        )
        assert rule == IntervalDays(interval_days=10, anchor_ms=utc_ms(2024, 1, 3, 9, 0))

    def test_custom_weeks(self, tz):
        rule = tz.recurrence_for_cadence(
            Cadence.CUSTOM, 1, self.created, "UTC",
            custom_interval=3, custom_unit=CustomUnit.WEEKS,
        )
        assert isinstance(rule, IntervalDays)
        assert rule.interval_days == 21

    def test_custom_months_is_monthly(self, tz):
        rule = tz.recurrence_for_cadence(
            Cadence.CUSTOM, 12, self.created, "UTC",
            custom_interval=2, custom_unit=CustomUnit.MONTHS,
        )
        assert rule == MonthlyByDay(day=12, hour=9, minute=0)
