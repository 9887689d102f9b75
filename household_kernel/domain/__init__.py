"""
Pure domain layer.

Values and calculators with NO dependencies on the ORM, the database or
I/O.  Time enters only through an injected Clock.
"""

from household_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from household_kernel.domain.currency import (
    CurrencyPrecisionTable,
    CurrencyRegistry,
    normalize_currency_code,
)
from household_kernel.domain.money import (
    ConversionResult,
    FxQuote,
    FxRateRow,
    FxSnapshot,
    MoneyAmount,
    MoneyConverter,
    build_fx_table,
    split_allocate_minor,
)
from household_kernel.domain.timezone import (
    CalendarParts,
    IntervalDays,
    MonthlyByDay,
    TimeZoneClock,
    clamp_day_for_month,
)

__all__ = [
    "CalendarParts",
    "Clock",
    "ConversionResult",
    "CurrencyPrecisionTable",
    "CurrencyRegistry",
    "DeterministicClock",
    "FxQuote",
    "FxRateRow",
    "FxSnapshot",
    "IntervalDays",
    "MoneyAmount",
    "MoneyConverter",
    "MonthlyByDay",
    "SystemClock",
    "TimeZoneClock",
    "build_fx_table",
    "clamp_day_for_month",
    "normalize_currency_code",
    "split_allocate_minor",
]
