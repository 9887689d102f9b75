"""
MoneyConverter -- exact minor-unit arithmetic and USD-pivot FX conversion.

Responsibility:
    Converts major amounts to and from integer minor units at each
    currency's precision, resolves cross-currency rates through the USD
    pivot, allocates totals across proportional splits without rounding
    leakage, and builds the FX snapshot recorded on every posted line.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Precision comes from
    a CurrencyPrecisionTable and quotes from an FX table supplied by the
    caller.

Invariants enforced:
    - Money is Decimal, never float.  Rounding is ROUND_HALF_UP, which for
      Decimal rounds ties away from zero for signed values.
    - ``split_allocate`` output sums exactly to the total in minor units; the
      rounding residual lands on the LAST split.
    - A missing or non-positive quote never raises.  Conversion degrades to
      rate 1 with ``synthetic=True`` and source ``fallback``.

Usage:
    converter = MoneyConverter()
    converter.to_minor_units(Decimal("10.005"), "USD")        # 1001
    converter.split_allocate(Decimal("10.00"), "USD", [1, 1, 1])
    # [Decimal("3.33"), Decimal("3.33"), Decimal("3.34")]
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from household_kernel.domain.currency import (
    PIVOT_CURRENCY,
    CurrencyPrecisionTable,
    normalize_currency_code,
)

IDENTITY_SOURCE = "identity"
FALLBACK_SOURCE = "fallback"
UNKNOWN_SOURCE = "unknown"

_ONE = Decimal("1")


@dataclass(frozen=True, slots=True)
class FxQuote:
    """Units of a quote currency per 1 USD."""

    rate: Decimal
    as_of_ms: int | None
    source: str
    synthetic: bool = False


@dataclass(frozen=True, slots=True)
class FxRateRow:
    """A stored FX rate row as read from persistence (pre-normalization)."""

    base_currency: str
    quote_currency: str
    rate: Decimal | None
    as_of_ms: int | None = None
    source: str | None = None
    synthetic: bool = False


FxTable = Mapping[str, FxQuote]


@dataclass(frozen=True, slots=True)
class MoneyAmount:
    amount: Decimal
    currency: str


@dataclass(frozen=True, slots=True)
class ConversionResult:
    """A converted amount plus the rate provenance used to produce it."""

    amount: MoneyAmount
    rate: Decimal
    as_of_ms: int | None
    source: str
    synthetic: bool


@dataclass(frozen=True, slots=True)
class FxSnapshot:
    """
    FX facts recorded against a posted amount.

    ``base_amount_minor`` and ``native_amount_minor`` are exact integers at
    the respective currency precision.  ``fx_synthetic`` marks a rate the
    system fabricated because no usable quote existed.
    """

    base_currency: str
    native_currency: str
    native_amount: Decimal
    native_amount_minor: int
    native_fraction_digits: int
    base_amount: Decimal
    base_amount_minor: int
    base_fraction_digits: int
    fx_rate_native_to_base: Decimal
    fx_as_of_ms: int
    fx_source: str
    fx_synthetic: bool

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("native_amount", "base_amount", "fx_rate_native_to_base"):
            data[key] = str(data[key])
        return data


def build_fx_table(rows: Iterable[FxRateRow]) -> dict[str, FxQuote]:
    """
    Index USD-based rate rows by quote currency.

    Rows with a non-USD base are ignored.  A USD identity quote is added
    when the rows do not provide one.  Later rows for the same quote
    currency replace earlier ones, so callers pass rows oldest first.
    """
    table: dict[str, FxQuote] = {}
    for row in rows:
        if normalize_currency_code(row.base_currency) != PIVOT_CURRENCY:
            continue
        quote_currency = normalize_currency_code(row.quote_currency)
        source = (row.source or "").strip() or UNKNOWN_SOURCE
        table[quote_currency] = FxQuote(
            rate=Decimal(row.rate) if row.rate is not None else _ONE,
            as_of_ms=row.as_of_ms,
            source=source,
            synthetic=bool(row.synthetic),
        )
    if PIVOT_CURRENCY not in table:
        table[PIVOT_CURRENCY] = FxQuote(
            rate=_ONE, as_of_ms=None, source=IDENTITY_SOURCE, synthetic=False
        )
    return table


def _usable(quote: FxQuote | None) -> bool:
    return quote is not None and quote.rate.is_finite() and quote.rate > 0


class MoneyConverter:
    """
    Currency precision plus FX conversion.

    Contract:
        Stateless apart from the precision table passed at construction.

    Guarantees:
        - Conversion and snapshot building never raise for missing FX data.
        - ``split_allocate`` is exact in minor units.
    """

    def __init__(self, precision: CurrencyPrecisionTable | None = None):
        self._precision = precision or CurrencyPrecisionTable()

    # -------------------------------------------------------------------------
    # Precision
    # -------------------------------------------------------------------------

    def fraction_digits(self, currency: str) -> int:
        return self._precision.fraction_digits(currency)

    def quantum(self, currency: str) -> Decimal:
        return _ONE.scaleb(-self.fraction_digits(currency))

    def round_for_currency(self, amount: Decimal, currency: str) -> Decimal:
        return Decimal(amount).quantize(self.quantum(currency), rounding=ROUND_HALF_UP)

    def to_minor_units(self, amount: Decimal, currency: str) -> int:
        digits = self.fraction_digits(currency)
        scaled = Decimal(amount).scaleb(digits)
        return int(scaled.quantize(_ONE, rounding=ROUND_HALF_UP))

    def from_minor_units(self, minor: int, currency: str) -> Decimal:
        digits = self.fraction_digits(currency)
        return Decimal(int(minor)).scaleb(-digits).quantize(_ONE.scaleb(-digits))

    # -------------------------------------------------------------------------
    # FX
    # -------------------------------------------------------------------------

    def resolve_rate(
        self,
        from_currency: str,
        to_currency: str,
        fx_table: FxTable,
    ) -> tuple[Decimal, int | None, str, bool]:
        """
        Rate to multiply a ``from_currency`` amount by to get ``to_currency``.

        Returns:
            ``(rate, as_of_ms, source, synthetic)``.  Identity and fallback
            rates carry ``as_of_ms=None``.
        """
        source = normalize_currency_code(from_currency)
        target = normalize_currency_code(to_currency)
        fallback = (_ONE, None, FALLBACK_SOURCE, True)

        if source == target:
            return _ONE, None, IDENTITY_SOURCE, False

        if source == PIVOT_CURRENCY:
            quote = fx_table.get(target)
            if not _usable(quote):
                return fallback
            return quote.rate, quote.as_of_ms, quote.source, quote.synthetic

        if target == PIVOT_CURRENCY:
            quote = fx_table.get(source)
            if not _usable(quote):
                return fallback
            return _ONE / quote.rate, quote.as_of_ms, quote.source, quote.synthetic

        usd_to_source = fx_table.get(source)
        usd_to_target = fx_table.get(target)
        if not _usable(usd_to_source) or not _usable(usd_to_target):
            return fallback

        as_of_values = [
            value
            for value in (usd_to_source.as_of_ms, usd_to_target.as_of_ms)
            if value is not None
        ]
        if usd_to_source.source == usd_to_target.source:
            joined_source = usd_to_source.source
        else:
            joined_source = f"{usd_to_source.source}|{usd_to_target.source}"
        return (
            usd_to_target.rate / usd_to_source.rate,
            min(as_of_values) if as_of_values else None,
            joined_source,
            usd_to_source.synthetic or usd_to_target.synthetic,
        )

    def convert(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        fx_table: FxTable,
    ) -> ConversionResult:
        """Convert and round to the target currency's precision."""
        target = normalize_currency_code(to_currency)
        rate, as_of_ms, source, synthetic = self.resolve_rate(
            from_currency, target, fx_table
        )
        converted = self.round_for_currency(Decimal(amount) * rate, target)
        return ConversionResult(
            amount=MoneyAmount(converted, target),
            rate=rate,
            as_of_ms=as_of_ms,
            source=source,
            synthetic=synthetic,
        )

    def build_fx_snapshot(
        self,
        amount: Decimal,
        currency: str,
        base_currency: str,
        posted_at_ms: int,
        fx_table: FxTable,
    ) -> FxSnapshot:
        """Snapshot of ``amount`` in ``currency`` valued in ``base_currency``."""
        native_currency = normalize_currency_code(currency)
        base = normalize_currency_code(base_currency)
        native_amount = self.round_for_currency(amount, native_currency)
        conversion = self.convert(native_amount, native_currency, base, fx_table)
        return FxSnapshot(
            base_currency=base,
            native_currency=native_currency,
            native_amount=native_amount,
            native_amount_minor=self.to_minor_units(native_amount, native_currency),
            native_fraction_digits=self.fraction_digits(native_currency),
            base_amount=conversion.amount.amount,
            base_amount_minor=self.to_minor_units(conversion.amount.amount, base),
            base_fraction_digits=self.fraction_digits(base),
            fx_rate_native_to_base=conversion.rate,
            fx_as_of_ms=(
                conversion.as_of_ms if conversion.as_of_ms is not None else posted_at_ms
            ),
            fx_source=conversion.source,
            fx_synthetic=conversion.synthetic,
        )

    # -------------------------------------------------------------------------
    # Allocation
    # -------------------------------------------------------------------------

    def split_allocate(
        self,
        total: Decimal,
        currency: str,
        weights: Sequence[Decimal | int],
    ) -> list[Decimal]:
        """
        Scale ``weights`` so they sum exactly to ``total`` at currency precision.

        Preconditions:
            Every weight is >= 0 and at least one is positive.

        Returns:
            One amount per weight, in input order.  Zero shares are kept so the
            caller can map results back to its inputs.
        """
        total_minor = self.to_minor_units(total, currency)
        shares = split_allocate_minor(total_minor, weights)
        return [self.from_minor_units(share, currency) for share in shares]


def split_allocate_minor(total_minor: int, weights: Sequence[Decimal | int]) -> list[int]:
    """
    Proportionally allocate ``total_minor`` across ``weights``.

    Each share is ``round_half_up(total * w / sum(w))``; the residual is
    added to the last share.  If that drives the last share negative the
    deficit is carried back to earlier shares, so no share is negative and
    the sum is exact.

    Raises:
        ValueError: If there are no weights or they do not sum to > 0.
    """
    if not weights:
        raise ValueError("split_allocate_minor requires at least one weight")
    decimal_weights = [Decimal(w) for w in weights]
    if any(w < 0 for w in decimal_weights):
        raise ValueError("split weights must be non-negative")
    weight_sum = sum(decimal_weights, Decimal(0))
    if weight_sum <= 0:
        raise ValueError("split weights must sum to a positive value")

    total = Decimal(total_minor)
    shares = [
        int((total * weight / weight_sum).quantize(_ONE, rounding=ROUND_HALF_UP))
        for weight in decimal_weights
    ]
    shares[-1] += total_minor - sum(shares)

    index = len(shares) - 1
    while index > 0 and shares[index] < 0:
        shares[index - 1] += shares[index]
        shares[index] = 0
        index -= 1
    return shares
