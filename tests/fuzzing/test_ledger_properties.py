"""
Property-based tests for split allocation and FX conversion.

Boundaries fuzzed here:
- Split weights: 1-20 splits, integer and fractional weights
- Currency precision: USD (2), JPY (0), KWD (3)
- FX: pivot symmetry through USD for arbitrary positive rates
- FX: A -> B -> A conversion returns within rounding of the start amount
- Posting: every posted entry balances to zero in minor units
"""

from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from household_kernel.domain.money import (
    FxRateRow,
    MoneyConverter,
    build_fx_table,
    split_allocate_minor,
)
from household_kernel.models.ledger import LedgerEntryModel
from household_kernel.services.ledger_poster import LedgerPoster, SplitInput

CURRENCIES = ("USD", "JPY", "KWD")
FX_CURRENCIES = ("USD", "EUR", "JPY", "KWD")
ROUND_TRIP_PAIRS = [(a, b) for a in FX_CURRENCIES for b in FX_CURRENCIES if a != b]

weights_strategy = st.lists(
    st.one_of(
        st.integers(min_value=1, max_value=10_000),
        st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000"), places=2),
    ),
    min_size=1,
    max_size=20,
)

amounts_strategy = st.decimals(
    min_value=Decimal("1"),
    max_value=Decimal("99999999"),
    places=3,
    allow_nan=False,
    allow_infinity=False,
)

rates_strategy = st.decimals(
    min_value=Decimal("0.0001"),
    max_value=Decimal("100000"),
    places=4,
    allow_nan=False,
    allow_infinity=False,
)


class TestSplitAllocationProperties:
    @given(total_minor=st.integers(min_value=0, max_value=10**12), weights=weights_strategy)
    @settings(max_examples=200)
    def test_shares_sum_exactly(self, total_minor, weights):
        shares = split_allocate_minor(total_minor, weights)
        assert sum(shares) == total_minor
        assert len(shares) == len(weights)
        assert all(share >= 0 for share in shares)

    @given(
        amount=amounts_strategy,
        currency=st.sampled_from(CURRENCIES),
        weights=weights_strategy,
    )
    @settings(max_examples=200)
    def test_split_allocate_at_currency_precision(self, amount, currency, weights):
        converter = MoneyConverter()
        shares = converter.split_allocate(amount, currency, weights)
        total = converter.round_for_currency(amount, currency)

        assert sum(shares) == total
        quantum = converter.quantum(currency)
        assert all(share == share.quantize(quantum) for share in shares)


class TestFxProperties:
    @given(
        eur=rates_strategy,
        jpy=rates_strategy,
        pair=st.sampled_from([("EUR", "JPY"), ("USD", "EUR"), ("JPY", "USD")]),
    )
    @settings(max_examples=200)
    def test_pivot_rates_are_reciprocal(self, eur, jpy, pair):
        table = build_fx_table(
            [
                FxRateRow("USD", "EUR", eur, as_of_ms=1, source="ecb"),
                FxRateRow("USD", "JPY", jpy, as_of_ms=2, source="ecb"),
            ]
        )
        converter = MoneyConverter()
        forward, _, _, forward_synthetic = converter.resolve_rate(pair[0], pair[1], table)
        backward, _, _, backward_synthetic = converter.resolve_rate(pair[1], pair[0], table)

        assert not forward_synthetic and not backward_synthetic
        assert abs(forward * backward - 1) < Decimal("1e-20")

    @given(amount=amounts_strategy, currency=st.sampled_from(CURRENCIES))
    def test_missing_rate_falls_back_to_identity(self, amount, currency):
        converter = MoneyConverter()
        result = converter.convert(amount, currency, "CHF", build_fx_table([]))
        assert result.synthetic is True
        assert result.rate == 1
        assert result.amount.amount == converter.round_for_currency(amount, "CHF")

    @given(
        amount=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000000"), places=3),
        eur=st.decimals(min_value=Decimal("0.5"), max_value=Decimal("2"), places=4),
        jpy=st.decimals(min_value=Decimal("100"), max_value=Decimal("200"), places=2),
        kwd=st.decimals(min_value=Decimal("0.2"), max_value=Decimal("0.5"), places=4),
        pair=st.sampled_from(ROUND_TRIP_PAIRS),
    )
    @settings(max_examples=200)
    def test_convert_there_and_back_stays_within_rounding(self, amount, eur, jpy, kwd, pair):
        start, target = pair
        table = build_fx_table(
            [
                FxRateRow("USD", "EUR", eur, as_of_ms=1, source="ecb"),
                FxRateRow("USD", "JPY", jpy, as_of_ms=1, source="ecb"),
                FxRateRow("USD", "KWD", kwd, as_of_ms=1, source="ecb"),
            ]
        )
        converter = MoneyConverter()
        original = converter.round_for_currency(amount, start)

        forward = converter.convert(original, start, target, table)
        back = converter.convert(forward.amount.amount, target, start, table)

        # One minor unit of the start currency plus the rounding lost in the target
        tolerance = converter.quantum(start) + converter.quantum(target) / forward.rate
        assert not forward.synthetic and not back.synthetic
        assert abs(back.amount.amount - original) <= tolerance


class TestPostingBalanceProperties:
    @given(
        amount=st.decimals(min_value=Decimal("1"), max_value=Decimal("1000000"), places=2),
        currency=st.sampled_from(CURRENCIES),
        weights=st.lists(st.integers(min_value=1, max_value=500), min_size=1, max_size=20),
    )
    @settings(max_examples=25, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_every_entry_balances(self, session, clock, user_id, amount, currency, weights):
        poster = LedgerPoster(session, clock)
        result = poster.post_purchase(
            user_id,
            "Fuzz Mart",
            amount,
            currency=currency,
            splits=[SplitInput(f"split-{i}", weight) for i, weight in enumerate(weights)],
        )

        entry = session.get(LedgerEntryModel, result.ledger_entry_id)
        assert sum(line.amount_minor for line in entry.lines) == 0
        assert sum(result.split_minor) == result.total_minor
        assert len(entry.lines) == result.line_count
        assert 1 <= len(result.split_minor) <= len(weights)
        assert all(share > 0 for share in result.split_minor)
