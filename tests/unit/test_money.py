"""
Unit tests for MoneyConverter and currency precision.

Verifies:
- Minor-unit conversion uses each currency's precision with HALF_UP
- Proportional splits are exact with the residual on the last split
- USD-pivot FX resolution, including synthetic fallback
- FX table construction and catalog precision overrides
"""

from decimal import Decimal

import pytest

from household_kernel.domain.currency import (
    CurrencyPrecisionTable,
    CurrencyRegistry,
    clamp_fraction_digits,
    normalize_currency_code,
)
from household_kernel.domain.money import (
    FxQuote,
    FxRateRow,
    MoneyConverter,
    build_fx_table,
    split_allocate_minor,
)


@pytest.fixture
def converter():
    return MoneyConverter()


@pytest.fixture
def fx_table():
    return build_fx_table(
        [
            FxRateRow("USD", "EUR", Decimal("0.9"), as_of_ms=1_000, source="ecb"),
            FxRateRow("USD", "GBP", Decimal("0.8"), as_of_ms=2_000, source="boe"),
            FxRateRow("USD", "JPY", Decimal("150"), as_of_ms=3_000, source="ecb"),
        ]
    )


class TestNormalizeCurrencyCode:
    def test_lower_case_is_upper_cased(self):
        assert normalize_currency_code(" eur ") == "EUR"

    @pytest.mark.parametrize("value", [None, "", "EURO", "E1R", 42])
    def test_malformed_uses_fallback(self, value):
        assert normalize_currency_code(value) == "USD"

    def test_custom_fallback(self):
        assert normalize_currency_code("??", fallback="GBP") == "GBP"

    def test_fraction_digits_clamped(self):
        assert clamp_fraction_digits(12) == 8
        assert clamp_fraction_digits(-3) == 0
        assert clamp_fraction_digits("bad") == 2


class TestPrecision:
    @pytest.mark.parametrize(
        "code,digits",
        [("USD", 2), ("EUR", 2), ("JPY", 0), ("KWD", 3), ("BHD", 3), ("CLF", 4), ("XYZ", 2)],
    )
    def test_registry_digits(self, code, digits):
        assert CurrencyPrecisionTable().fraction_digits(code) == digits

    def test_catalog_override_wins(self):
        table = CurrencyPrecisionTable.from_catalog_rows([("JPY", 2)])
        assert table.fraction_digits("JPY") == 2

    def test_catalog_null_uses_registry(self):
        table = CurrencyPrecisionTable.from_catalog_rows([("KWD", None)])
        assert table.fraction_digits("KWD") == 3

    def test_registry_knows_major_currencies(self):
        assert CurrencyRegistry.is_known("usd")
        assert not CurrencyRegistry.is_known("XYZ")


class TestMinorUnits:
    def test_usd_half_up(self, converter):
        assert converter.to_minor_units(Decimal("10.005"), "USD") == 1001

    def test_negative_rounds_away_from_zero(self, converter):
        assert converter.to_minor_units(Decimal("-10.005"), "USD") == -1001

    def test_jpy_has_no_minor_unit(self, converter):
        assert converter.to_minor_units(Decimal("1234.5"), "JPY") == 1235

    def test_kwd_three_digits(self, converter):
        assert converter.to_minor_units(Decimal("1.2345"), "KWD") == 1235

    def test_from_minor_units_keeps_scale(self, converter):
        assert str(converter.from_minor_units(1001, "USD")) == "10.01"
        assert str(converter.from_minor_units(1235, "KWD")) == "1.235"
        assert str(converter.from_minor_units(1235, "JPY")) == "1235"

    def test_round_for_currency(self, converter):
        assert converter.round_for_currency(Decimal("2.675"), "USD") == Decimal("2.68")


class TestSplitAllocate:
    def test_residual_lands_on_last(self, converter):
        shares = converter.split_allocate(Decimal("10.00"), "USD", [1, 1, 1])
        assert shares == [Decimal("3.33"), Decimal("3.33"), Decimal("3.34")]

    def test_weighted_split(self, converter):
        shares = converter.split_allocate(Decimal("100.00"), "USD", [Decimal("0.7"), Decimal("0.3")])
        assert shares == [Decimal("70.00"), Decimal("30.00")]

    def test_jpy_split(self, converter):
        shares = converter.split_allocate(Decimal("1000"), "JPY", [1, 1, 1])
        assert shares == [Decimal("333"), Decimal("333"), Decimal("334")]
        assert sum(shares) == Decimal("1000")

    def test_zero_weight_keeps_position(self):
        assert split_allocate_minor(100, [1, 0, 1]) == [50, 0, 50]

    def test_tiny_total_is_exact(self):
        assert split_allocate_minor(1, [1, 1, 1, 1]) == [0, 0, 0, 1]

    def test_negative_residual_carried_back(self):
        shares = split_allocate_minor(1, [1, 1, 0])
        assert shares == [1, 0, 0]
        assert all(share >= 0 for share in shares)

    def test_empty_weights_rejected(self):
        with pytest.raises(ValueError):
            split_allocate_minor(100, [])

    def test_negative_weight_rejected(self):
        with pytest.raises(ValueError):
            split_allocate_minor(100, [1, -1])

    def test_zero_sum_rejected(self):
        with pytest.raises(ValueError):
            split_allocate_minor(100, [0, 0])


class TestBuildFxTable:
    def test_usd_identity_added(self, fx_table):
        quote = fx_table["USD"]
        assert quote.rate == Decimal("1")
        assert quote.source == "identity"

    def test_non_usd_base_ignored(self):
        table = build_fx_table([FxRateRow("EUR", "GBP", Decimal("0.85"))])
        assert "GBP" not in table

    def test_blank_source_is_unknown(self):
        table = build_fx_table([FxRateRow("USD", "CAD", Decimal("1.35"), source="  ")])
        assert table["CAD"].source == "unknown"

    def test_later_rows_replace_earlier(self):
        table = build_fx_table(
            [
                FxRateRow("USD", "EUR", Decimal("0.9"), as_of_ms=1),
                FxRateRow("USD", "eur", Decimal("0.95"), as_of_ms=2),
            ]
        )
        assert table["EUR"].rate == Decimal("0.95")


class TestResolveRate:
    def test_identity(self, converter, fx_table):
        assert converter.resolve_rate("EUR", "eur", fx_table) == (
            Decimal("1"), None, "identity", False,
        )

    def test_from_pivot(self, converter, fx_table):
        rate, as_of, source, synthetic = converter.resolve_rate("USD", "EUR", fx_table)
        assert (rate, as_of, source, synthetic) == (Decimal("0.9"), 1_000, "ecb", False)

    def test_to_pivot_inverts(self, converter, fx_table):
        rate, _, _, _ = converter.resolve_rate("EUR", "USD", fx_table)
        assert rate == Decimal("1") / Decimal("0.9")

    def test_cross_rate_through_pivot(self, converter, fx_table):
        rate, as_of, source, synthetic = converter.resolve_rate("EUR", "GBP", fx_table)
        assert rate == Decimal("0.8") / Decimal("0.9")
        assert as_of == 1_000
        assert source == "ecb|boe"
        assert synthetic is False

    def test_cross_rate_same_source_not_joined(self, converter, fx_table):
        _, _, source, _ = converter.resolve_rate("EUR", "JPY", fx_table)
        assert source == "ecb"

    def test_missing_quote_falls_back(self, converter, fx_table):
        assert converter.resolve_rate("USD", "CHF", fx_table) == (
            Decimal("1"), None, "fallback", True,
        )

    def test_non_positive_quote_falls_back(self, converter):
        table = {"EUR": FxQuote(rate=Decimal("0"), as_of_ms=1, source="ecb")}
        _, _, source, synthetic = converter.resolve_rate("EUR", "USD", table)
        assert (source, synthetic) == ("fallback", True)

    def test_synthetic_quote_propagates(self, converter):
        table = build_fx_table(
            [FxRateRow("USD", "EUR", Decimal("0.9"), source="manual", synthetic=True)]
        )
        assert converter.resolve_rate("USD", "EUR", table)[3] is True


class TestConvert:
    def test_convert_rounds_to_target(self, converter, fx_table):
        result = converter.convert(Decimal("100.00"), "USD", "JPY", fx_table)
        assert result.amount.amount == Decimal("15000")
        assert result.amount.currency == "JPY"

    def test_convert_fallback_keeps_amount(self, converter, fx_table):
        result = converter.convert(Decimal("12.34"), "CHF", "USD", fx_table)
        assert result.amount.amount == Decimal("12.34")
        assert result.synthetic is True


class TestFxSnapshot:
    def test_snapshot_fields(self, converter, fx_table):
        snapshot = converter.build_fx_snapshot(
            Decimal("90.00"), "EUR", "USD", posted_at_ms=9_999, fx_table=fx_table
        )
        assert snapshot.native_amount_minor == 9000
        assert snapshot.base_amount == Decimal("100.00")
        assert snapshot.base_amount_minor == 10000
        assert snapshot.fx_as_of_ms == 1_000
        assert snapshot.fx_source == "ecb"
        assert snapshot.fx_synthetic is False

    def test_identity_snapshot_uses_posting_time(self, converter, fx_table):
        snapshot = converter.build_fx_snapshot(
            Decimal("5"), "USD", "USD", posted_at_ms=9_999, fx_table=fx_table
        )
        assert snapshot.fx_as_of_ms == 9_999
        assert snapshot.fx_rate_native_to_base == Decimal("1")

    def test_to_dict_stringifies_decimals(self, converter, fx_table):
        data = converter.build_fx_snapshot(
            Decimal("1.5"), "USD", "USD", posted_at_ms=1, fx_table=fx_table
        ).to_dict()
        assert data["native_amount"] == "1.50"
        assert data["fx_rate_native_to_base"] == "1"
