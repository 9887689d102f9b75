"""Currency -- ISO 4217 minor-unit precision and code normalization."""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

PIVOT_CURRENCY = "USD"
MIN_FRACTION_DIGITS = 0
MAX_FRACTION_DIGITS = 8

_CODE_PATTERN = re.compile(r"^[A-Z]{3}$")


def normalize_currency_code(value: Any, fallback: str = PIVOT_CURRENCY) -> str:
    """Upper-case three-letter code, or ``fallback`` when malformed."""
    raw = value.strip().upper() if isinstance(value, str) else ""
    if not _CODE_PATTERN.match(raw):
        return fallback
    return raw


def clamp_fraction_digits(value: Any, default: int = 2) -> int:
    try:
        digits = int(value)
    except (TypeError, ValueError):
        digits = default
    return max(MIN_FRACTION_DIGITS, min(MAX_FRACTION_DIGITS, digits))


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single ISO 4217 currency."""

    code: str
    decimal_places: int
    name: str


class CurrencyRegistry:
    """Built-in ISO 4217 precision table.

    Only currencies whose precision differs from the default, plus the
    common two-digit currencies, are listed.  Anything else is assumed to
    carry ``DEFAULT_DECIMAL_PLACES``.
    """

    DEFAULT_DECIMAL_PLACES: ClassVar[int] = 2

    _CURRENCIES: ClassVar[dict[str, CurrencyInfo]] = {
        # Major currencies
        "USD": CurrencyInfo("USD", 2, "US Dollar"),
        "EUR": CurrencyInfo("EUR", 2, "Euro"),
        "GBP": CurrencyInfo("GBP", 2, "Pound Sterling"),
        "CHF": CurrencyInfo("CHF", 2, "Swiss Franc"),
        "CAD": CurrencyInfo("CAD", 2, "Canadian Dollar"),
        "AUD": CurrencyInfo("AUD", 2, "Australian Dollar"),
        "NZD": CurrencyInfo("NZD", 2, "New Zealand Dollar"),
        "INR": CurrencyInfo("INR", 2, "Indian Rupee"),
        "MXN": CurrencyInfo("MXN", 2, "Mexican Peso"),
        "BRL": CurrencyInfo("BRL", 2, "Brazilian Real"),
        "ZAR": CurrencyInfo("ZAR", 2, "South African Rand"),
        "SEK": CurrencyInfo("SEK", 2, "Swedish Krona"),
        "NOK": CurrencyInfo("NOK", 2, "Norwegian Krone"),
        "DKK": CurrencyInfo("DKK", 2, "Danish Krone"),
        "PLN": CurrencyInfo("PLN", 2, "Polish Zloty"),
        "SGD": CurrencyInfo("SGD", 2, "Singapore Dollar"),
        "HKD": CurrencyInfo("HKD", 2, "Hong Kong Dollar"),
        "CNY": CurrencyInfo("CNY", 2, "Yuan Renminbi"),
        # Zero decimal currencies
        "JPY": CurrencyInfo("JPY", 0, "Japanese Yen"),
        "BIF": CurrencyInfo("BIF", 0, "Burundian Franc"),
        "CLP": CurrencyInfo("CLP", 0, "Chilean Peso"),
        "DJF": CurrencyInfo("DJF", 0, "Djiboutian Franc"),
        "GNF": CurrencyInfo("GNF", 0, "Guinean Franc"),
        "ISK": CurrencyInfo("ISK", 0, "Icelandic Krona"),
        "KMF": CurrencyInfo("KMF", 0, "Comorian Franc"),
        "KRW": CurrencyInfo("KRW", 0, "South Korean Won"),
        "PYG": CurrencyInfo("PYG", 0, "Paraguayan Guarani"),
        "RWF": CurrencyInfo("RWF", 0, "Rwandan Franc"),
        "UGX": CurrencyInfo("UGX", 0, "Ugandan Shilling"),
        "VND": CurrencyInfo("VND", 0, "Vietnamese Dong"),
        "VUV": CurrencyInfo("VUV", 0, "Vanuatu Vatu"),
        "XAF": CurrencyInfo("XAF", 0, "Central African CFA Franc"),
        "XOF": CurrencyInfo("XOF", 0, "West African CFA Franc"),
        "XPF": CurrencyInfo("XPF", 0, "CFP Franc"),
        # Three decimal currencies
        "BHD": CurrencyInfo("BHD", 3, "Bahraini Dinar"),
        "IQD": CurrencyInfo("IQD", 3, "Iraqi Dinar"),
        "JOD": CurrencyInfo("JOD", 3, "Jordanian Dinar"),
        "KWD": CurrencyInfo("KWD", 3, "Kuwaiti Dinar"),
        "LYD": CurrencyInfo("LYD", 3, "Libyan Dinar"),
        "OMR": CurrencyInfo("OMR", 3, "Rial Omani"),
        "TND": CurrencyInfo("TND", 3, "Tunisian Dinar"),
        # Four decimal currencies
        "CLF": CurrencyInfo("CLF", 4, "Unidad de Fomento"),
        "UYW": CurrencyInfo("UYW", 4, "Unidad Previsional"),
    }

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        return cls._CURRENCIES.get(code.upper()) if code else None

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        return info.decimal_places if info else cls.DEFAULT_DECIMAL_PLACES

    @classmethod
    def is_known(cls, code: str) -> bool:
        return cls.get_info(code) is not None


class CurrencyPrecisionTable:
    """
    Effective fraction digits per currency.

    Contract:
        Overrides (usually from the currency catalog table) win over the
        built-in registry, which wins over the default of 2.  Every result
        is clamped to [0, 8].
    """

    def __init__(self, overrides: Mapping[str, int] | None = None):
        self._overrides: dict[str, int] = {
            normalize_currency_code(code): clamp_fraction_digits(digits)
            for code, digits in (overrides or {}).items()
        }

    @classmethod
    def from_catalog_rows(cls, rows: Iterable[tuple[str, int | None]]) -> "CurrencyPrecisionTable":
        """Build from ``(code, fraction_digits)`` pairs; None means built-in."""
        overrides: dict[str, int] = {}
        for code, digits in rows:
            normalized = normalize_currency_code(code)
            if digits is None:
                digits = CurrencyRegistry.get_decimal_places(normalized)
            overrides[normalized] = clamp_fraction_digits(digits)
        return cls(overrides)

    def fraction_digits(self, currency: str) -> int:
        code = normalize_currency_code(currency)
        if code in self._overrides:
            return self._overrides[code]
        return clamp_fraction_digits(CurrencyRegistry.get_decimal_places(code))
