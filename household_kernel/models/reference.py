"""
Module: household_kernel.models.reference
Responsibility: ORM persistence for shared reference data: USD-based FX
    quotes and the currency catalog (precision overrides).
Architecture position: Kernel > Models.

Invariants enforced:
    - Reference rows are not user-owned; every user converts against the
      same quotes.
    - Rates are stored as quote-currency units per 1 unit of base_currency.
      Only base_currency == USD rows feed conversion.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from household_kernel.db.base import Base
from household_kernel.domain.money import FxRateRow


class FxRateModel(Base):
    """A dated FX quote."""

    __tablename__ = "fx_rates"

    __table_args__ = (Index("idx_fx_pair_as_of", "base_currency", "quote_currency", "as_of"),)

    base_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    quote_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    rate: Mapped[Decimal | None] = mapped_column(Numeric(38, 18), nullable=True)

    as_of: Mapped[int | None] = mapped_column(nullable=True)

    # Rate provider, e.g. "ecb" or "manual"
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)

    synthetic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<FxRateModel {self.base_currency}/{self.quote_currency} = {self.rate}>"

    def to_row(self) -> FxRateRow:
        return FxRateRow(
            base_currency=self.base_currency,
            quote_currency=self.quote_currency,
            rate=self.rate,
            as_of_ms=self.as_of,
            source=self.source,
            synthetic=bool(self.synthetic),
        )


class CurrencyCatalogModel(Base):
    """Currency metadata; ``fraction_digits`` overrides the built-in table."""

    __tablename__ = "currency_catalog"

    code: Mapped[str] = mapped_column(String(3), nullable=False, unique=True)

    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    fraction_digits: Mapped[int | None] = mapped_column(Integer, nullable=True)
