"""Reads shared FX quotes and currency precision overrides."""

from __future__ import annotations

from sqlalchemy import select

from household_kernel.domain.currency import CurrencyPrecisionTable
from household_kernel.domain.money import FxQuote, build_fx_table
from household_kernel.models.reference import CurrencyCatalogModel, FxRateModel
from household_kernel.selectors.base import BaseSelector


class ReferenceSelector(BaseSelector):
    """FX table and precision table as of the current database state."""

    def fx_table(self) -> dict[str, FxQuote]:
        """
        Latest quote per currency.

        Rows are fed oldest first (nulls first) so the newest ``as_of``
        wins inside ``build_fx_table``.
        """
        rows = self.session.execute(
            select(FxRateModel).order_by(
                FxRateModel.as_of.asc().nulls_first(), FxRateModel.id
            )
        ).scalars()
        return build_fx_table(row.to_row() for row in rows)

    def precision_table(self) -> CurrencyPrecisionTable:
        rows = self.session.execute(select(CurrencyCatalogModel)).scalars()
        return CurrencyPrecisionTable.from_catalog_rows(
            (row.code, row.fraction_digits) for row in rows
        )
