"""
Module: household_kernel.models.ledger
Responsibility: ORM persistence for posted purchases, their splits, and the
    double-sided ledger entry each purchase produces.
Architecture position: Kernel > Models.

Invariants enforced:
    - One LedgerEntryModel per posted purchase.  Its lines are exactly one
      FUNDING line (signed negative, CREDIT) and >= 1 ALLOCATION lines
      (signed positive, DEBIT).
    - ``sum(allocation.amount_minor) == -funding.amount_minor`` for every
      entry.  Amounts are stored both as Decimal and as exact integer minor
      units; minor units are authoritative.
    - Every purchase, split, entry and line carries its own FX snapshot
      against the user's base currency.

Audit relevance:
    The FX snapshot columns (rate, as-of, source, synthetic) let a reader
    tell an authoritative conversion from a fabricated identity fallback.
"""

import json
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from household_kernel.db.base import OwnedBase, UUIDString
from household_kernel.domain.money import FxSnapshot


class LineType(str, Enum):
    FUNDING = "funding"
    ALLOCATION = "allocation"


class LineDirection(str, Enum):
    """Funding lines credit the paying account; allocations debit a bucket."""

    DEBIT = "debit"
    CREDIT = "credit"


class FxSnapshotColumns:
    """Mixin carrying the per-row FX snapshot."""

    base_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    base_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    base_amount_minor: Mapped[int] = mapped_column(nullable=False)

    fx_rate: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)

    fx_as_of: Mapped[int] = mapped_column(nullable=False)

    fx_source: Mapped[str] = mapped_column(String(100), nullable=False)

    fx_synthetic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    fx_snapshot_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    def apply_fx_snapshot(self, snapshot: FxSnapshot, *, sign: int = 1) -> None:
        """Copy ``snapshot`` onto this row, negating base amounts when sign < 0."""
        factor = -1 if sign < 0 else 1
        self.base_currency = snapshot.base_currency
        self.base_amount = snapshot.base_amount * factor
        self.base_amount_minor = snapshot.base_amount_minor * factor
        self.fx_rate = snapshot.fx_rate_native_to_base
        self.fx_as_of = snapshot.fx_as_of_ms
        self.fx_source = snapshot.fx_source
        self.fx_synthetic = snapshot.fx_synthetic
        self.fx_snapshot_json = json.dumps(snapshot.to_dict(), sort_keys=True)


class PurchaseModel(FxSnapshotColumns, OwnedBase):
    """A purchase as entered by the user."""

    __tablename__ = "purchases"

    merchant: Mapped[str] = mapped_column(String(200), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    amount_minor: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    purchase_date: Mapped[int] = mapped_column(nullable=False)

    payment_account_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    payment_account_name: Mapped[str] = mapped_column(String(200), nullable=False)

    ledger_entry_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    split_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    posted_at: Mapped[int] = mapped_column(nullable=False)

    splits: Mapped[list["PurchaseSplitModel"]] = relationship(
        back_populates="purchase",
        cascade="all, delete-orphan",
        order_by="PurchaseSplitModel.split_order",
    )

    def __repr__(self) -> str:
        return f"<PurchaseModel {self.merchant} {self.amount} {self.currency}>"


class PurchaseSplitModel(FxSnapshotColumns, OwnedBase):
    """One normalized share of a purchase."""

    __tablename__ = "purchase_splits"

    __table_args__ = (Index("idx_split_purchase", "purchase_id"),)

    purchase_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchases.id"), nullable=False
    )

    split_order: Mapped[int] = mapped_column(Integer, nullable=False)

    label: Mapped[str] = mapped_column(String(200), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    amount_minor: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Share of the purchase total, 0 < ratio <= 1
    ratio: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    ownership: Mapped[str] = mapped_column(String(20), nullable=False, default="shared")

    linked_account_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    purchase: Mapped[PurchaseModel] = relationship(back_populates="splits")


class LedgerEntryModel(FxSnapshotColumns, OwnedBase):
    """Double-sided posting of one purchase."""

    __tablename__ = "ledger_entries"

    __table_args__ = (Index("idx_ledger_entry_purchase", "purchase_id"),)

    purchase_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchases.id"), nullable=False
    )

    entry_type: Mapped[str] = mapped_column(String(30), nullable=False, default="purchase")

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    # Signed: -total (cash leaving the paying account)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    amount_minor: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    line_count: Mapped[int] = mapped_column(Integer, nullable=False)

    posted_at: Mapped[int] = mapped_column(nullable=False)

    lines: Mapped[list["LedgerLineModel"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="LedgerLineModel.line_order",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<LedgerEntryModel {self.description} {self.amount} {self.currency}>"

    @property
    def funding_line(self) -> "LedgerLineModel | None":
        for line in self.lines:
            if line.line_type == LineType.FUNDING.value:
                return line
        return None

    @property
    def allocation_lines(self) -> list["LedgerLineModel"]:
        return [line for line in self.lines if line.line_type == LineType.ALLOCATION.value]


class LedgerLineModel(FxSnapshotColumns, OwnedBase):
    """A funding or allocation line of a ledger entry."""

    __tablename__ = "ledger_lines"

    __table_args__ = (Index("idx_ledger_line_entry", "ledger_entry_id", "line_order"),)

    ledger_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ledger_entries.id"), nullable=False
    )

    line_order: Mapped[int] = mapped_column(Integer, nullable=False)

    line_type: Mapped[str] = mapped_column(String(20), nullable=False)

    direction: Mapped[str] = mapped_column(String(10), nullable=False)

    label: Mapped[str] = mapped_column(String(255), nullable=False)

    account_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Signed: funding negative, allocations positive
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    amount_minor: Mapped[int] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    ownership: Mapped[str] = mapped_column(String(20), nullable=False, default="shared")

    split_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    entry: Mapped[LedgerEntryModel] = relationship(back_populates="lines")

