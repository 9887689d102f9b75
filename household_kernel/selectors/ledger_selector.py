"""
LedgerSelector -- read access to posted ledger entries.

Responsibility:
    Returns posted entries and their lines as frozen views, and checks the
    minor-unit balance of an entry independently of the posting path.

Architecture position:
    Kernel > Selectors.  Read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from household_kernel.models.ledger import LedgerEntryModel, LineType
from household_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class LedgerLineView:
    line_order: int
    line_type: str
    direction: str
    label: str
    account_id: str | None
    amount_minor: int
    currency: str
    base_amount_minor: int
    base_currency: str
    fx_synthetic: bool


@dataclass(frozen=True)
class LedgerEntryView:
    entry_id: UUID
    purchase_id: UUID
    description: str
    amount_minor: int
    currency: str
    posted_at: int
    lines: tuple[LedgerLineView, ...]

    @property
    def funding_minor(self) -> int:
        return sum(
            line.amount_minor for line in self.lines if line.line_type == LineType.FUNDING.value
        )

    @property
    def allocated_minor(self) -> int:
        return sum(
            line.amount_minor
            for line in self.lines
            if line.line_type == LineType.ALLOCATION.value
        )

    @property
    def is_balanced(self) -> bool:
        return self.allocated_minor + self.funding_minor == 0


def _to_view(entry: LedgerEntryModel) -> LedgerEntryView:
    return LedgerEntryView(
        entry_id=entry.id,
        purchase_id=entry.purchase_id,
        description=entry.description,
        amount_minor=entry.amount_minor,
        currency=entry.currency,
        posted_at=entry.posted_at,
        lines=tuple(
            LedgerLineView(
                line_order=line.line_order,
                line_type=line.line_type,
                direction=line.direction,
                label=line.label,
                account_id=line.account_id,
                amount_minor=line.amount_minor,
                currency=line.currency,
                base_amount_minor=line.base_amount_minor,
                base_currency=line.base_currency,
                fx_synthetic=line.fx_synthetic,
            )
            for line in entry.lines
        ),
    )


class LedgerSelector(BaseSelector):
    """Queries over ledger entries for one user."""

    def get_entry(self, entry_id: UUID) -> LedgerEntryView | None:
        entry = self.session.get(LedgerEntryModel, entry_id)
        return _to_view(entry) if entry is not None else None

    def entries_for_user(self, user_id: str) -> list[LedgerEntryView]:
        entries = self.session.execute(
            select(LedgerEntryModel)
            .where(LedgerEntryModel.user_id == user_id)
            .order_by(LedgerEntryModel.posted_at, LedgerEntryModel.id)
        ).scalars()
        return [_to_view(entry) for entry in entries]
