"""
LedgerPoster -- posts a purchase as a balanced double-sided ledger entry.

Responsibility:
    Validates a purchase, normalizes its splits against the purchase total
    in exact minor units, snapshots FX against the user's base currency
    and persists the purchase, its splits, one ledger entry, one funding
    line and one allocation line per split.

Architecture position:
    Kernel > Services -- imperative shell.  Reads preferences, account
    references, FX rates and currency precision through selectors; all
    arithmetic is delegated to ``MoneyConverter``.

Invariants enforced:
    - Validation (merchant, amount, account references) completes before
      anything is added to the session.  A rejected purchase leaves no rows.
    - ``sum(allocation.amount_minor) + funding.amount_minor == 0`` exactly.
      The check runs on the built lines before flush and raises
      ``UnbalancedEntryError`` if it ever fails.
    - Missing FX data never fails a posting; the snapshot is marked
      synthetic instead.
    - The purchase row is back-linked to its ledger entry.

Failure modes:
    - MissingFieldError: blank merchant.
    - InvalidAmountError: amount <= 0, or rounds to zero minor units.
    - UnknownAccountReferenceError: payment or linked account is not one of
      the user's accounts, cards or loans.
    - UnbalancedEntryError: internal arithmetic fault (never expected).

Audit relevance:
    A ``purchase_posted`` audit event is written best-effort after flush.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from household_kernel.domain.clock import Clock
from household_kernel.domain.money import FxSnapshot, MoneyConverter
from household_kernel.domain.preferences import PreferenceDefaults, resolve_currency
from household_kernel.domain.records import Ownership, decimal_or, optional_str
from household_kernel.exceptions import (
    InvalidAmountError,
    MissingFieldError,
    UnbalancedEntryError,
    UnknownAccountReferenceError,
)
from household_kernel.logging_config import LogContext, get_logger
from household_kernel.models.audit_event import AuditAction
from household_kernel.models.ledger import (
    LedgerEntryModel,
    LedgerLineModel,
    LineDirection,
    LineType,
    PurchaseModel,
    PurchaseSplitModel,
)
from household_kernel.selectors.reference_selector import ReferenceSelector
from household_kernel.selectors.user_state import UserStateSelector
from household_kernel.services.auditor_service import AuditorService
from household_kernel.services.base import BaseService

logger = get_logger("services.ledger_poster")

DEFAULT_CATEGORY = "Uncategorized"
UNASSIGNED_ACCOUNT_NAME = "Unassigned"


@dataclass(frozen=True)
class SplitInput:
    """One caller-supplied share of a purchase; amounts are weights."""

    label: str = ""
    amount: Decimal | str | int = Decimal("0")
    category: str | None = None
    ownership: str | None = None
    linked_account_id: str | None = None


@dataclass(frozen=True)
class NormalizedSplit:
    label: str
    amount: Decimal
    amount_minor: int
    category: str
    ownership: Ownership
    linked_account_id: str | None


@dataclass(frozen=True)
class PostingResult:
    """Identifiers and exact amounts of a posted purchase."""

    purchase_id: UUID
    ledger_entry_id: UUID
    currency: str
    total_minor: int
    split_minor: tuple[int, ...]
    base_currency: str
    fx_synthetic: bool

    @property
    def line_count(self) -> int:
        return len(self.split_minor) + 1


class LedgerPoster(BaseService):
    """
    Posts purchases for one user at a time.

    Contract:
        ``post_purchase`` flushes; the caller commits.

    Guarantees:
        - Exactly one entry per purchase, with ``len(splits) + 1`` lines.
        - Split shares are normalized with residual-to-last allocation, so
          they always sum to the purchase total.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        defaults: PreferenceDefaults | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._defaults = defaults or PreferenceDefaults()
        self._auditor = auditor or AuditorService(session, self.clock)
        self._users = UserStateSelector(session)
        self._reference = ReferenceSelector(session)

    def _normalize_splits(
        self,
        converter: MoneyConverter,
        total: Decimal,
        currency: str,
        splits: Sequence[SplitInput],
        default_category: str,
        default_ownership: Ownership,
    ) -> list[NormalizedSplit]:
        seeds: list[tuple[str, Decimal, str, Ownership, str | None]] = []
        for index, split in enumerate(splits):
            weight = max(Decimal("0"), decimal_or(split.amount))
            if weight <= 0:
                continue
            seeds.append(
                (
                    optional_str(split.label) or f"Split {index + 1}",
                    weight,
                    optional_str(split.category) or default_category,
                    (
                        Ownership.normalize(split.ownership)
                        if optional_str(split.ownership)
                        else default_ownership
                    ),
                    optional_str(split.linked_account_id),
                )
            )
        if not seeds:
            seeds.append(("Primary split", total, default_category, default_ownership, None))

        shares = converter.split_allocate(total, currency, [seed[1] for seed in seeds])
        normalized: list[NormalizedSplit] = []
        for (label, _weight, category, ownership, linked), share in zip(seeds, shares):
            share_minor = converter.to_minor_units(share, currency)
            if share_minor <= 0:
                continue
            normalized.append(
                NormalizedSplit(label, share, share_minor, category, ownership, linked)
            )
        return normalized

    def post_purchase(
        self,
        user_id: str,
        merchant: str,
        amount: Decimal | str | int,
        *,
        currency: str | None = None,
        splits: Sequence[SplitInput] = (),
        payment_account_id: str | None = None,
        payment_account_name: str | None = None,
        category: str | None = None,
        ownership: str | None = None,
        note: str | None = None,
        purchase_at_ms: int | None = None,
    ) -> PostingResult:
        merchant_name = optional_str(merchant)
        if merchant_name is None:
            raise MissingFieldError("merchant", "Merchant is required")
        raw_amount = decimal_or(amount)
        if raw_amount <= 0:
            raise InvalidAmountError(
                str(raw_amount), "Purchase amount must be greater than zero"
            )

        stored, dashboard = self._users.preferences(user_id)
        native_currency = resolve_currency(currency, stored, dashboard, self._defaults)
        base_currency = resolve_currency(None, stored, dashboard, self._defaults)
        converter = MoneyConverter(self._reference.precision_table())

        total_minor = converter.to_minor_units(raw_amount, native_currency)
        if total_minor <= 0:
            raise InvalidAmountError(
                str(raw_amount), "Purchase amount must be greater than zero"
            )
        total = converter.from_minor_units(total_minor, native_currency)

        default_category = optional_str(category) or DEFAULT_CATEGORY
        default_ownership = Ownership.normalize(ownership)
        normalized = self._normalize_splits(
            converter, total, native_currency, splits, default_category, default_ownership
        )

        refs = self._users.account_refs(user_id)
        payment_id = optional_str(payment_account_id)
        if payment_id is not None and payment_id not in refs:
            raise UnknownAccountReferenceError(payment_id, "payment")
        for split in normalized:
            if split.linked_account_id is not None and split.linked_account_id not in refs:
                raise UnknownAccountReferenceError(
                    split.linked_account_id, "linked", split.label
                )
        account_name = (
            optional_str(payment_account_name)
            or (refs[payment_id].name if payment_id is not None else None)
            or UNASSIGNED_ACCOUNT_NAME
        )

        now_ms = self.clock.now_ms()
        posted_at = purchase_at_ms if purchase_at_ms is not None else now_ms
        fx_table = self._reference.fx_table()

        def snapshot(value: Decimal) -> FxSnapshot:
            return converter.build_fx_snapshot(
                value, native_currency, base_currency, posted_at, fx_table
            )

        purchase_id = uuid4()
        entry_id = uuid4()
        total_snapshot = snapshot(total)
        stamps = {"user_id": user_id, "created_at": now_ms, "updated_at": now_ms}

        with LogContext.bind(user_id=user_id, purchase_id=str(purchase_id)):
            purchase = PurchaseModel(
                id=purchase_id,
                merchant=merchant_name,
                amount=total,
                amount_minor=total_minor,
                currency=native_currency,
                category=default_category,
                note=optional_str(note),
                purchase_date=posted_at,
                payment_account_id=payment_id,
                payment_account_name=account_name,
                ledger_entry_id=entry_id,
                split_count=len(normalized),
                posted_at=posted_at,
                **stamps,
            )
            purchase.apply_fx_snapshot(total_snapshot)

            entry = LedgerEntryModel(
                id=entry_id,
                purchase_id=purchase_id,
                entry_type="purchase",
                description=f"Purchase · {merchant_name}",
                amount=-total,
                amount_minor=-total_minor,
                currency=native_currency,
                line_count=len(normalized) + 1,
                posted_at=posted_at,
                **stamps,
            )
            entry.apply_fx_snapshot(total_snapshot, sign=-1)

            funding = LedgerLineModel(
                ledger_entry_id=entry_id,
                line_order=0,
                line_type=LineType.FUNDING.value,
                direction=LineDirection.CREDIT.value,
                label=f"Funding · {account_name}",
                account_id=payment_id,
                amount=-total,
                amount_minor=-total_minor,
                currency=native_currency,
                category=default_category,
                ownership=(
                    Ownership.MIXED.value
                    if len(normalized) > 1
                    else normalized[0].ownership.value
                ),
                **stamps,
            )
            funding.apply_fx_snapshot(total_snapshot, sign=-1)
            entry.lines.append(funding)

            synthetic = total_snapshot.fx_synthetic
            for index, split in enumerate(normalized):
                split_snapshot = snapshot(split.amount)
                synthetic = synthetic or split_snapshot.fx_synthetic
                split_row = PurchaseSplitModel(
                    id=uuid4(),
                    split_order=index,
                    label=split.label,
                    amount=split.amount,
                    amount_minor=split.amount_minor,
                    currency=native_currency,
                    ratio=Decimal(split.amount_minor) / Decimal(total_minor),
                    category=split.category,
                    ownership=split.ownership.value,
                    linked_account_id=split.linked_account_id,
                    **stamps,
                )
                split_row.apply_fx_snapshot(split_snapshot)
                purchase.splits.append(split_row)

                line = LedgerLineModel(
                    ledger_entry_id=entry_id,
                    line_order=index + 1,
                    line_type=LineType.ALLOCATION.value,
                    direction=LineDirection.DEBIT.value,
                    label=split.label,
                    account_id=split.linked_account_id,
                    amount=split.amount,
                    amount_minor=split.amount_minor,
                    currency=native_currency,
                    category=split.category,
                    ownership=split.ownership.value,
                    split_id=split_row.id,
                    **stamps,
                )
                line.apply_fx_snapshot(split_snapshot)
                entry.lines.append(line)

            allocated_minor = sum(split.amount_minor for split in normalized)
            if allocated_minor + funding.amount_minor != 0:
                logger.error(
                    "ledger_entry_unbalanced",
                    extra={
                        "funding_minor": funding.amount_minor,
                        "allocated_minor": allocated_minor,
                        "currency": native_currency,
                    },
                )
                raise UnbalancedEntryError(
                    funding.amount_minor, allocated_minor, native_currency
                )

            self.session.add(purchase)
            self.session.flush()
            self.session.add(entry)
            self.session.flush()

            logger.info(
                "purchase_posted",
                extra={
                    "currency": native_currency,
                    "total_minor": total_minor,
                    "split_count": len(normalized),
                    "base_currency": base_currency,
                    "fx_synthetic": synthetic,
                },
            )
            self._auditor.record(
                user_id,
                AuditAction.PURCHASE_POSTED,
                "purchase",
                purchase_id,
                after={
                    "merchant": merchant_name,
                    "amount": total,
                    "currency": native_currency,
                    "ledger_entry_id": entry_id,
                    "split_count": len(normalized),
                    "line_count": len(normalized) + 1,
                    "payment_account_name": account_name,
                },
                metadata={"base_currency": base_currency, "fx_synthetic": synthetic},
            )

        return PostingResult(
            purchase_id=purchase_id,
            ledger_entry_id=entry_id,
            currency=native_currency,
            total_minor=total_minor,
            split_minor=tuple(split.amount_minor for split in normalized),
            base_currency=base_currency,
            fx_synthetic=synthetic,
        )
