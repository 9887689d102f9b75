"""
Module: household_kernel.models.household
Responsibility: ORM persistence for the user's financial entities that the
    automation sweep reads: accounts, cards, loans, incomes, bills, income
    allocation rules, monthly cycle runs and the two preference rows.
Architecture position: Kernel > Models.  Imports db/base.py and the pure
    domain records it converts into.

Invariants enforced:
    - Every row is owned by exactly one user_id.
    - Each model exposes exactly one ``to_record()`` normalization boundary.
      Nullable legacy columns (amount, due_day, cadence, ...) are defaulted
      there and nowhere else.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from household_kernel.db.base import OwnedBase
from household_kernel.domain.preferences import DashboardPreferences, StoredPreferences
from household_kernel.domain.records import (
    AccountKind,
    AccountRef,
    AllocationRuleRecord,
    BillRecord,
    Cadence,
    CardRecord,
    CustomUnit,
    IncomeRecord,
    LoanRecord,
    MatchMode,
    MonthlyCycleRunRecord,
    clamp_int,
    decimal_or,
    optional_str,
    parse_json_object,
)

_ZERO = Decimal("0")


def _custom_unit(cadence: Cadence, raw: str | None) -> CustomUnit | None:
    if cadence != Cadence.CUSTOM:
        return None
    return CustomUnit.normalize(raw)


class AccountModel(OwnedBase):
    """Bank or cash account that can fund a purchase."""

    __tablename__ = "accounts"

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    account_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    balance: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    def to_account_ref(self) -> AccountRef:
        return AccountRef(
            id=str(self.id),
            kind=AccountKind.ACCOUNT,
            name=optional_str(self.name) or "Account",
        )


class CardModel(OwnedBase):
    """Credit card; participates in utilization alerts and purchase funding."""

    __tablename__ = "cards"

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    credit_limit: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    used_limit: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    def to_account_ref(self) -> AccountRef:
        return AccountRef(
            id=str(self.id),
            kind=AccountKind.CARD,
            name=optional_str(self.name) or "Card",
        )

    def to_record(self) -> CardRecord:
        return CardRecord(
            id=str(self.id),
            name=optional_str(self.name) or "Card",
            credit_limit=max(_ZERO, decimal_or(self.credit_limit)),
            used_limit=max(_ZERO, decimal_or(self.used_limit)),
        )


class LoanModel(OwnedBase):
    """Loan with a monthly payment due day."""

    __tablename__ = "loans"

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    due_day: Mapped[int | None] = mapped_column(Integer, nullable=True)

    minimum_payment: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    def to_account_ref(self) -> AccountRef:
        return AccountRef(
            id=str(self.id),
            kind=AccountKind.LOAN,
            name=optional_str(self.name) or "Loan",
        )

    def to_record(self) -> LoanRecord:
        return LoanRecord(
            id=str(self.id),
            name=optional_str(self.name) or "Loan",
            due_day=clamp_int(self.due_day, 1, 31, default=1),
            minimum_payment=max(_ZERO, decimal_or(self.minimum_payment)),
        )


class IncomeModel(OwnedBase):
    """Recurring income stream."""

    __tablename__ = "incomes"

    source: Mapped[str | None] = mapped_column(String(200), nullable=True)

    amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    cadence: Mapped[str | None] = mapped_column(String(20), nullable=True)

    custom_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)

    custom_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)

    received_day: Mapped[int | None] = mapped_column(Integer, nullable=True)

    destination_account_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    def to_record(self) -> IncomeRecord:
        cadence = Cadence.normalize(self.cadence)
        return IncomeRecord(
            id=str(self.id),
            source=optional_str(self.source) or "Income source",
            amount=max(_ZERO, decimal_or(self.amount)),
            cadence=cadence,
            custom_interval=(
                clamp_int(self.custom_interval, 1, 3650, default=1)
                if cadence == Cadence.CUSTOM
                else None
            ),
            custom_unit=_custom_unit(cadence, self.custom_unit),
            received_day=(
                clamp_int(self.received_day, 1, 31) if self.received_day is not None else None
            ),
            destination_account_id=optional_str(self.destination_account_id),
            created_at=self.created_at or 0,
        )


class BillModel(OwnedBase):
    """Recurring bill, optionally a tracked subscription."""

    __tablename__ = "bills"

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    due_day: Mapped[int | None] = mapped_column(Integer, nullable=True)

    cadence: Mapped[str | None] = mapped_column(String(20), nullable=True)

    custom_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)

    custom_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_subscription: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    def to_record(self) -> BillRecord:
        cadence = Cadence.normalize(self.cadence)
        return BillRecord(
            id=str(self.id),
            name=optional_str(self.name) or "Bill",
            amount=max(_ZERO, decimal_or(self.amount)),
            due_day=clamp_int(self.due_day, 1, 31, default=1),
            cadence=cadence,
            custom_interval=(
                clamp_int(self.custom_interval, 1, 3650, default=1)
                if cadence == Cadence.CUSTOM
                else None
            ),
            custom_unit=_custom_unit(cadence, self.custom_unit),
            category=optional_str(self.category) or "",
            is_subscription=bool(self.is_subscription),
            created_at=self.created_at or 0,
        )


class IncomeAllocationRuleModel(OwnedBase):
    """Routes income whose source matches a pattern into allocation buckets."""

    __tablename__ = "income_allocation_rules"

    name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    income_source_pattern: Mapped[str | None] = mapped_column(String(500), nullable=True)

    match_mode: Mapped[str | None] = mapped_column(String(20), nullable=True)

    enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    priority: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # JSON object: {"allocations": [{label, percent, category, ownership, ...}]}
    payload_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_record(self) -> AllocationRuleRecord:
        payload = parse_json_object(self.payload_json)
        raw_allocations = payload.get("allocations")
        allocations = tuple(
            item for item in (raw_allocations if isinstance(raw_allocations, list) else [])
            if isinstance(item, dict)
        )
        return AllocationRuleRecord(
            id=str(self.id),
            name=optional_str(self.name) or "Income allocation rule",
            income_source_pattern=self.income_source_pattern or "",
            match_mode=MatchMode.normalize(self.match_mode),
            enabled=self.enabled is not False,
            priority=clamp_int(self.priority, 0, 1000, default=100),
            allocations=allocations,
        )


class MonthlyCycleRunModel(OwnedBase):
    """One execution of the user's month-end cycle."""

    __tablename__ = "monthly_cycle_runs"

    cycle_key: Mapped[str | None] = mapped_column(String(7), nullable=True)

    status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    ran_at: Mapped[int | None] = mapped_column(nullable=True)

    def to_record(self) -> MonthlyCycleRunRecord:
        return MonthlyCycleRunRecord(
            id=str(self.id),
            cycle_key=optional_str(self.cycle_key) or "",
            status=(optional_str(self.status) or "unknown").lower(),
            ran_at=self.ran_at or self.created_at or 0,
            updated_at=self.updated_at or self.created_at or 0,
        )


class FinancePreferencesModel(OwnedBase):
    """Per-user automation and currency preferences (at most one live row)."""

    __tablename__ = "finance_preferences"

    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    time_zone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    monthly_automation_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    monthly_run_day: Mapped[int | None] = mapped_column(Integer, nullable=True)

    monthly_run_hour: Mapped[int | None] = mapped_column(Integer, nullable=True)

    monthly_run_minute: Mapped[int | None] = mapped_column(Integer, nullable=True)

    monthly_cycle_alerts_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    due_reminders_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    due_reminder_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    reconciliation_reminders_enabled: Mapped[bool | None] = mapped_column(
        Boolean, nullable=True
    )

    def to_record(self) -> StoredPreferences:
        return StoredPreferences(
            currency=self.currency,
            time_zone=self.time_zone,
            monthly_automation_enabled=self.monthly_automation_enabled,
            monthly_run_day=self.monthly_run_day,
            monthly_run_hour=self.monthly_run_hour,
            monthly_run_minute=self.monthly_run_minute,
            monthly_cycle_alerts_enabled=self.monthly_cycle_alerts_enabled,
            due_reminders_enabled=self.due_reminders_enabled,
            due_reminder_days=self.due_reminder_days,
            reconciliation_reminders_enabled=self.reconciliation_reminders_enabled,
        )


class DashboardPreferencesModel(OwnedBase):
    """Display preferences; fallback source for currency and timezone."""

    __tablename__ = "dashboard_preferences"

    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    time_zone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def to_record(self) -> DashboardPreferences:
        return DashboardPreferences(currency=self.currency, time_zone=self.time_zone)
