"""
Records -- closed enums and frozen per-entity records.

Responsibility:
    Defines the tagged vocabularies (status, severity, kind, match mode,
    cadence) with an explicit unknown -> default normalization, and the
    immutable records that selectors hand to engines.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ORM models convert themselves into
    these records through one ``to_record()`` boundary per entity; engines
    never see ORM rows.

Invariants enforced:
    - Every enum has exactly one ``normalize()`` entry point; unrecognized
      or missing values map to the documented default.
    - Records are frozen.  Missing legacy fields already carry defaults by
      the time a record exists.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Coercion helpers used by every normalization boundary
# ---------------------------------------------------------------------------


def optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def decimal_or(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        return default
    return result if result.is_finite() else default


def int_or(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return default


def clamp_int(value: Any, low: int, high: int, default: int | None = None) -> int:
    return max(low, min(high, int_or(value, low if default is None else default)))


def parse_json_object(raw: Any) -> dict[str, Any]:
    """Parse a stored JSON payload; anything but a JSON object reads as ``{}``."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _token(value: Any) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def normalize(cls, value: Any) -> AlertSeverity:
        token = _token(value)
        if token == "high":
            return cls.HIGH
        if token == "low":
            return cls.LOW
        return cls.MEDIUM


class AlertStatus(str, Enum):
    OPEN = "open"
    SNOOZED = "snoozed"
    RESOLVED = "resolved"

    @classmethod
    def normalize(cls, value: Any) -> AlertStatus:
        token = _token(value)
        if token == "resolved":
            return cls.RESOLVED
        if token == "snoozed":
            return cls.SNOOZED
        return cls.OPEN


class SuggestionStatus(str, Enum):
    OPEN = "open"
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"
    SNOOZED = "snoozed"

    @classmethod
    def normalize(cls, value: Any) -> SuggestionStatus:
        token = _token(value)
        for member in cls:
            if member.value == token:
                return member
        return cls.OPEN


class SuggestionKind(str, Enum):
    INCOME_ALLOCATION = "income_allocation"
    SUBSCRIPTION_PRICE = "subscription_price"

    @classmethod
    def normalize(cls, value: Any) -> SuggestionKind:
        if _token(value) == "subscription_price":
            return cls.SUBSCRIPTION_PRICE
        return cls.INCOME_ALLOCATION


class ReviewDecision(str, Enum):
    ACCEPT = "accept"
    DISMISS = "dismiss"
    SNOOZE = "snooze"

    @classmethod
    def normalize(cls, value: Any) -> ReviewDecision | None:
        """Map ``accept``/``accepted`` etc.; returns None when unrecognized."""
        token = _token(value)
        if token in ("accept", "accepted"):
            return cls.ACCEPT
        if token in ("dismiss", "dismissed"):
            return cls.DISMISS
        if token in ("snooze", "snoozed"):
            return cls.SNOOZE
        return None


class MatchMode(str, Enum):
    CONTAINS = "contains"
    EQUALS = "equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"

    @classmethod
    def normalize(cls, value: Any) -> MatchMode:
        token = _token(value)
        if token == "equals":
            return cls.EQUALS
        if token in ("starts_with", "startswith"):
            return cls.STARTS_WITH
        if token in ("ends_with", "endswith"):
            return cls.ENDS_WITH
        if token == "regex":
            return cls.REGEX
        return cls.CONTAINS


class Cadence(str, Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"
    ONE_TIME = "one_time"

    @classmethod
    def normalize(cls, value: Any) -> Cadence:
        token = _token(value)
        if token == "fortnightly":
            return cls.BIWEEKLY
        if token == "annual":
            return cls.YEARLY
        for member in cls:
            if member.value == token:
                return member
        return cls.MONTHLY


class CustomUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"

    @classmethod
    def normalize(cls, value: Any, default: CustomUnit | None = None) -> CustomUnit:
        token = _token(value)
        for member in cls:
            if token.startswith(member.value[:-1]):
                return member
        return default or cls.WEEKS


class Ownership(str, Enum):
    SHARED = "shared"
    PERSONAL = "personal"
    BUSINESS = "business"
    HOUSEHOLD = "household"
    # Funding line of a purchase split across several owners
    MIXED = "mixed"

    @classmethod
    def normalize(cls, value: Any) -> Ownership:
        token = _token(value)
        for member in cls:
            if member.value == token:
                return member
        return cls.SHARED


class AccountKind(str, Enum):
    ACCOUNT = "account"
    CARD = "card"
    LOAN = "loan"


# ---------------------------------------------------------------------------
# Entity records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountRef:
    """Anything a purchase may be paid from or allocated to."""

    id: str
    kind: AccountKind
    name: str


@dataclass(frozen=True)
class IncomeRecord:
    id: str
    source: str
    amount: Decimal
    cadence: Cadence = Cadence.MONTHLY
    custom_interval: int | None = None
    custom_unit: CustomUnit | None = None
    received_day: int | None = None
    destination_account_id: str | None = None
    created_at: int = 0


@dataclass(frozen=True)
class BillRecord:
    id: str
    name: str
    amount: Decimal
    due_day: int = 1
    cadence: Cadence = Cadence.MONTHLY
    custom_interval: int | None = None
    custom_unit: CustomUnit | None = None
    category: str = ""
    is_subscription: bool = False
    created_at: int = 0

    @property
    def tracks_subscription_price(self) -> bool:
        return self.is_subscription or "subscription" in self.category.lower()


@dataclass(frozen=True)
class CardRecord:
    id: str
    name: str
    credit_limit: Decimal
    used_limit: Decimal


@dataclass(frozen=True)
class LoanRecord:
    id: str
    name: str
    due_day: int = 1
    minimum_payment: Decimal = Decimal("0")


@dataclass(frozen=True)
class AllocationRuleRecord:
    id: str
    name: str
    income_source_pattern: str
    match_mode: MatchMode = MatchMode.CONTAINS
    enabled: bool = True
    priority: int = 100
    allocations: tuple[dict[str, Any], ...] = ()


@dataclass(frozen=True)
class MonthlyCycleRunRecord:
    id: str
    cycle_key: str
    status: str
    ran_at: int
    updated_at: int


@dataclass(frozen=True)
class AlertRecord:
    """A persisted alert as the reconciliation engine sees it."""

    id: str
    fingerprint: str
    title: str
    detail: str
    severity: AlertSeverity
    entity_type: str
    entity_id: str
    due_at: int | None
    cycle_key: str
    status: AlertStatus
    source: str
    action_label: str = ""
    action_href: str = ""
    snooze_until: int | None = None
    resolved_at: int | None = None
    updated_at: int = 0


@dataclass(frozen=True)
class SuggestionRecord:
    id: str
    kind: SuggestionKind
    fingerprint: str
    status: SuggestionStatus
    entity_id: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    latest_amount: Decimal | None = None
    snooze_until: int | None = None
    updated_at: int = 0
