"""
Pytest fixtures for the household finance core test suite.

Provides:
- In-memory SQLite engine and sessions (one fresh database per test)
- DeterministicClock pinned to the reference sweep instant
- Row factories for the entities the sweep and the poster read
- Captured structured logs

SQLite runs on a single StaticPool connection with SQLAlchemy-owned BEGIN,
so SAVEPOINTs behave as they do on PostgreSQL.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from household_kernel.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from household_kernel.domain.clock import DeterministicClock, datetime_to_ms
from household_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from household_kernel.models.automation import AlertModel, SuggestionModel
from household_kernel.models.household import (
    AccountModel,
    BillModel,
    CardModel,
    DashboardPreferencesModel,
    FinancePreferencesModel,
    IncomeAllocationRuleModel,
    IncomeModel,
    LoanModel,
    MonthlyCycleRunModel,
)
from household_kernel.models.reference import CurrencyCatalogModel, FxRateModel

# Reference instant used by the sweep scenario: 2024-02-25 12:00 UTC
SWEEP_INSTANT = datetime(2024, 2, 25, 12, 0, 0, tzinfo=timezone.utc)
SWEEP_INSTANT_MS = datetime_to_ms(SWEEP_INSTANT)

TEST_USER_ID = "user-alice"
OTHER_USER_ID = "user-bob"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture household logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            assert any(r["message"] == "purchase_posted" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("household")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records
    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_engine():
    """Fresh in-memory database with every table created."""
    engine = init_engine_from_url("sqlite://")
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session(db_engine):
    """Per-test session; uncommitted work is rolled back at teardown."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def clock():
    return DeterministicClock(SWEEP_INSTANT)


@pytest.fixture
def user_id():
    return TEST_USER_ID


@pytest.fixture
def other_user_id():
    return OTHER_USER_ID


# =============================================================================
# Row factories
# =============================================================================


def _stamped(model, owner: str, stamp_ms: int, **fields):
    fields.setdefault("created_at", stamp_ms)
    fields.setdefault("updated_at", stamp_ms)
    return model(user_id=owner, **fields)


@pytest.fixture
def add_row(session):
    """Add one owned row and flush; ``owner`` defaults to the test user."""

    def _add(model, owner: str = TEST_USER_ID, stamp_ms: int = SWEEP_INSTANT_MS, **fields):
        row = _stamped(model, owner, stamp_ms, **fields)
        session.add(row)
        session.flush()
        return row

    return _add


@pytest.fixture
def make_preferences(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        fields.setdefault("currency", "USD")
        fields.setdefault("time_zone", "UTC")
        fields.setdefault("due_reminder_days", 3)
        return add_row(FinancePreferencesModel, owner, **fields)

    return _make


@pytest.fixture
def make_dashboard_preferences(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        return add_row(DashboardPreferencesModel, owner, **fields)

    return _make


@pytest.fixture
def make_bill(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        fields.setdefault("name", "Rent")
        fields.setdefault("amount", Decimal("50.00"))
        fields.setdefault("due_day", 31)
        fields.setdefault("cadence", "monthly")
        return add_row(BillModel, owner, **fields)

    return _make


@pytest.fixture
def make_income(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        fields.setdefault("source", "Acme Payroll")
        fields.setdefault("amount", Decimal("4000.00"))
        fields.setdefault("cadence", "monthly")
        return add_row(IncomeModel, owner, **fields)

    return _make


@pytest.fixture
def make_rule(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        fields.setdefault("name", "Payroll rule")
        fields.setdefault("income_source_pattern", "acme")
        fields.setdefault("match_mode", "contains")
        fields.setdefault("enabled", True)
        fields.setdefault("priority", 100)
        return add_row(IncomeAllocationRuleModel, owner, **fields)

    return _make


@pytest.fixture
def make_card(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        fields.setdefault("name", "Travel Card")
        fields.setdefault("credit_limit", Decimal("1000.00"))
        fields.setdefault("used_limit", Decimal("0"))
        return add_row(CardModel, owner, **fields)

    return _make


@pytest.fixture
def make_loan(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        fields.setdefault("name", "Car Loan")
        fields.setdefault("due_day", 27)
        fields.setdefault("minimum_payment", Decimal("210.00"))
        return add_row(LoanModel, owner, **fields)

    return _make


@pytest.fixture
def make_account(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        fields.setdefault("name", "Checking")
        fields.setdefault("account_type", "checking")
        return add_row(AccountModel, owner, **fields)

    return _make


@pytest.fixture
def make_cycle_run(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        fields.setdefault("cycle_key", "2024-02")
        fields.setdefault("status", "completed")
        fields.setdefault("ran_at", SWEEP_INSTANT_MS)
        return add_row(MonthlyCycleRunModel, owner, **fields)

    return _make


@pytest.fixture
def make_alert(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        fields.setdefault("fingerprint", "bill-due:legacy:1")
        fields.setdefault("title", "Legacy alert")
        fields.setdefault("severity", "medium")
        fields.setdefault("status", "open")
        fields.setdefault("source", "automation_sweep:daily")
        return add_row(AlertModel, owner, **fields)

    return _make


@pytest.fixture
def make_suggestion(add_row):
    def _make(owner: str = TEST_USER_ID, **fields):
        payload = fields.pop("payload", None)
        if payload is not None:
            fields["payload_json"] = json.dumps(payload)
        fields.setdefault("kind", "income_allocation")
        fields.setdefault("fingerprint", "income-allocation:legacy")
        fields.setdefault("status", "open")
        fields.setdefault("source", "automation_sweep:daily")
        return add_row(SuggestionModel, owner, **fields)

    return _make


@pytest.fixture
def add_fx_rate(session):
    def _add(quote_currency: str, rate: str, as_of: int = SWEEP_INSTANT_MS, **fields):
        fields.setdefault("base_currency", "USD")
        fields.setdefault("source", "ecb")
        row = FxRateModel(
            quote_currency=quote_currency, rate=Decimal(rate), as_of=as_of, **fields
        )
        session.add(row)
        session.flush()
        return row

    return _add


@pytest.fixture
def add_catalog_currency(session):
    def _add(code: str, fraction_digits: int | None, name: str | None = None):
        row = CurrencyCatalogModel(code=code, fraction_digits=fraction_digits, name=name)
        session.add(row)
        session.flush()
        return row

    return _add
