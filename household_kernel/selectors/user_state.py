"""
UserStateSelector -- loads everything one sweep needs for one user.

Responsibility:
    Reads the user's incomes, bills, cards, loans, allocation rules, cycle
    runs, preference rows, alerts and suggestions, and returns them as one
    frozen ``UserState``.  Also enumerates every user known to the system
    and resolves the set of account references a purchase may use.

Architecture position:
    Kernel > Selectors.  Read-only.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select

from household_kernel.domain.preferences import DashboardPreferences, StoredPreferences
from household_kernel.domain.records import (
    AccountRef,
    AlertRecord,
    AllocationRuleRecord,
    BillRecord,
    CardRecord,
    IncomeRecord,
    LoanRecord,
    MonthlyCycleRunRecord,
    SuggestionRecord,
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
from household_kernel.selectors.base import BaseSelector

# Tables whose owners are swept on a schedule
_USER_TABLES = (
    FinancePreferencesModel,
    AccountModel,
    IncomeModel,
    BillModel,
    CardModel,
    LoanModel,
)


@dataclass(frozen=True)
class UserState:
    """Snapshot of one user's automation inputs and persisted outputs."""

    user_id: str
    stored_preferences: StoredPreferences | None
    dashboard_preferences: DashboardPreferences | None
    incomes: tuple[IncomeRecord, ...]
    bills: tuple[BillRecord, ...]
    cards: tuple[CardRecord, ...]
    loans: tuple[LoanRecord, ...]
    allocation_rules: tuple[AllocationRuleRecord, ...]
    cycle_runs: tuple[MonthlyCycleRunRecord, ...]
    alerts: tuple[AlertRecord, ...]
    suggestions: tuple[SuggestionRecord, ...]


class UserStateSelector(BaseSelector):
    """Per-user reads for the sweep and posting paths."""

    def _owned(self, model, user_id: str) -> list:
        return list(
            self.session.execute(
                select(model)
                .where(model.user_id == user_id)
                .order_by(model.created_at, model.id)
            ).scalars()
        )

    def _latest(self, model, user_id: str):
        return self.session.execute(
            select(model)
            .where(model.user_id == user_id)
            .order_by(model.updated_at.desc(), model.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def load(self, user_id: str) -> UserState:
        stored = self._latest(FinancePreferencesModel, user_id)
        dashboard = self._latest(DashboardPreferencesModel, user_id)
        return UserState(
            user_id=user_id,
            stored_preferences=stored.to_record() if stored else None,
            dashboard_preferences=dashboard.to_record() if dashboard else None,
            incomes=tuple(row.to_record() for row in self._owned(IncomeModel, user_id)),
            bills=tuple(row.to_record() for row in self._owned(BillModel, user_id)),
            cards=tuple(row.to_record() for row in self._owned(CardModel, user_id)),
            loans=tuple(row.to_record() for row in self._owned(LoanModel, user_id)),
            allocation_rules=tuple(
                row.to_record() for row in self._owned(IncomeAllocationRuleModel, user_id)
            ),
            cycle_runs=tuple(
                row.to_record() for row in self._owned(MonthlyCycleRunModel, user_id)
            ),
            alerts=tuple(row.to_record() for row in self._owned(AlertModel, user_id)),
            suggestions=tuple(
                row.to_record() for row in self._owned(SuggestionModel, user_id)
            ),
        )

    def preferences(
        self, user_id: str
    ) -> tuple[StoredPreferences | None, DashboardPreferences | None]:
        stored = self._latest(FinancePreferencesModel, user_id)
        dashboard = self._latest(DashboardPreferencesModel, user_id)
        return (
            stored.to_record() if stored else None,
            dashboard.to_record() if dashboard else None,
        )

    def account_refs(self, user_id: str) -> dict[str, AccountRef]:
        """Accounts, cards and loans the user may pay from or allocate to."""
        refs: dict[str, AccountRef] = {}
        for model in (AccountModel, CardModel, LoanModel):
            for row in self._owned(model, user_id):
                ref = row.to_account_ref()
                refs[ref.id] = ref
        return refs

    def list_user_ids(self) -> list[str]:
        """Every user owning at least one preference, account or obligation row."""
        user_ids: set[str] = set()
        for model in _USER_TABLES:
            user_ids.update(
                user_id
                for user_id in self.session.execute(select(model.user_id).distinct()).scalars()
                if user_id
            )
        return sorted(user_ids)
