"""ORM models for the household finance core."""

from household_kernel.models.audit_event import AuditAction, AuditEventModel
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
from household_kernel.models.ledger import (
    LedgerEntryModel,
    LedgerLineModel,
    LineDirection,
    LineType,
    PurchaseModel,
    PurchaseSplitModel,
)
from household_kernel.models.reference import CurrencyCatalogModel, FxRateModel

__all__ = [
    "AccountModel",
    "AlertModel",
    "AuditAction",
    "AuditEventModel",
    "BillModel",
    "CardModel",
    "CurrencyCatalogModel",
    "DashboardPreferencesModel",
    "FinancePreferencesModel",
    "FxRateModel",
    "IncomeAllocationRuleModel",
    "IncomeModel",
    "LedgerEntryModel",
    "LedgerLineModel",
    "LineDirection",
    "LineType",
    "LoanModel",
    "MonthlyCycleRunModel",
    "PurchaseModel",
    "PurchaseSplitModel",
    "SuggestionModel",
]
