"""Read-only selectors returning frozen domain records."""

from household_kernel.selectors.ledger_selector import (
    LedgerEntryView,
    LedgerLineView,
    LedgerSelector,
)
from household_kernel.selectors.reference_selector import ReferenceSelector
from household_kernel.selectors.user_state import UserState, UserStateSelector

__all__ = [
    "LedgerEntryView",
    "LedgerLineView",
    "LedgerSelector",
    "ReferenceSelector",
    "UserState",
    "UserStateSelector",
]
