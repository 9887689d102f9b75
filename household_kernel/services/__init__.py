"""Services for the household kernel (write side)."""

from household_kernel.services.auditor_service import AuditorService
from household_kernel.services.automation_store import AutomationStore
from household_kernel.services.base import BaseService
from household_kernel.services.ledger_poster import (
    LedgerPoster,
    NormalizedSplit,
    PostingResult,
    SplitInput,
)
from household_kernel.services.suggestion_review import ReviewOutcome, SuggestionReviewService

__all__ = [
    "AuditorService",
    "AutomationStore",
    "BaseService",
    "LedgerPoster",
    "NormalizedSplit",
    "PostingResult",
    "ReviewOutcome",
    "SplitInput",
    "SuggestionReviewService",
]
