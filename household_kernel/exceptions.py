"""
Typed exception hierarchy for the household finance core.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from HouseholdCoreError:

    HouseholdCoreError (base)
    |
    +-- ValidationError
    |   +-- MissingFieldError
    |   +-- InvalidAmountError
    |   +-- UnknownAccountReferenceError
    |   +-- InvalidDecisionError
    |
    +-- RecordError
    |   +-- RecordNotFoundError
    |   +-- NotOwnerError
    |
    +-- PostingError
        +-- UnbalancedEntryError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | MISSING_FIELD               | Required input absent or blank
                | INVALID_AMOUNT              | Amount <= 0 (or rounds to zero)
                | UNKNOWN_ACCOUNT_REFERENCE   | Payment/linked account not owned
                | INVALID_DECISION            | Review decision not recognised
----------------|-----------------------------|-----------------------------------------
Record          | RECORD_NOT_FOUND            | Row id does not exist
                | NOT_OWNER                   | Row belongs to another user
----------------|-----------------------------|-----------------------------------------
Posting         | UNBALANCED_ENTRY            | Allocation minor != -funding minor

===============================================================================
WHAT IS NOT AN EXCEPTION
===============================================================================

Data-quality degradations never raise.  A missing FX quote becomes an
identity rate flagged ``synthetic``; an unknown timezone becomes the
configured default zone; a malformed regex never matches; a malformed
stored JSON payload reads as ``{}``.  Callers always receive a result.

Validation errors are raised before any write, so no partial state is
flushed when one escapes a service.
"""


class HouseholdCoreError(Exception):
    """
    Base exception for all household core errors.

    Every subclass carries a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "HOUSEHOLD_CORE_ERROR"


# Validation exceptions


class ValidationError(HouseholdCoreError):
    """Base exception for rejected caller input."""

    code: str = "VALIDATION_ERROR"


class MissingFieldError(ValidationError):
    """A required field was absent or blank."""

    code: str = "MISSING_FIELD"

    def __init__(self, field_name: str, message: str | None = None):
        self.field_name = field_name
        super().__init__(message or f"{field_name} is required")


class InvalidAmountError(ValidationError):
    """Amount must be strictly positive."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str, message: str | None = None):
        self.amount = amount
        super().__init__(message or f"Amount must be greater than zero: {amount}")


class UnknownAccountReferenceError(ValidationError):
    """A referenced account is not in the user's known account set."""

    code: str = "UNKNOWN_ACCOUNT_REFERENCE"

    def __init__(self, account_ref: str, role: str, label: str | None = None):
        self.account_ref = account_ref
        self.role = role
        self.label = label
        if role == "payment":
            message = "Invalid payment account reference"
        else:
            message = f'Invalid linked account reference for split "{label}"'
        super().__init__(f"{message}: {account_ref}")


class InvalidDecisionError(ValidationError):
    """Suggestion review decision is not one of accept / dismiss / snooze."""

    code: str = "INVALID_DECISION"

    def __init__(self, decision: str):
        self.decision = decision
        super().__init__(f"Unsupported review decision: {decision!r}")


# Record access exceptions


class RecordError(HouseholdCoreError):
    """Base exception for record lookup and ownership failures."""

    code: str = "RECORD_ERROR"


class RecordNotFoundError(RecordError):
    """Record with given id was not found."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, record_type: str, record_id: str):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} not found: {record_id}")


class NotOwnerError(RecordError):
    """Record exists but belongs to a different user."""

    code: str = "NOT_OWNER"

    def __init__(self, record_type: str, record_id: str, user_id: str):
        self.record_type = record_type
        self.record_id = record_id
        self.user_id = user_id
        super().__init__(f"Unauthorized access to {record_type} {record_id}")


# Posting exceptions


class PostingError(HouseholdCoreError):
    """Base exception for ledger posting failures."""

    code: str = "POSTING_ERROR"


class UnbalancedEntryError(PostingError):
    """Allocation lines do not sum to the magnitude of the funding line."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, funding_minor: int, allocated_minor: int, currency: str):
        self.funding_minor = funding_minor
        self.allocated_minor = allocated_minor
        self.currency = currency
        super().__init__(
            f"Unbalanced entry in {currency}: funding={funding_minor}, "
            f"allocated={allocated_minor}"
        )
