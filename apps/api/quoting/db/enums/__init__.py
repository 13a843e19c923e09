"""Enum definitions for application constants."""

from quoting.db.enums.activity import QuoteActivityType
from quoting.db.enums.auth import StaffRole
from quoting.db.enums.corrections import CorrectableField
from quoting.db.enums.quotes import (
    COMPLEXITY_ALIASES,
    QUOTE_TRANSITIONS,
    TERMINAL_QUOTE_STATUSES,
    ComplexityTier,
    FeeType,
    ProcessingStatus,
    QuoteStatus,
)
from quoting.db.enums.reviews import (
    CLOSED_REVIEW_STATUSES,
    OPEN_REVIEW_STATUSES,
    ReviewStatus,
    TriggerReason,
)

__all__ = [
    "CLOSED_REVIEW_STATUSES",
    "COMPLEXITY_ALIASES",
    "ComplexityTier",
    "CorrectableField",
    "FeeType",
    "OPEN_REVIEW_STATUSES",
    "ProcessingStatus",
    "QUOTE_TRANSITIONS",
    "QuoteActivityType",
    "QuoteStatus",
    "ReviewStatus",
    "StaffRole",
    "TERMINAL_QUOTE_STATUSES",
    "TriggerReason",
]
