"""Quote lifecycle and pricing enums."""

from enum import Enum


class QuoteStatus(str, Enum):
    """
    Quote lifecycle states.

    draft -> details_pending -> {quote_ready, review_required} -> {paid, expired, cancelled}
    """

    DRAFT = "draft"
    DETAILS_PENDING = "details_pending"
    REVIEW_REQUIRED = "review_required"
    QUOTE_READY = "quote_ready"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


TERMINAL_QUOTE_STATUSES = frozenset(
    {QuoteStatus.PAID, QuoteStatus.EXPIRED, QuoteStatus.CANCELLED}
)

# Allowed lifecycle transitions (source -> targets)
QUOTE_TRANSITIONS: dict[QuoteStatus, frozenset[QuoteStatus]] = {
    QuoteStatus.DRAFT: frozenset(
        {QuoteStatus.DETAILS_PENDING, QuoteStatus.EXPIRED, QuoteStatus.CANCELLED}
    ),
    QuoteStatus.DETAILS_PENDING: frozenset(
        {
            QuoteStatus.QUOTE_READY,
            QuoteStatus.REVIEW_REQUIRED,
            QuoteStatus.EXPIRED,
            QuoteStatus.CANCELLED,
        }
    ),
    QuoteStatus.REVIEW_REQUIRED: frozenset(
        {
            QuoteStatus.QUOTE_READY,
            QuoteStatus.DETAILS_PENDING,  # rejected back to the customer
            QuoteStatus.PAID,
            QuoteStatus.EXPIRED,
            QuoteStatus.CANCELLED,
        }
    ),
    QuoteStatus.QUOTE_READY: frozenset(
        {
            QuoteStatus.REVIEW_REQUIRED,
            QuoteStatus.PAID,
            QuoteStatus.EXPIRED,
            QuoteStatus.CANCELLED,
        }
    ),
    QuoteStatus.PAID: frozenset(),
    QuoteStatus.EXPIRED: frozenset(),
    QuoteStatus.CANCELLED: frozenset(),
}


class ProcessingStatus(str, Enum):
    """Automated analysis progress for a quote."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class ComplexityTier(str, Enum):
    """Document complexity tiers (easy/medium/hard accepted as aliases)."""

    STANDARD = "standard"
    COMPLEX = "complex"
    HIGHLY_COMPLEX = "highly_complex"

    @classmethod
    def parse(cls, value: str) -> "ComplexityTier":
        """Resolve a tier name or alias. Raises ValueError if unknown."""
        key = (value or "").strip().lower()
        if key in COMPLEXITY_ALIASES:
            return COMPLEXITY_ALIASES[key]
        return cls(key)


COMPLEXITY_ALIASES = {
    "easy": ComplexityTier.STANDARD,
    "medium": ComplexityTier.COMPLEX,
    "hard": ComplexityTier.HIGHLY_COMPLEX,
}


class FeeType(str, Enum):
    """How a turnaround, delivery or adjustment value is applied."""

    PERCENTAGE = "percentage"
    FIXED = "fixed"
