"""HITL review enums."""

from enum import Enum


class ReviewStatus(str, Enum):
    """
    Review disposition states.

    pending -> in_review -> {approved, rejected, escalated}
    An escalated review may be re-claimed by an admin, which reopens it.
    """

    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATED = "escalated"


# Reviews that block a new review on the same quote
OPEN_REVIEW_STATUSES = frozenset(
    {ReviewStatus.PENDING, ReviewStatus.IN_REVIEW, ReviewStatus.ESCALATED}
)
CLOSED_REVIEW_STATUSES = frozenset({ReviewStatus.APPROVED, ReviewStatus.REJECTED})


class TriggerReason(str, Enum):
    """Why a quote was routed to human review."""

    LOW_OCR_CONFIDENCE = "low_ocr_confidence"
    LOW_LANGUAGE_CONFIDENCE = "low_language_confidence"
    LOW_CLASSIFICATION_CONFIDENCE = "low_classification_confidence"
    LOW_COMPLEXITY_CONFIDENCE = "low_complexity_confidence"
    HIGH_PAGE_COUNT = "high_page_count"
    HIGH_ORDER_VALUE = "high_order_value"
    ANALYSIS_FAILED = "analysis_failed"
    CUSTOMER_REQUESTED = "customer_requested"
    MANUAL_TRIGGER = "manual_trigger"
