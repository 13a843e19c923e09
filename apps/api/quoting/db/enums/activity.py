"""Quote activity log enums."""

from enum import Enum


class QuoteActivityType(str, Enum):
    QUOTE_CREATED = "quote_created"
    DOCUMENT_ADDED = "document_added"
    ANALYSIS_RECORDED = "analysis_recorded"
    STATUS_CHANGED = "status_changed"
    OPTIONS_CHANGED = "options_changed"
    ADJUSTMENTS_CHANGED = "adjustments_changed"
    TOTALS_RECALCULATED = "totals_recalculated"
    REVIEW_CREATED = "review_created"
    REVIEW_CLAIMED = "review_claimed"
    REVIEW_CLAIM_OVERRIDDEN = "review_claim_overridden"
    REVIEW_RELEASED = "review_released"
    REVIEW_FORCE_RELEASED = "review_force_released"
    CORRECTION_APPLIED = "correction_applied"
    REVIEW_APPROVED = "review_approved"
    REVIEW_REJECTED = "review_rejected"
    REVIEW_ESCALATED = "review_escalated"
    PAYMENT_RECORDED = "payment_recorded"
