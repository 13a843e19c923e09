"""Review disposition: approve, reject or escalate a claimed review.

pending -> in_review -> {approved, rejected, escalated}

Only the claimant (or a super admin) may disposition. The review row is
closed with a conditional UPDATE against the claim we validated, so a claim
override that lands mid-request makes the disposition fail instead of
acting on someone else's work.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from quoting.core.errors import (
    InvalidTransitionError,
    NotClaimantError,
    ValidationError,
)
from quoting.core.structured_logging import build_log_context
from quoting.db.enums import QuoteActivityType, QuoteStatus, ReviewStatus, StaffRole
from quoting.db.models import Quote, ReviewRecord
from quoting.db.types import utcnow
from quoting.services import activity_service, quote_lifecycle_service, quote_service
from quoting.services.review_claim_service import compare_and_set, load_review

logger = logging.getLogger(__name__)


def ensure_claimant(review: ReviewRecord, staff_id: UUID, role: StaffRole) -> None:
    if review.assigned_to != staff_id and role != StaffRole.SUPER_ADMIN:
        raise NotClaimantError("Only the reviewer who claimed this review can do that")


def _load_claimed(
    db: Session, review_id: UUID, staff_id: UUID, role: StaffRole
) -> tuple[ReviewRecord, Quote]:
    review = load_review(db, review_id)
    if review.status != ReviewStatus.IN_REVIEW.value:
        raise InvalidTransitionError(
            f"Review is {review.status}; only in_review reviews can be dispositioned"
        )
    ensure_claimant(review, staff_id, role)
    quote = quote_service.get_quote(db, review.quote_id)
    if quote_service.is_expired(quote):
        raise InvalidTransitionError(f"Quote {quote.quote_number} has expired")
    if quote.status != QuoteStatus.REVIEW_REQUIRED.value:
        raise InvalidTransitionError(
            f"Quote {quote.quote_number} is {quote.status}, not awaiting review"
        )
    return review, quote


def _close_review(
    db: Session,
    review: ReviewRecord,
    status: ReviewStatus,
    values: dict,
) -> ReviewRecord:
    won = compare_and_set(
        db,
        review.id,
        [
            ReviewRecord.status == ReviewStatus.IN_REVIEW.value,
            ReviewRecord.assigned_to == review.assigned_to,
        ],
        {"status": status.value, "assigned_to": None, **values},
    )
    if not won:
        raise NotClaimantError("The claim on this review changed; refetch before retrying")
    return load_review(db, review.id)


def approve_review(
    db: Session,
    review_id: UUID,
    staff_id: UUID,
    role: StaffRole,
    notes: str | None = None,
    now: datetime | None = None,
) -> ReviewRecord:
    """Approve: final recompute, then the quote becomes quote_ready (payable)."""
    now = now or utcnow()
    review, quote = _load_claimed(db, review_id, staff_id, role)
    if not quote_service.all_lines_priced(quote):
        raise InvalidTransitionError("Every document must be priced before approval")

    totals = quote_service.recalculate_totals(db, quote)
    review = _close_review(
        db,
        review,
        ReviewStatus.APPROVED,
        {
            "resolution_notes": notes,
            "resolved_by": staff_id,
            "resolved_at": now,
            "updated_at": now,
        },
    )
    quote_lifecycle_service.transition(
        db, quote, QuoteStatus.QUOTE_READY, staff_id, reason="review_approved", now=now
    )
    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.REVIEW_APPROVED,
        actor_staff_id=staff_id,
        details={"review_id": str(review.id), "total": str(totals.total)},
    )
    db.flush()
    logger.info(
        "Review approved",
        extra=build_log_context(
            staff_id=str(staff_id), review_id=str(review.id), quote_id=str(quote.id)
        ),
    )
    return review


def reject_review(
    db: Session,
    review_id: UUID,
    staff_id: UUID,
    role: StaffRole,
    reason: str,
    affected_document_ids: list[UUID],
    now: datetime | None = None,
) -> ReviewRecord:
    """Reject: send the quote back to the customer for the listed documents."""
    now = now or utcnow()
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required")
    if not affected_document_ids:
        raise ValidationError("Name at least one document that needs resubmission")

    review, quote = _load_claimed(db, review_id, staff_id, role)
    lines_by_id = {line.id: line for line in quote.lines}
    unknown = [str(d) for d in affected_document_ids if d not in lines_by_id]
    if unknown:
        raise ValidationError(f"Documents not on this quote: {', '.join(unknown)}")

    affected = list(dict.fromkeys(affected_document_ids))
    review = _close_review(
        db,
        review,
        ReviewStatus.REJECTED,
        {
            "rejection_reason": reason.strip(),
            "affected_document_ids": [str(d) for d in affected],
            "resolved_by": staff_id,
            "resolved_at": now,
            "updated_at": now,
        },
    )
    for line_id in affected:
        lines_by_id[line_id].resubmission_requested = True
    quote_lifecycle_service.transition(
        db, quote, QuoteStatus.DETAILS_PENDING, staff_id, reason="review_rejected", now=now
    )
    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.REVIEW_REJECTED,
        actor_staff_id=staff_id,
        details={
            "review_id": str(review.id),
            "affected_document_ids": [str(d) for d in affected],
        },
    )
    quote_service.flush_or_stale(db, quote)
    logger.info(
        "Review rejected",
        extra=build_log_context(
            staff_id=str(staff_id), review_id=str(review.id), quote_id=str(quote.id)
        ),
    )
    return review


def escalate_review(
    db: Session,
    review_id: UUID,
    staff_id: UUID,
    role: StaffRole,
    confirm: bool,
    notes: str | None = None,
    now: datetime | None = None,
) -> ReviewRecord:
    """
    Hand the review to the supervisory tier.

    No reason needed, but the caller must confirm. The claim is cleared so
    any admin can pick it up; the quote stays review_required.
    """
    now = now or utcnow()
    if not confirm:
        raise ValidationError("Escalation must be confirmed")
    review, quote = _load_claimed(db, review_id, staff_id, role)
    values = {"escalated_by": staff_id, "escalated_at": now, "updated_at": now}
    if notes:
        values["resolution_notes"] = notes
    review = _close_review(db, review, ReviewStatus.ESCALATED, values)
    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.REVIEW_ESCALATED,
        actor_staff_id=staff_id,
        details={"review_id": str(review.id)},
    )
    logger.info(
        "Review escalated",
        extra=build_log_context(staff_id=str(staff_id), review_id=str(review.id)),
    )
    return review
