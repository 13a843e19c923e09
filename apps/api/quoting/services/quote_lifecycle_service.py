"""Quote lifecycle state machine.

draft -> details_pending -> {quote_ready, review_required} -> {paid, expired, cancelled}

All status changes go through `transition`, which checks the transition
table, refuses expired quotes and writes the activity log.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from quoting.core.config import settings
from quoting.core.errors import InvalidTransitionError, ValidationError
from quoting.core.structured_logging import build_log_context
from quoting.db.enums import (
    OPEN_REVIEW_STATUSES,
    QUOTE_TRANSITIONS,
    TERMINAL_QUOTE_STATUSES,
    QuoteActivityType,
    QuoteStatus,
    ReviewStatus,
    TriggerReason,
)
from quoting.db.models import (
    Correction,
    DocumentLine,
    Quote,
    QuoteActivityLog,
    ReviewRecord,
)
from quoting.db.types import utcnow
from quoting.services import activity_service, quote_service, threshold_service
from quoting.services.review_claim_service import compare_and_set, load_review

logger = logging.getLogger(__name__)

_TERMINAL_VALUES = frozenset(s.value for s in TERMINAL_QUOTE_STATUSES)


def transition(
    db: Session,
    quote: Quote,
    target: QuoteStatus,
    actor_staff_id: UUID | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> Quote:
    """Move a quote to `target` if the lifecycle permits it."""
    now = now or utcnow()
    current = QuoteStatus(quote.status)

    if target != QuoteStatus.EXPIRED and quote_service.is_expired(quote, now):
        raise InvalidTransitionError(f"Quote {quote.quote_number} has expired")
    if target not in QUOTE_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Quote {quote.quote_number} cannot move from {current.value} to {target.value}"
        )
    if target == QuoteStatus.QUOTE_READY and not quote_service.all_lines_priced(quote):
        raise InvalidTransitionError(
            f"Quote {quote.quote_number} has unpriced documents and cannot be quote_ready"
        )

    quote.status = target.value
    activity_service.log_status_changed(
        db=db,
        quote_id=quote.id,
        from_status=current.value,
        to_status=target.value,
        actor_staff_id=actor_staff_id,
        reason=reason,
    )
    logger.info(
        "Quote status changed %s -> %s",
        current.value,
        target.value,
        extra=build_log_context(quote_id=str(quote.id)),
    )
    return quote


def submit_quote(db: Session, quote_id: UUID, actor_staff_id: UUID | None = None) -> Quote:
    """Customer finished uploading: draft -> details_pending."""
    quote = quote_service.get_quote(db, quote_id)
    if not quote.lines:
        raise ValidationError("A quote needs at least one document")
    transition(db, quote, QuoteStatus.DETAILS_PENDING, actor_staff_id)
    db.flush()
    return quote


# =============================================================================
# Review routing
# =============================================================================


def get_open_review(db: Session, quote_id: UUID) -> ReviewRecord | None:
    return db.execute(
        select(ReviewRecord).where(
            ReviewRecord.quote_id == quote_id,
            ReviewRecord.status.in_([s.value for s in OPEN_REVIEW_STATUSES]),
        )
    ).scalar_one_or_none()


def get_latest_review(db: Session, quote_id: UUID) -> ReviewRecord | None:
    return db.execute(
        select(ReviewRecord)
        .where(ReviewRecord.quote_id == quote_id)
        .order_by(ReviewRecord.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def open_review(
    db: Session,
    quote: Quote,
    reasons: list[TriggerReason],
    actor_staff_id: UUID | None = None,
    now: datetime | None = None,
) -> ReviewRecord:
    """Create the quote's review record, or add reasons to the open one."""
    now = now or utcnow()
    review = get_open_review(db, quote.id)
    if review is not None:
        merged = list(dict.fromkeys([*review.trigger_reasons, *(r.value for r in reasons)]))
        if merged != review.trigger_reasons:
            review.trigger_reasons = merged
            review.priority = threshold_service.review_priority(merged)
        db.flush()
        return review

    values = list(dict.fromkeys(r.value for r in reasons))
    review = ReviewRecord(
        quote_id=quote.id,
        status=ReviewStatus.PENDING.value,
        trigger_reasons=values,
        priority=threshold_service.review_priority(values),
        sla_deadline=threshold_service.sla_deadline(now),
        created_at=now,
    )
    db.add(review)
    db.flush()
    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.REVIEW_CREATED,
        actor_staff_id=actor_staff_id,
        details={"review_id": str(review.id), "trigger_reasons": values},
    )
    logger.info(
        "Review opened",
        extra=build_log_context(quote_id=str(quote.id), review_id=str(review.id)),
    )
    return review


def evaluate_quote(
    db: Session, quote_id: UUID, actor_staff_id: UUID | None = None
) -> tuple[Quote, ReviewRecord | None]:
    """
    Analysis finished: run HITL thresholds and route the quote.

    Passing quotes become quote_ready; any failed check routes to
    review_required with one trigger reason per failure.
    """
    quote = quote_service.get_quote(db, quote_id)
    if quote.status != QuoteStatus.DETAILS_PENDING.value:
        raise InvalidTransitionError(
            f"Quote {quote.quote_number} is {quote.status}; only details_pending quotes are evaluated"
        )
    if not quote_service.all_lines_analyzed(quote):
        raise InvalidTransitionError(
            f"Quote {quote.quote_number} still has documents awaiting analysis"
        )

    totals = quote_service.recalculate_totals(db, quote)
    result = threshold_service.check_thresholds(quote.lines, totals.total)
    if result.passed:
        transition(db, quote, QuoteStatus.QUOTE_READY, actor_staff_id, reason="thresholds_passed")
        db.flush()
        return quote, None

    transition(
        db,
        quote,
        QuoteStatus.REVIEW_REQUIRED,
        actor_staff_id,
        reason=",".join(r.value for r in result.reasons),
    )
    review = open_review(db, quote, result.reasons, actor_staff_id)
    return quote, review


def request_manual_review(
    db: Session,
    quote_id: UUID,
    reason: TriggerReason = TriggerReason.CUSTOMER_REQUESTED,
    actor_staff_id: UUID | None = None,
    note: str | None = None,
) -> ReviewRecord:
    """Customer (or staff) asks for a human check; reuses an open review."""
    quote = quote_service.get_quote(db, quote_id)
    if quote.status != QuoteStatus.REVIEW_REQUIRED.value:
        if quote.status not in (
            QuoteStatus.DETAILS_PENDING.value,
            QuoteStatus.QUOTE_READY.value,
        ):
            raise InvalidTransitionError(
                f"Cannot request review while quote {quote.quote_number} is {quote.status}"
            )
        transition(db, quote, QuoteStatus.REVIEW_REQUIRED, actor_staff_id, reason=note or reason.value)
    elif quote_service.is_expired(quote):
        raise InvalidTransitionError(f"Quote {quote.quote_number} has expired")
    return open_review(db, quote, [reason], actor_staff_id)


# =============================================================================
# Payment
# =============================================================================


def mark_paid(
    db: Session,
    quote_id: UUID,
    amount: Decimal,
    reference: str | None = None,
    now: datetime | None = None,
) -> Quote:
    """
    Accept an externally captured payment.

    Only a finished price can be paid: quote_ready, or review_required whose
    latest review is approved. The amount must match the total exactly.
    """
    now = now or utcnow()
    quote = quote_service.get_quote(db, quote_id)
    if quote_service.is_expired(quote, now):
        raise InvalidTransitionError(f"Quote {quote.quote_number} has expired")

    if quote.status == QuoteStatus.REVIEW_REQUIRED.value:
        latest = get_latest_review(db, quote.id)
        if latest is None or latest.status != ReviewStatus.APPROVED.value:
            raise InvalidTransitionError(
                f"Quote {quote.quote_number} is awaiting review and cannot be paid"
            )
    elif quote.status != QuoteStatus.QUOTE_READY.value:
        raise InvalidTransitionError(
            f"Quote {quote.quote_number} is {quote.status} and cannot be paid"
        )

    if amount != quote.total:
        raise ValidationError(f"Paid amount {amount} does not match quote total {quote.total}")

    transition(db, quote, QuoteStatus.PAID, now=now, reason="payment_received")
    quote.paid_amount = amount
    quote.paid_at = now
    quote.payment_reference = reference
    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.PAYMENT_RECORDED,
        details={"amount": str(amount), "reference": reference},
    )
    db.flush()
    return quote


# =============================================================================
# Cancellation, expiry and tombstones
# =============================================================================


def _close_open_review(
    db: Session,
    quote: Quote,
    reason: str,
    actor_staff_id: UUID | None,
    now: datetime,
) -> None:
    """Reject the quote's open review, whoever holds the claim."""
    review = get_open_review(db, quote.id)
    if review is None:
        return
    closed = compare_and_set(
        db,
        review.id,
        [ReviewRecord.status.in_([s.value for s in OPEN_REVIEW_STATUSES])],
        {
            "status": ReviewStatus.REJECTED.value,
            "rejection_reason": reason,
            "assigned_to": None,
            "resolved_by": actor_staff_id,
            "resolved_at": now,
            "updated_at": now,
        },
    )
    if not closed:
        logger.info(
            "Review already closed by another request",
            extra=build_log_context(quote_id=str(quote.id), review_id=str(review.id)),
        )
    load_review(db, review.id)


def cancel_quote(
    db: Session,
    quote_id: UUID,
    actor_staff_id: UUID | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> Quote:
    """Cancel and tombstone. Open reviews are closed with the quote."""
    now = now or utcnow()
    quote = quote_service.get_quote(db, quote_id)
    current = QuoteStatus(quote.status)
    if QuoteStatus.CANCELLED not in QUOTE_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Quote {quote.quote_number} is {quote.status} and cannot be cancelled"
        )

    _close_open_review(db, quote, "Quote cancelled", actor_staff_id, now)

    # Cancelling an overdue quote is still allowed
    quote.status = QuoteStatus.CANCELLED.value
    quote.deleted_at = now
    activity_service.log_status_changed(
        db=db,
        quote_id=quote.id,
        from_status=current.value,
        to_status=QuoteStatus.CANCELLED.value,
        actor_staff_id=actor_staff_id,
        reason=reason,
    )
    db.flush()
    return quote


def expire_stale_quotes(db: Session, now: datetime | None = None) -> int:
    """Mark every non-terminal quote past its expiry as expired."""
    now = now or utcnow()
    quotes = db.execute(
        select(Quote).where(
            Quote.expires_at <= now,
            Quote.status.not_in(list(_TERMINAL_VALUES)),
            Quote.deleted_at.is_(None),
        )
    ).scalars().all()

    for quote in quotes:
        _close_open_review(db, quote, "Quote expired", None, now)
        transition(db, quote, QuoteStatus.EXPIRED, reason="ttl_elapsed", now=now)
    db.flush()
    if quotes:
        logger.info("Expired %d stale quotes", len(quotes))
    return len(quotes)


def purge_tombstoned_quotes(db: Session, older_than: datetime | None = None) -> int:
    """Hard-delete cancelled quotes whose tombstone is past retention."""
    cutoff = older_than or (utcnow() - timedelta(days=settings.TOMBSTONE_RETENTION_DAYS))
    quote_ids = list(
        db.execute(
            select(Quote.id).where(Quote.deleted_at.is_not(None), Quote.deleted_at < cutoff)
        ).scalars()
    )
    if not quote_ids:
        return 0

    # Children first; SQLite does not enforce ON DELETE CASCADE by default
    db.execute(delete(QuoteActivityLog).where(QuoteActivityLog.quote_id.in_(quote_ids)))
    db.execute(delete(Correction).where(Correction.quote_id.in_(quote_ids)))
    db.execute(delete(ReviewRecord).where(ReviewRecord.quote_id.in_(quote_ids)))
    db.execute(delete(DocumentLine).where(DocumentLine.quote_id.in_(quote_ids)))
    db.execute(delete(Quote).where(Quote.id.in_(quote_ids)))
    db.flush()
    logger.info("Purged %d tombstoned quotes", len(quote_ids))
    return len(quote_ids)
