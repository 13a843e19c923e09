"""Review claim state machine: exclusive ownership of a review while it is worked.

`ReviewRecord.assigned_to` is the mutex. Every write to it is a conditional
UPDATE (compare against the expected prior value) and the row count decides
who won; a read-then-write in Python would let two reviewers both believe
they hold the claim.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from quoting.core.config import settings
from quoting.core.errors import (
    AlreadyClaimedError,
    InsufficientRoleError,
    InvalidTransitionError,
    NotClaimantError,
    ReviewNotFoundError,
)
from quoting.core.structured_logging import build_log_context
from quoting.db.enums import (
    CLOSED_REVIEW_STATUSES,
    TERMINAL_QUOTE_STATUSES,
    QuoteActivityType,
    ReviewStatus,
    StaffRole,
)
from quoting.db.models import Quote, ReviewRecord, StaffUser
from quoting.db.types import utcnow
from quoting.services import activity_service, quote_service

logger = logging.getLogger(__name__)


def load_review(db: Session, review_id: UUID) -> ReviewRecord:
    """Fresh read of a review, bypassing any stale identity-map copy."""
    review = db.execute(
        select(ReviewRecord)
        .where(ReviewRecord.id == review_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if review is None:
        raise ReviewNotFoundError(f"Review {review_id} not found")
    return review


def compare_and_set(db: Session, review_id: UUID, conditions: list, values: dict) -> bool:
    result = db.execute(
        update(ReviewRecord)
        .where(ReviewRecord.id == review_id, *conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _ensure_quote_open(db: Session, review: ReviewRecord) -> None:
    quote = db.get(Quote, review.quote_id)
    if (
        quote is None
        or quote.deleted_at is not None
        or quote.status in {s.value for s in TERMINAL_QUOTE_STATUSES}
    ):
        raise InvalidTransitionError("The quote for this review is closed")
    if quote_service.is_expired(quote):
        raise InvalidTransitionError(f"Quote {quote.quote_number} has expired")


def _staff_role(db: Session, staff_id: UUID | None) -> StaffRole | None:
    if staff_id is None:
        return None
    staff = db.get(StaffUser, staff_id)
    if staff is None or not StaffRole.has_value(staff.role):
        return None
    return StaffRole(staff.role)


def claim_review(
    db: Session,
    review_id: UUID,
    staff_id: UUID,
    role: StaffRole,
    override: bool = False,
    now: datetime | None = None,
) -> ReviewRecord:
    """
    Claim a review for exclusive editing.

    - pending -> in_review(staff) wins only if nobody else got there first
    - claiming a review you already hold is a no-op
    - escalated reviews can only be claimed by admin+
    - override=True lets a strictly higher-ranked role take over a claim

    Raises AlreadyClaimedError when another staff member holds it.
    """
    now = now or utcnow()
    review = load_review(db, review_id)
    _ensure_quote_open(db, review)

    claim_values = {
        "status": ReviewStatus.IN_REVIEW.value,
        "assigned_to": staff_id,
        "claimed_at": now,
        "updated_at": now,
    }
    won = compare_and_set(
        db,
        review_id,
        [
            ReviewRecord.status == ReviewStatus.PENDING.value,
            ReviewRecord.assigned_to.is_(None),
        ],
        claim_values,
    )
    if won:
        return _after_claim(db, review_id, staff_id, QuoteActivityType.REVIEW_CLAIMED)

    review = load_review(db, review_id)
    status = ReviewStatus(review.status)

    if status == ReviewStatus.IN_REVIEW and review.assigned_to == staff_id:
        return review

    if status in CLOSED_REVIEW_STATUSES:
        raise InvalidTransitionError(f"Review is already {status.value}")

    if status == ReviewStatus.ESCALATED:
        if not role.at_least(StaffRole.ADMIN):
            raise InsufficientRoleError("Escalated reviews can only be claimed by an admin")
        won = compare_and_set(
            db,
            review_id,
            [
                ReviewRecord.status == ReviewStatus.ESCALATED.value,
                ReviewRecord.assigned_to.is_(None),
            ],
            claim_values,
        )
        if not won:
            raise AlreadyClaimedError("Someone else is editing this review")
        return _after_claim(db, review_id, staff_id, QuoteActivityType.REVIEW_CLAIMED)

    holder = review.assigned_to
    if status != ReviewStatus.IN_REVIEW or holder is None:
        # Released and re-claimed between our two reads; the caller decides whether to retry
        raise AlreadyClaimedError("Review changed while claiming; try again")

    if not override:
        logger.info(
            "Claim race lost",
            extra=build_log_context(staff_id=str(staff_id), review_id=str(review_id)),
        )
        raise AlreadyClaimedError("Someone else is editing this review", claimed_by=holder)

    holder_role = _staff_role(db, holder)
    if holder_role is not None and not role.outranks(holder_role):
        raise InsufficientRoleError(
            f"Role '{role.value}' cannot take over a claim held by '{holder_role.value}'"
        )

    won = compare_and_set(
        db,
        review_id,
        [
            ReviewRecord.status == ReviewStatus.IN_REVIEW.value,
            ReviewRecord.assigned_to == holder,
        ],
        {
            **claim_values,
            "previous_assigned_to": holder,
            "claim_overridden_at": now,
        },
    )
    if not won:
        raise AlreadyClaimedError("Someone else is editing this review")
    return _after_claim(
        db,
        review_id,
        staff_id,
        QuoteActivityType.REVIEW_CLAIM_OVERRIDDEN,
        details={"previous_assigned_to": str(holder)},
    )


def _after_claim(
    db: Session,
    review_id: UUID,
    staff_id: UUID,
    activity_type: QuoteActivityType,
    details: dict | None = None,
) -> ReviewRecord:
    review = load_review(db, review_id)
    activity_service.log_activity(
        db=db,
        quote_id=review.quote_id,
        activity_type=activity_type,
        actor_staff_id=staff_id,
        details={"review_id": str(review_id), **(details or {})},
    )
    logger.info(
        "Review claimed",
        extra=build_log_context(
            staff_id=str(staff_id), review_id=str(review_id), quote_id=str(review.quote_id)
        ),
    )
    return review


def release_review(
    db: Session, review_id: UUID, staff_id: UUID, now: datetime | None = None
) -> ReviewRecord:
    """Claimant gives the review back to the queue."""
    now = now or utcnow()
    won = compare_and_set(
        db,
        review_id,
        [
            ReviewRecord.status == ReviewStatus.IN_REVIEW.value,
            ReviewRecord.assigned_to == staff_id,
        ],
        {
            "status": ReviewStatus.PENDING.value,
            "assigned_to": None,
            "claimed_at": None,
            "updated_at": now,
        },
    )
    review = load_review(db, review_id)
    if not won:
        if review.status != ReviewStatus.IN_REVIEW.value:
            raise InvalidTransitionError(f"Review is {review.status}, not claimed")
        raise NotClaimantError("Only the claimant can release this review")

    activity_service.log_activity(
        db=db,
        quote_id=review.quote_id,
        activity_type=QuoteActivityType.REVIEW_RELEASED,
        actor_staff_id=staff_id,
        details={"review_id": str(review_id)},
    )
    return review


def force_release(
    db: Session,
    review_id: UUID,
    actor_staff_id: UUID | None = None,
    actor_role: StaffRole | None = None,
    expected_assignee: UUID | None = None,
    reason: str | None = None,
    now: datetime | None = None,
) -> ReviewRecord:
    """
    Release a claim regardless of who holds it.

    Used by admins and by the idle-claim policy (actor None = system).
    With `expected_assignee`, only releases if that staff member still holds it.
    """
    now = now or utcnow()
    if actor_staff_id is not None and (actor_role is None or not actor_role.at_least(StaffRole.ADMIN)):
        raise InsufficientRoleError("Only an admin can force-release a claim")

    conditions = [ReviewRecord.status == ReviewStatus.IN_REVIEW.value]
    if expected_assignee is not None:
        conditions.append(ReviewRecord.assigned_to == expected_assignee)

    previous = load_review(db, review_id).assigned_to
    won = compare_and_set(
        db,
        review_id,
        conditions,
        {
            "status": ReviewStatus.PENDING.value,
            "assigned_to": None,
            "claimed_at": None,
            "updated_at": now,
        },
    )
    review = load_review(db, review_id)
    if not won:
        if review.status != ReviewStatus.IN_REVIEW.value:
            raise InvalidTransitionError(f"Review is {review.status}, not claimed")
        raise AlreadyClaimedError("Claim changed hands; not released", claimed_by=review.assigned_to)

    activity_service.log_activity(
        db=db,
        quote_id=review.quote_id,
        activity_type=QuoteActivityType.REVIEW_FORCE_RELEASED,
        actor_staff_id=actor_staff_id,
        details={
            "review_id": str(review_id),
            "released_from": str(previous) if previous else None,
            "reason": reason,
        },
    )
    logger.warning(
        "Review claim force-released",
        extra=build_log_context(
            staff_id=str(actor_staff_id) if actor_staff_id else None,
            review_id=str(review_id),
        ),
    )
    return review


def release_idle_claims(
    db: Session,
    older_than: datetime | None = None,
    now: datetime | None = None,
) -> int:
    """
    Idle-claim policy: force-release claims held since before `older_than`.

    Defaults to now - REVIEW_CLAIM_IDLE_HOURS; does nothing when that is 0.
    """
    now = now or utcnow()
    if older_than is None:
        if settings.REVIEW_CLAIM_IDLE_HOURS <= 0:
            return 0
        older_than = now - timedelta(hours=settings.REVIEW_CLAIM_IDLE_HOURS)

    idle = db.execute(
        select(ReviewRecord.id, ReviewRecord.assigned_to).where(
            ReviewRecord.status == ReviewStatus.IN_REVIEW.value,
            ReviewRecord.claimed_at < older_than,
        )
    ).all()

    released = 0
    for review_id, assignee in idle:
        try:
            force_release(
                db,
                review_id,
                expected_assignee=assignee,
                reason="idle_timeout",
                now=now,
            )
        except (AlreadyClaimedError, InvalidTransitionError):
            # Claimant acted (or someone else took over) since we looked
            logger.info(
                "Idle claim changed before release, skipped",
                extra=build_log_context(review_id=str(review_id)),
            )
            continue
        released += 1
    return released


def list_review_queue(
    db: Session,
    statuses: list[ReviewStatus] | None = None,
    assigned_to: UUID | None = None,
    limit: int = 100,
) -> list[tuple[ReviewRecord, Quote]]:
    """Open reviews with their quotes, most urgent first."""
    wanted = statuses or [ReviewStatus.PENDING, ReviewStatus.IN_REVIEW, ReviewStatus.ESCALATED]
    query = (
        select(ReviewRecord, Quote)
        .join(Quote, Quote.id == ReviewRecord.quote_id)
        .where(
            ReviewRecord.status.in_([s.value for s in wanted]),
            Quote.deleted_at.is_(None),
        )
    )
    if assigned_to is not None:
        query = query.where(ReviewRecord.assigned_to == assigned_to)
    query = query.order_by(
        ReviewRecord.priority, ReviewRecord.sla_deadline, ReviewRecord.created_at
    ).limit(limit)
    return [(review, quote) for review, quote in db.execute(query).all()]
