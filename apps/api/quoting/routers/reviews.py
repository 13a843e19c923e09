"""Human review API endpoints: queue, claims, corrections and dispositions."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from quoting.core.deps import (
    get_current_staff,
    get_db,
    require_csrf_header,
    require_role,
)
from quoting.core.errors import (
    AlreadyClaimedError,
    DocumentLineNotFoundError,
    InsufficientRoleError,
    InvalidTransitionError,
    NotClaimantError,
    ReviewNotFoundError,
    StaleRecomputeError,
    ValidationError,
)
from quoting.db.enums import OPEN_REVIEW_STATUSES, ReviewStatus, StaffRole
from quoting.db.types import utcnow
from quoting.schemas.auth import StaffSession
from quoting.schemas.correction import CorrectionCreate, CorrectionRead
from quoting.schemas.quote import AdjustmentsUpdate, QuoteRead
from quoting.schemas.review import (
    ApproveRequest,
    ClaimRequest,
    EscalateRequest,
    RejectRequest,
    ReviewQueueItem,
    ReviewRead,
)
from quoting.services import (
    correction_service,
    review_claim_service,
    review_disposition_service,
)

router = APIRouter()


class ForceReleaseRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


def _claim_conflict(e: AlreadyClaimedError) -> HTTPException:
    detail = {"message": "Someone else is editing this review"}
    if e.claimed_by:
        detail["claimed_by"] = str(e.claimed_by)
    return HTTPException(status_code=409, detail=detail)


# =============================================================================
# Queue
# =============================================================================


@router.get("", response_model=list[ReviewQueueItem])
def list_reviews(
    review_status: list[ReviewStatus] | None = Query(None, alias="status"),
    mine: bool = False,
    limit: int = Query(100, ge=1, le=500),
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Open reviews, most urgent first. `mine=true` limits to my claims."""
    rows = review_claim_service.list_review_queue(
        db,
        statuses=review_status,
        assigned_to=session.staff_id if mine else None,
        limit=limit,
    )
    now = utcnow()
    open_values = {s.value for s in OPEN_REVIEW_STATUSES}
    return [
        ReviewQueueItem(
            **ReviewRead.model_validate(review).model_dump(),
            quote_number=quote.quote_number,
            quote_total=quote.total,
            is_overdue=bool(
                review.status in open_values
                and review.sla_deadline
                and review.sla_deadline < now
            ),
        )
        for review, quote in rows
    ]


@router.get("/{review_id}", response_model=ReviewRead)
def get_review(
    review_id: UUID,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    try:
        return ReviewRead.model_validate(review_claim_service.load_review(db, review_id))
    except ReviewNotFoundError:
        raise HTTPException(status_code=404, detail="Review not found")


# =============================================================================
# Claims
# =============================================================================


@router.post(
    "/{review_id}/claim",
    response_model=ReviewRead,
    dependencies=[Depends(require_csrf_header)],
)
def claim_review(
    review_id: UUID,
    data: ClaimRequest,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """
    Claim a review for exclusive editing.

    Returns 409 if another staff member holds it. With `override=true` a
    higher-ranked role takes the claim over.
    """
    try:
        review = review_claim_service.claim_review(
            db, review_id, session.staff_id, session.role, override=data.override
        )
        db.commit()
    except ReviewNotFoundError:
        raise HTTPException(status_code=404, detail="Review not found")
    except AlreadyClaimedError as e:
        raise _claim_conflict(e)
    except InsufficientRoleError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ReviewRead.model_validate(review)


@router.post(
    "/{review_id}/release",
    response_model=ReviewRead,
    dependencies=[Depends(require_csrf_header)],
)
def release_review(
    review_id: UUID,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Give the review back to the queue."""
    try:
        review = review_claim_service.release_review(db, review_id, session.staff_id)
        db.commit()
    except ReviewNotFoundError:
        raise HTTPException(status_code=404, detail="Review not found")
    except NotClaimantError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ReviewRead.model_validate(review)


@router.post(
    "/{review_id}/force-release",
    response_model=ReviewRead,
    dependencies=[Depends(require_csrf_header)],
)
def force_release(
    review_id: UUID,
    data: ForceReleaseRequest,
    session: StaffSession = Depends(require_role(StaffRole.ADMIN)),
    db: Session = Depends(get_db),
):
    """Admin releases whoever holds the claim."""
    try:
        review = review_claim_service.force_release(
            db,
            review_id,
            actor_staff_id=session.staff_id,
            actor_role=session.role,
            reason=data.reason,
        )
        db.commit()
    except ReviewNotFoundError:
        raise HTTPException(status_code=404, detail="Review not found")
    except AlreadyClaimedError as e:
        raise _claim_conflict(e)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ReviewRead.model_validate(review)


# =============================================================================
# Corrections
# =============================================================================


@router.post(
    "/{review_id}/corrections",
    response_model=CorrectionRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf_header)],
)
def create_correction(
    review_id: UUID,
    data: CorrectionCreate,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Override one document line field; the quote is repriced in the same transaction."""
    try:
        correction = correction_service.apply_correction(
            db, review_id, session.staff_id, session.role, data
        )
        db.commit()
    except (ReviewNotFoundError, DocumentLineNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NotClaimantError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except StaleRecomputeError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return CorrectionRead.model_validate(correction)


@router.get("/{review_id}/corrections", response_model=list[CorrectionRead])
def list_corrections(
    review_id: UUID,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    try:
        corrections = correction_service.list_corrections(db, review_id)
    except ReviewNotFoundError:
        raise HTTPException(status_code=404, detail="Review not found")
    return [CorrectionRead.model_validate(c) for c in corrections]


@router.put(
    "/{review_id}/adjustments",
    response_model=QuoteRead,
    dependencies=[Depends(require_csrf_header)],
)
def set_adjustments(
    review_id: UUID,
    data: AdjustmentsUpdate,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Add, change or remove the discount/surcharge. Each one needs a reason."""
    try:
        quote = correction_service.apply_adjustments(
            db, review_id, session.staff_id, session.role, data
        )
        db.commit()
    except ReviewNotFoundError:
        raise HTTPException(status_code=404, detail="Review not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NotClaimantError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except (InvalidTransitionError, StaleRecomputeError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return QuoteRead.model_validate(quote)


# =============================================================================
# Dispositions
# =============================================================================


@router.post(
    "/{review_id}/approve",
    response_model=ReviewRead,
    dependencies=[Depends(require_csrf_header)],
)
def approve_review(
    review_id: UUID,
    data: ApproveRequest,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    try:
        review = review_disposition_service.approve_review(
            db, review_id, session.staff_id, session.role, notes=data.notes
        )
        db.commit()
    except ReviewNotFoundError:
        raise HTTPException(status_code=404, detail="Review not found")
    except NotClaimantError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except (InvalidTransitionError, StaleRecomputeError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ReviewRead.model_validate(review)


@router.post(
    "/{review_id}/reject",
    response_model=ReviewRead,
    dependencies=[Depends(require_csrf_header)],
)
def reject_review(
    review_id: UUID,
    data: RejectRequest,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Send the quote back to the customer for the listed documents."""
    try:
        review = review_disposition_service.reject_review(
            db,
            review_id,
            session.staff_id,
            session.role,
            reason=data.reason,
            affected_document_ids=data.affected_document_ids,
        )
        db.commit()
    except ReviewNotFoundError:
        raise HTTPException(status_code=404, detail="Review not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NotClaimantError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except (InvalidTransitionError, StaleRecomputeError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ReviewRead.model_validate(review)


@router.post(
    "/{review_id}/escalate",
    response_model=ReviewRead,
    dependencies=[Depends(require_csrf_header)],
)
def escalate_review(
    review_id: UUID,
    data: EscalateRequest,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Hand the review to an admin. Requires `confirm: true`."""
    try:
        review = review_disposition_service.escalate_review(
            db,
            review_id,
            session.staff_id,
            session.role,
            confirm=data.confirm,
            notes=data.notes,
        )
        db.commit()
    except ReviewNotFoundError:
        raise HTTPException(status_code=404, detail="Review not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except NotClaimantError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ReviewRead.model_validate(review)
