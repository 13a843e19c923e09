"""Quote API endpoints.

Customer-facing routes (create, documents, options, submit, request review)
are anonymous and rate limited; the quote id acts as the access token.
Analysis ingestion, evaluation, recalculation and cancellation are staff
actions.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from quoting.core.deps import get_current_staff, get_db, require_csrf_header
from quoting.core.errors import (
    DocumentLineNotFoundError,
    InvalidTransitionError,
    QuoteNotFoundError,
    StaleRecomputeError,
    ValidationError,
)
from quoting.core.rate_limit import PUBLIC_LIMIT, limiter
from quoting.db.enums import TriggerReason
from quoting.schemas.auth import StaffSession
from quoting.schemas.quote import (
    AnalysisResultIn,
    CancelRequest,
    DocumentIn,
    DocumentLineRead,
    EvaluationRead,
    ManualReviewRequest,
    QuoteActivityRead,
    QuoteCreate,
    QuoteOptionsUpdate,
    QuoteRead,
    RecalculateRequest,
)
from quoting.schemas.review import ReviewRead
from quoting.services import activity_service, quote_lifecycle_service, quote_service

router = APIRouter()


def _quote_response(db: Session, quote_id: UUID) -> QuoteRead:
    return QuoteRead.model_validate(quote_service.get_quote(db, quote_id))


# =============================================================================
# Customer endpoints
# =============================================================================


@router.post("", response_model=QuoteRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(PUBLIC_LIMIT)
def create_quote(request: Request, data: QuoteCreate, db: Session = Depends(get_db)):
    """Start a quote with its first uploaded document."""
    try:
        quote = quote_service.create_quote(db, data)
        db.commit()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _quote_response(db, quote.id)


@router.get("/{quote_id}", response_model=QuoteRead)
@limiter.limit(PUBLIC_LIMIT)
def get_quote(request: Request, quote_id: UUID, db: Session = Depends(get_db)):
    try:
        return _quote_response(db, quote_id)
    except QuoteNotFoundError:
        raise HTTPException(status_code=404, detail="Quote not found")


@router.post(
    "/{quote_id}/documents",
    response_model=DocumentLineRead,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(PUBLIC_LIMIT)
def add_document(
    request: Request,
    quote_id: UUID,
    data: DocumentIn,
    db: Session = Depends(get_db),
):
    try:
        line = quote_service.add_document(db, quote_id, data)
        db.commit()
    except QuoteNotFoundError:
        raise HTTPException(status_code=404, detail="Quote not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return DocumentLineRead.model_validate(line)


@router.post("/{quote_id}/submit", response_model=QuoteRead)
@limiter.limit(PUBLIC_LIMIT)
def submit_quote(request: Request, quote_id: UUID, db: Session = Depends(get_db)):
    """Customer is done uploading; documents go to analysis."""
    try:
        quote_lifecycle_service.submit_quote(db, quote_id)
        db.commit()
    except QuoteNotFoundError:
        raise HTTPException(status_code=404, detail="Quote not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _quote_response(db, quote_id)


@router.patch("/{quote_id}/options", response_model=QuoteRead)
@limiter.limit(PUBLIC_LIMIT)
def update_options(
    request: Request,
    quote_id: UUID,
    data: QuoteOptionsUpdate,
    db: Session = Depends(get_db),
):
    """Change turnaround, delivery, tax region or languages; reprices the quote."""
    try:
        quote_service.update_options(db, quote_id, data)
        db.commit()
    except QuoteNotFoundError:
        raise HTTPException(status_code=404, detail="Quote not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except (InvalidTransitionError, StaleRecomputeError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _quote_response(db, quote_id)


@router.post("/{quote_id}/request-review", response_model=ReviewRead)
@limiter.limit(PUBLIC_LIMIT)
def request_review(
    request: Request,
    quote_id: UUID,
    data: ManualReviewRequest,
    db: Session = Depends(get_db),
):
    """Customer asks for a human to check the quote."""
    try:
        review = quote_lifecycle_service.request_manual_review(
            db, quote_id, TriggerReason.CUSTOMER_REQUESTED, note=data.note
        )
        db.commit()
    except QuoteNotFoundError:
        raise HTTPException(status_code=404, detail="Quote not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ReviewRead.model_validate(review)


# =============================================================================
# Staff endpoints
# =============================================================================


@router.post(
    "/{quote_id}/documents/{line_id}/analysis",
    response_model=DocumentLineRead,
    dependencies=[Depends(require_csrf_header)],
)
def record_analysis(
    quote_id: UUID,
    line_id: UUID,
    data: AnalysisResultIn,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Store the automated analysis result for one document."""
    try:
        line = quote_service.ingest_analysis(db, quote_id, line_id, data)
        db.commit()
    except (QuoteNotFoundError, DocumentLineNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except (InvalidTransitionError, StaleRecomputeError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return DocumentLineRead.model_validate(line)


@router.post(
    "/{quote_id}/evaluate",
    response_model=EvaluationRead,
    dependencies=[Depends(require_csrf_header)],
)
def evaluate_quote(
    quote_id: UUID,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Run the review thresholds and route the quote."""
    try:
        quote, review = quote_lifecycle_service.evaluate_quote(db, quote_id, session.staff_id)
        db.commit()
    except QuoteNotFoundError:
        raise HTTPException(status_code=404, detail="Quote not found")
    except (InvalidTransitionError, StaleRecomputeError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return EvaluationRead(
        quote=QuoteRead.model_validate(quote),
        review=ReviewRead.model_validate(review) if review else None,
    )


@router.post(
    "/{quote_id}/recalculate",
    response_model=QuoteRead,
    dependencies=[Depends(require_csrf_header)],
)
def recalculate_quote(
    quote_id: UUID,
    data: RecalculateRequest,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    try:
        quote_service.recalculate_quote(
            db,
            quote_id,
            expected_version=data.expected_version,
            line_versions=data.line_versions,
            actor_staff_id=session.staff_id,
        )
        db.commit()
    except QuoteNotFoundError:
        raise HTTPException(status_code=404, detail="Quote not found")
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StaleRecomputeError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _quote_response(db, quote_id)


@router.post(
    "/{quote_id}/cancel",
    response_model=QuoteRead,
    dependencies=[Depends(require_csrf_header)],
)
def cancel_quote(
    quote_id: UUID,
    data: CancelRequest,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Cancel and tombstone the quote."""
    try:
        quote = quote_lifecycle_service.cancel_quote(
            db, quote_id, session.staff_id, reason=data.reason
        )
        db.commit()
    except QuoteNotFoundError:
        raise HTTPException(status_code=404, detail="Quote not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return QuoteRead.model_validate(quote)


@router.get("/{quote_id}/activity", response_model=list[QuoteActivityRead])
def list_quote_activity(
    quote_id: UUID,
    limit: int = Query(100, ge=1, le=500),
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Activity log for a quote, newest first (tombstoned quotes included)."""
    try:
        quote = quote_service.get_quote(db, quote_id, include_deleted=True)
    except QuoteNotFoundError:
        raise HTTPException(status_code=404, detail="Quote not found")
    return [
        QuoteActivityRead.model_validate(entry)
        for entry in activity_service.list_activity(db, quote.id, limit=limit)
    ]
