"""
Internal endpoints for the payment callback and scheduled sweeps.

Protected by X-Internal-Secret header.
Call from external cron (Render/Railway/GH Actions).
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from quoting.core.deps import get_db, verify_internal_secret
from quoting.core.errors import InvalidTransitionError, QuoteNotFoundError, ValidationError
from quoting.core.structured_logging import build_log_context
from quoting.schemas.quote import PaymentIn, QuoteRead, SweepResult
from quoting.services import quote_lifecycle_service, review_claim_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/internal",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)


@router.post("/quotes/{quote_id}/payment", response_model=QuoteRead)
def record_payment(quote_id: UUID, data: PaymentIn, db: Session = Depends(get_db)):
    """
    Payment provider callback (capture happens outside this service).

    The quote becomes paid only if the amount equals its total.
    """
    try:
        quote = quote_lifecycle_service.mark_paid(db, quote_id, data.amount, data.reference)
        db.commit()
    except QuoteNotFoundError:
        raise HTTPException(status_code=404, detail="Quote not found")
    except ValidationError as e:
        logger.warning(
            "Payment amount mismatch",
            extra=build_log_context(quote_id=str(quote_id), route="payment"),
        )
        raise HTTPException(status_code=422, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return QuoteRead.model_validate(quote)


@router.post("/sweeps/expire-quotes", response_model=SweepResult)
def expire_quotes(db: Session = Depends(get_db)):
    """Mark quotes past their expiry date as expired."""
    processed = quote_lifecycle_service.expire_stale_quotes(db)
    db.commit()
    return SweepResult(processed=processed)


@router.post("/sweeps/release-idle-claims", response_model=SweepResult)
def release_idle_claims(db: Session = Depends(get_db)):
    """Return claims idle longer than REVIEW_CLAIM_IDLE_HOURS to the queue."""
    processed = review_claim_service.release_idle_claims(db)
    db.commit()
    return SweepResult(processed=processed)


@router.post("/sweeps/purge-tombstones", response_model=SweepResult)
def purge_tombstones(db: Session = Depends(get_db)):
    """Hard-delete cancelled quotes past the tombstone retention window."""
    processed = quote_lifecycle_service.purge_tombstoned_quotes(db)
    db.commit()
    return SweepResult(processed=processed)
