"""Fast Quote endpoints (staff-built manual quotes)."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from quoting.core.deps import get_current_staff, get_db, require_csrf_header
from quoting.core.errors import ValidationError
from quoting.schemas.auth import StaffSession
from quoting.schemas.fast_quote import (
    FastQuoteCreated,
    FastQuoteLinePreview,
    FastQuotePreview,
    FastQuoteRequest,
)
from quoting.services import fast_quote_service

router = APIRouter(dependencies=[Depends(require_csrf_header)])


@router.post("/preview", response_model=FastQuotePreview)
def preview_fast_quote(
    data: FastQuoteRequest,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Live pricing for the Fast Quote form. Nothing is saved."""
    try:
        result = fast_quote_service.preview_fast_quote(db, data)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    totals = result.totals
    return FastQuotePreview(
        lines=[
            FastQuoteLinePreview(
                position=position,
                complexity=price.complexity.value,
                complexity_multiplier=price.complexity_multiplier,
                auto_billable_pages=price.auto_billable_pages,
                billable_pages=price.billable_pages,
                auto_per_page_rate=price.auto_per_page_rate,
                per_page_rate=price.per_page_rate,
                certification_fee=price.certification_fee,
                line_total=price.line_total,
            )
            for position, price in enumerate(result.lines, start=1)
        ],
        base_subtotal=totals.base_subtotal,
        rush_fee=totals.rush_fee,
        delivery_fee=totals.delivery_fee,
        discount_amount=totals.discount_amount,
        surcharge_amount=totals.surcharge_amount,
        subtotal=totals.subtotal,
        tax_rate=totals.tax_rate,
        tax_amount=totals.tax_amount,
        total=totals.total,
    )


@router.post("", response_model=FastQuoteCreated, status_code=status.HTTP_201_CREATED)
def create_fast_quote(
    data: FastQuoteRequest,
    session: StaffSession = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    """Create a priced, quote_ready manual quote in one step."""
    try:
        quote = fast_quote_service.create_fast_quote(db, data, session.staff_id)
        db.commit()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return FastQuoteCreated(quote_id=quote.id, quote_number=quote.quote_number, total=quote.total)
