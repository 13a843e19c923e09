"""Fast Quote: staff build a complete, priced quote in one step."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from quoting.core.config import settings
from quoting.core.errors import ValidationError
from quoting.core.structured_logging import build_log_context
from quoting.db.enums import (
    CorrectableField,
    ProcessingStatus,
    QuoteActivityType,
    QuoteStatus,
)
from quoting.db.models import Correction, DocumentLine, Language, Quote
from quoting.db.types import utcnow
from quoting.schemas.fast_quote import FastQuoteRequest
from quoting.services import activity_service, quote_service
from quoting.services.pricing_service import (
    LineInput,
    LinePrice,
    QuoteTotals,
    aggregate_totals,
    price_line,
)
from quoting.services.rate_config_service import RateConfig, load_rate_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FastQuoteResult:
    lines: list[LinePrice]
    totals: QuoteTotals


def _price(data: FastQuoteRequest, rates: RateConfig) -> FastQuoteResult:
    language_multiplier = rates.language_multiplier(data.source_language)
    prices = [
        price_line(
            LineInput(
                page_count=doc.page_count,
                complexity=doc.complexity,
                word_count=doc.word_count,
                certification_type=doc.certification_type,
                billable_pages_override=doc.billable_pages_override,
                per_page_rate_override=doc.per_page_rate_override,
            ),
            language_multiplier,
            rates,
        )
        for doc in data.documents
    ]
    totals = aggregate_totals(
        [p.line_total for p in prices],
        turnaround=rates.turnaround(data.turnaround),
        delivery_fee=rates.delivery_fee(data.delivery_option),
        discount=quote_service.to_adjustment(data.discount),
        surcharge=quote_service.to_adjustment(data.surcharge),
        tax_rate=rates.tax_rate(data.tax_region or data.customer.region_code),
    ).quantized()
    return FastQuoteResult(lines=prices, totals=totals)


def preview_fast_quote(db: Session, data: FastQuoteRequest) -> FastQuoteResult:
    """Price the form without writing anything."""
    return _price(data, load_rate_config(db))


def create_fast_quote(
    db: Session,
    data: FastQuoteRequest,
    staff_id: UUID,
    now: datetime | None = None,
) -> Quote:
    """
    Create a customer (or reuse a match) and a quote_ready manual quote.

    Per-line page/rate overrides entered on the form are written to the
    correction ledger against the computed values.
    """
    now = now or utcnow()
    language = db.get(Language, data.source_language)
    if language is None or not language.is_active:
        raise ValidationError(f"Unknown language '{data.source_language}'")
    rates = load_rate_config(db)
    result = _price(data, rates)

    customer = quote_service.find_or_create_customer(db, data.customer)
    quote = Quote(
        quote_number=quote_service.generate_quote_number(db, now),
        status=QuoteStatus.QUOTE_READY.value,
        processing_status=ProcessingStatus.COMPLETE.value,
        customer_id=customer.id,
        created_by_staff_id=staff_id,
        is_manual_quote=True,
        source_language_code=data.source_language,
        target_language_code=data.target_language,
        turnaround_code=data.turnaround,
        delivery_option_code=data.delivery_option,
        tax_region_code=data.tax_region or customer.region_code,
        expires_at=now + timedelta(days=settings.QUOTE_TTL_DAYS),
        created_at=now,
    )
    for adjustment, prefix in ((data.discount, "discount"), (data.surcharge, "surcharge")):
        if adjustment is not None:
            setattr(quote, f"{prefix}_type", adjustment.type.value)
            setattr(quote, f"{prefix}_value", adjustment.value)
            setattr(quote, f"{prefix}_reason", adjustment.reason.strip())

    for position, (doc, price) in enumerate(zip(data.documents, result.lines), start=1):
        line = DocumentLine(
            position=position,
            filename=doc.filename,
            document_type=doc.document_type,
            page_count=doc.page_count,
            word_count=doc.word_count,
            certification_type_code=doc.certification_type,
            # Staff measured the document; there is no automated baseline
            analysis_status=ProcessingStatus.COMPLETE.value,
            billable_pages_override=_kept_override(
                doc.billable_pages_override, price.billable_pages, price.auto_billable_pages
            ),
            per_page_rate_override=_kept_override(
                doc.per_page_rate_override, price.per_page_rate, price.auto_per_page_rate
            ),
        )
        quote_service.apply_line_price(line, price)
        quote.lines.append(line)

    db.add(quote)
    quote_service.apply_totals(quote, result.totals)
    db.flush()

    for line in quote.lines:
        _record_form_overrides(db, quote, line, staff_id)

    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.QUOTE_CREATED,
        actor_staff_id=staff_id,
        details={"quote_number": quote.quote_number, "manual": True},
    )
    logger.info(
        "Fast quote created",
        extra=build_log_context(staff_id=str(staff_id), quote_id=str(quote.id)),
    )
    return quote


def _kept_override(requested, rounded, computed):
    """An override that rounds to the computed value is not an override."""
    if requested is None or rounded == computed:
        return None
    return rounded


def _record_form_overrides(db: Session, quote: Quote, line: DocumentLine, staff_id: UUID) -> None:
    overrides = (
        (CorrectableField.BILLABLE_PAGES, line.auto_billable_pages, line.billable_pages_override),
        (CorrectableField.PER_PAGE_RATE, line.auto_per_page_rate, line.per_page_rate_override),
    )
    for field, auto_value, override in overrides:
        if override is None:
            continue
        db.add(
            Correction(
                quote_id=quote.id,
                review_id=None,
                document_line_id=line.id,
                field=field.value,
                original_value=str(auto_value),
                corrected_value=str(override),
                reason="Entered on Fast Quote form",
                actor_staff_id=staff_id,
            )
        )
    db.flush()
