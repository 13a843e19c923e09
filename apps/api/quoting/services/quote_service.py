"""Quote service: creation, documents, analysis ingestion and repricing.

Every function flushes and leaves the commit to the caller, so a failure at
any step leaves neither the quote nor its lines half-updated.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from quoting.core.config import settings
from quoting.core.errors import (
    DocumentLineNotFoundError,
    InvalidTransitionError,
    QuoteNotFoundError,
    StaleRecomputeError,
    ValidationError,
)
from quoting.core.structured_logging import build_log_context
from quoting.db.enums import (
    TERMINAL_QUOTE_STATUSES,
    ComplexityTier,
    FeeType,
    ProcessingStatus,
    QuoteActivityType,
    QuoteStatus,
)
from quoting.db.models import Customer, DocumentLine, Language, Quote
from quoting.db.types import utcnow
from quoting.schemas.quote import (
    AdjustmentIn,
    AnalysisResultIn,
    CustomerIn,
    DocumentIn,
    QuoteCreate,
    QuoteOptionsUpdate,
)
from quoting.services import activity_service
from quoting.services.pricing_service import (
    Adjustment,
    LineInput,
    LinePrice,
    QuoteTotals,
    aggregate_totals,
    parse_complexity,
    price_line,
    validate_adjustment,
)
from quoting.services.rate_config_service import RateConfig, load_rate_config

logger = logging.getLogger(__name__)

# Statuses in which the customer may still add documents / change analysis
EDITABLE_STATUSES = frozenset({QuoteStatus.DRAFT.value, QuoteStatus.DETAILS_PENDING.value})
OPTION_STATUSES = EDITABLE_STATUSES | {QuoteStatus.QUOTE_READY.value}


# =============================================================================
# Lookups
# =============================================================================


def get_quote(db: Session, quote_id: UUID, include_deleted: bool = False) -> Quote:
    quote = db.get(Quote, quote_id)
    if quote is None or (quote.deleted_at is not None and not include_deleted):
        raise QuoteNotFoundError(f"Quote {quote_id} not found")
    return quote


def get_line(quote: Quote, line_id: UUID) -> DocumentLine:
    for line in quote.lines:
        if line.id == line_id:
            return line
    raise DocumentLineNotFoundError(f"Document {line_id} is not part of quote {quote.quote_number}")


def generate_quote_number(db: Session, now: datetime | None = None) -> str:
    """Sequential per calendar year: QT-YYYY-NNNNN."""
    now = now or utcnow()
    prefix = f"QT-{now.year}-"
    last = db.execute(
        select(func.max(Quote.quote_number)).where(Quote.quote_number.like(f"{prefix}%"))
    ).scalar()
    sequence = int(last[len(prefix):]) + 1 if last else 1
    return f"{prefix}{sequence:05d}"


def find_or_create_customer(db: Session, data: CustomerIn) -> Customer:
    """Match an existing customer by email, then phone; otherwise create one."""
    email = data.email.lower() if data.email else None
    conditions = []
    if email:
        conditions.append(Customer.email == email)
    if data.phone:
        conditions.append(Customer.phone == data.phone)

    customer = None
    if conditions:
        customer = db.execute(
            select(Customer).where(or_(*conditions)).order_by(Customer.created_at).limit(1)
        ).scalar_one_or_none()

    if customer is None:
        customer = Customer(
            full_name=data.full_name,
            email=email,
            phone=data.phone,
            region_code=data.region_code,
        )
        db.add(customer)
        db.flush()
    else:
        # Fill gaps only; never overwrite what the customer gave before
        customer.full_name = customer.full_name or data.full_name
        customer.email = customer.email or email
        customer.phone = customer.phone or data.phone
        customer.region_code = customer.region_code or data.region_code
    return customer


# =============================================================================
# Guards
# =============================================================================


def is_expired(quote: Quote, now: datetime | None = None) -> bool:
    now = now or utcnow()
    if quote.status == QuoteStatus.EXPIRED.value:
        return True
    return quote.status not in {s.value for s in TERMINAL_QUOTE_STATUSES} and quote.expires_at <= now


def ensure_priceable(quote: Quote, now: datetime | None = None) -> None:
    """Expired or closed quotes are never repriced."""
    if is_expired(quote, now):
        raise InvalidTransitionError(
            f"Quote {quote.quote_number} has expired; create a new quote"
        )
    if quote.status in {s.value for s in TERMINAL_QUOTE_STATUSES}:
        raise InvalidTransitionError(
            f"Quote {quote.quote_number} is {quote.status} and cannot be repriced"
        )


def _ensure_status(quote: Quote, allowed: frozenset[str], action: str) -> None:
    if quote.status not in allowed:
        raise InvalidTransitionError(
            f"Cannot {action} while quote {quote.quote_number} is {quote.status}"
        )


# =============================================================================
# Pricing glue (ORM <-> pricer)
# =============================================================================


def line_input(line: DocumentLine) -> LineInput:
    return LineInput(
        page_count=line.page_count,
        complexity=line.complexity,
        word_count=line.word_count,
        certification_type=line.certification_type_code,
        complexity_multiplier_override=line.complexity_multiplier_override,
        billable_pages_override=line.billable_pages_override,
        per_page_rate_override=line.per_page_rate_override,
        line_total_override=line.line_total_override,
    )


def apply_line_price(line: DocumentLine, price: LinePrice) -> None:
    line.complexity = price.complexity.value
    line.complexity_multiplier = price.complexity_multiplier
    line.auto_billable_pages = price.auto_billable_pages
    line.billable_pages = price.billable_pages
    line.auto_per_page_rate = price.auto_per_page_rate
    line.per_page_rate = price.per_page_rate
    line.certification_fee = price.certification_fee
    line.line_total = price.line_total


def reprice_line(quote: Quote, line: DocumentLine, rates: RateConfig) -> LinePrice:
    price = price_line(
        line_input(line), rates.language_multiplier(quote.source_language_code), rates
    )
    apply_line_price(line, price)
    return price


def quote_adjustments(quote: Quote) -> tuple[Adjustment | None, Adjustment | None]:
    discount = None
    if quote.discount_type:
        discount = Adjustment(
            type=FeeType(quote.discount_type),
            value=quote.discount_value,
            reason=quote.discount_reason,
        )
    surcharge = None
    if quote.surcharge_type:
        surcharge = Adjustment(
            type=FeeType(quote.surcharge_type),
            value=quote.surcharge_value,
            reason=quote.surcharge_reason,
        )
    return discount, surcharge


def compute_totals(
    quote: Quote,
    rates: RateConfig,
    adjustments: tuple[Adjustment | None, Adjustment | None] | None = None,
) -> QuoteTotals:
    """Aggregate the quote's current line totals; no writes.

    `adjustments` prices a (discount, surcharge) pair other than the stored one.
    """
    discount, surcharge = adjustments if adjustments is not None else quote_adjustments(quote)
    return aggregate_totals(
        [line.line_total for line in quote.lines],
        turnaround=rates.turnaround(quote.turnaround_code),
        delivery_fee=rates.delivery_fee(quote.delivery_option_code),
        discount=discount,
        surcharge=surcharge,
        tax_rate=rates.tax_rate(quote.tax_region_code),
    ).quantized()


def apply_totals(quote: Quote, totals: QuoteTotals) -> None:
    quote.base_subtotal = totals.base_subtotal
    quote.rush_fee = totals.rush_fee
    quote.delivery_fee = totals.delivery_fee
    quote.discount_amount = totals.discount_amount
    quote.surcharge_amount = totals.surcharge_amount
    quote.subtotal = totals.subtotal
    quote.tax_rate = totals.tax_rate
    quote.tax_amount = totals.tax_amount
    quote.total = totals.total
    quote.priced_at = utcnow()


def check_versions(
    quote: Quote,
    expected_version: int | None = None,
    line_versions: dict[UUID, int] | None = None,
) -> None:
    """Reject a request built from data that has since changed."""
    if expected_version is not None and quote.version_id != expected_version:
        raise StaleRecomputeError(
            f"Quote {quote.quote_number} changed (version {quote.version_id}, "
            f"expected {expected_version}); refetch and retry"
        )
    if line_versions is not None:
        current = {line.id: line.version_id for line in quote.lines}
        if set(current) != set(line_versions):
            raise StaleRecomputeError("Document lines changed; refetch and retry")
        for line_id, version in line_versions.items():
            if current[line_id] != version:
                raise StaleRecomputeError(
                    f"Document {line_id} changed (version {current[line_id]}, "
                    f"expected {version}); refetch and retry"
                )


def flush_or_stale(db: Session, quote: Quote) -> None:
    """Flush; a concurrent write to the same rows surfaces as StaleRecomputeError."""
    try:
        db.flush()
    except StaleDataError as e:
        logger.warning(
            "Concurrent update detected during recompute",
            extra=build_log_context(quote_id=str(quote.id)),
        )
        raise StaleRecomputeError("Quote data changed underneath this request; refetch and retry") from e


def recalculate_totals(
    db: Session,
    quote: Quote,
    rates: RateConfig | None = None,
) -> QuoteTotals:
    """Reprice every line, then aggregate into the quote totals."""
    ensure_priceable(quote)
    rates = rates or load_rate_config(db)
    for line in quote.lines:
        reprice_line(quote, line, rates)
    totals = compute_totals(quote, rates)
    apply_totals(quote, totals)
    flush_or_stale(db, quote)
    return totals


def recalculate_quote(
    db: Session,
    quote_id: UUID,
    expected_version: int | None = None,
    line_versions: dict[UUID, int] | None = None,
    actor_staff_id: UUID | None = None,
) -> Quote:
    """Explicit recompute request (staff 'recalculate' button)."""
    quote = get_quote(db, quote_id)
    check_versions(quote, expected_version, line_versions)
    before = quote.total
    totals = recalculate_totals(db, quote)
    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.TOTALS_RECALCULATED,
        actor_staff_id=actor_staff_id,
        details={"from_total": str(before), "to_total": str(totals.total)},
    )
    return quote


# =============================================================================
# Quote / document creation
# =============================================================================


def _new_line(data: DocumentIn, position: int) -> DocumentLine:
    complexity = parse_complexity(data.complexity)
    return DocumentLine(
        position=position,
        filename=data.filename,
        document_type=data.document_type,
        page_count=data.page_count,
        word_count=data.word_count,
        complexity=complexity.value,
        certification_type_code=data.certification_type,
        analysis_status=ProcessingStatus.PENDING.value,
    )


def _require_language(db: Session, code: str) -> None:
    language = db.get(Language, code)
    if language is None or not language.is_active:
        raise ValidationError(f"Unknown language '{code}'")


def create_quote(
    db: Session,
    data: QuoteCreate,
    actor_staff_id: UUID | None = None,
    now: datetime | None = None,
) -> Quote:
    """Create a draft quote with its first document, priced immediately."""
    now = now or utcnow()
    rates = load_rate_config(db)
    _require_language(db, data.source_language)

    customer = find_or_create_customer(db, data.customer) if data.customer else None
    quote = Quote(
        quote_number=generate_quote_number(db, now),
        status=QuoteStatus.DRAFT.value,
        processing_status=ProcessingStatus.PENDING.value,
        customer_id=customer.id if customer else None,
        created_by_staff_id=actor_staff_id,
        source_language_code=data.source_language,
        target_language_code=data.target_language,
        turnaround_code=data.turnaround,
        delivery_option_code=data.delivery_option,
        tax_region_code=data.tax_region or (customer.region_code if customer else None),
        expires_at=now + timedelta(days=settings.QUOTE_TTL_DAYS),
        created_at=now,
    )
    quote.lines.append(_new_line(data.document, position=1))
    db.add(quote)

    recalculate_totals(db, quote, rates)
    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.QUOTE_CREATED,
        actor_staff_id=actor_staff_id,
        details={"quote_number": quote.quote_number},
    )
    logger.info("Quote created", extra=build_log_context(quote_id=str(quote.id)))
    return quote


def add_document(
    db: Session,
    quote_id: UUID,
    data: DocumentIn,
    actor_staff_id: UUID | None = None,
) -> DocumentLine:
    quote = get_quote(db, quote_id)
    ensure_priceable(quote)
    _ensure_status(quote, EDITABLE_STATUSES, "add documents")

    position = max((line.position for line in quote.lines), default=0) + 1
    line = _new_line(data, position)
    quote.lines.append(line)
    # New document means analysis is running again
    quote.processing_status = ProcessingStatus.PROCESSING.value
    recalculate_totals(db, quote)

    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.DOCUMENT_ADDED,
        actor_staff_id=actor_staff_id,
        details={"line_id": str(line.id), "position": position},
    )
    return line


def update_options(
    db: Session,
    quote_id: UUID,
    data: QuoteOptionsUpdate,
    actor_staff_id: UUID | None = None,
) -> Quote:
    """Change turnaround / delivery / tax region / languages and reprice."""
    quote = get_quote(db, quote_id)
    ensure_priceable(quote)
    _ensure_status(quote, OPTION_STATUSES, "change options")

    rates = load_rate_config(db)
    fields_set = data.model_fields_set
    changes: dict[str, str | None] = {}

    if "turnaround" in fields_set:
        if not data.turnaround:
            raise ValidationError("turnaround cannot be empty")
        rates.turnaround(data.turnaround)
        quote.turnaround_code = data.turnaround
        changes["turnaround"] = data.turnaround
    if "delivery_option" in fields_set:
        rates.delivery_fee(data.delivery_option)
        quote.delivery_option_code = data.delivery_option
        changes["delivery_option"] = data.delivery_option
    if "tax_region" in fields_set:
        rates.tax_rate(data.tax_region)
        quote.tax_region_code = data.tax_region
        changes["tax_region"] = data.tax_region
    if "source_language" in fields_set and data.source_language:
        _require_language(db, data.source_language)
        quote.source_language_code = data.source_language
        changes["source_language"] = data.source_language
    if "target_language" in fields_set:
        quote.target_language_code = data.target_language
        changes["target_language"] = data.target_language

    recalculate_totals(db, quote, rates)
    if changes:
        activity_service.log_activity(
            db=db,
            quote_id=quote.id,
            activity_type=QuoteActivityType.OPTIONS_CHANGED,
            actor_staff_id=actor_staff_id,
            details={"changes": changes},
        )
    return quote


ADJUSTMENT_KINDS = ("discount", "surcharge")


def to_adjustment(data: AdjustmentIn | None) -> Adjustment | None:
    if data is None:
        return None
    return Adjustment(type=data.type, value=data.value, reason=data.reason)


def _adjustment_snapshot(quote: Quote, kind: str) -> dict | None:
    fee_type = getattr(quote, f"{kind}_type")
    if not fee_type:
        return None
    return {
        "type": fee_type,
        "value": str(getattr(quote, f"{kind}_value")),
        "reason": getattr(quote, f"{kind}_reason"),
    }


def set_adjustments(
    db: Session,
    quote: Quote,
    changes: dict[str, Adjustment | None],
    actor_staff_id: UUID | None = None,
    expected_version: int | None = None,
) -> QuoteTotals:
    """
    Add, change or remove the order-level discount and surcharge.

    `changes` maps "discount"/"surcharge" to the new adjustment (None removes
    it); kinds not in the mapping keep their stored value. Everything is
    validated and priced before the quote is touched.
    """
    ensure_priceable(quote)
    check_versions(quote, expected_version)
    unknown = set(changes) - set(ADJUSTMENT_KINDS)
    if unknown:
        raise ValidationError(f"Unknown adjustment(s): {', '.join(sorted(unknown))}")

    stored = dict(zip(ADJUSTMENT_KINDS, quote_adjustments(quote)))
    for kind, adjustment in changes.items():
        stored[kind] = validate_adjustment(adjustment, kind.capitalize())

    rates = load_rate_config(db)
    compute_totals(quote, rates, (stored["discount"], stored["surcharge"]))

    before = {kind: _adjustment_snapshot(quote, kind) for kind in changes}
    for kind in changes:
        adjustment = stored[kind]
        setattr(quote, f"{kind}_type", adjustment.type.value if adjustment else None)
        setattr(quote, f"{kind}_value", adjustment.value if adjustment else None)
        setattr(quote, f"{kind}_reason", adjustment.reason.strip() if adjustment else None)
    after = {kind: _adjustment_snapshot(quote, kind) for kind in changes}
    if before == after:
        raise ValidationError("Discount and surcharge are unchanged; nothing to apply")

    totals = recalculate_totals(db, quote, rates)
    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.ADJUSTMENTS_CHANGED,
        actor_staff_id=actor_staff_id,
        details={"before": before, "after": after, "total": str(totals.total)},
    )
    return totals


# =============================================================================
# Automated analysis ingestion
# =============================================================================


def _rollup_processing_status(quote: Quote) -> str:
    statuses = {line.analysis_status for line in quote.lines}
    if statuses <= {ProcessingStatus.COMPLETE.value}:
        return ProcessingStatus.COMPLETE.value
    if ProcessingStatus.PENDING.value in statuses or ProcessingStatus.PROCESSING.value in statuses:
        return ProcessingStatus.PROCESSING.value
    return ProcessingStatus.FAILED.value


def ingest_analysis(
    db: Session,
    quote_id: UUID,
    line_id: UUID,
    result: AnalysisResultIn,
) -> DocumentLine:
    """
    Record automated analysis for one document.

    The values become both the current attributes and the immutable `ai_*`
    baseline. Re-analysis (e.g. after a rejected scan is replaced) clears
    earlier reviewer overrides for that line.
    """
    quote = get_quote(db, quote_id)
    ensure_priceable(quote)
    _ensure_status(quote, EDITABLE_STATUSES, "record analysis")
    line = get_line(quote, line_id)

    if result.failed:
        line.analysis_status = ProcessingStatus.FAILED.value
    else:
        complexity = (
            parse_complexity(result.complexity) if result.complexity else ComplexityTier.STANDARD
        )
        line.ai_word_count = result.word_count
        line.ai_page_count = result.page_count or line.page_count
        line.ai_complexity = complexity.value
        line.ai_document_type = result.document_type
        line.word_count = line.ai_word_count
        line.page_count = line.ai_page_count
        line.complexity = complexity.value
        line.document_type = result.document_type
        line.detected_language_code = result.detected_language
        line.ocr_confidence = result.ocr_confidence
        line.language_confidence = result.language_confidence
        line.classification_confidence = result.classification_confidence
        line.complexity_confidence = result.complexity_confidence
        line.complexity_multiplier_override = None
        line.billable_pages_override = None
        line.per_page_rate_override = None
        line.line_total_override = None
        line.analysis_status = ProcessingStatus.COMPLETE.value
    line.analyzed_at = utcnow()
    line.resubmission_requested = False

    quote.processing_status = _rollup_processing_status(quote)
    recalculate_totals(db, quote)

    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.ANALYSIS_RECORDED,
        details={
            "line_id": str(line.id),
            "status": line.analysis_status,
            "error": result.error,
        },
    )
    logger.info(
        "Analysis recorded",
        extra=build_log_context(quote_id=str(quote.id), line_id=str(line.id)),
    )
    return line


def all_lines_analyzed(quote: Quote) -> bool:
    return bool(quote.lines) and all(
        line.analysis_status in (ProcessingStatus.COMPLETE.value, ProcessingStatus.FAILED.value)
        for line in quote.lines
    )


def all_lines_priced(quote: Quote) -> bool:
    return bool(quote.lines) and all(line.is_priced for line in quote.lines)