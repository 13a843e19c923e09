"""Correction ledger: audited reviewer overrides of document line fields.

A correction is written to the ledger before the line it affects is
repriced, and both happen in the same flush. There is no update or delete
path for corrections.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from quoting.core.errors import (
    InvalidTransitionError,
    NotClaimantError,
    StaleRecomputeError,
    ValidationError,
)
from quoting.core.structured_logging import build_log_context
from quoting.db.enums import (
    CLOSED_REVIEW_STATUSES,
    CorrectableField,
    ProcessingStatus,
    QuoteActivityType,
    ReviewStatus,
    StaffRole,
)
from quoting.db.models import Correction, DocumentLine, Quote, ReviewRecord
from quoting.schemas.correction import CorrectionCreate
from quoting.schemas.quote import AdjustmentsUpdate
from quoting.services import activity_service, quote_service
from quoting.services.pricing_service import (
    CENT,
    parse_complexity,
    round_pages_up,
    round_rate_up,
)
from quoting.services.rate_config_service import check_multiplier, load_rate_config, to_decimal
from quoting.services.review_claim_service import load_review
from quoting.services.review_disposition_service import ensure_claimant

logger = logging.getLogger(__name__)

# Field -> attribute holding the value a correction sets
OVERRIDE_ATTRIBUTES = {
    CorrectableField.DOCUMENT_TYPE: "document_type",
    CorrectableField.WORD_COUNT: "word_count",
    CorrectableField.PAGE_COUNT: "page_count",
    CorrectableField.COMPLEXITY: "complexity",
    CorrectableField.CERTIFICATION_TYPE: "certification_type_code",
    CorrectableField.COMPLEXITY_MULTIPLIER: "complexity_multiplier_override",
    CorrectableField.BILLABLE_PAGES: "billable_pages_override",
    CorrectableField.PER_PAGE_RATE: "per_page_rate_override",
    CorrectableField.LINE_TOTAL: "line_total_override",
}

# Field -> attribute showing the value currently in effect
EFFECTIVE_ATTRIBUTES = {
    **OVERRIDE_ATTRIBUTES,
    CorrectableField.COMPLEXITY_MULTIPLIER: "complexity_multiplier",
    CorrectableField.BILLABLE_PAGES: "billable_pages",
    CorrectableField.PER_PAGE_RATE: "per_page_rate",
    CorrectableField.LINE_TOTAL: "line_total",
}

# Field -> automated-analysis baseline attribute
AI_BASELINE_ATTRIBUTES = {
    CorrectableField.DOCUMENT_TYPE: "ai_document_type",
    CorrectableField.WORD_COUNT: "ai_word_count",
    CorrectableField.PAGE_COUNT: "ai_page_count",
    CorrectableField.COMPLEXITY: "ai_complexity",
}


def to_text(value: Any) -> str | None:
    """Canonical ledger representation of a field value."""
    if value is None:
        return None
    return str(value)


def _as_int(value: Any, label: str, minimum: int) -> int:
    number = to_decimal(value, label)
    if number != number.to_integral_value():
        raise ValidationError(f"{label} must be a whole number")
    result = int(number)
    if result < minimum:
        raise ValidationError(f"{label} must be at least {minimum}")
    return result


def normalize_value(field: CorrectableField, value: Any, rates) -> Any:
    """
    Validate a corrected value and bring it to the stored form.

    Rate and page overrides get the same $2.50 / 0.1-page rounding as
    computed values.
    """
    if field == CorrectableField.DOCUMENT_TYPE:
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValidationError("document_type cannot be empty")
        if len(text) > 100:
            raise ValidationError("document_type is too long")
        return text
    if field == CorrectableField.CERTIFICATION_TYPE:
        code = str(value).strip() if value is not None else ""
        if not code or code.lower() == "none":
            return None
        rates.certification_fee(code)
        return code

    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field.value} requires a value")

    if field == CorrectableField.WORD_COUNT:
        return _as_int(value, "word_count", 0)
    if field == CorrectableField.PAGE_COUNT:
        return _as_int(value, "page_count", 1)
    if field == CorrectableField.COMPLEXITY:
        return parse_complexity(str(value)).value
    if field == CorrectableField.COMPLEXITY_MULTIPLIER:
        multiplier = to_decimal(value, "complexity_multiplier")
        return check_multiplier(multiplier, "complexity_multiplier").quantize(CENT)
    if field == CorrectableField.BILLABLE_PAGES:
        pages = to_decimal(value, "billable_pages")
        if pages <= 0:
            raise ValidationError("billable_pages must be positive")
        return round_pages_up(pages)
    if field == CorrectableField.PER_PAGE_RATE:
        rate = to_decimal(value, "per_page_rate")
        if rate < 0:
            raise ValidationError("per_page_rate cannot be negative")
        return round_rate_up(rate)
    if field == CorrectableField.LINE_TOTAL:
        total = to_decimal(value, "line_total")
        if total < 0:
            raise ValidationError("line_total cannot be negative")
        return total.quantize(CENT)
    raise ValidationError(f"Unsupported field '{field}'")


def _same(a: Any, b: Any) -> bool:
    if isinstance(a, Decimal) or isinstance(b, Decimal):
        if a is None or b is None:
            return a is b
        return Decimal(a) == Decimal(b)
    return a == b


def _load_for_edit(
    db: Session, review_id: UUID, staff_id: UUID, role: StaffRole
) -> tuple[ReviewRecord, Quote]:
    review = load_review(db, review_id)
    if review.status in {s.value for s in CLOSED_REVIEW_STATUSES}:
        raise InvalidTransitionError(f"Review is {review.status}; corrections are closed")
    if review.status != ReviewStatus.IN_REVIEW.value:
        raise NotClaimantError("Claim the review before correcting it")
    ensure_claimant(review, staff_id, role)

    quote = quote_service.get_quote(db, review.quote_id)
    quote_service.ensure_priceable(quote)
    return review, quote


def apply_correction(
    db: Session,
    review_id: UUID,
    staff_id: UUID,
    role: StaffRole,
    data: CorrectionCreate,
) -> Correction:
    """
    Override one field on a document line of the claimed review's quote.

    Order: claim check -> line lookup -> version check -> validate ->
    ledger entry -> override -> reprice line -> recompute quote totals.
    """
    review, quote = _load_for_edit(db, review_id, staff_id, role)
    line = quote_service.get_line(quote, data.document_line_id)
    if data.expected_version is not None and line.version_id != data.expected_version:
        raise StaleRecomputeError(
            f"Document {line.id} changed (version {line.version_id}, "
            f"expected {data.expected_version}); refetch and retry"
        )

    rates = load_rate_config(db)
    field = data.field
    new_value = normalize_value(field, data.value, rates)
    current_value = getattr(line, EFFECTIVE_ATTRIBUTES[field])
    if _same(current_value, new_value):
        raise ValidationError(f"{field.value} is already {to_text(current_value)}; nothing to correct")

    correction = Correction(
        quote_id=quote.id,
        review_id=review.id,
        document_line_id=line.id,
        field=field.value,
        original_value=to_text(current_value),
        corrected_value=to_text(new_value),
        reason=data.reason,
        submit_to_knowledge_base=data.submit_to_knowledge_base,
        knowledge_base_comment=data.knowledge_base_comment,
        actor_staff_id=staff_id,
    )
    db.add(correction)
    db.flush()

    setattr(line, OVERRIDE_ATTRIBUTES[field], new_value)
    if field == CorrectableField.COMPLEXITY:
        # A new tier brings its own configured multiplier
        line.complexity_multiplier_override = None
    quote_service.recalculate_totals(db, quote, rates)

    activity_service.log_activity(
        db=db,
        quote_id=quote.id,
        activity_type=QuoteActivityType.CORRECTION_APPLIED,
        actor_staff_id=staff_id,
        details={
            "correction_id": str(correction.id),
            "line_id": str(line.id),
            "field": field.value,
            "from": correction.original_value,
            "to": correction.corrected_value,
        },
    )
    logger.info(
        "Correction applied to %s",
        field.value,
        extra=build_log_context(
            staff_id=str(staff_id),
            review_id=str(review.id),
            quote_id=str(quote.id),
            line_id=str(line.id),
        ),
    )
    return correction


def apply_adjustments(
    db: Session,
    review_id: UUID,
    staff_id: UUID,
    role: StaffRole,
    data: AdjustmentsUpdate,
) -> Quote:
    """Claimant adds, changes or removes the quote's discount/surcharge."""
    review, quote = _load_for_edit(db, review_id, staff_id, role)
    changes = {
        kind: quote_service.to_adjustment(getattr(data, kind))
        for kind in quote_service.ADJUSTMENT_KINDS
        if kind in data.model_fields_set
    }
    if not changes:
        raise ValidationError("Send a discount or surcharge to change")

    quote_service.set_adjustments(
        db, quote, changes, actor_staff_id=staff_id, expected_version=data.expected_version
    )
    logger.info(
        "Adjustments changed: %s",
        ", ".join(changes),
        extra=build_log_context(
            staff_id=str(staff_id), review_id=str(review.id), quote_id=str(quote.id)
        ),
    )
    return quote


def list_corrections(db: Session, review_id: UUID) -> list[Correction]:
    load_review(db, review_id)
    return list(
        db.execute(
            select(Correction)
            .where(Correction.review_id == review_id)
            .order_by(Correction.created_at)
        )
        .scalars()
        .all()
    )


def list_quote_corrections(db: Session, quote_id: UUID) -> list[Correction]:
    return list(
        db.execute(
            select(Correction)
            .where(Correction.quote_id == quote_id)
            .order_by(Correction.created_at)
        )
        .scalars()
        .all()
    )


# =============================================================================
# Audit completeness
# =============================================================================


@dataclass(frozen=True)
class AuditGap:
    line_id: UUID
    field: CorrectableField
    stored_value: str | None
    baseline_value: str | None
    last_corrected_value: str | None


def _changed_fields(line: DocumentLine) -> dict[CorrectableField, tuple[Any, Any]]:
    """Fields whose stored value departs from the automated value."""
    changed: dict[CorrectableField, tuple[Any, Any]] = {}
    if line.analysis_status == ProcessingStatus.COMPLETE.value:
        for field, attribute in AI_BASELINE_ATTRIBUTES.items():
            baseline = getattr(line, attribute)
            stored = getattr(line, OVERRIDE_ATTRIBUTES[field])
            if baseline is not None and not _same(stored, baseline):
                changed[field] = (stored, baseline)
    for field in (
        CorrectableField.COMPLEXITY_MULTIPLIER,
        CorrectableField.BILLABLE_PAGES,
        CorrectableField.PER_PAGE_RATE,
        CorrectableField.LINE_TOTAL,
    ):
        override = getattr(line, OVERRIDE_ATTRIBUTES[field])
        if override is not None:
            changed[field] = (override, None)
    return changed


def audit_gaps(db: Session, quote_id: UUID) -> list[AuditGap]:
    """
    Every line value that departs from its automated value must be explained
    by the latest correction for that field. Returns the violations (empty
    when the ledger is complete).
    """
    quote = quote_service.get_quote(db, quote_id, include_deleted=True)
    latest: dict[tuple[UUID, str], Correction] = {}
    for correction in list_quote_corrections(db, quote.id):
        latest[(correction.document_line_id, correction.field)] = correction

    gaps: list[AuditGap] = []
    for line in quote.lines:
        for field, (stored, baseline) in _changed_fields(line).items():
            last = latest.get((line.id, field.value))
            stored_text = to_text(stored)
            if last is None or not _same_text(last.corrected_value, stored_text):
                gaps.append(
                    AuditGap(
                        line_id=line.id,
                        field=field,
                        stored_value=stored_text,
                        baseline_value=to_text(baseline),
                        last_corrected_value=last.corrected_value if last else None,
                    )
                )
    return gaps


def _same_text(a: str | None, b: str | None) -> bool:
    if a is None or b is None:
        return a is b
    try:
        return Decimal(a) == Decimal(b)
    except ArithmeticError:
        return a == b
