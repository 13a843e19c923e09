"""Tests for reviewer corrections and the audit-completeness check."""

from decimal import Decimal

import pytest

from quoting.core.errors import (
    InvalidTransitionError,
    NotClaimantError,
    StaleRecomputeError,
    ValidationError,
)
from quoting.db.enums import CorrectableField, FeeType, QuoteActivityType, StaffRole
from quoting.schemas.correction import CorrectionCreate
from quoting.schemas.quote import AdjustmentIn, AdjustmentsUpdate
from quoting.services import activity_service
from quoting.services.correction_service import (
    apply_adjustments,
    apply_correction,
    audit_gaps,
    list_corrections,
)
from quoting.services.review_claim_service import claim_review
from quoting.services.review_disposition_service import approve_review


@pytest.fixture
def claimed(db, review_quote, reviewer):
    quote, review = review_quote
    claim_review(db, review.id, reviewer.id, StaffRole.REVIEWER)
    return quote, review


def correct(db, review, staff, line, field, value, role=StaffRole.REVIEWER, **kwargs):
    data = CorrectionCreate(document_line_id=line.id, field=field, value=value, **kwargs)
    return apply_correction(db, review.id, staff.id, role, data)


def test_billable_pages_correction_reprices_quote(db, claimed, reviewer):
    quote, review = claimed
    line = quote.lines[0]

    correction = correct(
        db, review, reviewer, line, CorrectableField.BILLABLE_PAGES, "5.0",
        reason="Two handwritten annex pages",
    )

    assert correction.original_value == "4.5"
    assert correction.corrected_value == "5.0"
    assert correction.actor_staff_id == reviewer.id
    assert line.auto_billable_pages == Decimal("4.5")
    assert line.billable_pages == Decimal("5.0")
    assert line.line_total == Decimal("450.00")
    assert quote.subtotal == Decimal("450.00")
    assert quote.tax_amount == Decimal("22.50")
    assert quote.total == Decimal("472.50")


def test_complexity_correction_uses_tier_multiplier(db, claimed, reviewer):
    quote, review = claimed
    line = quote.lines[0]

    correct(db, review, reviewer, line, CorrectableField.COMPLEXITY, "hard")

    # 1000 / 225 * 1.25 = 5.56 -> 5.6 pages
    assert line.complexity == "highly_complex"
    assert line.billable_pages == Decimal("5.6")
    assert line.line_total == Decimal("498.00")


def test_rate_correction_rounds_up(db, claimed, reviewer):
    quote, review = claimed
    line = quote.lines[0]

    correction = correct(db, review, reviewer, line, CorrectableField.PER_PAGE_RATE, 71)

    assert correction.corrected_value == "72.50"
    assert line.per_page_rate == Decimal("72.50")
    assert line.auto_per_page_rate == Decimal("80.00")


def test_line_total_correction_pins_total(db, claimed, reviewer):
    quote, review = claimed
    line = quote.lines[0]

    correct(db, review, reviewer, line, CorrectableField.LINE_TOTAL, "300")

    assert line.line_total == Decimal("300.00")
    assert quote.total == Decimal("315.00")


def test_removing_certification(db, claimed, reviewer):
    quote, review = claimed
    line = quote.lines[0]

    correction = correct(db, review, reviewer, line, CorrectableField.CERTIFICATION_TYPE, "none")

    assert correction.original_value == "certified"
    assert correction.corrected_value is None
    assert line.line_total == Decimal("360.00")


def test_correction_to_the_current_value_rejected(db, claimed, reviewer):
    quote, review = claimed
    with pytest.raises(ValidationError):
        correct(db, review, reviewer, quote.lines[0], CorrectableField.BILLABLE_PAGES, "4.5")
    assert list_corrections(db, review.id) == []


@pytest.mark.parametrize(
    "field,value",
    [
        (CorrectableField.PAGE_COUNT, 0),
        (CorrectableField.WORD_COUNT, "12.5"),
        (CorrectableField.COMPLEXITY, "extreme"),
        (CorrectableField.COMPLEXITY_MULTIPLIER, "3.5"),
        (CorrectableField.CERTIFICATION_TYPE, "apostille"),
        (CorrectableField.PER_PAGE_RATE, "-1"),
        (CorrectableField.BILLABLE_PAGES, None),
    ],
)
def test_invalid_corrections_rejected(db, claimed, reviewer, field, value):
    quote, review = claimed
    with pytest.raises(ValidationError):
        correct(db, review, reviewer, quote.lines[0], field, value)
    assert list_corrections(db, review.id) == []


def test_stale_line_version_rejected(db, claimed, reviewer):
    quote, review = claimed
    line = quote.lines[0]

    with pytest.raises(StaleRecomputeError):
        correct(
            db, review, reviewer, line, CorrectableField.PAGE_COUNT, 5,
            expected_version=line.version_id + 1,
        )

    applied = correct(
        db, review, reviewer, line, CorrectableField.PAGE_COUNT, 5,
        expected_version=line.version_id,
    )
    assert applied.corrected_value == "5"


def test_unclaimed_review_cannot_be_corrected(db, review_quote, reviewer):
    quote, review = review_quote
    with pytest.raises(NotClaimantError):
        correct(db, review, reviewer, quote.lines[0], CorrectableField.BILLABLE_PAGES, "5.0")


def test_only_claimant_corrects(db, claimed, other_reviewer, super_admin):
    quote, review = claimed
    line = quote.lines[0]

    with pytest.raises(NotClaimantError):
        correct(db, review, other_reviewer, line, CorrectableField.BILLABLE_PAGES, "5.0")

    correct(
        db, review, super_admin, line, CorrectableField.BILLABLE_PAGES, "5.0",
        role=StaffRole.SUPER_ADMIN,
    )
    assert line.billable_pages == Decimal("5.0")


def test_closed_review_rejects_corrections(db, claimed, reviewer):
    quote, review = claimed
    approve_review(db, review.id, reviewer.id, StaffRole.REVIEWER)

    with pytest.raises(InvalidTransitionError):
        correct(db, review, reviewer, quote.lines[0], CorrectableField.BILLABLE_PAGES, "5.0")


def test_ledger_lists_corrections_in_order(db, claimed, reviewer):
    quote, review = claimed
    line = quote.lines[0]
    correct(db, review, reviewer, line, CorrectableField.BILLABLE_PAGES, "5.0")
    correct(db, review, reviewer, line, CorrectableField.BILLABLE_PAGES, "5.5")

    history = list_corrections(db, review.id)

    assert [(c.original_value, c.corrected_value) for c in history] == [
        ("4.5", "5.0"),
        ("5.0", "5.5"),
    ]


def test_audit_complete_after_corrections(db, claimed, reviewer):
    quote, review = claimed
    line = quote.lines[0]
    correct(db, review, reviewer, line, CorrectableField.WORD_COUNT, 1200)
    correct(db, review, reviewer, line, CorrectableField.PER_PAGE_RATE, "75")

    assert audit_gaps(db, quote.id) == []


def test_audit_flags_unrecorded_edit(db, claimed, reviewer):
    quote, review = claimed
    line = quote.lines[0]
    correct(db, review, reviewer, line, CorrectableField.WORD_COUNT, 1200)

    line.word_count = 1500
    line.line_total_override = Decimal("10.00")
    db.flush()

    gaps = {gap.field: gap for gap in audit_gaps(db, quote.id)}
    assert set(gaps) == {CorrectableField.WORD_COUNT, CorrectableField.LINE_TOTAL}
    assert gaps[CorrectableField.WORD_COUNT].stored_value == "1500"
    assert gaps[CorrectableField.WORD_COUNT].baseline_value == "1000"
    assert gaps[CorrectableField.WORD_COUNT].last_corrected_value == "1200"


# =============================================================================
# Discounts and surcharges
# =============================================================================


def adjust(db, review, staff, role=StaffRole.REVIEWER, **fields):
    return apply_adjustments(db, review.id, staff.id, role, AdjustmentsUpdate(**fields))


def test_discount_reprices_quote(db, claimed, reviewer):
    quote, review = claimed

    adjust(
        db, review, reviewer,
        discount=AdjustmentIn(type=FeeType.PERCENTAGE, value=Decimal("10"), reason="Returning customer"),
    )

    assert quote.discount_type == FeeType.PERCENTAGE.value
    assert quote.discount_reason == "Returning customer"
    assert quote.discount_amount == Decimal("41.00")
    assert quote.subtotal == Decimal("369.00")
    assert quote.tax_amount == Decimal("18.45")
    assert quote.total == Decimal("387.45")
    activity = [entry.activity_type for entry in activity_service.list_activity(db, quote.id)]
    assert QuoteActivityType.ADJUSTMENTS_CHANGED.value in activity


def test_surcharge_added_and_discount_removed(db, claimed, reviewer):
    quote, review = claimed
    adjust(
        db, review, reviewer,
        discount=AdjustmentIn(type=FeeType.FIXED, value=Decimal("20"), reason="Goodwill"),
    )

    adjust(
        db, review, reviewer,
        discount=None,
        surcharge=AdjustmentIn(type=FeeType.FIXED, value=Decimal("25"), reason="Weekend work"),
    )

    assert quote.discount_type is None
    assert quote.discount_amount == Decimal("0.00")
    assert quote.surcharge_amount == Decimal("25.00")
    assert quote.total == Decimal("456.75")


def test_adjustment_requires_reason(db, claimed, reviewer):
    quote, review = claimed

    with pytest.raises(ValidationError):
        adjust(db, review, reviewer, surcharge=AdjustmentIn(type=FeeType.FIXED, value=Decimal("25")))
    with pytest.raises(ValidationError):
        adjust(
            db, review, reviewer,
            discount=AdjustmentIn(type=FeeType.FIXED, value=Decimal("15"), reason="   "),
        )

    assert quote.surcharge_type is None
    assert quote.discount_type is None
    assert quote.total == Decimal("430.50")


def test_discount_larger_than_order_leaves_quote_untouched(db, claimed, reviewer):
    quote, review = claimed

    with pytest.raises(ValidationError):
        adjust(
            db, review, reviewer,
            discount=AdjustmentIn(type=FeeType.FIXED, value=Decimal("500"), reason="Typo"),
        )

    assert quote.discount_type is None
    assert quote.total == Decimal("430.50")


def test_unchanged_adjustments_rejected(db, claimed, reviewer):
    _, review = claimed
    with pytest.raises(ValidationError):
        adjust(db, review, reviewer)
    with pytest.raises(ValidationError):
        adjust(db, review, reviewer, discount=None)


def test_adjustments_need_the_claim(db, claimed, other_reviewer):
    _, review = claimed
    discount = AdjustmentIn(type=FeeType.FIXED, value=Decimal("10"), reason="Goodwill")

    with pytest.raises(NotClaimantError):
        adjust(db, review, other_reviewer, discount=discount)


def test_adjustments_check_quote_version(db, claimed, reviewer):
    quote, review = claimed
    discount = AdjustmentIn(type=FeeType.FIXED, value=Decimal("10"), reason="Goodwill")

    with pytest.raises(StaleRecomputeError):
        adjust(db, review, reviewer, discount=discount, expected_version=quote.version_id + 1)

    adjust(db, review, reviewer, discount=discount, expected_version=quote.version_id)
    assert quote.total == Decimal("420.00")
