"""Tests for the quote lifecycle: routing, payment, expiry and tombstones."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from conftest import analysed_quote, analysis, create_quote, document, quote_in_review
from quoting.core.errors import (
    InvalidTransitionError,
    QuoteNotFoundError,
    ValidationError,
)
from quoting.db.enums import QuoteStatus, ReviewStatus, StaffRole, TriggerReason
from quoting.db.models import Quote, ReviewRecord
from quoting.db.types import utcnow
from quoting.services import quote_lifecycle_service, quote_service
from quoting.services.review_claim_service import claim_review, load_review


def test_new_quote_is_priced_draft(db):
    quote = create_quote(db)

    assert quote.status == QuoteStatus.DRAFT.value
    assert quote.lines[0].line_total == Decimal("410.00")
    assert quote.tax_rate == Decimal("0.05")
    assert quote.total == Decimal("430.50")


def test_quote_numbers_are_sequential(db):
    year = utcnow().year
    first = create_quote(db)
    second = create_quote(db)

    assert first.quote_number == f"QT-{year}-00001"
    assert second.quote_number == f"QT-{year}-00002"


def test_unknown_language_rejected(db):
    with pytest.raises(ValidationError):
        create_quote(db, source_language="xx")


def test_submit_needs_draft(db):
    quote = analysed_quote(db)
    assert quote.status == QuoteStatus.DETAILS_PENDING.value

    with pytest.raises(InvalidTransitionError):
        quote_lifecycle_service.submit_quote(db, quote.id)


def test_confident_analysis_goes_straight_to_quote_ready(db):
    quote = analysed_quote(db)

    quote, review = quote_lifecycle_service.evaluate_quote(db, quote.id)

    assert review is None
    assert quote.status == QuoteStatus.QUOTE_READY.value


def test_evaluate_waits_for_all_analysis(db):
    quote = analysed_quote(db)
    quote_service.add_document(db, quote.id, document(filename="annex.pdf"))

    with pytest.raises(InvalidTransitionError):
        quote_lifecycle_service.evaluate_quote(db, quote.id)


def test_each_failed_check_is_a_trigger_reason(db):
    quote = analysed_quote(
        db,
        analysis(ocr_confidence=0.5, language_confidence=0.5, classification_confidence=0.5),
    )

    quote, review = quote_lifecycle_service.evaluate_quote(db, quote.id)

    assert quote.status == QuoteStatus.REVIEW_REQUIRED.value
    assert review.status == ReviewStatus.PENDING.value
    assert review.trigger_reasons == [
        TriggerReason.LOW_OCR_CONFIDENCE.value,
        TriggerReason.LOW_LANGUAGE_CONFIDENCE.value,
        TriggerReason.LOW_CLASSIFICATION_CONFIDENCE.value,
    ]
    assert review.priority == 3
    assert review.sla_deadline is not None


def test_large_order_is_reviewed(db):
    quote = analysed_quote(db, analysis(page_count=30, word_count=9000))

    _, review = quote_lifecycle_service.evaluate_quote(db, quote.id)

    # 40 pages at $80 + $50 is over the auto-approve value as well
    assert review.trigger_reasons == [
        TriggerReason.HIGH_PAGE_COUNT.value,
        TriggerReason.HIGH_ORDER_VALUE.value,
    ]
    assert review.priority == 3


def test_failed_analysis_is_reviewed(db):
    quote = create_quote(db, doc=document(word_count=None))
    quote_service.ingest_analysis(
        db, quote.id, quote.lines[0].id, analysis(failed=True, error="OCR timeout")
    )
    quote_lifecycle_service.submit_quote(db, quote.id)

    quote, review = quote_lifecycle_service.evaluate_quote(db, quote.id)

    assert TriggerReason.ANALYSIS_FAILED.value in review.trigger_reasons
    assert quote.lines[0].line_total is not None


def test_manual_review_reuses_open_review(db):
    quote, review = quote_in_review(db)

    again = quote_lifecycle_service.request_manual_review(db, quote.id)

    assert again.id == review.id
    assert again.trigger_reasons == [
        TriggerReason.LOW_OCR_CONFIDENCE.value,
        TriggerReason.CUSTOMER_REQUESTED.value,
    ]
    assert again.priority == 4
    assert db.query(ReviewRecord).filter(ReviewRecord.quote_id == quote.id).count() == 1


def test_manual_review_from_quote_ready(db):
    quote = analysed_quote(db)
    quote_lifecycle_service.evaluate_quote(db, quote.id)

    review = quote_lifecycle_service.request_manual_review(
        db, quote.id, reason=TriggerReason.MANUAL_TRIGGER, note="Customer phoned"
    )

    assert quote.status == QuoteStatus.REVIEW_REQUIRED.value
    assert review.trigger_reasons == [TriggerReason.MANUAL_TRIGGER.value]


def test_second_open_review_violates_unique_index(db):
    quote, _ = quote_in_review(db)

    db.add(ReviewRecord(quote_id=quote.id, status=ReviewStatus.PENDING.value, trigger_reasons=[]))
    with pytest.raises(IntegrityError):
        db.flush()
    db.rollback()


def test_payment_must_match_total(db):
    quote = analysed_quote(db)
    quote_lifecycle_service.evaluate_quote(db, quote.id)

    with pytest.raises(ValidationError):
        quote_lifecycle_service.mark_paid(db, quote.id, Decimal("430.49"))

    paid = quote_lifecycle_service.mark_paid(db, quote.id, Decimal("430.50"))
    assert paid.status == QuoteStatus.PAID.value
    assert paid.paid_amount == Decimal("430.50")
    assert paid.paid_at is not None


def test_quote_awaiting_review_cannot_be_paid(db):
    quote, _ = quote_in_review(db)

    with pytest.raises(InvalidTransitionError):
        quote_lifecycle_service.mark_paid(db, quote.id, quote.total)


def test_draft_cannot_be_paid(db):
    quote = create_quote(db)
    with pytest.raises(InvalidTransitionError):
        quote_lifecycle_service.mark_paid(db, quote.id, quote.total)


def test_expiry_sweep_closes_open_review(db):
    quote, review = quote_in_review(db)
    later = quote.expires_at + timedelta(minutes=1)

    assert quote_lifecycle_service.expire_stale_quotes(db, now=later) == 1

    db.refresh(review)
    assert quote.status == QuoteStatus.EXPIRED.value
    assert review.status == ReviewStatus.REJECTED.value
    assert review.assigned_to is None
    assert quote_lifecycle_service.expire_stale_quotes(db, now=later) == 0


def test_expiry_sweep_releases_a_claimed_review(db, reviewer):
    quote, review = quote_in_review(db)
    claim_review(db, review.id, reviewer.id, StaffRole.REVIEWER)

    quote_lifecycle_service.expire_stale_quotes(db, now=quote.expires_at + timedelta(minutes=1))

    closed = load_review(db, review.id)
    assert closed.status == ReviewStatus.REJECTED.value
    assert closed.rejection_reason == "Quote expired"
    assert closed.assigned_to is None


def test_cancel_clears_a_claim_taken_after_the_review_was_read(db, other_reviewer):
    quote, review = quote_in_review(db)
    # Another process claims the row; our copy still says pending and unassigned
    db.execute(
        update(ReviewRecord)
        .where(ReviewRecord.id == review.id)
        .values(status=ReviewStatus.IN_REVIEW.value, assigned_to=other_reviewer.id)
        .execution_options(synchronize_session=False)
    )

    quote_lifecycle_service.cancel_quote(db, quote.id, reason="Customer withdrew")

    closed = load_review(db, review.id)
    assert closed.status == ReviewStatus.REJECTED.value
    assert closed.rejection_reason == "Quote cancelled"
    assert closed.assigned_to is None


def test_expired_quote_is_never_repriced(db):
    quote = analysed_quote(db)
    quote_lifecycle_service.expire_stale_quotes(db, now=quote.expires_at)

    with pytest.raises(InvalidTransitionError):
        quote_service.recalculate_quote(db, quote.id)
    with pytest.raises(InvalidTransitionError):
        quote_lifecycle_service.mark_paid(db, quote.id, quote.total)


def test_overdue_quote_refused_before_sweep(db):
    quote = analysed_quote(db)
    quote.expires_at = utcnow() - timedelta(hours=1)
    db.flush()

    with pytest.raises(InvalidTransitionError):
        quote_lifecycle_service.evaluate_quote(db, quote.id)


def test_cancel_tombstones_quote_and_closes_review(db):
    quote, review = quote_in_review(db)

    quote_lifecycle_service.cancel_quote(db, quote.id, reason="Customer withdrew")

    db.refresh(review)
    assert quote.status == QuoteStatus.CANCELLED.value
    assert quote.deleted_at is not None
    assert review.status == ReviewStatus.REJECTED.value
    with pytest.raises(QuoteNotFoundError):
        quote_service.get_quote(db, quote.id)
    with pytest.raises(QuoteNotFoundError):
        quote_lifecycle_service.cancel_quote(db, quote.id)


def test_purge_respects_retention(db):
    quote, _ = quote_in_review(db)
    quote_id = quote.id
    quote_lifecycle_service.cancel_quote(db, quote_id)
    db.commit()

    assert quote_lifecycle_service.purge_tombstoned_quotes(db) == 0

    purged = quote_lifecycle_service.purge_tombstoned_quotes(
        db, older_than=utcnow() + timedelta(days=1)
    )
    db.commit()

    assert purged == 1
    assert db.execute(select(Quote.id).where(Quote.id == quote_id)).scalar_one_or_none() is None
    assert db.execute(
        select(ReviewRecord.id).where(ReviewRecord.quote_id == quote_id)
    ).scalar_one_or_none() is None
