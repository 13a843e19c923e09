"""HTTP-level tests: routing, auth, CSRF and error mapping."""

import pytest
from httpx import AsyncClient

from conftest import (
    INTERNAL_HEADERS,
    analysed_quote,
    analysis,
    money,
    quote_in_review,
    staff_client,
)
from quoting.db.enums import QuoteStatus, ReviewStatus
from quoting.services import quote_lifecycle_service

QUOTE_PAYLOAD = {
    "source_language": "zh",
    "target_language": "en",
    "customer": {"full_name": "Wei Zhang", "email": "wei@example.com"},
    "document": {
        "filename": "birth-certificate.pdf",
        "page_count": 4,
        "word_count": 1000,
        "certification_type": "certified",
    },
}


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# =============================================================================
# Customer flow
# =============================================================================


@pytest.mark.asyncio
async def test_create_quote_is_priced(client: AsyncClient):
    response = await client.post("/quotes", json=QUOTE_PAYLOAD)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == QuoteStatus.DRAFT.value
    assert body["quote_number"].startswith("QT-")
    assert money(body["lines"][0]["line_total"]) == money("410.00")
    assert money(body["total"]) == money("430.50")


@pytest.mark.asyncio
async def test_invalid_document_rejected(client: AsyncClient):
    payload = {**QUOTE_PAYLOAD, "document": {**QUOTE_PAYLOAD["document"], "page_count": 0}}
    response = await client.post("/quotes", json=payload)
    assert response.status_code == 422

    payload = {**QUOTE_PAYLOAD, "document": {**QUOTE_PAYLOAD["document"], "complexity": "extreme"}}
    response = await client.post("/quotes", json=payload)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_options_change_reprices(client: AsyncClient):
    created = (await client.post("/quotes", json=QUOTE_PAYLOAD)).json()

    response = await client.patch(
        f"/quotes/{created['id']}/options", json={"turnaround": "rush", "tax_region": "ON"}
    )

    assert response.status_code == 200
    body = response.json()
    # 410 + 30% rush = 533, 13% HST
    assert money(body["rush_fee"]) == money("123.00")
    assert money(body["subtotal"]) == money("533.00")
    assert money(body["total"]) == money("602.29")


@pytest.mark.asyncio
async def test_unknown_quote_is_404(client: AsyncClient):
    response = await client.get("/quotes/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_customer_requests_review(client: AsyncClient, db):
    quote = analysed_quote(db)

    response = await client.post(f"/quotes/{quote.id}/request-review", json={"note": "Please check"})

    assert response.status_code == 200
    assert response.json()["trigger_reasons"] == ["customer_requested"]


# =============================================================================
# Staff auth
# =============================================================================


@pytest.mark.asyncio
async def test_staff_routes_need_session(client: AsyncClient):
    response = await client.get("/reviews")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_mutations_need_csrf_header(db, authed_client: AsyncClient, reviewer):
    _, review = quote_in_review(db)

    async with staff_client(reviewer, csrf=False) as no_csrf:
        response = await no_csrf.post(f"/reviews/{review.id}/claim", json={})
    assert response.status_code == 403

    response = await authed_client.post(f"/reviews/{review.id}/claim", json={})
    assert response.status_code == 200
    assert response.json()["status"] == ReviewStatus.IN_REVIEW.value


@pytest.mark.asyncio
async def test_staff_evaluate_routes_quote(db, authed_client: AsyncClient):
    quote = analysed_quote(db, analysis(ocr_confidence=0.4))

    response = await authed_client.post(f"/quotes/{quote.id}/evaluate")

    assert response.status_code == 200
    body = response.json()
    assert body["quote"]["status"] == QuoteStatus.REVIEW_REQUIRED.value
    assert body["review"]["trigger_reasons"] == ["low_ocr_confidence"]


# =============================================================================
# Review workflow
# =============================================================================


@pytest.mark.asyncio
async def test_claim_conflict_names_holder(db, authed_client: AsyncClient, reviewer, other_reviewer):
    _, review = quote_in_review(db)
    await authed_client.post(f"/reviews/{review.id}/claim", json={})

    async with staff_client(other_reviewer) as second:
        response = await second.post(f"/reviews/{review.id}/claim", json={})

    assert response.status_code == 409
    assert response.json()["detail"]["claimed_by"] == str(reviewer.id)


@pytest.mark.asyncio
async def test_review_queue(db, authed_client: AsyncClient):
    quote, review = quote_in_review(db)

    response = await authed_client.get("/reviews")

    assert response.status_code == 200
    items = response.json()
    assert [item["id"] for item in items] == [str(review.id)]
    assert items[0]["quote_number"] == quote.quote_number
    assert money(items[0]["quote_total"]) == money("430.50")
    assert items[0]["is_overdue"] is False

    mine = await authed_client.get("/reviews", params={"mine": "true"})
    assert mine.json() == []


@pytest.mark.asyncio
async def test_correct_and_approve_over_http(db, authed_client: AsyncClient):
    quote, review = quote_in_review(db)
    line_id = str(quote.lines[0].id)
    await authed_client.post(f"/reviews/{review.id}/claim", json={})

    response = await authed_client.post(
        f"/reviews/{review.id}/corrections",
        json={"document_line_id": line_id, "field": "billable_pages", "value": "5.0"},
    )
    assert response.status_code == 201
    assert response.json()["original_value"] == "4.5"

    history = await authed_client.get(f"/reviews/{review.id}/corrections")
    assert len(history.json()) == 1

    response = await authed_client.post(f"/reviews/{review.id}/approve", json={})
    assert response.status_code == 200
    assert response.json()["status"] == ReviewStatus.APPROVED.value

    quote_body = (await authed_client.get(f"/quotes/{quote.id}")).json()
    assert quote_body["status"] == QuoteStatus.QUOTE_READY.value
    assert money(quote_body["total"]) == money("472.50")


@pytest.mark.asyncio
async def test_discount_during_review(db, authed_client: AsyncClient):
    quote, review = quote_in_review(db)
    await authed_client.post(f"/reviews/{review.id}/claim", json={})

    response = await authed_client.put(
        f"/reviews/{review.id}/adjustments",
        json={"discount": {"type": "percentage", "value": "10"}},
    )
    assert response.status_code == 422

    response = await authed_client.put(
        f"/reviews/{review.id}/adjustments",
        json={"discount": {"type": "percentage", "value": "10", "reason": "Returning customer"}},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == str(quote.id)
    assert money(body["discount_amount"]) == money("41.00")
    assert money(body["total"]) == money("387.45")


@pytest.mark.asyncio
async def test_approve_pending_review_is_conflict(db, authed_client: AsyncClient):
    _, review = quote_in_review(db)

    response = await authed_client.post(f"/reviews/{review.id}/approve", json={})

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_force_release_is_admin_only(db, authed_client: AsyncClient, admin):
    _, review = quote_in_review(db)
    await authed_client.post(f"/reviews/{review.id}/claim", json={})

    response = await authed_client.post(f"/reviews/{review.id}/force-release", json={})
    assert response.status_code == 403

    async with staff_client(admin) as admin_http:
        response = await admin_http.post(
            f"/reviews/{review.id}/force-release", json={"reason": "Shift ended"}
        )
    assert response.status_code == 200
    assert response.json()["status"] == ReviewStatus.PENDING.value


# =============================================================================
# Rate configuration
# =============================================================================


@pytest.mark.asyncio
async def test_rate_card_is_public(client: AsyncClient):
    response = await client.get("/rate-config")

    assert response.status_code == 200
    body = response.json()
    assert money(body["base_rate"]) == money("65.00")
    assert "zh" in {language["code"] for language in body["languages"]}


@pytest.mark.asyncio
async def test_rate_edits_need_admin(db, authed_client: AsyncClient, admin):
    payload = {"name": "Ukrainian", "multiplier": "1.10"}

    response = await authed_client.put("/rate-config/languages/uk", json=payload)
    assert response.status_code == 403

    async with staff_client(admin) as admin_http:
        response = await admin_http.put("/rate-config/languages/UK", json=payload)
        assert response.status_code == 200
        assert response.json()["code"] == "uk"

        response = await admin_http.put(
            "/rate-config/languages/uk", json={"name": "Ukrainian", "multiplier": "3.50"}
        )
        assert response.status_code == 422


# =============================================================================
# Fast Quote
# =============================================================================


@pytest.mark.asyncio
async def test_fast_quote_preview_and_create(authed_client: AsyncClient):
    payload = {
        "customer": {"full_name": "Wei Zhang", "phone": "+1 416 555 0100", "region_code": "ON"},
        "source_language": "zh",
        "documents": [{"page_count": 4, "word_count": 1000}],
        "discount": {"type": "percentage", "value": "10", "reason": "Referral"},
    }

    preview = await authed_client.post("/fast-quotes/preview", json=payload)
    assert preview.status_code == 200
    assert money(preview.json()["total"]) == money("366.12")

    created = await authed_client.post("/fast-quotes", json=payload)
    assert created.status_code == 201
    assert money(created.json()["total"]) == money("366.12")

    quote = (await authed_client.get(f"/quotes/{created.json()['quote_id']}")).json()
    assert quote["status"] == QuoteStatus.QUOTE_READY.value
    assert quote["is_manual_quote"] is True


# =============================================================================
# Internal endpoints
# =============================================================================


@pytest.mark.asyncio
async def test_internal_routes_need_secret(client: AsyncClient):
    response = await client.post("/internal/sweeps/expire-quotes")
    assert response.status_code == 422

    response = await client.post(
        "/internal/sweeps/expire-quotes", headers={"X-Internal-Secret": "wrong"}
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_payment_callback(db, client: AsyncClient):
    quote = analysed_quote(db)
    quote_lifecycle_service.evaluate_quote(db, quote.id)
    db.commit()

    mismatch = await client.post(
        f"/internal/quotes/{quote.id}/payment", json={"amount": "400.00"}, headers=INTERNAL_HEADERS
    )
    assert mismatch.status_code == 422

    response = await client.post(
        f"/internal/quotes/{quote.id}/payment",
        json={"amount": "430.50", "reference": "pi_123"},
        headers=INTERNAL_HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["status"] == QuoteStatus.PAID.value


@pytest.mark.asyncio
async def test_sweeps(client: AsyncClient):
    for path in ("expire-quotes", "release-idle-claims", "purge-tombstones"):
        response = await client.post(f"/internal/sweeps/{path}", headers=INTERNAL_HEADERS)
        assert response.status_code == 200
        assert response.json() == {"processed": 0}


@pytest.mark.asyncio
async def test_cancel_and_activity_log(db, authed_client: AsyncClient):
    quote, _ = quote_in_review(db)

    response = await authed_client.post(f"/quotes/{quote.id}/cancel", json={"reason": "Duplicate"})
    assert response.status_code == 200
    assert response.json()["status"] == QuoteStatus.CANCELLED.value

    assert (await authed_client.get(f"/quotes/{quote.id}")).status_code == 404

    activity = await authed_client.get(f"/quotes/{quote.id}/activity")
    assert activity.status_code == 200
    types = [entry["activity_type"] for entry in activity.json()]
    assert "review_created" in types
    assert types.count("status_changed") == 3
