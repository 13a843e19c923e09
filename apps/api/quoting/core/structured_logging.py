"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    staff_id: str | None = None,
    quote_id: str | None = None,
    review_id: str | None = None,
    line_id: str | None = None,
    request_id: str | None = None,
    route: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (identifiers only, never customer data)."""
    context: dict[str, Any] = {}
    if staff_id:
        context["staff_id"] = staff_id
    if quote_id:
        context["quote_id"] = quote_id
    if review_id:
        context["review_id"] = review_id
    if line_id:
        context["line_id"] = line_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    return context
