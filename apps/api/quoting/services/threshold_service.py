"""HITL threshold checks: decide whether a fully analysed quote needs a human."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable

from quoting.core.config import settings
from quoting.db.enums import ProcessingStatus, TriggerReason
from quoting.db.models import DocumentLine

DEFAULT_PRIORITY = 5


@dataclass
class ThresholdResult:
    reasons: list[TriggerReason] = field(default_factory=list)
    checks: dict[str, dict] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not self.reasons


def _min_confidence(values: Iterable[float | None]) -> float | None:
    present = [v for v in values if v is not None]
    return min(present) if present else None


def check_thresholds(lines: list[DocumentLine], order_total: Decimal) -> ThresholdResult:
    """
    Compare worst-case confidences, total pages and order value against the
    configured limits. Each failed check adds one trigger reason.
    """
    result = ThresholdResult()

    if any(line.analysis_status == ProcessingStatus.FAILED.value for line in lines):
        result.reasons.append(TriggerReason.ANALYSIS_FAILED)

    confidence_checks = [
        ("ocr_confidence", settings.HITL_OCR_CONFIDENCE_MIN, TriggerReason.LOW_OCR_CONFIDENCE),
        (
            "language_confidence",
            settings.HITL_LANGUAGE_CONFIDENCE_MIN,
            TriggerReason.LOW_LANGUAGE_CONFIDENCE,
        ),
        (
            "classification_confidence",
            settings.HITL_CLASSIFICATION_CONFIDENCE_MIN,
            TriggerReason.LOW_CLASSIFICATION_CONFIDENCE,
        ),
        (
            "complexity_confidence",
            settings.HITL_COMPLEXITY_CONFIDENCE_MIN,
            TriggerReason.LOW_COMPLEXITY_CONFIDENCE,
        ),
    ]
    for attr, threshold, reason in confidence_checks:
        value = _min_confidence(getattr(line, attr) for line in lines)
        # No reading means nothing to compare; a failed analysis is caught above
        passed = value is None or value >= threshold
        result.checks[attr] = {"value": value, "threshold": threshold, "passed": passed}
        if not passed:
            result.reasons.append(reason)

    total_pages = sum(line.page_count or 0 for line in lines)
    pages_ok = total_pages <= settings.HITL_MAX_AUTO_APPROVE_PAGES
    result.checks["page_count"] = {
        "value": total_pages,
        "threshold": settings.HITL_MAX_AUTO_APPROVE_PAGES,
        "passed": pages_ok,
    }
    if not pages_ok:
        result.reasons.append(TriggerReason.HIGH_PAGE_COUNT)

    value_ok = order_total <= settings.HITL_MAX_AUTO_APPROVE_VALUE
    result.checks["order_value"] = {
        "value": str(order_total),
        "threshold": str(settings.HITL_MAX_AUTO_APPROVE_VALUE),
        "passed": value_ok,
    }
    if not value_ok:
        result.reasons.append(TriggerReason.HIGH_ORDER_VALUE)

    return result


def review_priority(reasons: Iterable[TriggerReason | str]) -> int:
    """More trigger reasons = higher priority (lower number). Clamped to 1-10."""
    values = {TriggerReason(r).value for r in reasons}
    priority = DEFAULT_PRIORITY
    if len(values) >= 3:
        priority = 3
    elif len(values) >= 2:
        priority = 4
    if TriggerReason.HIGH_ORDER_VALUE.value in values:
        priority -= 1
    return max(1, min(10, priority))


def sla_deadline(now: datetime) -> datetime:
    return now + timedelta(hours=settings.REVIEW_SLA_HOURS)
