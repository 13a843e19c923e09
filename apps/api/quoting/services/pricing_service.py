"""Document line pricer and quote totals aggregator.

The one implementation of quote math. Every surface (customer quote, HITL
corrections, Fast Quote preview) calls these functions; nothing else
computes prices.

All money is Decimal. Intermediate values stay unrounded; cents rounding
happens once, in `QuoteTotals.quantized()`.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Iterable

from quoting.core.errors import ValidationError
from quoting.db.enums import ComplexityTier, FeeType
from quoting.services.rate_config_service import (
    RateConfig,
    TurnaroundFee,
    check_multiplier,
)

CENT = Decimal("0.01")
RATE_STEP = Decimal("2.50")
PAGE_STEP = Decimal("0.1")
MIN_BILLABLE_PAGES = Decimal("0.1")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_rate_up(value: Decimal) -> Decimal:
    """Round a per-page rate up to the next $2.50 step."""
    steps = (value / RATE_STEP).to_integral_value(rounding=ROUND_CEILING)
    return (steps * RATE_STEP).quantize(CENT)


def round_pages_up(value: Decimal) -> Decimal:
    """Round billable pages up to one decimal, never below the 0.1 minimum."""
    tenths = (value / PAGE_STEP).to_integral_value(rounding=ROUND_CEILING)
    return max((tenths * PAGE_STEP).quantize(PAGE_STEP), MIN_BILLABLE_PAGES)


def parse_complexity(value: ComplexityTier | str) -> ComplexityTier:
    if isinstance(value, ComplexityTier):
        return value
    try:
        return ComplexityTier.parse(value)
    except ValueError:
        raise ValidationError(f"Unknown complexity tier '{value}'") from None


# =============================================================================
# Document Line Pricer
# =============================================================================


@dataclass(frozen=True)
class LineInput:
    """Attributes of one document, as measured or confirmed."""

    page_count: int
    complexity: ComplexityTier | str = ComplexityTier.STANDARD
    word_count: int | None = None
    certification_type: str | None = None
    complexity_multiplier_override: Decimal | None = None
    billable_pages_override: Decimal | None = None
    per_page_rate_override: Decimal | None = None
    line_total_override: Decimal | None = None


@dataclass(frozen=True)
class LinePrice:
    complexity: ComplexityTier
    complexity_multiplier: Decimal
    auto_billable_pages: Decimal
    billable_pages: Decimal
    auto_per_page_rate: Decimal
    per_page_rate: Decimal
    certification_fee: Decimal
    computed_line_total: Decimal
    line_total: Decimal

    @property
    def billable_pages_overridden(self) -> bool:
        return self.billable_pages != self.auto_billable_pages

    @property
    def per_page_rate_overridden(self) -> bool:
        return self.per_page_rate != self.auto_per_page_rate


def validate_line_input(line: LineInput) -> None:
    """Boundary checks; raised before any pricing math runs."""
    if isinstance(line.page_count, bool) or not isinstance(line.page_count, int):
        raise ValidationError("page_count must be an integer")
    if line.page_count < 1:
        raise ValidationError("page_count must be at least 1")
    if line.word_count is not None:
        if isinstance(line.word_count, bool) or not isinstance(line.word_count, int):
            raise ValidationError("word_count must be an integer")
        if line.word_count < 0:
            raise ValidationError("word_count cannot be negative")
    if line.complexity_multiplier_override is not None:
        check_multiplier(line.complexity_multiplier_override, "complexity_multiplier")
    if line.billable_pages_override is not None and line.billable_pages_override <= 0:
        raise ValidationError("billable_pages must be positive")
    if line.per_page_rate_override is not None and line.per_page_rate_override < 0:
        raise ValidationError("per_page_rate cannot be negative")
    if line.line_total_override is not None and line.line_total_override < 0:
        raise ValidationError("line_total cannot be negative")


def auto_billable_pages(
    word_count: int | None,
    page_count: int,
    complexity_multiplier: Decimal,
    words_per_page: int,
) -> Decimal:
    """Word-count estimate when words are known, otherwise page count."""
    if word_count:
        raw = Decimal(word_count) / Decimal(words_per_page) * complexity_multiplier
    else:
        raw = Decimal(page_count) * complexity_multiplier
    return round_pages_up(raw)


def price_line(line: LineInput, language_multiplier: Decimal, rates: RateConfig) -> LinePrice:
    """
    Price one document line.

    Overrides replace the auto values for all downstream math; the auto
    values are still returned for display. Overrides go through the same
    $2.50 and 0.1-page rounding as computed values.
    """
    validate_line_input(line)
    if language_multiplier <= 0:
        raise ValidationError("language multiplier must be positive")

    tier = parse_complexity(line.complexity)
    multiplier = (
        line.complexity_multiplier_override
        if line.complexity_multiplier_override is not None
        else rates.complexity_multiplier(tier)
    )

    auto_pages = auto_billable_pages(
        line.word_count, line.page_count, multiplier, rates.words_per_page
    )
    pages = (
        round_pages_up(line.billable_pages_override)
        if line.billable_pages_override is not None
        else auto_pages
    )

    auto_rate = round_rate_up(rates.base_rate * language_multiplier)
    rate = (
        round_rate_up(line.per_page_rate_override)
        if line.per_page_rate_override is not None
        else auto_rate
    )

    certification_fee = rates.certification_fee(line.certification_type)
    computed = to_cents(pages * rate + certification_fee)
    total = to_cents(line.line_total_override) if line.line_total_override is not None else computed

    return LinePrice(
        complexity=tier,
        complexity_multiplier=multiplier,
        auto_billable_pages=auto_pages,
        billable_pages=pages,
        auto_per_page_rate=auto_rate,
        per_page_rate=rate,
        certification_fee=certification_fee,
        computed_line_total=computed,
        line_total=total,
    )


# =============================================================================
# Quote Totals Aggregator
# =============================================================================


@dataclass(frozen=True)
class Adjustment:
    """Order-level discount or surcharge."""

    type: FeeType
    value: Decimal
    reason: str | None = None
    enabled: bool = True


@dataclass(frozen=True)
class QuoteTotals:
    base_subtotal: Decimal
    rush_fee: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    surcharge_amount: Decimal
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal

    def quantized(self) -> "QuoteTotals":
        """Cents-rounded copy for storage and display; total = subtotal + tax."""
        values = {
            f.name: to_cents(getattr(self, f.name))
            for f in fields(self)
            if f.name not in ("tax_rate", "total")
        }
        return QuoteTotals(
            tax_rate=self.tax_rate,
            total=values["subtotal"] + values["tax_amount"],
            **values,
        )


def validate_adjustment(adjustment: Adjustment | None, label: str) -> Adjustment | None:
    if adjustment is None or not adjustment.enabled:
        return None
    if not adjustment.reason or not adjustment.reason.strip():
        raise ValidationError(f"{label} requires a reason")
    if adjustment.value is None or adjustment.value <= 0:
        raise ValidationError(f"{label} requires a positive value")
    if adjustment.type == FeeType.PERCENTAGE and adjustment.value > HUNDRED:
        raise ValidationError(f"{label} percentage cannot exceed 100")
    return adjustment


def _apply(fee_type: FeeType, value: Decimal, base: Decimal) -> Decimal:
    if fee_type == FeeType.PERCENTAGE:
        return base * value / HUNDRED
    return value


def aggregate_totals(
    line_totals: Iterable[Decimal],
    turnaround: TurnaroundFee | None = None,
    delivery_fee: Decimal = ZERO,
    discount: Adjustment | None = None,
    surcharge: Adjustment | None = None,
    tax_rate: Decimal = ZERO,
) -> QuoteTotals:
    """
    Combine line totals and order modifiers in the fixed order:
    base -> rush -> delivery -> discount/surcharge (both against the
    pre-adjustment amount) -> tax.
    """
    discount = validate_adjustment(discount, "Discount")
    surcharge = validate_adjustment(surcharge, "Surcharge")
    if delivery_fee < 0:
        raise ValidationError("delivery fee cannot be negative")
    if not (ZERO <= tax_rate <= Decimal("1")):
        raise ValidationError("tax_rate must be between 0 and 1")

    totals = list(line_totals)
    if any(t is None for t in totals):
        raise ValidationError("every document line must be priced before totals")
    if any(t < 0 for t in totals):
        raise ValidationError("line totals cannot be negative")

    base_subtotal = sum(totals, ZERO)

    rush_fee = ZERO
    if turnaround is not None and turnaround.is_rush:
        rush_fee = _apply(turnaround.fee_type, turnaround.fee_value, base_subtotal)

    adjusted = base_subtotal + rush_fee + delivery_fee
    discount_amount = _apply(discount.type, discount.value, adjusted) if discount else ZERO
    surcharge_amount = _apply(surcharge.type, surcharge.value, adjusted) if surcharge else ZERO

    subtotal = adjusted - discount_amount + surcharge_amount
    if subtotal < 0:
        raise ValidationError("discount exceeds the order amount")

    tax_amount = subtotal * tax_rate
    return QuoteTotals(
        base_subtotal=base_subtotal,
        rush_fee=rush_fee,
        delivery_fee=delivery_fee,
        discount_amount=discount_amount,
        surcharge_amount=surcharge_amount,
        subtotal=subtotal,
        tax_rate=tax_rate,
        tax_amount=tax_amount,
        total=subtotal + tax_amount,
    )
