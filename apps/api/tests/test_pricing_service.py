"""Tests for the document line pricer and the quote totals aggregator."""

from decimal import Decimal

import pytest

from quoting.core.errors import ValidationError
from quoting.db.enums import ComplexityTier, FeeType
from quoting.services.pricing_service import (
    Adjustment,
    LineInput,
    aggregate_totals,
    price_line,
    round_pages_up,
    round_rate_up,
)
from quoting.services.rate_config_service import (
    RateConfig,
    TurnaroundFee,
    default_complexity_multipliers,
)

CHINESE = Decimal("1.20")
SPANISH = Decimal("1.00")


@pytest.fixture
def rates() -> RateConfig:
    return RateConfig(
        base_rate=Decimal("65.00"),
        words_per_page=225,
        complexity_multipliers=default_complexity_multipliers(),
        language_multipliers={"zh": CHINESE, "es": SPANISH},
        certification_fees={"certified": Decimal("50.00"), "notarized": Decimal("95.00")},
        turnarounds={
            "standard": TurnaroundFee("standard", FeeType.PERCENTAGE, Decimal("0")),
            "rush": TurnaroundFee("rush", FeeType.PERCENTAGE, Decimal("25"), is_rush=True),
            "rush_flat": TurnaroundFee("rush_flat", FeeType.FIXED, Decimal("40"), is_rush=True),
        },
        delivery_fees={"courier": Decimal("45.00")},
        tax_rates={"ON": Decimal("0.13")},
        default_tax_rate=Decimal("0.05"),
    )


def certified_doc(**overrides) -> LineInput:
    values = {
        "page_count": 4,
        "word_count": 1000,
        "complexity": ComplexityTier.STANDARD,
        "certification_type": "certified",
    }
    values.update(overrides)
    return LineInput(**values)


# =============================================================================
# Rounding rules
# =============================================================================


def test_rate_rounds_up_to_next_two_fifty():
    assert round_rate_up(Decimal("78")) == Decimal("80.00")
    assert round_rate_up(Decimal("65")) == Decimal("65.00")
    assert round_rate_up(Decimal("65.01")) == Decimal("67.50")


def test_pages_round_up_to_one_decimal_with_minimum():
    assert round_pages_up(Decimal("4.4444")) == Decimal("4.5")
    assert round_pages_up(Decimal("4.5")) == Decimal("4.5")
    assert round_pages_up(Decimal("0.0001")) == Decimal("0.1")


# =============================================================================
# Document Line Pricer
# =============================================================================


def test_word_count_line_with_certification(rates):
    price = price_line(certified_doc(), CHINESE, rates)

    assert price.auto_billable_pages == Decimal("4.5")
    assert price.billable_pages == Decimal("4.5")
    assert price.per_page_rate == Decimal("80.00")
    assert price.certification_fee == Decimal("50.00")
    assert price.line_total == Decimal("410.00")


def test_page_count_used_when_word_count_unknown(rates):
    price = price_line(
        certified_doc(word_count=None, complexity=ComplexityTier.COMPLEX, certification_type=None),
        SPANISH,
        rates,
    )

    # 4 pages * 1.15 = 4.6
    assert price.billable_pages == Decimal("4.6")
    assert price.per_page_rate == Decimal("65.00")
    assert price.line_total == Decimal("299.00")


def test_word_count_takes_priority_over_page_count(rates):
    by_words = price_line(certified_doc(page_count=40), CHINESE, rates)
    assert by_words.billable_pages == Decimal("4.5")


@pytest.mark.parametrize(
    "alias,tier",
    [
        ("easy", ComplexityTier.STANDARD),
        ("medium", ComplexityTier.COMPLEX),
        ("hard", ComplexityTier.HIGHLY_COMPLEX),
        ("Highly_Complex", ComplexityTier.HIGHLY_COMPLEX),
    ],
)
def test_complexity_aliases(rates, alias, tier):
    price = price_line(certified_doc(complexity=alias), CHINESE, rates)
    assert price.complexity == tier
    assert price.complexity_multiplier == rates.complexity_multiplier(tier)


def test_minimum_billable_pages(rates):
    price = price_line(certified_doc(word_count=1, certification_type=None), SPANISH, rates)
    assert price.billable_pages == Decimal("0.1")
    assert price.line_total == Decimal("6.50")


def test_more_words_never_lowers_the_price(rates):
    previous_pages = Decimal("0")
    previous_total = Decimal("0")
    for word_count in range(1, 6000, 37):
        price = price_line(certified_doc(word_count=word_count), CHINESE, rates)
        assert price.billable_pages >= previous_pages
        assert price.line_total >= previous_total
        previous_pages, previous_total = price.billable_pages, price.line_total


def test_overrides_replace_auto_values_but_keep_them(rates):
    price = price_line(
        certified_doc(
            billable_pages_override=Decimal("5.0"),
            per_page_rate_override=Decimal("70"),
        ),
        CHINESE,
        rates,
    )

    assert price.auto_billable_pages == Decimal("4.5")
    assert price.billable_pages == Decimal("5.0")
    assert price.auto_per_page_rate == Decimal("80.00")
    assert price.per_page_rate == Decimal("70.00")
    assert price.line_total == Decimal("400.00")


def test_overrides_are_rounded_like_computed_values(rates):
    price = price_line(
        certified_doc(
            billable_pages_override=Decimal("3.33"),
            per_page_rate_override=Decimal("71"),
            certification_type=None,
        ),
        CHINESE,
        rates,
    )

    assert price.billable_pages == Decimal("3.4")
    assert price.per_page_rate == Decimal("72.50")
    assert price.line_total == Decimal("246.50")


def test_line_total_override_pins_total(rates):
    price = price_line(certified_doc(line_total_override=Decimal("300")), CHINESE, rates)
    assert price.computed_line_total == Decimal("410.00")
    assert price.line_total == Decimal("300.00")


@pytest.mark.parametrize(
    "line",
    [
        LineInput(page_count=0),
        LineInput(page_count=-2),
        LineInput(page_count=1, word_count=-5),
        LineInput(page_count=1, complexity="extreme"),
        LineInput(page_count=1, certification_type="apostille"),
        LineInput(page_count=1, complexity_multiplier_override=Decimal("3.5")),
        LineInput(page_count=1, complexity_multiplier_override=Decimal("0.8")),
        LineInput(page_count=1, billable_pages_override=Decimal("0")),
        LineInput(page_count=1, per_page_rate_override=Decimal("-1")),
    ],
)
def test_invalid_line_input_rejected(rates, line):
    with pytest.raises(ValidationError):
        price_line(line, CHINESE, rates)


# =============================================================================
# Quote Totals Aggregator
# =============================================================================


def test_two_documents_with_tax(rates):
    totals = aggregate_totals(
        [Decimal("410.00"), Decimal("410.00")], tax_rate=Decimal("0.05")
    ).quantized()

    assert totals.base_subtotal == Decimal("820.00")
    assert totals.subtotal == Decimal("820.00")
    assert totals.tax_amount == Decimal("41.00")
    assert totals.total == Decimal("861.00")


def test_percentage_rush_fee(rates):
    totals = aggregate_totals(
        [Decimal("410.00"), Decimal("410.00")], turnaround=rates.turnaround("rush")
    ).quantized()

    assert totals.rush_fee == Decimal("205.00")
    assert totals.subtotal == Decimal("1025.00")


def test_fixed_rush_fee_and_standard_turnaround(rates):
    flat = aggregate_totals([Decimal("100")], turnaround=rates.turnaround("rush_flat"))
    standard = aggregate_totals([Decimal("100")], turnaround=rates.turnaround("standard"))

    assert flat.rush_fee == Decimal("40")
    assert standard.rush_fee == Decimal("0")


def test_discount_and_surcharge_use_pre_adjustment_base():
    totals = aggregate_totals(
        [Decimal("100")],
        delivery_fee=Decimal("20"),
        discount=Adjustment(FeeType.PERCENTAGE, Decimal("10"), reason="Returning customer"),
        surcharge=Adjustment(FeeType.PERCENTAGE, Decimal("10"), reason="Handwritten source"),
    )

    assert totals.discount_amount == Decimal("12")
    assert totals.surcharge_amount == Decimal("12")
    assert totals.subtotal == Decimal("120")


def test_fixed_modifiers():
    totals = aggregate_totals(
        [Decimal("100")],
        discount=Adjustment(FeeType.FIXED, Decimal("15"), reason="Promo"),
        surcharge=Adjustment(FeeType.FIXED, Decimal("5"), reason="Weekend"),
        tax_rate=Decimal("0.13"),
    ).quantized()

    assert totals.subtotal == Decimal("90.00")
    assert totals.tax_amount == Decimal("11.70")
    assert totals.total == Decimal("101.70")


@pytest.mark.parametrize(
    "adjustment",
    [
        Adjustment(FeeType.PERCENTAGE, Decimal("10"), reason=None),
        Adjustment(FeeType.PERCENTAGE, Decimal("10"), reason="   "),
        Adjustment(FeeType.FIXED, Decimal("0"), reason="Promo"),
        Adjustment(FeeType.PERCENTAGE, Decimal("120"), reason="Too much"),
    ],
)
def test_enabled_modifier_needs_reason_and_value(adjustment):
    with pytest.raises(ValidationError):
        aggregate_totals([Decimal("100")], discount=adjustment)
    with pytest.raises(ValidationError):
        aggregate_totals([Decimal("100")], surcharge=adjustment)


def test_disabled_modifier_is_ignored():
    totals = aggregate_totals(
        [Decimal("100")],
        discount=Adjustment(FeeType.FIXED, Decimal("50"), reason=None, enabled=False),
    )
    assert totals.discount_amount == Decimal("0")
    assert totals.subtotal == Decimal("100")


def test_discount_larger_than_order_rejected():
    with pytest.raises(ValidationError):
        aggregate_totals(
            [Decimal("100")],
            discount=Adjustment(FeeType.FIXED, Decimal("500"), reason="Oops"),
        )


def test_unpriced_line_rejected():
    with pytest.raises(ValidationError):
        aggregate_totals([Decimal("100"), None])


def test_cents_rounding_happens_once_at_output():
    totals = aggregate_totals([Decimal("33.33")] * 3, tax_rate=Decimal("0.13"))
    assert totals.tax_amount == Decimal("12.9987")

    rounded = totals.quantized()
    assert rounded.tax_amount == Decimal("13.00")
    assert rounded.total == rounded.subtotal + rounded.tax_amount == Decimal("112.99")


def test_recomputing_unchanged_inputs_is_stable(rates):
    kwargs = {
        "turnaround": rates.turnaround("rush"),
        "delivery_fee": Decimal("45"),
        "discount": Adjustment(FeeType.PERCENTAGE, Decimal("7.5"), reason="Loyalty"),
        "tax_rate": Decimal("0.13"),
    }
    first = aggregate_totals([Decimal("410.00"), Decimal("62.50")], **kwargs).quantized()
    second = aggregate_totals([Decimal("410.00"), Decimal("62.50")], **kwargs).quantized()

    assert first == second
    assert first.total >= 0
