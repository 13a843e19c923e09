"""Rate configuration: reference-data snapshot used by every pricing call.

Pricing never reads tables directly. A `RateConfig` is loaded once per
operation (or built from settings in tests) and passed to the pricer and
aggregator, so a single recalculation sees one consistent rate card.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from quoting.core.config import settings
from quoting.core.errors import ValidationError
from quoting.core.structured_logging import build_log_context
from quoting.db.enums import ComplexityTier, FeeType
from quoting.db.models import (
    CertificationType,
    DeliveryOption,
    Language,
    TaxRate,
    TurnaroundOption,
)

logger = logging.getLogger(__name__)

MIN_MULTIPLIER = Decimal("1.0")
MAX_MULTIPLIER = Decimal("3.0")


@dataclass(frozen=True)
class TurnaroundFee:
    code: str
    fee_type: FeeType
    fee_value: Decimal
    is_rush: bool = False


@dataclass(frozen=True)
class RateConfig:
    """Immutable rate card snapshot."""

    base_rate: Decimal
    words_per_page: int
    complexity_multipliers: Mapping[ComplexityTier, Decimal]
    language_multipliers: Mapping[str, Decimal] = field(default_factory=dict)
    certification_fees: Mapping[str, Decimal] = field(default_factory=dict)
    turnarounds: Mapping[str, TurnaroundFee] = field(default_factory=dict)
    delivery_fees: Mapping[str, Decimal] = field(default_factory=dict)
    tax_rates: Mapping[str, Decimal] = field(default_factory=dict)
    default_tax_rate: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if self.base_rate <= 0:
            raise ValidationError("base_rate must be positive")
        if self.words_per_page <= 0:
            raise ValidationError("words_per_page must be positive")
        for tier in ComplexityTier:
            if tier not in self.complexity_multipliers:
                raise ValidationError(f"No multiplier configured for complexity '{tier.value}'")
            check_multiplier(self.complexity_multipliers[tier], "complexity multiplier")
        # Freeze the lookup tables
        for name in (
            "complexity_multipliers",
            "language_multipliers",
            "certification_fees",
            "turnarounds",
            "delivery_fees",
            "tax_rates",
        ):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    def complexity_multiplier(self, tier: ComplexityTier) -> Decimal:
        return self.complexity_multipliers[tier]

    def language_multiplier(self, code: str) -> Decimal:
        try:
            return self.language_multipliers[code]
        except KeyError:
            raise ValidationError(f"Unknown language '{code}'") from None

    def certification_fee(self, code: str | None) -> Decimal:
        """Flat fee for a certification type; 0 when none is selected."""
        if not code:
            return Decimal("0")
        try:
            return self.certification_fees[code]
        except KeyError:
            raise ValidationError(f"Unknown certification type '{code}'") from None

    def turnaround(self, code: str | None) -> TurnaroundFee | None:
        if not code:
            return None
        try:
            return self.turnarounds[code]
        except KeyError:
            raise ValidationError(f"Unknown turnaround option '{code}'") from None

    def delivery_fee(self, code: str | None) -> Decimal:
        if not code:
            return Decimal("0")
        try:
            return self.delivery_fees[code]
        except KeyError:
            raise ValidationError(f"Unknown delivery option '{code}'") from None

    def tax_rate(self, region_code: str | None) -> Decimal:
        """Tax rate for a region; the configured default when no region is set."""
        if not region_code:
            return self.default_tax_rate
        try:
            return self.tax_rates[region_code]
        except KeyError:
            raise ValidationError(f"Unknown tax region '{region_code}'") from None


def check_multiplier(value: Decimal, label: str = "multiplier") -> Decimal:
    """Reject multipliers outside the 1.0-3.0 band."""
    if not (MIN_MULTIPLIER <= value <= MAX_MULTIPLIER):
        raise ValidationError(
            f"{label} must be between {MIN_MULTIPLIER} and {MAX_MULTIPLIER}, got {value}"
        )
    return value


def to_decimal(value, label: str) -> Decimal:
    """Parse user input as Decimal (never via float)."""
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number")
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{label} must be a number") from None
    if not result.is_finite():
        raise ValidationError(f"{label} must be a finite number")
    return result


def default_complexity_multipliers() -> dict[ComplexityTier, Decimal]:
    return {
        ComplexityTier.STANDARD: settings.COMPLEXITY_MULTIPLIER_STANDARD,
        ComplexityTier.COMPLEX: settings.COMPLEXITY_MULTIPLIER_COMPLEX,
        ComplexityTier.HIGHLY_COMPLEX: settings.COMPLEXITY_MULTIPLIER_HIGHLY_COMPLEX,
    }


def load_rate_config(db: Session) -> RateConfig:
    """Snapshot active reference data plus settings-level constants."""
    languages = db.execute(select(Language).where(Language.is_active.is_(True))).scalars()
    certifications = db.execute(
        select(CertificationType).where(CertificationType.is_active.is_(True))
    ).scalars()
    turnarounds = db.execute(
        select(TurnaroundOption).where(TurnaroundOption.is_active.is_(True))
    ).scalars()
    deliveries = db.execute(
        select(DeliveryOption).where(DeliveryOption.is_active.is_(True))
    ).scalars()
    taxes = db.execute(select(TaxRate).where(TaxRate.is_active.is_(True))).scalars()

    return RateConfig(
        base_rate=settings.BASE_RATE,
        words_per_page=settings.WORDS_PER_PAGE,
        complexity_multipliers=default_complexity_multipliers(),
        language_multipliers={lang.code: lang.multiplier for lang in languages},
        certification_fees={c.code: c.price for c in certifications},
        turnarounds={
            t.code: TurnaroundFee(
                code=t.code,
                fee_type=FeeType(t.fee_type),
                fee_value=t.fee_value,
                is_rush=t.is_rush,
            )
            for t in turnarounds
        },
        delivery_fees={d.code: d.price for d in deliveries},
        tax_rates={t.region_code: t.rate for t in taxes},
        default_tax_rate=settings.DEFAULT_TAX_RATE,
    )


# =============================================================================
# Reference data administration
# =============================================================================


def list_rate_card(db: Session) -> dict:
    """Full rate card, including inactive rows (admin view)."""
    return {
        "base_rate": settings.BASE_RATE,
        "words_per_page": settings.WORDS_PER_PAGE,
        "complexity_multipliers": {
            tier.value: value for tier, value in default_complexity_multipliers().items()
        },
        "default_tax_rate": settings.DEFAULT_TAX_RATE,
        "languages": db.execute(select(Language).order_by(Language.code)).scalars().all(),
        "certification_types": db.execute(
            select(CertificationType).order_by(CertificationType.code)
        ).scalars().all(),
        "turnaround_options": db.execute(
            select(TurnaroundOption).order_by(TurnaroundOption.sort_order)
        ).scalars().all(),
        "delivery_options": db.execute(
            select(DeliveryOption).order_by(DeliveryOption.sort_order)
        ).scalars().all(),
        "tax_rates": db.execute(select(TaxRate).order_by(TaxRate.region_code)).scalars().all(),
    }


def upsert_language(
    db: Session,
    code: str,
    name: str,
    multiplier: Decimal,
    is_active: bool,
    actor_staff_id: UUID | None = None,
) -> Language:
    check_multiplier(multiplier, "language multiplier")
    language = db.get(Language, code)
    if language is None:
        language = Language(code=code)
        db.add(language)
    language.name = name
    language.multiplier = multiplier
    language.is_active = is_active
    db.flush()
    logger.info(
        "Language rate updated: %s",
        code,
        extra=build_log_context(staff_id=str(actor_staff_id) if actor_staff_id else None),
    )
    return language


def upsert_certification_type(
    db: Session,
    code: str,
    name: str,
    price: Decimal,
    is_active: bool,
    actor_staff_id: UUID | None = None,
) -> CertificationType:
    if price < 0:
        raise ValidationError("Certification price cannot be negative")
    certification = db.get(CertificationType, code)
    if certification is None:
        certification = CertificationType(code=code)
        db.add(certification)
    certification.name = name
    certification.price = price
    certification.is_active = is_active
    db.flush()
    logger.info(
        "Certification type updated: %s",
        code,
        extra=build_log_context(staff_id=str(actor_staff_id) if actor_staff_id else None),
    )
    return certification


# =============================================================================
# Seed data
# =============================================================================

SEED_LANGUAGES = [
    ("en", "English", "1.00"),
    ("es", "Spanish", "1.00"),
    ("fr", "French", "1.00"),
    ("de", "German", "1.00"),
    ("pt", "Portuguese", "1.00"),
    ("ru", "Russian", "1.10"),
    ("ar", "Arabic", "1.15"),
    ("fa", "Persian", "1.15"),
    ("zh", "Chinese", "1.20"),
    ("ja", "Japanese", "1.20"),
    ("ko", "Korean", "1.20"),
]

SEED_CERTIFICATION_TYPES = [
    ("certified", "Certified Translation", "50.00"),
    ("notarized", "Notarized Translation", "95.00"),
]

SEED_TURNAROUND_OPTIONS = [
    # code, name, fee_type, fee_value, estimated_days, is_rush, is_default
    ("standard", "Standard", FeeType.PERCENTAGE, "0", 5, False, True),
    ("rush", "Rush", FeeType.PERCENTAGE, "30", 2, True, False),
    ("same_day", "Same Day", FeeType.PERCENTAGE, "100", 0, True, False),
]

SEED_DELIVERY_OPTIONS = [
    ("email", "Email (PDF)", "0.00", False),
    ("pickup", "Pickup from Office", "0.00", True),
    ("regular_mail", "Regular Mail", "15.00", True),
    ("priority_mail", "Priority Mail", "25.00", True),
    ("express_courier", "Express Courier", "45.00", True),
]

SEED_TAX_RATES = [
    ("AB", "Alberta", "GST", "0.05"),
    ("BC", "British Columbia", "GST+PST", "0.12"),
    ("ON", "Ontario", "HST", "0.13"),
    ("QC", "Quebec", "GST+QST", "0.14975"),
    ("MB", "Manitoba", "GST+PST", "0.12"),
    ("SK", "Saskatchewan", "GST+PST", "0.11"),
    ("NS", "Nova Scotia", "HST", "0.15"),
    ("NB", "New Brunswick", "HST", "0.15"),
    ("NL", "Newfoundland", "HST", "0.15"),
    ("PE", "Prince Edward Island", "HST", "0.15"),
    ("NT", "Northwest Territories", "GST", "0.05"),
    ("NU", "Nunavut", "GST", "0.05"),
    ("YT", "Yukon", "GST", "0.05"),
    ("INTL", "International (No Tax)", "None", "0.00"),
]


def seed_reference_data(db: Session) -> int:
    """Insert missing reference rows. Existing rows are left untouched."""
    created = 0
    for code, name, multiplier in SEED_LANGUAGES:
        if db.get(Language, code) is None:
            db.add(Language(code=code, name=name, multiplier=Decimal(multiplier)))
            created += 1
    for code, name, price in SEED_CERTIFICATION_TYPES:
        if db.get(CertificationType, code) is None:
            db.add(CertificationType(code=code, name=name, price=Decimal(price)))
            created += 1
    for order, (code, name, fee_type, fee_value, days, is_rush, is_default) in enumerate(
        SEED_TURNAROUND_OPTIONS, start=1
    ):
        if db.get(TurnaroundOption, code) is None:
            db.add(
                TurnaroundOption(
                    code=code,
                    name=name,
                    fee_type=fee_type.value,
                    fee_value=Decimal(fee_value),
                    estimated_days=days,
                    is_rush=is_rush,
                    is_default=is_default,
                    sort_order=order,
                )
            )
            created += 1
    for order, (code, name, price, is_physical) in enumerate(SEED_DELIVERY_OPTIONS, start=1):
        if db.get(DeliveryOption, code) is None:
            db.add(
                DeliveryOption(
                    code=code,
                    name=name,
                    price=Decimal(price),
                    is_physical=is_physical,
                    sort_order=order,
                )
            )
            created += 1
    for code, name, tax_name, rate in SEED_TAX_RATES:
        if db.get(TaxRate, code) is None:
            db.add(TaxRate(region_code=code, region_name=name, tax_name=tax_name, rate=Decimal(rate)))
            created += 1
    db.flush()
    return created
