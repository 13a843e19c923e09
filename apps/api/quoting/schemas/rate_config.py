"""Pydantic schemas for rate reference data."""

from decimal import Decimal

from pydantic import BaseModel, Field


class LanguageRead(BaseModel):
    code: str
    name: str
    multiplier: Decimal
    is_active: bool

    model_config = {"from_attributes": True}


class LanguageUpsert(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    multiplier: Decimal = Field(..., ge=Decimal("1.0"), le=Decimal("3.0"), decimal_places=2)
    is_active: bool = True


class CertificationTypeRead(BaseModel):
    code: str
    name: str
    price: Decimal
    is_active: bool

    model_config = {"from_attributes": True}


class CertificationTypeUpsert(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    is_active: bool = True


class TurnaroundOptionRead(BaseModel):
    code: str
    name: str
    fee_type: str
    fee_value: Decimal
    estimated_days: int
    is_rush: bool
    is_default: bool
    is_active: bool

    model_config = {"from_attributes": True}


class DeliveryOptionRead(BaseModel):
    code: str
    name: str
    price: Decimal
    is_physical: bool
    is_active: bool

    model_config = {"from_attributes": True}


class TaxRateRead(BaseModel):
    region_code: str
    region_name: str
    tax_name: str
    rate: Decimal
    is_active: bool

    model_config = {"from_attributes": True}


class RateCardRead(BaseModel):
    base_rate: Decimal
    words_per_page: int
    complexity_multipliers: dict[str, Decimal]
    default_tax_rate: Decimal
    languages: list[LanguageRead]
    certification_types: list[CertificationTypeRead]
    turnaround_options: list[TurnaroundOptionRead]
    delivery_options: list[DeliveryOptionRead]
    tax_rates: list[TaxRateRead]
