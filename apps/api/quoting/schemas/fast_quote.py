"""Pydantic schemas for staff-built (Fast Quote) quotes."""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from quoting.schemas.quote import AdjustmentIn, CustomerIn


class FastQuoteDocument(BaseModel):
    filename: str | None = Field(None, max_length=255)
    page_count: int = Field(1, ge=1)
    word_count: int | None = Field(None, ge=0)
    document_type: str | None = Field(None, max_length=100)
    complexity: str = "standard"
    certification_type: str | None = None
    billable_pages_override: Decimal | None = Field(None, gt=0)
    per_page_rate_override: Decimal | None = Field(None, ge=0)


class FastQuoteRequest(BaseModel):
    customer: CustomerIn
    source_language: str = Field(..., min_length=2, max_length=10)
    target_language: str | None = Field(None, max_length=10)
    documents: list[FastQuoteDocument] = Field(..., min_length=1)
    turnaround: str = "standard"
    delivery_option: str | None = None
    tax_region: str | None = None
    discount: AdjustmentIn | None = None
    surcharge: AdjustmentIn | None = None

    @model_validator(mode="after")
    def require_contact(self) -> "FastQuoteRequest":
        if not self.customer.email and not self.customer.phone:
            raise ValueError("customer email or phone is required")
        return self


class FastQuoteLinePreview(BaseModel):
    position: int
    complexity: str
    complexity_multiplier: Decimal
    auto_billable_pages: Decimal
    billable_pages: Decimal
    auto_per_page_rate: Decimal
    per_page_rate: Decimal
    certification_fee: Decimal
    line_total: Decimal


class FastQuotePreview(BaseModel):
    lines: list[FastQuoteLinePreview]
    base_subtotal: Decimal
    rush_fee: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    surcharge_amount: Decimal
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal


class FastQuoteCreated(BaseModel):
    quote_id: UUID
    quote_number: str
    total: Decimal
