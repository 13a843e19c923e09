"""Pydantic schemas for quotes and document lines."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from quoting.db.enums import FeeType
from quoting.schemas.review import ReviewRead


class CustomerIn(BaseModel):
    full_name: str | None = Field(None, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    region_code: str | None = Field(None, max_length=10)

    @field_validator("phone")
    @classmethod
    def strip_phone(cls, v: str | None) -> str | None:
        if v is None or v.strip() == "":
            return None
        return v.strip()


class DocumentIn(BaseModel):
    """One uploaded document (the file itself lives in external storage)."""

    filename: str | None = Field(None, max_length=255)
    page_count: int = Field(1, ge=1)
    word_count: int | None = Field(None, ge=0)
    document_type: str | None = Field(None, max_length=100)
    complexity: str = "standard"
    certification_type: str | None = Field(None, max_length=50)


class QuoteCreate(BaseModel):
    """Create a quote with its first document."""

    source_language: str = Field(..., min_length=2, max_length=10)
    target_language: str | None = Field(None, max_length=10)
    customer: CustomerIn | None = None
    document: DocumentIn
    turnaround: str = "standard"
    delivery_option: str | None = None
    tax_region: str | None = None


class QuoteOptionsUpdate(BaseModel):
    """Customer-selectable order options. Only fields sent are changed."""

    turnaround: str | None = None
    delivery_option: str | None = None
    tax_region: str | None = None
    source_language: str | None = Field(None, min_length=2, max_length=10)
    target_language: str | None = Field(None, max_length=10)


class AdjustmentIn(BaseModel):
    type: FeeType
    value: Decimal
    reason: str | None = Field(None, max_length=500)


class AdjustmentsUpdate(BaseModel):
    """Order-level discount and surcharge. Omitted fields are left alone; null removes."""

    discount: AdjustmentIn | None = None
    surcharge: AdjustmentIn | None = None
    expected_version: int | None = None


class AnalysisResultIn(BaseModel):
    """Output of the external OCR / AI analysis for one document."""

    failed: bool = False
    error: str | None = None
    word_count: int | None = Field(None, ge=0)
    page_count: int | None = Field(None, ge=1)
    complexity: str | None = None
    document_type: str | None = Field(None, max_length=100)
    detected_language: str | None = Field(None, max_length=10)
    ocr_confidence: float | None = Field(None, ge=0, le=1)
    language_confidence: float | None = Field(None, ge=0, le=1)
    classification_confidence: float | None = Field(None, ge=0, le=1)
    complexity_confidence: float | None = Field(None, ge=0, le=1)


class RecalculateRequest(BaseModel):
    """Versions the caller last read; any mismatch is a stale recompute."""

    expected_version: int | None = None
    line_versions: dict[UUID, int] | None = None


class ManualReviewRequest(BaseModel):
    note: str | None = Field(None, max_length=2000)


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class PaymentIn(BaseModel):
    amount: Decimal = Field(..., ge=0)
    reference: str | None = Field(None, max_length=255)


class DocumentLineRead(BaseModel):
    id: UUID
    position: int
    filename: str | None
    document_type: str | None
    detected_language_code: str | None
    word_count: int | None
    page_count: int
    complexity: str
    complexity_multiplier: Decimal
    certification_type_code: str | None
    analysis_status: str
    ai_document_type: str | None
    ai_word_count: int | None
    ai_page_count: int | None
    ai_complexity: str | None
    ocr_confidence: float | None
    language_confidence: float | None
    classification_confidence: float | None
    complexity_confidence: float | None
    auto_billable_pages: Decimal | None
    billable_pages: Decimal | None
    auto_per_page_rate: Decimal | None
    per_page_rate: Decimal | None
    certification_fee: Decimal
    line_total: Decimal | None
    billable_pages_override: Decimal | None
    per_page_rate_override: Decimal | None
    line_total_override: Decimal | None
    resubmission_requested: bool
    version_id: int

    model_config = {"from_attributes": True}


class QuoteRead(BaseModel):
    id: UUID
    quote_number: str
    status: str
    processing_status: str
    is_manual_quote: bool
    customer_id: UUID | None
    source_language_code: str
    target_language_code: str | None
    turnaround_code: str
    delivery_option_code: str | None
    tax_region_code: str | None
    discount_type: str | None
    discount_value: Decimal | None
    discount_reason: str | None
    surcharge_type: str | None
    surcharge_value: Decimal | None
    surcharge_reason: str | None
    base_subtotal: Decimal
    rush_fee: Decimal
    delivery_fee: Decimal
    discount_amount: Decimal
    surcharge_amount: Decimal
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total: Decimal
    paid_amount: Decimal | None
    paid_at: datetime | None
    expires_at: datetime
    created_at: datetime
    updated_at: datetime
    version_id: int
    lines: list[DocumentLineRead] = []

    model_config = {"from_attributes": True}


class QuoteActivityRead(BaseModel):
    id: UUID
    activity_type: str
    actor_staff_id: UUID | None
    details: dict | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SweepResult(BaseModel):
    processed: int


class EvaluationRead(BaseModel):
    """Outcome of the threshold check; `review` is set when a human is needed."""

    quote: QuoteRead
    review: ReviewRead | None = None
