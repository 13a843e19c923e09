"""Quote and document line models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quoting.db.base import Base
from quoting.db.enums import (
    ComplexityTier,
    ProcessingStatus,
    QuoteStatus,
)
from quoting.db.types import utcnow

if TYPE_CHECKING:
    from quoting.db.models import Customer, ReviewRecord


class Quote(Base):
    """
    One translation request/order.

    Totals are written only by the aggregator; `total == subtotal + tax_amount`
    after every recalculation. Cancelled quotes are tombstoned via
    `deleted_at` and purged after the retention window.
    """

    __tablename__ = "quotes"
    __table_args__ = (
        Index("idx_quotes_status_expires", "status", "expires_at"),
        Index("idx_quotes_deleted", "deleted_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quote_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), default=QuoteStatus.DRAFT.value, nullable=False
    )
    processing_status: Mapped[str] = mapped_column(
        String(20), default=ProcessingStatus.PENDING.value, nullable=False
    )
    customer_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    created_by_staff_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("staff_users.id", ondelete="SET NULL"), nullable=True
    )
    is_manual_quote: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Languages (the source language multiplier drives the per-page rate)
    source_language_code: Mapped[str] = mapped_column(
        String(10), ForeignKey("languages.code"), nullable=False
    )
    target_language_code: Mapped[str | None] = mapped_column(String(10), nullable=True)

    # Order-level options
    turnaround_code: Mapped[str] = mapped_column(
        String(30), default="standard", nullable=False
    )
    delivery_option_code: Mapped[str | None] = mapped_column(String(30), nullable=True)
    tax_region_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    discount_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    discount_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    discount_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    surcharge_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    surcharge_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    surcharge_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Totals (cents precision)
    base_subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    rush_fee: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    delivery_fee: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    surcharge_amount: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(7, 5), default=Decimal("0"), nullable=False
    )
    tax_amount: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    total: Mapped[Decimal] = mapped_column(default=Decimal("0.00"), nullable=False)
    priced_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Payment (captured externally)
    paid_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    # Relationships
    lines: Mapped[list["DocumentLine"]] = relationship(
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="DocumentLine.position",
    )
    customer: Mapped["Customer | None"] = relationship()
    reviews: Mapped[list["ReviewRecord"]] = relationship(
        back_populates="quote",
        order_by="ReviewRecord.created_at",
    )


class DocumentLine(Base):
    """
    One billable unit (usually one uploaded file).

    `ai_*` columns hold the last automated analysis and are never edited by
    staff; `*_override` columns hold reviewer overrides. The effective
    `billable_pages`, `per_page_rate` and `line_total` are written by the
    pricer on every change.
    """

    __tablename__ = "document_lines"
    __table_args__ = (Index("idx_document_lines_quote", "quote_id", "position"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    filename: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Current (confirmed) attributes
    document_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    detected_language_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    word_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    page_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    complexity: Mapped[str] = mapped_column(
        String(20), default=ComplexityTier.STANDARD.value, nullable=False
    )
    complexity_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(4, 2), default=Decimal("1.00"), nullable=False
    )
    certification_type_code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Automated analysis baseline
    analysis_status: Mapped[str] = mapped_column(
        String(20), default=ProcessingStatus.PENDING.value, nullable=False
    )
    ai_document_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ai_word_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ai_page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ai_complexity: Mapped[str | None] = mapped_column(String(20), nullable=True)
    ocr_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    language_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    classification_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    complexity_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    analyzed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Reviewer overrides (None = use the auto value)
    complexity_multiplier_override: Mapped[Decimal | None] = mapped_column(
        Numeric(4, 2), nullable=True
    )
    billable_pages_override: Mapped[Decimal | None] = mapped_column(
        Numeric(8, 1), nullable=True
    )
    per_page_rate_override: Mapped[Decimal | None] = mapped_column(nullable=True)
    line_total_override: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Pricing (auto values are kept for display next to any override)
    auto_billable_pages: Mapped[Decimal | None] = mapped_column(
        Numeric(8, 1), nullable=True
    )
    billable_pages: Mapped[Decimal | None] = mapped_column(Numeric(8, 1), nullable=True)
    auto_per_page_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    per_page_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    certification_fee: Mapped[Decimal] = mapped_column(
        default=Decimal("0.00"), nullable=False
    )
    line_total: Mapped[Decimal | None] = mapped_column(nullable=True)

    resubmission_requested: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    quote: Mapped["Quote"] = relationship(back_populates="lines")

    @property
    def is_priced(self) -> bool:
        return self.billable_pages is not None and self.per_page_rate is not None
