"""Pydantic schemas for HITL reviews."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from quoting.db.enums import ReviewStatus


class ClaimRequest(BaseModel):
    """Claimer is the current staff member."""

    override: bool = False


class ApproveRequest(BaseModel):
    notes: str | None = Field(None, max_length=5000)


class RejectRequest(BaseModel):
    reason: str = Field(..., max_length=5000)
    affected_document_ids: list[UUID] = Field(default_factory=list)


class EscalateRequest(BaseModel):
    confirm: bool = False
    notes: str | None = Field(None, max_length=5000)


class ReviewRead(BaseModel):
    id: UUID
    quote_id: UUID
    status: ReviewStatus
    trigger_reasons: list[str]
    priority: int
    sla_deadline: datetime | None
    assigned_to: UUID | None
    claimed_at: datetime | None
    previous_assigned_to: UUID | None
    claim_overridden_at: datetime | None
    resolution_notes: str | None
    rejection_reason: str | None
    affected_document_ids: list[UUID] | None
    escalated_by: UUID | None
    escalated_at: datetime | None
    resolved_by: UUID | None
    resolved_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReviewQueueItem(ReviewRead):
    quote_number: str
    quote_total: Decimal
    is_overdue: bool = False
