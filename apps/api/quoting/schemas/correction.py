"""Pydantic schemas for the correction ledger."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from quoting.db.enums import CorrectableField


class CorrectionCreate(BaseModel):
    document_line_id: UUID
    field: CorrectableField
    value: str | int | float | None
    expected_version: int | None = None
    reason: str | None = Field(None, max_length=2000)
    submit_to_knowledge_base: bool = False
    knowledge_base_comment: str | None = Field(None, max_length=2000)


class CorrectionRead(BaseModel):
    id: UUID
    quote_id: UUID
    review_id: UUID | None
    document_line_id: UUID
    field: CorrectableField
    original_value: str | None
    corrected_value: str | None
    reason: str | None
    submit_to_knowledge_base: bool
    knowledge_base_comment: str | None
    actor_staff_id: UUID
    created_at: datetime

    model_config = {"from_attributes": True}
