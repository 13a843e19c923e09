"""Correction ledger model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from quoting.db.base import Base
from quoting.db.types import utcnow


class Correction(Base):
    """
    One manual override of a document line field (append-only).

    Values are stored in their canonical text form so any field type fits;
    `original_value` / `corrected_value` are None when the field is empty
    (e.g. no certification selected).
    """

    __tablename__ = "corrections"
    __table_args__ = (
        Index("idx_corrections_line_field", "document_line_id", "field", "created_at"),
        Index("idx_corrections_review", "review_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    review_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("review_records.id", ondelete="CASCADE"), nullable=True
    )
    document_line_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_lines.id", ondelete="CASCADE"), nullable=False
    )
    field: Mapped[str] = mapped_column(String(30), nullable=False)
    original_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrected_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    submit_to_knowledge_base: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    knowledge_base_comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_staff_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("staff_users.id", ondelete="RESTRICT"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
