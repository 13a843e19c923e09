"""HITL review record model."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quoting.db.base import Base
from quoting.db.enums import ReviewStatus
from quoting.db.types import utcnow

if TYPE_CHECKING:
    from quoting.db.models import Quote, StaffUser

_OPEN_REVIEW_PREDICATE = "status IN ('pending', 'in_review', 'escalated')"


class ReviewRecord(Base):
    """
    Human review wrapper around a quote.

    `assigned_to` is the claim mutex: it is non-null exactly while the review
    is `in_review` and is only ever written with a conditional UPDATE.
    At most one open (pending / in_review / escalated) review per quote.
    """

    __tablename__ = "review_records"
    __table_args__ = (
        Index(
            "uq_review_records_open_per_quote",
            "quote_id",
            unique=True,
            postgresql_where=text(_OPEN_REVIEW_PREDICATE),
            sqlite_where=text(_OPEN_REVIEW_PREDICATE),
        ),
        Index("idx_review_records_queue", "status", "priority", "sla_deadline"),
        Index("idx_review_records_assignee", "assigned_to"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    quote_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), default=ReviewStatus.PENDING.value, nullable=False
    )
    trigger_reasons: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    sla_deadline: Mapped[datetime | None] = mapped_column(nullable=True)

    # Claim
    assigned_to: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("staff_users.id", ondelete="SET NULL"), nullable=True
    )
    claimed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    previous_assigned_to: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    claim_overridden_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Disposition
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    affected_document_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    escalated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    escalated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utcnow, onupdate=utcnow, nullable=False
    )

    quote: Mapped["Quote"] = relationship(back_populates="reviews")
    assignee: Mapped["StaffUser | None"] = relationship(foreign_keys=[assigned_to])
