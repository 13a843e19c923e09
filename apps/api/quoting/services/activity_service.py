"""Activity logging service - centralized quote activity tracking."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from quoting.db.enums import QuoteActivityType
from quoting.db.models import QuoteActivityLog


def log_activity(
    db: Session,
    quote_id: UUID,
    activity_type: QuoteActivityType,
    actor_staff_id: UUID | None = None,
    details: dict | None = None,
) -> QuoteActivityLog:
    """
    Log a quote activity.

    Args:
        db: Database session
        quote_id: The quote this activity is for
        activity_type: Type of activity (from QuoteActivityType enum)
        actor_staff_id: Staff member who performed the action (None for customer/system)
        details: Type-specific details as JSON

    Returns:
        The created activity log entry
    """
    activity = QuoteActivityLog(
        quote_id=quote_id,
        activity_type=activity_type.value,
        actor_staff_id=actor_staff_id,
        details=details,
    )
    db.add(activity)
    db.flush()  # Don't commit - let caller control transaction
    return activity


def log_status_changed(
    db: Session,
    quote_id: UUID,
    from_status: str,
    to_status: str,
    actor_staff_id: UUID | None = None,
    reason: str | None = None,
) -> QuoteActivityLog:
    details = {"from": from_status, "to": to_status}
    if reason:
        details["reason"] = reason
    return log_activity(
        db=db,
        quote_id=quote_id,
        activity_type=QuoteActivityType.STATUS_CHANGED,
        actor_staff_id=actor_staff_id,
        details=details,
    )


def list_activity(db: Session, quote_id: UUID, limit: int = 100) -> list[QuoteActivityLog]:
    """Newest first."""
    return list(
        db.execute(
            select(QuoteActivityLog)
            .where(QuoteActivityLog.quote_id == quote_id)
            .order_by(QuoteActivityLog.created_at.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )
