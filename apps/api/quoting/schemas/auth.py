"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from quoting.db.enums import StaffRole


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # staff_user_id
    role: str
    token_version: int


class StaffSession(BaseModel):
    """
    Session context for authenticated staff requests.

    Returned by the get_current_staff dependency.
    """
    staff_id: UUID
    role: StaffRole  # Validated enum
    email: str
    display_name: str
