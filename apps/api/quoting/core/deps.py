"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from quoting.core.config import settings
from quoting.core.security import decode_session_token
from quoting.db.enums import StaffRole
from quoting.db.session import SessionLocal
from quoting.schemas.auth import StaffSession, TokenPayload


# Cookie and header names
COOKIE_NAME = "quote_staff_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    Uncommitted work (any failed operation) is discarded on close.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_staff(request: Request, db: Session = Depends(get_db)) -> StaffSession:
    """
    Get authenticated staff member from session cookie.

    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - Staff user exists and is active
    - Token version matches (for revocation support)
    - Role is a known enum value

    Raises:
        HTTPException 401: Authentication failed
        HTTPException 403: Unknown role
    """
    # Import here to avoid circular imports
    from quoting.db.models import StaffUser

    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = TokenPayload.model_validate(decode_session_token(token))
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid session")

    staff = db.query(StaffUser).filter(StaffUser.id == payload.sub).first()
    if not staff:
        raise HTTPException(status_code=401, detail="User not found")

    if not staff.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    if staff.token_version != payload.token_version:
        raise HTTPException(status_code=401, detail="Session revoked")

    # Validate role is a known enum value - return 403 not 500
    if not StaffRole.has_value(staff.role):
        raise HTTPException(
            status_code=403,
            detail=f"Unknown role '{staff.role}'. Contact administrator.",
        )

    return StaffSession(
        staff_id=staff.id,
        role=StaffRole(staff.role),
        email=staff.email,
        display_name=staff.display_name,
    )


def require_role(minimum: StaffRole):
    """
    Dependency factory for rank-based authorization.

    Usage:
        @router.put("/x", dependencies=[Depends(require_role(StaffRole.ADMIN))])
    """
    def dependency(session: StaffSession = Depends(get_current_staff)) -> StaffSession:
        if not session.role.at_least(minimum):
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action",
            )
        return session
    return dependency


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Apply to state-changing endpoints (POST, PUT, PATCH, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )


def verify_internal_secret(x_internal_secret: str = Header(...)) -> None:
    """Verify the internal secret header (cron jobs, payment callback)."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")
