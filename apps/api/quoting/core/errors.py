"""Domain error kinds shared by the pricing and review services.

Every pricing or state-machine operation either completes or raises one of
these before anything is committed. Routers map them onto HTTP responses.
"""

from uuid import UUID


class QuotingError(Exception):
    """Base exception for quoting domain errors."""

    pass


class ValidationError(QuotingError):
    """Malformed input (bad page count, unknown enum value, missing reason)."""

    pass


class AlreadyClaimedError(QuotingError):
    """Review is held by another staff member (claim race lost)."""

    def __init__(self, message: str, claimed_by: UUID | None = None):
        super().__init__(message)
        self.claimed_by = claimed_by


class NotClaimantError(QuotingError):
    """Correction or disposition attempted by someone other than the claimant."""

    pass


class InsufficientRoleError(QuotingError):
    """Caller's staff role does not grant this capability."""

    pass


class InvalidTransitionError(QuotingError):
    """Requested transition is not permitted from the current state."""

    pass


class StaleRecomputeError(QuotingError):
    """Line data changed underneath the request; refetch and retry."""

    pass


class QuoteNotFoundError(QuotingError):
    """Quote not found (or tombstoned)."""

    pass


class ReviewNotFoundError(QuotingError):
    """Review record not found."""

    pass


class DocumentLineNotFoundError(QuotingError):
    """Document line not found on the quote."""

    pass


# HTTP status per error kind (most specific class wins)
HTTP_STATUS_CODES: dict[type[QuotingError], int] = {
    ValidationError: 422,
    QuoteNotFoundError: 404,
    ReviewNotFoundError: 404,
    DocumentLineNotFoundError: 404,
    AlreadyClaimedError: 409,
    NotClaimantError: 403,
    InsufficientRoleError: 403,
    InvalidTransitionError: 409,
    StaleRecomputeError: 409,
}


def http_status_for(error: QuotingError) -> int:
    for cls in type(error).__mro__:
        if cls in HTTP_STATUS_CODES:
            return HTTP_STATUS_CODES[cls]
    return 400
