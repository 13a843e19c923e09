"""Rate limiting configuration for the quoting API."""

import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from quoting.core.config import settings

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
DEFAULT_LIMITS = (
    []
    if IS_TESTING or settings.RATE_LIMIT_API <= 0
    else [f"{settings.RATE_LIMIT_API}/minute"]
)
PUBLIC_LIMIT = f"{max(settings.RATE_LIMIT_PUBLIC, 1)}/minute"

# In-memory storage: one counter set per worker process
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    default_limits=DEFAULT_LIMITS,
    enabled=not IS_TESTING,
)
