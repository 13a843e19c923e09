"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from quoting.core.config import settings
from quoting.core.errors import AlreadyClaimedError, QuotingError, http_status_for
from quoting.core.structured_logging import build_log_context
from quoting.db.session import engine

logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Don't send customer data to Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from quoting.core.rate_limit import limiter

# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Quoting API",
    description="Translation quote pricing and human review workflow",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Internal-Secret"],
    expose_headers=["X-Request-ID"],
)


@app.exception_handler(QuotingError)
async def quoting_error_handler(request: Request, exc: QuotingError):
    """Domain errors a router did not translate itself."""
    status_code = http_status_for(exc)
    logger.info(
        "%s on %s",
        type(exc).__name__,
        request.url.path,
        extra=build_log_context(route=request.url.path),
    )
    content: dict = {"detail": str(exc)}
    if isinstance(exc, AlreadyClaimedError) and exc.claimed_by:
        content["claimed_by"] = str(exc.claimed_by)
    return JSONResponse(status_code=status_code, content=content)


# ============================================================================
# Routers
# ============================================================================

from quoting.routers import fast_quotes, internal, quotes, rate_config, reviews

app.include_router(rate_config.router, prefix="/rate-config", tags=["rate-config"])
app.include_router(quotes.router, prefix="/quotes", tags=["quotes"])
app.include_router(reviews.router, prefix="/reviews", tags=["reviews"])
app.include_router(fast_quotes.router, prefix="/fast-quotes", tags=["fast-quotes"])

# Internal endpoints (payment callback + scheduled sweeps)
app.include_router(internal.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
