"""Application configuration with environment variables."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str

    # Session Token (issued by the staff portal's identity provider, supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 8

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Internal scheduled endpoints (cron jobs, payment callback)
    INTERNAL_SECRET: str = ""

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 60
    RATE_LIMIT_PUBLIC: int = 20  # Anonymous customer quote flow

    # Pricing defaults (per-language/certification/tax data lives in reference tables)
    BASE_RATE: Decimal = Decimal("65.00")
    WORDS_PER_PAGE: int = 225
    COMPLEXITY_MULTIPLIER_STANDARD: Decimal = Decimal("1.00")
    COMPLEXITY_MULTIPLIER_COMPLEX: Decimal = Decimal("1.15")
    COMPLEXITY_MULTIPLIER_HIGHLY_COMPLEX: Decimal = Decimal("1.25")
    DEFAULT_TAX_RATE: Decimal = Decimal("0.05")

    # Quote lifecycle
    QUOTE_TTL_DAYS: int = 30
    TOMBSTONE_RETENTION_DAYS: int = 30

    # Human review
    REVIEW_SLA_HOURS: int = 4
    REVIEW_CLAIM_IDLE_HOURS: int = 0  # 0 disables idle-claim reclamation

    # HITL thresholds (a failed check routes the quote to manual review)
    HITL_OCR_CONFIDENCE_MIN: float = 0.80
    HITL_LANGUAGE_CONFIDENCE_MIN: float = 0.85
    HITL_CLASSIFICATION_CONFIDENCE_MIN: float = 0.75
    HITL_COMPLEXITY_CONFIDENCE_MIN: float = 0.70
    HITL_MAX_AUTO_APPROVE_PAGES: int = 20
    HITL_MAX_AUTO_APPROVE_VALUE: Decimal = Decimal("2000.00")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"


settings = Settings()
