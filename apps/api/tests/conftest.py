"""
Test configuration and fixtures.

Provides:
- A fresh in-memory SQLite schema per test, seeded with the default rate card
- Staff users per role and JWT session cookies for them
- HTTPX AsyncClient (anonymous and authenticated) bound to the test session
- Builders for quotes in the common lifecycle states
"""
import os
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import AsyncGenerator, Generator

# Must be set before quoting modules read settings
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

import quoting.db.models  # noqa: F401  (register tables)
from quoting.core.deps import COOKIE_NAME, CSRF_HEADER, CSRF_HEADER_VALUE, get_db
from quoting.core.security import create_session_token
from quoting.db.base import Base
from quoting.db.enums import StaffRole
from quoting.db.models import Quote, ReviewRecord, StaffUser
from quoting.db.session import SessionLocal, engine
from quoting.main import app
from quoting.schemas.quote import AnalysisResultIn, DocumentIn, QuoteCreate
from quoting.services import quote_lifecycle_service, quote_service
from quoting.services.rate_config_service import seed_reference_data

INTERNAL_HEADERS = {"X-Internal-Secret": "test-internal-secret"}


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Creates the schema, seeds reference data and yields a session.

    App code may commit freely; the schema is dropped after each test.
    """
    Base.metadata.create_all(engine)
    session = SessionLocal()
    seed_reference_data(session)
    session.commit()

    yield session

    session.close()
    Base.metadata.drop_all(engine)


def make_staff(db: Session, role: StaffRole, name: str | None = None) -> StaffUser:
    staff = StaffUser(
        id=uuid.uuid4(),
        email=f"{role.value}-{uuid.uuid4().hex[:8]}@test.com",
        display_name=name or role.value.replace("_", " ").title(),
        role=role.value,
    )
    db.add(staff)
    db.commit()
    return staff


@pytest.fixture(scope="function")
def reviewer(db: Session) -> StaffUser:
    return make_staff(db, StaffRole.REVIEWER, "Reviewer A")


@pytest.fixture(scope="function")
def other_reviewer(db: Session) -> StaffUser:
    return make_staff(db, StaffRole.REVIEWER, "Reviewer B")


@pytest.fixture(scope="function")
def senior_reviewer(db: Session) -> StaffUser:
    return make_staff(db, StaffRole.SENIOR_REVIEWER)


@pytest.fixture(scope="function")
def admin(db: Session) -> StaffUser:
    return make_staff(db, StaffRole.ADMIN)


@pytest.fixture(scope="function")
def super_admin(db: Session) -> StaffUser:
    return make_staff(db, StaffRole.SUPER_ADMIN)


# =============================================================================
# Quote builders
# =============================================================================

def document(**overrides) -> DocumentIn:
    """1000 words, standard complexity, certified: $410.00 in Chinese."""
    values = {
        "filename": "birth-certificate.pdf",
        "page_count": 4,
        "word_count": 1000,
        "complexity": "standard",
        "certification_type": "certified",
    }
    values.update(overrides)
    return DocumentIn(**values)


def analysis(**overrides) -> AnalysisResultIn:
    """Confident analysis agreeing with `document()`."""
    values = {
        "word_count": 1000,
        "page_count": 4,
        "complexity": "standard",
        "document_type": "birth_certificate",
        "detected_language": "zh",
        "ocr_confidence": 0.97,
        "language_confidence": 0.99,
        "classification_confidence": 0.95,
        "complexity_confidence": 0.92,
    }
    values.update(overrides)
    return AnalysisResultIn(**values)


def create_quote(db: Session, source_language: str = "zh", **kwargs) -> Quote:
    data = QuoteCreate(
        source_language=source_language,
        document=kwargs.pop("doc", None) or document(),
        **kwargs,
    )
    quote = quote_service.create_quote(db, data)
    db.commit()
    return quote


def analysed_quote(db: Session, result: AnalysisResultIn | None = None, **kwargs) -> Quote:
    """Quote in details_pending with every line analysed."""
    quote = create_quote(db, **kwargs)
    quote_service.ingest_analysis(db, quote.id, quote.lines[0].id, result or analysis())
    quote_lifecycle_service.submit_quote(db, quote.id)
    db.commit()
    return quote


def quote_in_review(db: Session, **analysis_overrides) -> tuple[Quote, ReviewRecord]:
    """Quote routed to review by a low OCR confidence reading."""
    result = analysis(**{"ocr_confidence": 0.5, **analysis_overrides})
    quote = analysed_quote(db, result)
    quote, review = quote_lifecycle_service.evaluate_quote(db, quote.id)
    db.commit()
    assert review is not None
    return quote, review


@pytest.fixture(scope="function")
def review_quote(db: Session) -> tuple[Quote, ReviewRecord]:
    return quote_in_review(db)


# =============================================================================
# Auth / Client Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    staff: StaffUser
    token: str
    cookie_name: str = COOKIE_NAME


def auth_for(staff: StaffUser) -> TestAuth:
    token = create_session_token(
        staff_id=staff.id,
        role=staff.role,
        token_version=staff.token_version,
    )
    return TestAuth(staff=staff, token=token)


def _override_db(db: Session) -> None:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for the public quote endpoints."""
    _override_db(db)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def staff_client(staff: StaffUser, csrf: bool = True) -> AsyncClient:
    auth = auth_for(staff)
    headers = {CSRF_HEADER: CSRF_HEADER_VALUE} if csrf else {}
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={auth.cookie_name: auth.token},
        headers=headers,
    )


@pytest.fixture(scope="function")
async def authed_client(db: Session, reviewer: StaffUser) -> AsyncGenerator[AsyncClient, None]:
    """Reviewer AsyncClient with JWT cookie and CSRF header."""
    _override_db(db)
    async with staff_client(reviewer) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def admin_client(db: Session, admin: StaffUser) -> AsyncGenerator[AsyncClient, None]:
    _override_db(db)
    async with staff_client(admin) as c:
        yield c
    app.dependency_overrides.clear()


def money(value) -> Decimal:
    """JSON money fields arrive as strings."""
    return Decimal(str(value))
