"""Rate reference data endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from quoting.core.deps import get_db, require_csrf_header, require_role
from quoting.core.errors import ValidationError
from quoting.db.enums import StaffRole
from quoting.schemas.auth import StaffSession
from quoting.schemas.rate_config import (
    CertificationTypeRead,
    CertificationTypeUpsert,
    LanguageRead,
    LanguageUpsert,
    RateCardRead,
)
from quoting.services import rate_config_service

router = APIRouter()


@router.get("", response_model=RateCardRead)
def get_rate_card(db: Session = Depends(get_db)):
    """Full rate card (public; the quote form reads its options from here)."""
    return RateCardRead.model_validate(rate_config_service.list_rate_card(db), from_attributes=True)


@router.put(
    "/languages/{code}",
    response_model=LanguageRead,
    dependencies=[Depends(require_csrf_header)],
)
def upsert_language(
    code: str,
    data: LanguageUpsert,
    session: StaffSession = Depends(require_role(StaffRole.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        language = rate_config_service.upsert_language(
            db,
            code=code.lower(),
            name=data.name,
            multiplier=data.multiplier,
            is_active=data.is_active,
            actor_staff_id=session.staff_id,
        )
        db.commit()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return LanguageRead.model_validate(language)


@router.put(
    "/certification-types/{code}",
    response_model=CertificationTypeRead,
    dependencies=[Depends(require_csrf_header)],
)
def upsert_certification_type(
    code: str,
    data: CertificationTypeUpsert,
    session: StaffSession = Depends(require_role(StaffRole.ADMIN)),
    db: Session = Depends(get_db),
):
    try:
        certification = rate_config_service.upsert_certification_type(
            db,
            code=code,
            name=data.name,
            price=data.price,
            is_active=data.is_active,
            actor_staff_id=session.staff_id,
        )
        db.commit()
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return CertificationTypeRead.model_validate(certification)
