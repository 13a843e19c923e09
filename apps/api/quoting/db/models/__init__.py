"""SQLAlchemy ORM models."""

from quoting.db.models.activity import QuoteActivityLog
from quoting.db.models.corrections import Correction
from quoting.db.models.quotes import DocumentLine, Quote
from quoting.db.models.reference import (
    CertificationType,
    DeliveryOption,
    Language,
    TaxRate,
    TurnaroundOption,
)
from quoting.db.models.reviews import ReviewRecord
from quoting.db.models.staff import Customer, StaffUser

__all__ = [
    "CertificationType",
    "Correction",
    "Customer",
    "DeliveryOption",
    "DocumentLine",
    "Language",
    "Quote",
    "QuoteActivityLog",
    "ReviewRecord",
    "StaffUser",
    "TaxRate",
    "TurnaroundOption",
]
