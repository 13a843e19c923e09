"""Correction ledger enums."""

from enum import Enum


class CorrectableField(str, Enum):
    """Document line fields a reviewer may override."""

    DOCUMENT_TYPE = "document_type"
    WORD_COUNT = "word_count"
    PAGE_COUNT = "page_count"
    BILLABLE_PAGES = "billable_pages"
    COMPLEXITY = "complexity"
    COMPLEXITY_MULTIPLIER = "complexity_multiplier"
    PER_PAGE_RATE = "per_page_rate"
    CERTIFICATION_TYPE = "certification_type"
    LINE_TOTAL = "line_total"
