"""
Pydantic data models for the SEC EDGAR filing reader.

These models enforce type safety and validation for the entities stored in
SQLite (companies, documents, document chunks, annotations) and for the
filing listings read from SEC EDGAR.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class AnnotationType(str, Enum):
    HIGHLIGHT = "highlight"
    NOTE = "note"
    BOOKMARK = "bookmark"


class HighlightColor(str, Enum):
    ORANGE = "orange"
    GREEN = "green"
    PINK = "pink"
    BLUE = "blue"


DEFAULT_COLOR = HighlightColor.ORANGE


def normalize_cik(cik) -> str:
    """Zero-pad a CIK to the 10 digits SEC uses in its URLs and listings."""
    value = str(cik).strip()
    if not value.isdigit():
        raise ValueError(f"CIK must be numeric, got '{cik}'")
    if len(value) > 10:
        raise ValueError(f"CIK has more than 10 digits: '{cik}'")
    return value.zfill(10)


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------

class CompanyCreate(BaseModel):
    """A filer to be stored locally."""
    cik: str
    name: str = Field(min_length=1)
    ticker: Optional[str] = None

    @field_validator("cik", mode="before")
    @classmethod
    def _pad_cik(cls, v):
        return normalize_cik(v)


class Company(CompanyCreate):
    id: int
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class DocumentCreate(BaseModel):
    """
    Metadata for an imported filing. Content is optional; when given it is
    chunked on write and the inline column is cleared.
    """
    company_id: int
    accession_number: str = Field(min_length=1)
    form_type: str = Field(min_length=1)
    filing_date: str
    report_date: Optional[str] = None
    document_url: str
    title: str
    content: Optional[str] = None


class Document(BaseModel):
    id: int
    company_id: int
    accession_number: str
    form_type: str
    filing_date: str
    report_date: Optional[str] = None
    document_url: str
    title: str
    content: Optional[str] = None
    total_pages: int = 1
    text_length: int = 0
    last_accessed_at: Optional[str] = None
    created_at: Optional[str] = None


class RecentDocument(Document):
    company_name: str


class DocumentChunk(BaseModel):
    """A stored slice of a document's content; one chunk is one page."""
    id: int
    document_id: int
    page_number: int
    content: str
    text_start: int = 0
    text_length: int = 0
    created_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------

class AnnotationCreate(BaseModel):
    """
    A highlight, note or bookmark anchored to the text range
    [start_offset, end_offset) of a document.
    """
    document_id: int
    type: AnnotationType
    selected_text: str = Field(min_length=1)
    note: Optional[str] = None
    color: HighlightColor = DEFAULT_COLOR
    page_number: int = Field(default=1, ge=1)
    start_offset: int = Field(ge=0)
    end_offset: int

    @model_validator(mode="after")
    def _check_range(self):
        if self.end_offset <= self.start_offset:
            raise ValueError("end_offset must be greater than start_offset")
        # Only highlights pick a colour
        if self.type != AnnotationType.HIGHLIGHT:
            self.color = DEFAULT_COLOR
        return self


class AnnotationUpdate(BaseModel):
    """Partial update; only the fields that were sent are applied."""
    type: Optional[AnnotationType] = None
    selected_text: Optional[str] = Field(default=None, min_length=1)
    note: Optional[str] = None
    color: Optional[HighlightColor] = None
    page_number: Optional[int] = Field(default=None, ge=1)
    start_offset: Optional[int] = Field(default=None, ge=0)
    end_offset: Optional[int] = None


class Annotation(BaseModel):
    id: int
    document_id: int
    type: AnnotationType
    selected_text: str
    note: Optional[str] = None
    color: HighlightColor = DEFAULT_COLOR
    page_number: int = 1
    start_offset: int
    end_offset: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AnnotationSearchResult(Annotation):
    document_title: str
    company_name: str


# ---------------------------------------------------------------------------
# SEC EDGAR listings
# ---------------------------------------------------------------------------

class SecCompanyMatch(BaseModel):
    """A filer found in SEC's company_tickers.json."""
    cik: str
    name: str
    ticker: Optional[str] = None


class SecFiling(BaseModel):
    """One row of the 'recent' filings table of a submissions payload."""
    accession_number: str
    filing_date: str
    report_date: Optional[str] = None
    acceptance_date_time: Optional[str] = None
    form: str
    file_number: Optional[str] = None
    film_number: Optional[str] = None
    items: Optional[str] = None
    size: int = 0
    is_xbrl: bool = False
    is_inline_xbrl: bool = False
    primary_document: str = ""
    primary_doc_description: str = ""
