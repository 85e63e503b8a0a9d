"""
Pydantic models for API request/response validation.
Auto-generates OpenAPI documentation.

Stored entities (Company, Document, Annotation, ...) are served with the
models from the top-level models module; this module holds the shapes
that only exist at the HTTP boundary.
"""

from pydantic import BaseModel, Field, model_validator
from typing import List, Optional

from models import Document, SecFiling


class DatabaseStatsResponse(BaseModel):
    """Row counts of the reader database."""
    total_companies: int
    total_documents: int
    total_document_chunks: int
    total_annotations: int


class HealthResponse(BaseModel):
    """API health check response."""
    service: str
    version: str
    status: str
    database_path: str
    database_stats: DatabaseStatsResponse


class SuccessResponse(BaseModel):
    success: bool = True


class CompanySearchResult(BaseModel):
    """A company match, either stored locally or found on SEC EDGAR."""
    cik: str
    name: str
    ticker: Optional[str] = None
    id: Optional[int] = None
    source: str = "local"  # "local" or "sec"


class FilingsResponse(BaseModel):
    cik: str
    count: int
    filings: List[SecFiling]


class ImportRequest(BaseModel):
    """Import a filing by company CIK or ticker."""
    cik: Optional[str] = None
    ticker: Optional[str] = None
    accession_number: Optional[str] = None
    form_type: str = "10-K"

    @model_validator(mode="after")
    def _needs_company(self):
        if not self.cik and not self.ticker:
            raise ValueError("Either cik or ticker is required")
        return self


class ImportResponse(BaseModel):
    created: bool
    document: Document


class ContentUpdate(BaseModel):
    content: str = Field(min_length=1)


class ContentUpdateResponse(BaseModel):
    success: bool = True
    total_pages: int
    text_length: int


class ContentResponse(BaseModel):
    content: str


class RenderedResponse(BaseModel):
    """Filing HTML with the annotations re-inserted as spans."""
    document_id: int
    page_number: Optional[int] = None  # None when the whole filing is rendered
    total_pages: int
    text_start: int = 0
    annotation_count: int
    html: str


class LocateResponse(BaseModel):
    """Where to scroll to for a text offset."""
    document_id: int
    offset: int
    page_number: int
    page_offset: int
    fraction: float
    selector: str


class ErrorResponse(BaseModel):
    """Error response."""
    detail: str
