"""
FastAPI application for the SEC EDGAR filing reader.

Serves companies, imported filings (page by page or rendered with their
annotations) and the highlights, notes and bookmarks kept on them, with
auto-generated OpenAPI documentation at /docs.
"""

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from typing import List, Optional
import logging
import sqlite3
import time

from anchoring.text import AnchorError
from database import DatabaseManager
from importer import FilingImporter
from models import (
    Annotation,
    AnnotationCreate,
    AnnotationSearchResult,
    AnnotationType,
    AnnotationUpdate,
    Company,
    CompanyCreate,
    Document,
    DocumentChunk,
    DocumentCreate,
    RecentDocument,
    normalize_cik,
)
from sources.sec_edgar.base import NoDataError, ProviderError, RateLimitError
from sources.sec_edgar.client import SecEdgarClient

from .config import settings
from .data_access import ReaderDataProvider
from .models import (
    CompanySearchResult,
    ContentResponse,
    ContentUpdate,
    ContentUpdateResponse,
    FilingsResponse,
    HealthResponse,
    ImportRequest,
    ImportResponse,
    LocateResponse,
    RenderedResponse,
    SuccessResponse,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

MAX_LOG_LINE = 80

# Initialize FastAPI app
app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------------------------------------------------
# Dependencies
# ----------------------------------------------------------------

_db: Optional[DatabaseManager] = None
_sec: Optional[SecEdgarClient] = None


def get_db() -> DatabaseManager:
    """Shared database connection, opened on first use."""
    global _db
    if _db is None:
        _db = DatabaseManager(db_path=settings.DB_PATH, chunk_size=settings.CHUNK_SIZE)
        logger.info(f"Connected to database: {_db.db_path}")
    return _db


def get_sec_client() -> SecEdgarClient:
    global _sec
    if _sec is None:
        _sec = SecEdgarClient(
            user_agent=settings.SEC_USER_AGENT,
            min_interval=settings.SEC_MIN_INTERVAL,
        )
    return _sec


def get_data(db: DatabaseManager = Depends(get_db)) -> ReaderDataProvider:
    return ReaderDataProvider(db)


# ----------------------------------------------------------------
# Middleware & error mapping
# ----------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    path = request.url.path
    if path.startswith("/api"):
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        line = f"{request.method} {path} {response.status_code} in {elapsed_ms}ms"
        if len(line) > MAX_LOG_LINE:
            line = line[:MAX_LOG_LINE - 1] + "…"
        logger.info(line)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def _provider_http_error(e: ProviderError) -> HTTPException:
    if isinstance(e, NoDataError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, RateLimitError):
        return HTTPException(status_code=429, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


def _require_document(db: DatabaseManager, document_id: int) -> dict:
    document = db.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
    return document


# ----------------------------------------------------------------
# Health & Info
# ----------------------------------------------------------------

@app.get("/", response_model=HealthResponse, tags=["Health"])
def root(db: DatabaseManager = Depends(get_db)):
    """
    API health check and information.

    Returns service status and database row counts.
    """
    try:
        return {
            "service": settings.API_TITLE,
            "version": settings.API_VERSION,
            "status": "healthy",
            "database_path": db.db_path,
            "database_stats": db.get_stats(),
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ----------------------------------------------------------------
# Company Endpoints
# ----------------------------------------------------------------

@app.get("/api/companies/search", response_model=List[CompanySearchResult], tags=["Companies"])
def search_companies(
    q: str = Query(..., min_length=1),
    db: DatabaseManager = Depends(get_db),
    sec: SecEdgarClient = Depends(get_sec_client),
):
    """
    Search companies by name, ticker or CIK.

    Local companies are returned when any match; otherwise SEC EDGAR's
    ticker list is searched. An SEC failure yields an empty list.
    """
    local = db.search_companies(q)
    if local:
        return [CompanySearchResult(**c, source="local") for c in local]

    try:
        matches = sec.search_companies(q)
    except ProviderError as e:
        logger.warning(f"SEC company search for '{q}' failed: {e}")
        return []
    return [CompanySearchResult(**m.model_dump(), source="sec") for m in matches]


@app.get("/api/companies/{cik}", response_model=Company, tags=["Companies"])
def get_company(cik: str, db: DatabaseManager = Depends(get_db)):
    """Get a stored company by CIK (leading zeros optional)."""
    company = db.get_company_by_cik(cik)
    if not company:
        raise HTTPException(status_code=404, detail=f"Company with CIK '{cik}' not found")
    return company


@app.post("/api/companies", response_model=Company, status_code=201, tags=["Companies"])
def create_company(company: CompanyCreate, db: DatabaseManager = Depends(get_db)):
    try:
        return db.create_company(company)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=409, detail=f"Company with CIK '{company.cik}' already exists")


@app.get("/api/companies/{cik}/documents", response_model=List[Document], tags=["Companies"])
def get_company_documents(cik: str, db: DatabaseManager = Depends(get_db)):
    """Stored filings of a company, newest filing first."""
    company = db.get_company_by_cik(cik)
    if not company:
        raise HTTPException(status_code=404, detail=f"Company with CIK '{cik}' not found")
    return db.get_company_documents(company["id"])


@app.get("/api/companies/{cik}/filings", response_model=FilingsResponse, tags=["Companies"])
def get_company_filings(
    cik: str,
    forms: str = "10-K,10-Q",
    years: int = Query(settings.FILING_LOOKBACK_YEARS, ge=0),
    sec: SecEdgarClient = Depends(get_sec_client),
):
    """
    Filings available for import from SEC EDGAR.

    - **forms**: comma-separated form types (empty for all)
    - **years**: lookback window in years (0 for no limit)
    """
    try:
        padded = normalize_cik(cik)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    form_types = [f.strip() for f in forms.split(",") if f.strip()] or None
    try:
        filings = sec.get_filings(padded, form_types=form_types, years=years or None)
    except ProviderError as e:
        raise _provider_http_error(e)
    return FilingsResponse(cik=padded, count=len(filings), filings=filings)


# ----------------------------------------------------------------
# Document Endpoints
# ----------------------------------------------------------------

@app.get("/api/documents/recent", response_model=List[RecentDocument], tags=["Documents"])
def get_recent_documents(
    limit: int = Query(10, ge=1, le=100),
    db: DatabaseManager = Depends(get_db),
):
    """Most recently opened filings."""
    return db.get_recent_documents(limit)


@app.get("/api/documents/all", response_model=List[RecentDocument], tags=["Documents"])
def get_all_documents(q: Optional[str] = None, db: DatabaseManager = Depends(get_db)):
    """All stored filings, optionally filtered by title, form, accession or company."""
    try:
        return db.get_all_documents(q)
    except Exception as e:
        logger.error(f"Error fetching documents: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/documents/import", response_model=ImportResponse, tags=["Documents"])
def import_document(
    request: ImportRequest,
    response: Response,
    db: DatabaseManager = Depends(get_db),
    sec: SecEdgarClient = Depends(get_sec_client),
):
    """
    Import a filing from SEC EDGAR.

    Answers 201 when the filing was fetched and stored, 200 when it was
    already in the database.
    """
    importer = FilingImporter(db, sec)
    try:
        if request.cik:
            result = importer.import_filing(request.cik, request.accession_number, request.form_type)
        else:
            result = importer.import_ticker(request.ticker, request.accession_number, request.form_type)
    except ProviderError as e:
        raise _provider_http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    response.status_code = 201 if result.created else 200
    return ImportResponse(created=result.created, document=result.document)


@app.get("/api/documents/{document_id}", response_model=Document, tags=["Documents"])
def get_document(document_id: int, db: DatabaseManager = Depends(get_db)):
    """Filing metadata. Opening a filing bumps its last access time."""
    _require_document(db, document_id)
    db.update_document_last_accessed(document_id)
    return db.get_document(document_id)


@app.post("/api/documents", response_model=Document, status_code=201, tags=["Documents"])
def create_document(document: DocumentCreate, db: DatabaseManager = Depends(get_db)):
    """Store a filing; inline content is split into pages."""
    if db.get_company(document.company_id) is None:
        raise HTTPException(status_code=404, detail=f"Company {document.company_id} not found")
    try:
        return db.create_document(document)
    except sqlite3.IntegrityError:
        raise HTTPException(
            status_code=409,
            detail=f"Document '{document.accession_number}' already exists",
        )


@app.patch("/api/documents/{document_id}/content", response_model=ContentUpdateResponse, tags=["Documents"])
def update_document_content(
    document_id: int,
    body: ContentUpdate,
    data: ReaderDataProvider = Depends(get_data),
):
    """Replace a filing's content, re-split it into pages and re-anchor its annotations."""
    total_pages = data.update_content(document_id, body.content)
    if total_pages is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
    document = data.db.get_document(document_id)
    return ContentUpdateResponse(total_pages=total_pages, text_length=document["text_length"])


@app.get("/api/documents/{document_id}/page/{page_number}", response_model=DocumentChunk, tags=["Documents"])
def get_document_page(document_id: int, page_number: int, db: DatabaseManager = Depends(get_db)):
    chunk = db.get_document_chunk(document_id, page_number)
    if not chunk:
        raise HTTPException(
            status_code=404,
            detail=f"Page {page_number} of document {document_id} not found",
        )
    return chunk


@app.get("/api/documents/{document_id}/full-content", response_model=ContentResponse, tags=["Documents"])
def get_document_full_content(document_id: int, db: DatabaseManager = Depends(get_db)):
    content = db.get_document_full_content(document_id)
    if content is None:
        raise HTTPException(status_code=404, detail=f"No content for document {document_id}")
    return ContentResponse(content=content)


@app.get("/api/documents/{document_id}/rendered", response_model=RenderedResponse, tags=["Documents"])
def get_rendered_document(
    document_id: int,
    page: Optional[int] = Query(None, ge=1),
    data: ReaderDataProvider = Depends(get_data),
):
    """
    Filing HTML with every annotation re-inserted as a highlight span.

    - **page**: render a single page (omit for the whole filing)
    """
    try:
        rendered = data.render(document_id, page)
    except Exception as e:
        logger.error(f"Error rendering document {document_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    if rendered is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} or page {page} not found")
    return rendered


@app.get("/api/documents/{document_id}/locate", response_model=LocateResponse, tags=["Documents"])
def locate_in_document(
    document_id: int,
    offset: int = Query(..., ge=0),
    data: ReaderDataProvider = Depends(get_data),
):
    """Page and scroll position of a text offset, for jumping to an annotation."""
    try:
        target = data.locate(document_id, offset)
    except AnchorError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if target is None:
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
    return target


@app.delete("/api/documents/{document_id}", response_model=SuccessResponse, tags=["Documents"])
def delete_document(document_id: int, db: DatabaseManager = Depends(get_db)):
    """Delete a filing with its pages and annotations."""
    if not db.delete_document(document_id):
        raise HTTPException(status_code=404, detail=f"Document {document_id} not found")
    return SuccessResponse()


@app.get("/api/documents/{document_id}/annotations", response_model=List[Annotation], tags=["Annotations"])
def get_document_annotations(document_id: int, db: DatabaseManager = Depends(get_db)):
    _require_document(db, document_id)
    return db.get_document_annotations(document_id)


# ----------------------------------------------------------------
# Annotation Endpoints
# ----------------------------------------------------------------

@app.get("/api/annotations/search", response_model=List[AnnotationSearchResult], tags=["Annotations"])
def search_annotations(
    q: str = Query(..., min_length=1),
    type: Optional[AnnotationType] = None,
    db: DatabaseManager = Depends(get_db),
):
    """
    Search annotations by selected text or note.

    - **q**: search text
    - **type**: highlight, note or bookmark
    """
    return db.search_annotations(q, type.value if type else None)


@app.post("/api/annotations", response_model=Annotation, status_code=201, tags=["Annotations"])
def create_annotation(
    annotation: AnnotationCreate,
    page: Optional[int] = Query(None, ge=1),
    data: ReaderDataProvider = Depends(get_data),
):
    """
    Create an annotation on the text range [start_offset, end_offset).

    The range is trimmed and checked against selected_text; when they differ
    the nearest occurrence of selected_text is used. The page number is
    derived from the filing's pages.

    - **page**: offsets are relative to this page instead of the whole filing
    """
    try:
        created = data.create_annotation(annotation, page)
    except AnchorError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if created is None:
        raise HTTPException(status_code=404, detail=f"Document {annotation.document_id} not found")
    return created


@app.patch("/api/annotations/{annotation_id}", response_model=Annotation, tags=["Annotations"])
def update_annotation(
    annotation_id: int,
    update: AnnotationUpdate,
    data: ReaderDataProvider = Depends(get_data),
):
    try:
        updated = data.update_annotation(annotation_id, update.model_dump(exclude_unset=True))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=jsonable_encoder(e.errors(include_context=False)))
    except AnchorError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if updated is None:
        raise HTTPException(status_code=404, detail=f"Annotation {annotation_id} not found")
    return updated


@app.delete("/api/annotations/{annotation_id}", response_model=SuccessResponse, tags=["Annotations"])
def delete_annotation(annotation_id: int, db: DatabaseManager = Depends(get_db)):
    if not db.delete_annotation(annotation_id):
        raise HTTPException(status_code=404, detail=f"Annotation {annotation_id} not found")
    return SuccessResponse()


# ----------------------------------------------------------------
# Cleanup
# ----------------------------------------------------------------

@app.on_event("shutdown")
def shutdown_event():
    """Close database and SEC connections on shutdown."""
    if _db is not None:
        _db.close()
        logger.info("Database connection closed")
    if _sec is not None:
        _sec.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level="info"
    )
