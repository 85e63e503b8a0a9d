"""Shared fixtures for the test suite."""

import pytest
from unittest.mock import MagicMock

from database import DatabaseManager
from models import AnnotationCreate, CompanyCreate, DocumentCreate


SAMPLE_HTML = (
    "<html><head><title>Form 10-K</title></head><body>"
    "<p>Apple Inc. designs smartphones.</p>"
    "<p>Risk Factors: competition is intense.</p>"
    "</body></html>"
)


@pytest.fixture
def tmp_db(tmp_path):
    """Fresh DatabaseManager backed by a real SQLite DB in tmp_path."""
    db_path = str(tmp_path / "test.db")
    db = DatabaseManager(db_path=db_path)
    yield db
    db.close()


@pytest.fixture
def mock_response():
    """Factory for mock HTTP responses."""
    def _make(status_code=200, json_data=None, text=""):
        resp = MagicMock()
        resp.status_code = status_code
        resp.json.return_value = json_data or {}
        resp.text = text
        # truthy when status_code == 200
        resp.__bool__ = lambda self: self.status_code == 200
        return resp
    return _make


@pytest.fixture
def sample_company():
    """Factory fixture; call with overrides to get a CompanyCreate."""
    def _make(**overrides):
        data = {"cik": "320193", "name": "Apple Inc.", "ticker": "AAPL"}
        data.update(overrides)
        return CompanyCreate(**data)
    return _make


@pytest.fixture
def sample_document():
    """Factory fixture for DocumentCreate; company_id is required."""
    def _make(company_id, **overrides):
        data = {
            "company_id": company_id,
            "accession_number": "0000320193-24-000123",
            "form_type": "10-K",
            "filing_date": "2024-11-01",
            "report_date": "2024-09-28",
            "document_url": "https://www.sec.gov/Archives/edgar/data/320193/000032019324000123/aapl-20240928.htm",
            "title": "Apple Inc. 10-K - 2024-11-01",
            "content": SAMPLE_HTML,
        }
        data.update(overrides)
        return DocumentCreate(**data)
    return _make


@pytest.fixture
def sample_annotation():
    """Factory fixture for AnnotationCreate; document_id is required."""
    def _make(document_id, **overrides):
        data = {
            "document_id": document_id,
            "type": "highlight",
            "selected_text": "Apple Inc.",
            "note": None,
            "color": "green",
            "page_number": 1,
            "start_offset": 9,
            "end_offset": 19,
        }
        data.update(overrides)
        return AnnotationCreate(**data)
    return _make


@pytest.fixture
def stored_document(tmp_db, sample_company, sample_document):
    """A company with one stored SAMPLE_HTML document; returns the document row."""
    company = tmp_db.create_company(sample_company())
    return tmp_db.create_document(sample_document(company["id"]))


@pytest.fixture
def sample_submission():
    """Minimal submissions payload in SEC's column-wise layout."""
    return {
        "cik": "320193",
        "name": "Apple Inc.",
        "tickers": ["AAPL"],
        "filings": {
            "recent": {
                "accessionNumber": [
                    "0000320193-24-000123",
                    "0000320193-24-000081",
                    "0000320193-24-000070",
                    "0000320193-19-000119",
                ],
                "filingDate": ["2024-11-01", "2024-08-02", "2024-07-15", "2019-10-31"],
                "reportDate": ["2024-09-28", "2024-06-29", "", "2019-09-28"],
                "acceptanceDateTime": [
                    "2024-11-01T06:01:36.000Z",
                    "2024-08-02T06:01:10.000Z",
                    "2024-07-15T16:30:00.000Z",
                    "2019-10-30T18:06:32.000Z",
                ],
                "form": ["10-K", "10-Q", "8-K", "10-K"],
                "fileNumber": ["001-36743"] * 4,
                "filmNumber": ["241416806", "241168270", "241118001", "191181423"],
                "items": ["", "", "5.07", ""],
                "size": [9759227, 5823045, 200000, 12345678],
                "isXBRL": [1, 1, 0, 1],
                "isInlineXBRL": [1, 1, 0, 0],
                "primaryDocument": [
                    "aapl-20240928.htm",
                    "aapl-20240629.htm",
                    "aapl-8k.htm",
                    "a10-k20199282019.htm",
                ],
                "primaryDocDescription": ["10-K", "10-Q", "8-K", "10-K"],
            }
        },
    }


@pytest.fixture
def sample_html():
    """SAMPLE_HTML; its text is 'Form 10-K' + 'Apple Inc. designs smartphones.' + 'Risk Factors: ...'."""
    return SAMPLE_HTML
