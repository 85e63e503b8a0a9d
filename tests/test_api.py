"""Tests for the FastAPI routes with a real SQLite DB and a mocked SEC client."""

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from api.main import app, get_db, get_sec_client
from models import SecCompanyMatch
from sources.sec_edgar.base import NoDataError, ProviderError, RateLimitError
from sources.sec_edgar.filings import parse_filings


@pytest.fixture
def sec_client():
    return MagicMock()


@pytest.fixture
def client(tmp_db, sec_client):
    app.dependency_overrides[get_db] = lambda: tmp_db
    app.dependency_overrides[get_sec_client] = lambda: sec_client
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def annotation_body(stored_document):
    def _make(**overrides):
        body = {
            "document_id": stored_document["id"],
            "type": "highlight",
            "selected_text": "Apple Inc.",
            "color": "green",
            "start_offset": 9,
            "end_offset": 19,
        }
        body.update(overrides)
        return body
    return _make


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:
    def test_root(self, client, stored_document):
        resp = client.get("/")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["database_stats"]["total_documents"] == 1


# ---------------------------------------------------------------------------
# Companies
# ---------------------------------------------------------------------------

class TestCompanies:
    def test_create(self, client):
        resp = client.post("/api/companies", json={"cik": "320193", "name": "Apple Inc.", "ticker": "AAPL"})
        assert resp.status_code == 201
        assert resp.json()["cik"] == "0000320193"

    def test_duplicate_conflict(self, client):
        body = {"cik": "320193", "name": "Apple Inc."}
        client.post("/api/companies", json=body)
        assert client.post("/api/companies", json=body).status_code == 409

    def test_invalid_body_bad_request(self, client):
        assert client.post("/api/companies", json={"cik": "abc", "name": "X"}).status_code == 400
        assert client.post("/api/companies", json={"cik": "1"}).status_code == 400

    def test_get_by_cik(self, client, stored_document):
        resp = client.get("/api/companies/320193")
        assert resp.status_code == 200
        assert resp.json()["ticker"] == "AAPL"

    def test_get_unknown(self, client):
        assert client.get("/api/companies/1234").status_code == 404

    def test_company_documents(self, client, stored_document):
        resp = client.get("/api/companies/0000320193/documents")
        assert [d["id"] for d in resp.json()] == [stored_document["id"]]
        assert client.get("/api/companies/1234/documents").status_code == 404


class TestCompanySearch:
    def test_local_first(self, client, sec_client, stored_document):
        resp = client.get("/api/companies/search", params={"q": "apple"})
        assert resp.status_code == 200
        assert [(c["ticker"], c["source"]) for c in resp.json()] == [("AAPL", "local")]
        sec_client.search_companies.assert_not_called()

    def test_falls_back_to_sec(self, client, sec_client):
        sec_client.search_companies.return_value = [
            SecCompanyMatch(cik="0000789019", name="MICROSOFT CORP", ticker="MSFT"),
        ]
        resp = client.get("/api/companies/search", params={"q": "micro"})
        assert resp.json() == [{
            "cik": "0000789019", "name": "MICROSOFT CORP", "ticker": "MSFT",
            "id": None, "source": "sec",
        }]

    def test_sec_failure_empty_list(self, client, sec_client):
        sec_client.search_companies.side_effect = ProviderError("down")
        resp = client.get("/api/companies/search", params={"q": "micro"})
        assert resp.status_code == 200
        assert resp.json() == []

    def test_missing_query(self, client):
        assert client.get("/api/companies/search").status_code == 400


class TestCompanyFilings:
    def test_listing(self, client, sec_client, sample_submission):
        sec_client.get_filings.return_value = parse_filings(sample_submission)[:2]
        resp = client.get("/api/companies/320193/filings", params={"forms": "10-K, 10-Q", "years": 2})
        assert resp.status_code == 200
        data = resp.json()
        assert data["cik"] == "0000320193"
        assert data["count"] == 2
        assert data["filings"][0]["primary_document"] == "aapl-20240928.htm"
        sec_client.get_filings.assert_called_once_with("0000320193", form_types=["10-K", "10-Q"], years=2)

    def test_invalid_cik(self, client):
        assert client.get("/api/companies/apple/filings").status_code == 400

    @pytest.mark.parametrize("error,status", [
        (NoDataError("gone"), 404),
        (RateLimitError("slow down"), 429),
        (ProviderError("bad gateway"), 502),
    ])
    def test_provider_errors(self, client, sec_client, error, status):
        sec_client.get_filings.side_effect = error
        assert client.get("/api/companies/320193/filings").status_code == status


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class TestDocuments:
    def test_get_bumps_last_access(self, client, tmp_db, stored_document):
        resp = client.get(f"/api/documents/{stored_document['id']}")
        assert resp.status_code == 200
        assert resp.json()["last_accessed_at"] > stored_document["last_accessed_at"]

    def test_get_unknown(self, client):
        assert client.get("/api/documents/999").status_code == 404

    def test_recent(self, client, stored_document):
        resp = client.get("/api/documents/recent")
        assert resp.status_code == 200
        assert resp.json()[0]["company_name"] == "Apple Inc."

    def test_all_with_query(self, client, stored_document):
        assert len(client.get("/api/documents/all").json()) == 1
        assert client.get("/api/documents/all", params={"q": "10-Q"}).json() == []

    def test_create(self, client, tmp_db, sample_company):
        company = tmp_db.create_company(sample_company())
        resp = client.post("/api/documents", json={
            "company_id": company["id"],
            "accession_number": "0000320193-24-000081",
            "form_type": "10-Q",
            "filing_date": "2024-08-02",
            "document_url": "https://www.sec.gov/x.htm",
            "title": "Apple Inc. 10-Q - 2024-08-02",
            "content": "<p>Quarterly report</p>",
        })
        assert resp.status_code == 201
        assert resp.json()["total_pages"] == 1
        assert resp.json()["text_length"] == len("Quarterly report")

    def test_create_unknown_company(self, client):
        resp = client.post("/api/documents", json={
            "company_id": 42, "accession_number": "a", "form_type": "10-K",
            "filing_date": "2024-01-01", "document_url": "u", "title": "t",
        })
        assert resp.status_code == 404

    def test_create_duplicate(self, client, stored_document):
        resp = client.post("/api/documents", json={
            "company_id": stored_document["company_id"],
            "accession_number": stored_document["accession_number"],
            "form_type": "10-K", "filing_date": "2024-01-01", "document_url": "u", "title": "t",
        })
        assert resp.status_code == 409

    def test_update_content(self, client, stored_document):
        resp = client.patch(f"/api/documents/{stored_document['id']}/content",
                            json={"content": "<p>new text</p>"})
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "total_pages": 1, "text_length": 8}

    def test_update_content_requires_content(self, client, stored_document):
        url = f"/api/documents/{stored_document['id']}/content"
        assert client.patch(url, json={}).status_code == 400
        assert client.patch(url, json={"content": ""}).status_code == 400

    def test_update_content_unknown(self, client):
        assert client.patch("/api/documents/999/content", json={"content": "x"}).status_code == 404

    def test_page(self, client, stored_document, sample_html):
        resp = client.get(f"/api/documents/{stored_document['id']}/page/1")
        assert resp.status_code == 200
        assert resp.json()["content"] == sample_html
        assert client.get(f"/api/documents/{stored_document['id']}/page/2").status_code == 404

    def test_full_content(self, client, stored_document, sample_html):
        resp = client.get(f"/api/documents/{stored_document['id']}/full-content")
        assert resp.json() == {"content": sample_html}
        assert client.get("/api/documents/999/full-content").status_code == 404

    def test_full_content_without_content(self, client, tmp_db, stored_document, sample_document):
        doc = tmp_db.create_document(sample_document(
            stored_document["company_id"], accession_number="0000320193-24-000999", content=None,
        ))
        resp = client.get(f"/api/documents/{doc['id']}/full-content")
        assert resp.status_code == 200
        assert resp.json() == {"content": ""}

    def test_content_update_reanchors_annotations(self, client, stored_document, sample_html, annotation_body):
        client.post("/api/annotations", json=annotation_body(selected_text="Risk", start_offset=40, end_offset=44))
        url = f"/api/documents/{stored_document['id']}"
        client.patch(f"{url}/content", json={"content": "<p>Preface.</p>" + sample_html})

        ann = client.get(f"{url}/annotations").json()[0]
        assert (ann["start_offset"], ann["end_offset"]) == (48, 52)
        page = client.get(f"{url}/rendered", params={"page": 1}).json()
        assert 'data-annotation-start="48"' in page["html"]
        target = client.get(f"{url}/locate", params={"offset": ann["start_offset"]}).json()
        assert target["selector"] == '[data-annotation-start="48"]'

    def test_delete(self, client, stored_document):
        url = f"/api/documents/{stored_document['id']}"
        assert client.delete(url).json() == {"success": True}
        assert client.delete(url).status_code == 404


class TestImport:
    def test_created_then_existing(self, client, sec_client, sample_submission, sample_html):
        sec_client.get_submissions.return_value = sample_submission
        sec_client.fetch_document.return_value = sample_html

        first = client.post("/api/documents/import", json={"cik": "320193"})
        assert first.status_code == 201
        assert first.json()["created"] is True
        assert first.json()["document"]["title"] == "Apple Inc. 10-K - 2024-11-01"

        second = client.post("/api/documents/import", json={"cik": "320193"})
        assert second.status_code == 200
        assert second.json()["created"] is False

    def test_requires_cik_or_ticker(self, client):
        assert client.post("/api/documents/import", json={"form_type": "10-K"}).status_code == 400

    def test_unknown_ticker(self, client, sec_client):
        sec_client.lookup_ticker.return_value = None
        resp = client.post("/api/documents/import", json={"ticker": "ZZZZ"})
        assert resp.status_code == 404

    def test_invalid_cik(self, client):
        assert client.post("/api/documents/import", json={"cik": "apple"}).status_code == 400


# ---------------------------------------------------------------------------
# Rendering & navigation
# ---------------------------------------------------------------------------

class TestRendered:
    def test_full_document_with_annotation(self, client, stored_document, annotation_body):
        client.post("/api/annotations", json=annotation_body())
        resp = client.get(f"/api/documents/{stored_document['id']}/rendered")
        assert resp.status_code == 200
        data = resp.json()
        assert data["page_number"] is None
        assert data["annotation_count"] == 1
        assert 'data-annotation-start="9"' in data["html"]
        assert "highlight-bg-green" in data["html"]

    def test_single_page(self, client, tmp_db, stored_document, sample_html, annotation_body):
        tmp_db.update_document_content(stored_document["id"], sample_html, chunk_size=40)
        client.post("/api/annotations", json=annotation_body(
            selected_text="Risk", start_offset=40, end_offset=44,
        ))
        resp = client.get(f"/api/documents/{stored_document['id']}/rendered", params={"page": 3})
        data = resp.json()
        assert data["page_number"] == 3
        assert data["total_pages"] == 4
        assert data["text_start"] == 33
        assert data["annotation_count"] == 1
        assert ">Risk</span>" in data["html"]

    def test_full_render_stores_reanchored_range(self, client, tmp_db, stored_document, sample_html,
                                                 annotation_body):
        client.post("/api/annotations", json=annotation_body(selected_text="Risk", start_offset=40, end_offset=44))
        tmp_db.update_document_content(stored_document["id"], "<p>Preface.</p>" + sample_html)
        html = client.get(f"/api/documents/{stored_document['id']}/rendered").json()["html"]
        assert 'data-annotation-start="48"' in html
        assert tmp_db.get_document_annotations(stored_document["id"])[0]["start_offset"] == 48

    def test_unknown_page(self, client, stored_document):
        resp = client.get(f"/api/documents/{stored_document['id']}/rendered", params={"page": 5})
        assert resp.status_code == 404

    def test_unknown_document(self, client):
        assert client.get("/api/documents/999/rendered").status_code == 404


class TestLocate:
    def test_target(self, client, tmp_db, stored_document, sample_html):
        tmp_db.update_document_content(stored_document["id"], sample_html, chunk_size=40)
        resp = client.get(f"/api/documents/{stored_document['id']}/locate", params={"offset": 40})
        assert resp.status_code == 200
        data = resp.json()
        assert (data["page_number"], data["page_offset"]) == (3, 7)
        assert data["selector"] == '[data-annotation-start="40"]'

    def test_offset_beyond_text(self, client, stored_document):
        resp = client.get(f"/api/documents/{stored_document['id']}/locate", params={"offset": 1000})
        assert resp.status_code == 400

    def test_offset_required(self, client, stored_document):
        assert client.get(f"/api/documents/{stored_document['id']}/locate").status_code == 400


# ---------------------------------------------------------------------------
# Annotations
# ---------------------------------------------------------------------------

class TestAnnotations:
    def test_create(self, client, annotation_body):
        resp = client.post("/api/annotations", json=annotation_body(page_number=7))
        assert resp.status_code == 201
        data = resp.json()
        assert data["type"] == "highlight"
        assert data["color"] == "green"
        assert data["page_number"] == 1

    def test_page_derived_from_page_map(self, client, tmp_db, stored_document, sample_html, annotation_body):
        tmp_db.update_document_content(stored_document["id"], sample_html, chunk_size=40)
        resp = client.post("/api/annotations", json=annotation_body(
            selected_text="Risk", start_offset=40, end_offset=44,
        ))
        assert resp.json()["page_number"] == 3

    def test_note_gets_default_color(self, client, annotation_body):
        resp = client.post("/api/annotations", json=annotation_body(type="note", note="n", color="blue"))
        assert resp.json()["color"] == "orange"

    def test_range_beyond_text(self, client, annotation_body):
        resp = client.post("/api/annotations", json=annotation_body(start_offset=70, end_offset=500))
        assert resp.status_code == 400

    def test_invalid_range(self, client, annotation_body):
        resp = client.post("/api/annotations", json=annotation_body(start_offset=10, end_offset=5))
        assert resp.status_code == 400

    def test_unknown_document(self, client, annotation_body):
        resp = client.post("/api/annotations", json=annotation_body(document_id=999))
        assert resp.status_code == 404

    def test_range_trimmed(self, client, annotation_body):
        resp = client.post("/api/annotations", json=annotation_body(start_offset=9, end_offset=20))
        assert resp.status_code == 201
        assert (resp.json()["start_offset"], resp.json()["end_offset"]) == (9, 19)

    def test_mismatched_range_anchored_to_selected_text(self, client, annotation_body):
        resp = client.post("/api/annotations", json=annotation_body(
            selected_text="competition", start_offset=0, end_offset=11,
        ))
        assert resp.status_code == 201
        data = resp.json()
        assert (data["start_offset"], data["end_offset"]) == (54, 65)
        assert data["selected_text"] == "competition"

    def test_blank_range_anchored_to_selected_text(self, client, annotation_body):
        resp = client.post("/api/annotations", json=annotation_body(
            selected_text="designs", start_offset=19, end_offset=20,
        ))
        assert (resp.json()["start_offset"], resp.json()["end_offset"]) == (20, 27)

    def test_selected_text_not_in_document(self, client, annotation_body):
        resp = client.post("/api/annotations", json=annotation_body(selected_text="Microsoft"))
        assert resp.status_code == 400
        assert "not found" in resp.json()["detail"]

    def test_page_relative_offsets(self, client, tmp_db, stored_document, sample_html, annotation_body):
        tmp_db.update_document_content(stored_document["id"], sample_html, chunk_size=40)
        resp = client.post("/api/annotations", params={"page": 3}, json=annotation_body(
            selected_text="Risk", start_offset=7, end_offset=11,
        ))
        assert resp.status_code == 201
        data = resp.json()
        assert (data["start_offset"], data["end_offset"], data["page_number"]) == (40, 44, 3)

    def test_page_relative_unknown_page(self, client, annotation_body):
        resp = client.post("/api/annotations", params={"page": 9}, json=annotation_body())
        assert resp.status_code == 400

    def test_list_newest_first(self, client, stored_document, annotation_body):
        first = client.post("/api/annotations", json=annotation_body()).json()
        second = client.post("/api/annotations", json=annotation_body(type="bookmark")).json()
        resp = client.get(f"/api/documents/{stored_document['id']}/annotations")
        assert [a["id"] for a in resp.json()] == [second["id"], first["id"]]
        assert client.get("/api/documents/999/annotations").status_code == 404

    def test_update_note(self, client, annotation_body):
        created = client.post("/api/annotations", json=annotation_body()).json()
        resp = client.patch(f"/api/annotations/{created['id']}", json={"note": "important"})
        assert resp.status_code == 200
        assert resp.json()["note"] == "important"
        assert resp.json()["start_offset"] == 9

    def test_update_range_recomputes_page(self, client, tmp_db, stored_document, sample_html, annotation_body):
        tmp_db.update_document_content(stored_document["id"], sample_html, chunk_size=40)
        created = client.post("/api/annotations", json=annotation_body()).json()
        assert created["page_number"] == 2
        resp = client.patch(f"/api/annotations/{created['id']}",
                            json={"selected_text": "Risk", "start_offset": 40, "end_offset": 44})
        assert resp.json()["page_number"] == 3

    def test_update_range_reads_selected_text(self, client, annotation_body):
        created = client.post("/api/annotations", json=annotation_body()).json()
        resp = client.patch(f"/api/annotations/{created['id']}",
                            json={"start_offset": 54, "end_offset": 66})
        assert resp.status_code == 200
        data = resp.json()
        assert (data["start_offset"], data["end_offset"]) == (54, 65)
        assert data["selected_text"] == "competition"

    def test_update_blank_range(self, client, annotation_body):
        created = client.post("/api/annotations", json=annotation_body()).json()
        resp = client.patch(f"/api/annotations/{created['id']}",
                            json={"start_offset": 19, "end_offset": 20})
        assert resp.status_code == 400

    def test_update_invalid(self, client, annotation_body):
        created = client.post("/api/annotations", json=annotation_body()).json()
        url = f"/api/annotations/{created['id']}"
        assert client.patch(url, json={"end_offset": 2}).status_code == 400
        assert client.patch(url, json={"end_offset": 500}).status_code == 400
        assert client.patch(url, json={"color": "purple"}).status_code == 400

    def test_update_unknown(self, client):
        assert client.patch("/api/annotations/999", json={"note": "x"}).status_code == 404

    def test_delete(self, client, annotation_body):
        created = client.post("/api/annotations", json=annotation_body()).json()
        url = f"/api/annotations/{created['id']}"
        assert client.delete(url).json() == {"success": True}
        assert client.delete(url).status_code == 404


class TestAnnotationSearch:
    def test_search(self, client, annotation_body):
        client.post("/api/annotations", json=annotation_body())
        client.post("/api/annotations", json=annotation_body(
            type="note", selected_text="competition", note="Apple rivals", start_offset=54, end_offset=65,
        ))
        results = client.get("/api/annotations/search", params={"q": "apple"}).json()
        assert len(results) == 2
        assert results[0]["document_title"] == "Apple Inc. 10-K - 2024-11-01"
        assert results[0]["company_name"] == "Apple Inc."

    def test_type_filter(self, client, annotation_body):
        client.post("/api/annotations", json=annotation_body())
        client.post("/api/annotations", json=annotation_body(type="note", note="Apple"))
        results = client.get("/api/annotations/search", params={"q": "apple", "type": "note"}).json()
        assert [r["type"] for r in results] == ["note"]

    def test_missing_query(self, client):
        assert client.get("/api/annotations/search").status_code == 400

    def test_invalid_type(self, client):
        resp = client.get("/api/annotations/search", params={"q": "x", "type": "underline"})
        assert resp.status_code == 400
