"""
SQLite database layer for the SEC EDGAR filing reader.

Provides a relational store for companies, imported filings, their content
chunks (one chunk per page) and the annotations attached to them.

Usage:
    from database import DatabaseManager
    db = DatabaseManager()
    company = db.create_company(CompanyCreate(cik="320193", name="Apple Inc.", ticker="AAPL"))
"""

import datetime
import os
import sqlite3
import threading
from typing import Optional

from anchoring.chunking import DEFAULT_CHUNK_SIZE, PageSpan, build_page_map, split_content
from models import AnnotationCreate, CompanyCreate, DocumentCreate


BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.path.join(BASE_DIR, "data")
DEFAULT_DB_PATH = os.path.join(DATA_DIR, "reader.db")

COMPANY_SEARCH_LIMIT = 10
ANNOTATION_SEARCH_LIMIT = 50


# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS companies (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    cik         TEXT NOT NULL UNIQUE,
    name        TEXT NOT NULL,
    ticker      TEXT,
    created_at  TEXT
);

CREATE TABLE IF NOT EXISTS documents (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    company_id        INTEGER NOT NULL REFERENCES companies(id) ON DELETE CASCADE,
    accession_number  TEXT NOT NULL UNIQUE,
    form_type         TEXT NOT NULL,
    filing_date       TEXT NOT NULL,
    report_date       TEXT,
    document_url      TEXT NOT NULL,
    title             TEXT NOT NULL,
    content           TEXT,
    total_pages       INTEGER DEFAULT 1,
    text_length       INTEGER DEFAULT 0,
    last_accessed_at  TEXT,
    created_at        TEXT
);

CREATE TABLE IF NOT EXISTS document_chunks (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id  INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    page_number  INTEGER NOT NULL,
    content      TEXT NOT NULL,
    text_start   INTEGER DEFAULT 0,
    text_length  INTEGER DEFAULT 0,
    created_at   TEXT,
    UNIQUE(document_id, page_number)
);

CREATE TABLE IF NOT EXISTS annotations (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id    INTEGER NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    type           TEXT NOT NULL,
    selected_text  TEXT NOT NULL,
    note           TEXT,
    color          TEXT DEFAULT 'orange',
    page_number    INTEGER DEFAULT 1,
    start_offset   INTEGER NOT NULL,
    end_offset     INTEGER NOT NULL,
    created_at     TEXT,
    updated_at     TEXT
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_doc_company ON documents(company_id, filing_date);
CREATE INDEX IF NOT EXISTS idx_doc_accessed ON documents(last_accessed_at);
CREATE INDEX IF NOT EXISTS idx_ann_document ON annotations(document_id, created_at);
"""

DOCUMENT_COLUMNS = """
    d.id, d.company_id, d.accession_number, d.form_type, d.filing_date,
    d.report_date, d.document_url, d.title, d.content, d.total_pages,
    d.text_length, d.last_accessed_at, d.created_at
"""


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="microseconds")


class DatabaseManager:
    """SQLite database manager for companies, filings and annotations."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, chunk_size: int = DEFAULT_CHUNK_SIZE):
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self.db_path = db_path
        self.chunk_size = chunk_size
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._create_schema()

    @property
    def conn(self) -> sqlite3.Connection:
        """
        Connection of the calling thread, opened on first use. A transaction
        open in one thread is never committed or seen by another.
        """
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _create_schema(self):
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()

    def close(self):
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    def _one(self, sql: str, params: tuple = ()) -> dict | None:
        row = self.conn.execute(sql, params).fetchone()
        return dict(row) if row else None

    # ------------------------------------------------------------------
    # Companies
    # ------------------------------------------------------------------

    def create_company(self, company: CompanyCreate) -> dict:
        """Insert a company. Raises sqlite3.IntegrityError on a duplicate CIK."""
        cur = self.conn.execute(
            "INSERT INTO companies (cik, name, ticker, created_at) VALUES (?, ?, ?, ?)",
            (company.cik, company.name, company.ticker, _now()),
        )
        self.conn.commit()
        return self.get_company(cur.lastrowid)

    def get_company(self, company_id: int) -> dict | None:
        return self._one("SELECT * FROM companies WHERE id = ?", (company_id,))

    def get_company_by_cik(self, cik: str) -> dict | None:
        cik = str(cik).strip()
        if cik.isdigit():
            cik = cik.zfill(10)
        return self._one("SELECT * FROM companies WHERE cik = ?", (cik,))

    def search_companies(self, query: str) -> list[dict]:
        """Substring match on name, ticker or CIK."""
        pattern = f"%{query}%"
        cur = self.conn.execute(
            """
            SELECT * FROM companies
            WHERE name LIKE ? OR ticker LIKE ? OR cik LIKE ?
            ORDER BY name
            LIMIT ?
            """,
            (pattern, pattern, pattern, COMPANY_SEARCH_LIMIT),
        )
        return [dict(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(self, document: DocumentCreate) -> dict:
        """
        Insert a document. Content, when given, is chunked right away.
        Raises sqlite3.IntegrityError on a duplicate accession number or
        an unknown company.
        """
        now = _now()
        cur = self.conn.execute(
            """
            INSERT INTO documents
                (company_id, accession_number, form_type, filing_date, report_date,
                 document_url, title, content, total_pages, text_length,
                 last_accessed_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, NULL, 1, 0, ?, ?)
            """,
            (document.company_id, document.accession_number, document.form_type,
             document.filing_date, document.report_date, document.document_url,
             document.title, now, now),
        )
        self.conn.commit()
        document_id = cur.lastrowid
        if document.content:
            self.update_document_content(document_id, document.content)
        return self.get_document(document_id)

    def get_document(self, document_id: int) -> dict | None:
        return self._one("SELECT * FROM documents WHERE id = ?", (document_id,))

    def get_document_by_accession(self, accession_number: str) -> dict | None:
        return self._one(
            "SELECT * FROM documents WHERE accession_number = ?", (accession_number,)
        )

    def update_document_content(self, document_id: int, content: str,
                                chunk_size: Optional[int] = None) -> int | None:
        """
        Replace a document's content with freshly split chunks.

        Existing chunks are dropped, the inline content column is cleared and
        total_pages / text_length are recomputed. Returns the page count, or
        None if the document does not exist.
        """
        if self.get_document(document_id) is None:
            return None

        chunks = split_content(content, chunk_size or self.chunk_size)
        page_map = build_page_map(chunks)
        now = _now()
        rows = [
            (document_id, page.page_number, chunk, page.text_start, page.text_length, now)
            for chunk, page in zip(chunks, page_map)
        ]
        text_length = page_map[-1].text_end if page_map else 0

        with self.conn:
            self.conn.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))
            self.conn.executemany(
                """
                INSERT INTO document_chunks
                    (document_id, page_number, content, text_start, text_length, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
            self.conn.execute(
                """
                UPDATE documents
                SET total_pages = ?, content = NULL, text_length = ?, last_accessed_at = ?
                WHERE id = ?
                """,
                (max(len(rows), 1), text_length, now, document_id),
            )
        return max(len(rows), 1)

    def update_document_last_accessed(self, document_id: int) -> None:
        self.conn.execute(
            "UPDATE documents SET last_accessed_at = ? WHERE id = ?", (_now(), document_id)
        )
        self.conn.commit()

    def get_recent_documents(self, limit: int = 10) -> list[dict]:
        """Most recently accessed documents, with the company name."""
        cur = self.conn.execute(
            f"""
            SELECT {DOCUMENT_COLUMNS}, c.name AS company_name
            FROM documents d
            JOIN companies c ON d.company_id = c.id
            ORDER BY d.last_accessed_at DESC, d.id DESC
            LIMIT ?
            """,
            (limit,),
        )
        return [dict(r) for r in cur.fetchall()]

    def get_all_documents(self, query: Optional[str] = None) -> list[dict]:
        """Every document, optionally filtered by title, form, accession or company."""
        sql = f"""
            SELECT {DOCUMENT_COLUMNS}, c.name AS company_name
            FROM documents d
            JOIN companies c ON d.company_id = c.id
        """
        params: tuple = ()
        if query:
            pattern = f"%{query}%"
            sql += """
            WHERE d.title LIKE ? OR d.form_type LIKE ?
               OR d.accession_number LIKE ? OR c.name LIKE ?
            """
            params = (pattern, pattern, pattern, pattern)
        sql += " ORDER BY d.last_accessed_at DESC, d.id DESC"
        cur = self.conn.execute(sql, params)
        return [dict(r) for r in cur.fetchall()]

    def get_company_documents(self, company_id: int) -> list[dict]:
        cur = self.conn.execute(
            "SELECT * FROM documents WHERE company_id = ? ORDER BY filing_date DESC, id DESC",
            (company_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    def delete_document(self, document_id: int) -> bool:
        """Delete a document with its chunks and annotations."""
        with self.conn:
            cur = self.conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def get_document_chunk(self, document_id: int, page_number: int) -> dict | None:
        return self._one(
            "SELECT * FROM document_chunks WHERE document_id = ? AND page_number = ?",
            (document_id, page_number),
        )

    def get_document_chunks(self, document_id: int) -> list[dict]:
        cur = self.conn.execute(
            "SELECT * FROM document_chunks WHERE document_id = ? ORDER BY page_number",
            (document_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    def get_page_map(self, document_id: int) -> list[PageSpan]:
        """Text offset ranges of a document's pages, without loading content."""
        cur = self.conn.execute(
            """
            SELECT page_number, text_start, text_length FROM document_chunks
            WHERE document_id = ? ORDER BY page_number
            """,
            (document_id,),
        )
        return [PageSpan(r["page_number"], r["text_start"], r["text_length"]) for r in cur.fetchall()]

    def get_document_full_content(self, document_id: int) -> str | None:
        """
        Reassemble a document from its chunks. A document with no content
        gives "", an unknown one None.
        """
        chunks = self.get_document_chunks(document_id)
        if chunks:
            return "".join(c["content"] for c in chunks)
        document = self.get_document(document_id)
        if document is None:
            return None
        return document["content"] or ""

    # ------------------------------------------------------------------
    # Annotations
    # ------------------------------------------------------------------

    def get_document_annotations(self, document_id: int) -> list[dict]:
        cur = self.conn.execute(
            "SELECT * FROM annotations WHERE document_id = ? ORDER BY created_at DESC, id DESC",
            (document_id,),
        )
        return [dict(r) for r in cur.fetchall()]

    def get_annotation(self, annotation_id: int) -> dict | None:
        return self._one("SELECT * FROM annotations WHERE id = ?", (annotation_id,))

    def create_annotation(self, annotation: AnnotationCreate) -> dict:
        now = _now()
        cur = self.conn.execute(
            """
            INSERT INTO annotations
                (document_id, type, selected_text, note, color, page_number,
                 start_offset, end_offset, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (annotation.document_id, annotation.type.value, annotation.selected_text,
             annotation.note, annotation.color.value, annotation.page_number,
             annotation.start_offset, annotation.end_offset, now, now),
        )
        self.conn.commit()
        return self.get_annotation(cur.lastrowid)

    def update_annotation(self, annotation_id: int, updates: dict) -> dict | None:
        """
        Apply a partial update. The merged annotation is validated again, so
        a bad range or type raises pydantic.ValidationError.
        """
        existing = self.get_annotation(annotation_id)
        if existing is None:
            return None

        merged = AnnotationCreate(**{**existing, **updates})
        self.conn.execute(
            """
            UPDATE annotations
            SET type = ?, selected_text = ?, note = ?, color = ?, page_number = ?,
                start_offset = ?, end_offset = ?, updated_at = ?
            WHERE id = ?
            """,
            (merged.type.value, merged.selected_text, merged.note, merged.color.value,
             merged.page_number, merged.start_offset, merged.end_offset, _now(),
             annotation_id),
        )
        self.conn.commit()
        return self.get_annotation(annotation_id)

    def delete_annotation(self, annotation_id: int) -> bool:
        cur = self.conn.execute("DELETE FROM annotations WHERE id = ?", (annotation_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def search_annotations(self, query: str, annotation_type: Optional[str] = None) -> list[dict]:
        """Match selected text or note, joined with document title and company name."""
        pattern = f"%{query}%"
        sql = """
            SELECT a.*, d.title AS document_title, c.name AS company_name
            FROM annotations a
            JOIN documents d ON a.document_id = d.id
            JOIN companies c ON d.company_id = c.id
            WHERE (a.selected_text LIKE ? OR a.note LIKE ?)
        """
        params: list = [pattern, pattern]
        if annotation_type:
            sql += " AND a.type = ?"
            params.append(annotation_type)
        sql += " ORDER BY a.created_at DESC, a.id DESC LIMIT ?"
        params.append(ANNOTATION_SEARCH_LIMIT)
        cur = self.conn.execute(sql, tuple(params))
        return [dict(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # Stats / generic query
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        """Row counts for the health endpoint."""
        stats = {}
        for table in ("companies", "documents", "document_chunks", "annotations"):
            row = self.conn.execute(f"SELECT COUNT(*) AS n FROM {table}").fetchone()
            stats[f"total_{table}"] = row["n"]
        return stats

    def query(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a raw SQL query and return results as list of dicts."""
        cur = self.conn.execute(sql, params)
        return [dict(r) for r in cur.fetchall()]


if __name__ == "__main__":
    db = DatabaseManager()
    for name, count in db.get_stats().items():
        print(f"  {name:<24}{count} rows")
    db.close()
