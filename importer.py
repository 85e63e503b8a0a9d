"""
Filing import pipeline.

Looks up a company on SEC EDGAR, picks one of its filings, downloads the
primary document and stores it page by page in the reader database.

Usage:
    python importer.py --cik 320193                     # Latest 10-K of Apple
    python importer.py --ticker MSFT --form 10-Q        # Latest 10-Q of Microsoft
    python importer.py --cik 320193 --accession 0000320193-24-000123
    python importer.py --ticker AAPL --db data/other.db
"""

import argparse
import datetime
import logging
import sys
from dataclasses import dataclass
from typing import Optional

from database import DEFAULT_DB_PATH, DatabaseManager
from models import CompanyCreate, DocumentCreate, SecFiling, normalize_cik
from sources.sec_edgar.base import NoDataError, ProviderError
from sources.sec_edgar.client import SecEdgarClient
from sources.sec_edgar.filings import build_document_url, filter_filings, parse_filings
from utils import log

logger = logging.getLogger("reader.importer")


@dataclass
class ImportResult:
    document: dict
    created: bool


def document_title(company_name: str, filing: SecFiling) -> str:
    return f"{company_name} {filing.form} - {filing.filing_date}"


class FilingImporter:
    """Imports SEC filings into a DatabaseManager."""

    def __init__(self, db: DatabaseManager, client: SecEdgarClient):
        self.db = db
        self.client = client

    def _existing(self, accession_number: str) -> Optional[ImportResult]:
        document = self.db.get_document_by_accession(accession_number)
        if document is None:
            return None
        logger.info(f"{accession_number} already imported as document {document['id']}")
        self.db.update_document_last_accessed(document["id"])
        return ImportResult(document=self.db.get_document(document["id"]), created=False)

    def _ensure_company(self, cik: str, submission: dict) -> dict:
        company = self.db.get_company_by_cik(cik)
        if company is not None:
            return company

        tickers = submission.get("tickers") or []
        company = self.db.create_company(CompanyCreate(
            cik=cik,
            name=submission.get("name") or cik,
            ticker=tickers[0] if tickers else None,
        ))
        logger.info(f"Created company {company['name']} (CIK {cik})")
        return company

    @staticmethod
    def _pick_filing(submission: dict, accession_number: Optional[str], form_type: str) -> SecFiling:
        filings = parse_filings(submission)
        if accession_number:
            for filing in filings:
                if filing.accession_number == accession_number:
                    return filing
            raise NoDataError(f"Filing {accession_number} not found in recent filings")

        matching = filter_filings(filings, [form_type], since=None)
        if not matching:
            raise NoDataError(f"No {form_type} filings found")
        return matching[0]

    def import_filing(
        self,
        cik,
        accession_number: Optional[str] = None,
        form_type: str = "10-K",
    ) -> ImportResult:
        """
        Import one filing of a company.

        With accession_number that filing is imported, otherwise the latest
        filing of form_type. A filing that is already stored is returned
        as is, with its access time bumped.

        Raises:
            NoDataError: company or filing not found on SEC EDGAR
            ProviderError: SEC request failed
        """
        cik = normalize_cik(cik)
        if accession_number:
            existing = self._existing(accession_number)
            if existing:
                return existing

        submission = self.client.get_submissions(cik)
        filing = self._pick_filing(submission, accession_number, form_type)

        existing = self._existing(filing.accession_number)
        if existing:
            return existing

        if not filing.primary_document:
            raise NoDataError(f"Filing {filing.accession_number} has no primary document")

        url = build_document_url(cik, filing.accession_number, filing.primary_document)
        content = self.client.fetch_document(url)
        company = self._ensure_company(cik, submission)

        document = self.db.create_document(DocumentCreate(
            company_id=company["id"],
            accession_number=filing.accession_number,
            form_type=filing.form,
            filing_date=filing.filing_date,
            report_date=filing.report_date,
            document_url=url,
            title=document_title(company["name"], filing),
            content=content,
        ))
        logger.info(
            f"Imported {filing.accession_number} as document {document['id']} "
            f"({document['total_pages']} pages, {document['text_length']:,} text chars)"
        )
        return ImportResult(document=document, created=True)

    def import_ticker(self, ticker: str, accession_number: Optional[str] = None,
                      form_type: str = "10-K") -> ImportResult:
        """Resolve a ticker to its CIK, then import_filing."""
        match = self.client.lookup_ticker(ticker)
        if match is None:
            raise NoDataError(f"Unknown ticker {ticker}")
        return self.import_filing(match.cik, accession_number=accession_number, form_type=form_type)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import an SEC filing into the reader database")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--cik", type=str, help="Company CIK (leading zeros optional)")
    target.add_argument("--ticker", type=str, help="Company ticker, resolved through SEC")
    parser.add_argument("--form", type=str, default="10-K", help="Form type (default: 10-K)")
    parser.add_argument("--accession", type=str, help="Specific accession number to import")
    parser.add_argument("--db", type=str, default=DEFAULT_DB_PATH, help="SQLite database path")
    args = parser.parse_args(argv)

    log.setup_verbose_logging("reader")
    start = datetime.datetime.now()
    label = args.ticker.upper() if args.ticker else args.cik

    log.header("IMPORT: SEC EDGAR filing")
    log.step(f"Importing {args.accession or 'latest ' + args.form} for {label}")

    db = DatabaseManager(db_path=args.db)
    client = SecEdgarClient()
    importer = FilingImporter(db, client)
    try:
        if args.ticker:
            result = importer.import_ticker(args.ticker, args.accession, args.form)
        else:
            result = importer.import_filing(args.cik, args.accession, args.form)
    except (ProviderError, ValueError) as e:
        log.err(f"{label}: {e}")
        return 1
    finally:
        client.close()
        db.close()

    doc = result.document
    if result.created:
        log.ok(f"Imported {doc['title']}")
    else:
        log.warn(f"Already imported: {doc['title']}")

    log.summary_table("Import Summary", [
        ("Document ID", str(doc["id"])),
        ("Accession", doc["accession_number"]),
        ("Pages", str(doc["total_pages"])),
        ("Text length", f"{doc['text_length']:,}"),
        ("Database", args.db),
        ("Elapsed", str(datetime.datetime.now() - start)),
    ])
    return 0


if __name__ == "__main__":
    sys.exit(main())
