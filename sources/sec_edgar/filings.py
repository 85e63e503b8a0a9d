"""
Parsing and filtering of the filings table in a submissions payload.

The submissions endpoint returns the most recent filings column-wise:
``filings.recent.accessionNumber[i]``, ``filings.recent.form[i]``, ...
"""

import datetime
from typing import Dict, Iterable, List, Optional

from models import SecFiling
from .base import ProviderError

ARCHIVES_URL = "https://www.sec.gov/Archives/edgar/data"

DEFAULT_FORM_TYPES = ("10-K", "10-Q")
DEFAULT_LOOKBACK_YEARS = 3

# submissions column -> SecFiling field
COLUMNS = {
    "accessionNumber": "accession_number",
    "filingDate": "filing_date",
    "reportDate": "report_date",
    "acceptanceDateTime": "acceptance_date_time",
    "form": "form",
    "fileNumber": "file_number",
    "filmNumber": "film_number",
    "items": "items",
    "size": "size",
    "isXBRL": "is_xbrl",
    "isInlineXBRL": "is_inline_xbrl",
    "primaryDocument": "primary_document",
    "primaryDocDescription": "primary_doc_description",
}


def parse_filings(submission: Dict) -> List[SecFiling]:
    """Turn the column arrays of filings.recent into SecFiling rows."""
    try:
        recent = submission["filings"]["recent"]
        count = len(recent["accessionNumber"])
    except (KeyError, TypeError) as e:
        raise ProviderError(f"Malformed submissions payload: missing {e}")

    filings = []
    for i in range(count):
        row = {}
        for column, field in COLUMNS.items():
            values = recent.get(column) or []
            value = values[i] if i < len(values) else None
            # SEC uses "" for absent dates and descriptions
            if value == "" and field not in ("primary_document", "primary_doc_description"):
                value = None
            if value is not None:
                row[field] = value
        if "accession_number" not in row or "form" not in row or "filing_date" not in row:
            continue
        filings.append(SecFiling(**row))
    return filings


def lookback_date(years: int, today: Optional[datetime.date] = None) -> datetime.date:
    """The date `years` years before today (Feb 29 falls back to Feb 28)."""
    today = today or datetime.date.today()
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        return today.replace(year=today.year - years, day=28)


def filter_filings(
    filings: Iterable[SecFiling],
    form_types: Optional[Iterable[str]] = DEFAULT_FORM_TYPES,
    since: Optional[datetime.date] = None,
) -> List[SecFiling]:
    """
    Keep the filings of the given form types filed on or after `since`,
    newest first. A form_types of None keeps every form.
    """
    forms = set(form_types) if form_types else None
    cutoff = since.isoformat() if since else None
    kept = [
        f for f in filings
        if (forms is None or f.form in forms)
        and (cutoff is None or f.filing_date >= cutoff)
    ]
    kept.sort(key=lambda f: f.filing_date, reverse=True)
    return kept


def build_document_url(cik, accession_number: str, primary_document: str) -> str:
    """
    Archive URL of a filing's primary document.

    The path uses the CIK without leading zeros and the accession number
    without dashes.
    """
    cik_part = str(cik).lstrip("0") or "0"
    accession_part = accession_number.replace("-", "")
    return f"{ARCHIVES_URL}/{cik_part}/{accession_part}/{primary_document}"
