"""
SEC EDGAR client.

Uses the public SEC endpoints (no API key, only a declared User-Agent):
  - files/company_tickers.json       ticker / name -> CIK resolution
  - submissions/CIK##########.json   company info + recent filings
  - Archives/edgar/data/...          primary filing documents

The ticker file is a few MB, so it is kept in memory for TICKERS_CACHE_TTL
seconds.
"""

import logging
import sys
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

sys.path.append(str(Path(__file__).parent.parent.parent))

from models import SecCompanyMatch, SecFiling, normalize_cik
from utils.session import DEFAULT_MIN_INTERVAL, RequestSession
from .base import NoDataError, ProviderError, RateLimitError
from .filings import (
    DEFAULT_FORM_TYPES,
    DEFAULT_LOOKBACK_YEARS,
    filter_filings,
    lookback_date,
    parse_filings,
)

logger = logging.getLogger(__name__)

SEC_BASE = "https://www.sec.gov"
DATA_BASE = "https://data.sec.gov"
TICKERS_URL = f"{SEC_BASE}/files/company_tickers.json"
SUBMISSIONS_URL = f"{DATA_BASE}/submissions/CIK{{cik}}.json"

TICKERS_CACHE_TTL = 1800  # 30 minutes
SEARCH_LIMIT = 10


def is_sec_url(url: str) -> bool:
    """True for http(s) URLs on sec.gov or one of its subdomains."""
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    return parsed.scheme in ("http", "https") and (host == "sec.gov" or host.endswith(".sec.gov"))


class SecEdgarClient:
    """Client for the SEC EDGAR company, submissions and archive endpoints."""

    def __init__(
        self,
        session: Optional[RequestSession] = None,
        user_agent: Optional[str] = None,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        tickers_ttl: float = TICKERS_CACHE_TTL,
    ):
        self.session = session or RequestSession(user_agent=user_agent, min_interval=min_interval)
        self.tickers_ttl = tickers_ttl
        self._tickers: Optional[List[Dict]] = None
        self._tickers_at = 0.0
        self._lock = threading.Lock()
        self.name = "SEC EDGAR"

    def _get(self, url: str, **kwargs):
        resp = self.session.get(url, **kwargs)
        if resp is None:
            raise ProviderError(f"Request to {url} failed")
        if resp.status_code == 429:
            raise RateLimitError(f"SEC rate limit hit for {url}")
        if resp.status_code == 404:
            raise NoDataError(f"Not found: {url}")
        if not resp:
            raise ProviderError(f"SEC returned HTTP {resp.status_code} for {url}")
        return resp

    def _get_json(self, url: str):
        resp = self._get(url)
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from {url}: {e}")

    # ------------------------------------------------------------------
    # Companies
    # ------------------------------------------------------------------

    def _load_tickers(self) -> List[Dict]:
        with self._lock:
            if self._tickers is not None and time.time() - self._tickers_at < self.tickers_ttl:
                return self._tickers

            data = self._get_json(TICKERS_URL)
            if not isinstance(data, dict):
                raise ProviderError("Unexpected company_tickers.json format")
            self._tickers = [entry for entry in data.values() if isinstance(entry, dict)]
            self._tickers_at = time.time()
            logger.debug(f"Loaded {len(self._tickers)} tickers from SEC")
            return self._tickers

    @staticmethod
    def _to_match(entry: Dict) -> SecCompanyMatch:
        return SecCompanyMatch(
            cik=normalize_cik(entry.get("cik_str", "")),
            name=entry.get("title", ""),
            ticker=entry.get("ticker") or None,
        )

    def search_companies(self, query: str, limit: int = SEARCH_LIMIT) -> List[SecCompanyMatch]:
        """
        Case-insensitive substring search over company name, ticker and CIK.

        Raises:
            ProviderError: the ticker file could not be fetched
        """
        q = query.strip().lower()
        if not q:
            return []

        matches = []
        for entry in self._load_tickers():
            title = str(entry.get("title", "")).lower()
            ticker = str(entry.get("ticker", "")).lower()
            cik = str(entry.get("cik_str", ""))
            if q in title or q in ticker or q in cik:
                matches.append(self._to_match(entry))
                if len(matches) >= limit:
                    break
        return matches

    def lookup_ticker(self, ticker: str) -> Optional[SecCompanyMatch]:
        """Exact (case-insensitive) ticker lookup."""
        wanted = ticker.strip().upper()
        for entry in self._load_tickers():
            if str(entry.get("ticker", "")).upper() == wanted:
                return self._to_match(entry)
        return None

    # ------------------------------------------------------------------
    # Filings
    # ------------------------------------------------------------------

    def get_submissions(self, cik) -> Dict:
        """
        Fetch the submissions payload of a company.

        Returns:
            Dict with (among others) keys: cik, name, tickers, filings
        """
        url = SUBMISSIONS_URL.format(cik=normalize_cik(cik))
        data = self._get_json(url)
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected submissions format for CIK {cik}")
        return data

    def get_filings(
        self,
        cik,
        form_types: Optional[Iterable[str]] = DEFAULT_FORM_TYPES,
        years: Optional[int] = DEFAULT_LOOKBACK_YEARS,
    ) -> List[SecFiling]:
        """Recent filings of the given form types within the last `years` years, newest first."""
        submission = self.get_submissions(cik)
        since = lookback_date(years) if years else None
        filings = filter_filings(parse_filings(submission), form_types, since)
        logger.info(f"CIK {cik}: {len(filings)} filings of {form_types} since {since}")
        return filings

    def fetch_document(self, url: str) -> str:
        """
        Download a filing document.

        Raises:
            ProviderError: url is not on sec.gov or the download failed
        """
        if not is_sec_url(url):
            raise ProviderError(f"Refusing to fetch non-SEC URL: {url}")
        resp = self._get(url)
        logger.info(f"Fetched {len(resp.text):,} chars from {url}")
        return resp.text

    def close(self) -> None:
        self.session.close()
