"""
Shared HTTP session for SEC EDGAR requests.

SEC asks automated clients to declare who they are in the User-Agent header
and to stay under 10 requests per second. RequestSession wraps a
requests.Session with that header, a minimum spacing between requests and
urllib3 retries for throttling and transient server errors.
"""

import logging
import os
import threading
import time
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "EDGAR Reader contact@example.com"
DEFAULT_MIN_INTERVAL = 0.125  # 8 req/s
RETRY_STATUSES = (429, 500, 502, 503, 504)


class RequestSession:
    """Throttled, retrying wrapper around requests.Session."""

    def __init__(
        self,
        user_agent: Optional[str] = None,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        retries: int = 3,
        timeout: float = 30.0,
    ):
        self.user_agent = user_agent or os.getenv("SEC_USER_AGENT", DEFAULT_USER_AGENT)
        self.min_interval = min_interval
        self.timeout = timeout
        self._lock = threading.Lock()
        self._last_request: Optional[float] = None

        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": self.user_agent,
            "Accept-Encoding": "gzip, deflate",
        })
        retry = Retry(
            total=retries,
            backoff_factor=0.5,
            status_forcelist=RETRY_STATUSES,
            allowed_methods=("GET",),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def _throttle(self) -> None:
        with self._lock:
            if self._last_request is not None:
                wait = self.min_interval - (time.monotonic() - self._last_request)
                if wait > 0:
                    time.sleep(wait)
            self._last_request = time.monotonic()

    def get(self, url: str, **kwargs) -> Optional[requests.Response]:
        """
        GET a URL.

        Returns the response whatever its status code, or None when the
        request could not be completed at all.
        """
        kwargs.setdefault("timeout", self.timeout)
        self._throttle()
        try:
            res = self.session.get(url, **kwargs)
        except requests.RequestException as e:
            logger.error(f"GET {url} failed: {e}")
            return None
        logger.debug(f"GET {url} -> {res.status_code}")
        return res

    def close(self) -> None:
        self.session.close()
