"""
Exceptions raised by the SEC EDGAR source.
"""


class ProviderError(Exception):
    """Base exception for failed or malformed SEC EDGAR responses."""
    pass


class RateLimitError(ProviderError):
    """Raised when SEC keeps answering 429 after retries."""
    pass


class NoDataError(ProviderError):
    """Raised when SEC has no data for the request (unknown CIK, filing, ...)."""
    pass
