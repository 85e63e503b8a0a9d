"""
REST API for the SEC EDGAR filing reader.

Exposes stored filings and their annotations over HTTP for the reader
front end, with filing import from SEC EDGAR.
"""

__version__ = "1.0.0"
