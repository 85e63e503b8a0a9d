"""
SEC EDGAR source for the filing reader.

Resolves companies through company_tickers.json, lists their filings from
the submissions endpoint and fetches primary filing documents from the
EDGAR archives.
"""
