"""
Configuration management for the filing reader API.

Values come from the environment, with a .env file in the project root
loaded first when present.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from anchoring.chunking import DEFAULT_CHUNK_SIZE
from sources.sec_edgar.filings import DEFAULT_LOOKBACK_YEARS
from utils.session import DEFAULT_MIN_INTERVAL, DEFAULT_USER_AGENT

BASE_DIR: Path = Path(__file__).parent.parent

load_dotenv(BASE_DIR / ".env")


def _split(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


class Settings:
    """API server configuration."""

    # Paths
    BASE_DIR: Path = BASE_DIR
    DB_PATH: str = os.getenv("READER_DB_PATH", str(BASE_DIR / "data" / "reader.db"))

    # Server
    API_TITLE: str = "SEC EDGAR Filing Reader API"
    API_DESCRIPTION: str = "Read SEC filings and keep highlights, notes and bookmarks on them"
    API_VERSION: str = "1.0.0"
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # CORS
    CORS_ORIGINS: List[str] = _split(os.getenv("CORS_ORIGINS", "*"))

    # Documents
    CHUNK_SIZE: int = int(os.getenv("READER_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE)))

    # SEC EDGAR
    SEC_USER_AGENT: str = os.getenv("SEC_USER_AGENT", DEFAULT_USER_AGENT)
    SEC_MIN_INTERVAL: float = float(os.getenv("SEC_MIN_INTERVAL", str(DEFAULT_MIN_INTERVAL)))
    FILING_LOOKBACK_YEARS: int = int(os.getenv("FILING_LOOKBACK_YEARS", str(DEFAULT_LOOKBACK_YEARS)))


settings = Settings()
