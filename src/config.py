"""
Tasks by Me — Centralized configuration.

Loads all settings from .env and validates required keys.
Every service takes its defaults from the `settings` singleton below.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_REQUIRED = ("TENANT_ID", "CLIENT_ID", "CLIENT_SECRET", "SESSION_SECRET", "REDIRECT_URI")


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Microsoft Entra ID app registration
    TENANT_ID: str
    CLIENT_ID: str
    CLIENT_SECRET: str
    REDIRECT_URI: str
    POST_LOGOUT_REDIRECT_URI: str = "http://localhost:8080"

    # Cookie session signing (used by the web layer)
    SESSION_SECRET: str

    # Local storage
    DATA_DIR: str = "data"
    MSAL_TOKEN_CACHE_PATH: str = ""  # empty → in-memory token cache only

    # Background refresh
    INACTIVITY_THRESHOLD_SECONDS: float = 2 * 60 * 60
    REFRESH_INTERVAL_SECONDS: float = 5 * 60
    USER_PACING_SECONDS: float = 1.0
    UPSTREAM_TIMEOUT_SECONDS: float = 120.0

    # Assignee profile lookups
    PROFILE_CACHE_TTL_SECONDS: float = 60 * 60

    LOG_LEVEL: str = "INFO"
    APP_ENV: str = "development"

    @field_validator(
        "INACTIVITY_THRESHOLD_SECONDS",
        "REFRESH_INTERVAL_SECONDS",
        "UPSTREAM_TIMEOUT_SECONDS",
        "PROFILE_CACHE_TTL_SECONDS",
        mode="before",
    )
    @classmethod
    def parse_positive(cls, v: str | float) -> float:
        value = float(v)
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("USER_PACING_SECONDS", mode="before")
    @classmethod
    def parse_pacing(cls, v: str | float) -> float:
        value = float(v)
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def parse_log_level(cls, v: str) -> str:
        return str(v).strip().upper() or "INFO"

    @property
    def authority(self) -> str:
        return f"https://login.microsoftonline.com/{self.TENANT_ID}"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.lower() == "development"


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    missing = [name for name in _REQUIRED if not os.getenv(name)]
    if missing:
        listing = "\n".join(f"- {name}" for name in missing)
        print(
            "ERROR: The following environment variables have not been set. "
            f"Cannot continue.\n{listing}",
            file=sys.stderr,
        )
        sys.exit(1)

    return Settings(
        TENANT_ID=os.environ["TENANT_ID"],
        CLIENT_ID=os.environ["CLIENT_ID"],
        CLIENT_SECRET=os.environ["CLIENT_SECRET"],
        REDIRECT_URI=os.environ["REDIRECT_URI"],
        POST_LOGOUT_REDIRECT_URI=os.getenv("POST_LOGOUT_REDIRECT_URI", "http://localhost:8080"),
        SESSION_SECRET=os.environ["SESSION_SECRET"],
        DATA_DIR=os.getenv("DATA_DIR", "data"),
        MSAL_TOKEN_CACHE_PATH=os.getenv("MSAL_TOKEN_CACHE_PATH", ""),
        INACTIVITY_THRESHOLD_SECONDS=os.getenv("INACTIVITY_THRESHOLD_SECONDS", "7200"),
        REFRESH_INTERVAL_SECONDS=os.getenv("REFRESH_INTERVAL_SECONDS", "300"),
        USER_PACING_SECONDS=os.getenv("USER_PACING_SECONDS", "1"),
        UPSTREAM_TIMEOUT_SECONDS=os.getenv("UPSTREAM_TIMEOUT_SECONDS", "120"),
        PROFILE_CACHE_TTL_SECONDS=os.getenv("PROFILE_CACHE_TTL_SECONDS", "3600"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        APP_ENV=os.getenv("APP_ENV", "development"),
    )


# Singleton — imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
