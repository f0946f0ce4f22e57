# config.py

"""Application configuration utilities.

Values are primarily loaded from ``config.json`` and may be overridden by
environment variables. The :func:`get_settings` helper merges the two sources
and caches the result.
"""

from __future__ import annotations

import json
import os
import re
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings merged from JSON and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./invoicing.db"
    redis_url: str = "redis://localhost:6379/0"
    seller_name: str = "Seller"
    seller_gstin: str = ""
    seller_state: str = "33-Tamil Nadu"
    b2cl_threshold: int = 250000
    invoice_number_retries: int = 5
    portal_token_ttl_days: int = 30
    public_base_url: str = ""
    artifacts_dir: str = "./storage/invoices"
    error_dsn: str | None = None
    log_level: str = "INFO"


# Cached singleton to avoid repeated file reads
@lru_cache
def get_settings() -> Settings:
    """Return merged settings with environment variable precedence.

    The configuration is read from ``config.json`` located alongside this file
    and fed into :class:`Settings`. Environment variables override any values
    from the JSON file. The result is cached to prevent repeated disk reads.
    """

    config_path = Path(__file__).with_name("config.json")
    data = json.loads(config_path.read_text()) if config_path.exists() else {}
    env_override = {
        k.lower(): v
        for k, v in os.environ.items()
        if k.lower() in Settings.model_fields
    }
    merged = {**data, **env_override}
    # Environment variables override values from the JSON file.
    return Settings(**merged)


def validate_settings(settings: Settings) -> None:
    """Raise ``RuntimeError`` listing every invalid setting."""

    problems: list[str] = []
    if not re.match(r"^\s*\d{1,2}(?!\d)", settings.seller_state or ""):
        problems.append("SELLER_STATE must start with a state code, e.g. 33-Tamil Nadu")
    if settings.b2cl_threshold <= 0:
        problems.append("B2CL_THRESHOLD must be positive")
    if settings.invoice_number_retries <= 0:
        problems.append("INVOICE_NUMBER_RETRIES must be positive")
    if settings.portal_token_ttl_days <= 0:
        problems.append("PORTAL_TOKEN_TTL_DAYS must be positive")
    if problems:
        raise RuntimeError("Invalid configuration: " + "; ".join(problems))
