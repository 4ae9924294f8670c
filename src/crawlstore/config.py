# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Settings for crawlstore, loaded from the environment.

Environment variables:
    CRAWLSTORE_HBASE_URL: Base URL of the HBase REST gateway
        (default ``http://localhost:8080``).
    CRAWLSTORE_REQUEST_TIMEOUT_SECONDS: Per-request timeout (default 10).
    CRAWLSTORE_SCAN_BATCH_SIZE: Cells fetched per scanner round trip
        (default 1000).
    CRAWLSTORE_LOG_LEVEL: Level applied by ``configure_logging`` (default INFO).
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from crawlstore.enums import EnumLogLevel


class CrawlStoreSettings(BaseSettings):
    """Pydantic Settings for the crawl store client."""

    model_config = SettingsConfigDict(
        env_prefix="CRAWLSTORE_",
        extra="ignore",
    )

    hbase_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the HBase REST gateway",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=600.0,
        description="Timeout for a single store request",
    )
    scan_batch_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Cells fetched per scanner round trip",
    )
    log_level: EnumLogLevel = Field(
        default=EnumLogLevel.INFO,
        description="Log level for the crawlstore package logger",
    )

    @field_validator("hbase_url")
    @classmethod
    def validate_hbase_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"hbase_url must be an http(s) URL, got {v!r}")
        return v.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> CrawlStoreSettings:
    """Return the process-wide settings, read from the environment once."""
    return CrawlStoreSettings()


def configure_logging(settings: CrawlStoreSettings | None = None) -> None:
    """Apply the configured level to the ``crawlstore`` logger.

    Handlers are left to the application.
    """
    settings = settings or get_settings()
    logging.getLogger("crawlstore").setLevel(settings.log_level.value)


__all__ = ["CrawlStoreSettings", "configure_logging", "get_settings"]
