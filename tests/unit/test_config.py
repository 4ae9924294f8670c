# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Unit tests for CrawlStoreSettings and logging configuration."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from crawlstore.clients import HBaseRestStore, create_hbase_store
from crawlstore.config import CrawlStoreSettings, configure_logging
from crawlstore.enums import EnumLogLevel


@pytest.mark.unit
class TestCrawlStoreSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("HBASE_URL", "REQUEST_TIMEOUT_SECONDS", "SCAN_BATCH_SIZE", "LOG_LEVEL"):
            monkeypatch.delenv(f"CRAWLSTORE_{name}", raising=False)
        settings = CrawlStoreSettings()
        assert settings.hbase_url == "http://localhost:8080"
        assert settings.request_timeout_seconds == 10.0
        assert settings.scan_batch_size == 1000
        assert settings.log_level is EnumLogLevel.INFO

    def test_reads_prefixed_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CRAWLSTORE_HBASE_URL", "https://hbase.internal:8080/")
        monkeypatch.setenv("CRAWLSTORE_SCAN_BATCH_SIZE", "250")
        monkeypatch.setenv("CRAWLSTORE_LOG_LEVEL", "DEBUG")
        settings = CrawlStoreSettings()
        assert settings.hbase_url == "https://hbase.internal:8080"
        assert settings.scan_batch_size == 250
        assert settings.log_level is EnumLogLevel.DEBUG

    def test_rejects_non_http_url(self) -> None:
        with pytest.raises(ValidationError, match="http"):
            CrawlStoreSettings(hbase_url="thrift://hbase:9090")

    @pytest.mark.parametrize("timeout", [0, -1, 601])
    def test_rejects_out_of_range_timeout(self, timeout: float) -> None:
        with pytest.raises(ValidationError):
            CrawlStoreSettings(request_timeout_seconds=timeout)

    def test_rejects_zero_batch_size(self) -> None:
        with pytest.raises(ValidationError):
            CrawlStoreSettings(scan_batch_size=0)


@pytest.mark.unit
class TestFactories:
    """Tests for settings-driven construction."""

    def test_create_hbase_store_uses_settings(self) -> None:
        settings = CrawlStoreSettings(hbase_url="http://gateway:8080", scan_batch_size=10)
        store = create_hbase_store(settings)
        assert isinstance(store, HBaseRestStore)
        assert store.base_url == "http://gateway:8080"
        assert store.is_connected is False

    def test_configure_logging_sets_package_level(self) -> None:
        logger = logging.getLogger("crawlstore")
        previous = logger.level
        try:
            configure_logging(CrawlStoreSettings(log_level=EnumLogLevel.WARNING))
            assert logger.level == logging.WARNING
        finally:
            logger.setLevel(previous)
