# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""
Pytest configuration and fixtures for crawlstore tests.

Shared fixtures build an in-memory store and a repository with a fixed clock.
"""

from datetime import UTC, datetime

import pytest
import pytest_asyncio

from crawlstore.repository import CrawlRepository
from crawlstore.testing import InMemoryColumnStore

FIXED_NOW = datetime(2026, 3, 1, 12, 30, 45, tzinfo=UTC)


@pytest.fixture
def correlation_id() -> str:
    """Provide a valid UUID test correlation ID for distributed tracing."""
    return "550e8400-e29b-41d4-a716-446655440000"


@pytest.fixture
def fixed_now() -> datetime:
    """The instant the repository clock reports."""
    return FIXED_NOW


@pytest.fixture
def memory_store() -> InMemoryColumnStore:
    """Empty in-memory store with no tables."""
    return InMemoryColumnStore()


@pytest_asyncio.fixture
async def repo(memory_store: InMemoryColumnStore) -> CrawlRepository:
    """Repository over an in-memory store with every crawl table created."""
    repository = CrawlRepository(memory_store, clock=lambda: FIXED_NOW)
    await repository.init_tables()
    return repository
