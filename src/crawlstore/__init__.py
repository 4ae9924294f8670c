# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""crawlstore - storage for peer-to-peer network crawl topology snapshots.

Stores raw crawler output and processed crawls (node snapshots plus directed
peer connections) in a wide-column store, keeps a per-node change log and
latest-state view, and records per-crawl peer churn.

Quick Start:
    >>> from crawlstore import CrawlRepository
    >>> from crawlstore.clients import create_hbase_store
    >>> async def main(crawl, previous):
    ...     async with create_hbase_store() as store:
    ...         repo = CrawlRepository(store)
    ...         await repo.init_tables()
    ...         await repo.store_processed_crawl(crawl, previous)
"""

from crawlstore.enums import EnumConnectionDirection
from crawlstore.errors import (
    CrawlStoreError,
    KeyFormatError,
    NotFoundError,
    PartialWriteFailure,
    RowDecodeError,
    StoreRequestError,
    StoreUnavailableError,
)
from crawlstore.models import (
    ConnectionRecord,
    CrawlInfoRecord,
    CrawlSummary,
    NodeHistoryRecord,
    NodeSnapshot,
    NodeStateRecord,
    NodeStats,
    NodeStatsRecord,
    ProcessedCrawl,
    RawCrawl,
    RawCrawlRecord,
)
from crawlstore.protocols import ProtocolColumnStore, StoreRow
from crawlstore.repository import CrawlRepository

__version__ = "0.1.0"

__all__ = [
    "ConnectionRecord",
    "CrawlInfoRecord",
    "CrawlRepository",
    "CrawlStoreError",
    "CrawlSummary",
    "EnumConnectionDirection",
    "KeyFormatError",
    "NodeHistoryRecord",
    "NodeSnapshot",
    "NodeStateRecord",
    "NodeStats",
    "NodeStatsRecord",
    "NotFoundError",
    "PartialWriteFailure",
    "ProcessedCrawl",
    "ProtocolColumnStore",
    "RawCrawl",
    "RawCrawlRecord",
    "RowDecodeError",
    "StoreRequestError",
    "StoreRow",
    "StoreUnavailableError",
    "__version__",
]
