# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Exception hierarchy for crawl storage.

Every store operation propagates its failure directly to the caller; nothing
in this package retries. Callers that need to distinguish failure modes catch
the specific subclasses below.
"""

from __future__ import annotations

from collections.abc import Sequence


class CrawlStoreError(Exception):
    """Base exception for all crawl storage errors."""


class StoreUnavailableError(CrawlStoreError):
    """Raised when the column store cannot be reached (transport, timeout, 5xx)."""


class StoreRequestError(CrawlStoreError):
    """Raised when the column store rejects a request (non-404 4xx)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(CrawlStoreError):
    """Raised by a store when a point read finds no row."""

    def __init__(self, table: str, rowkey: str) -> None:
        super().__init__(f"No row {rowkey!r} in table {table!r}")
        self.table = table
        self.rowkey = rowkey


class KeyFormatError(CrawlStoreError, ValueError):
    """Raised when a composite row key cannot be encoded or decoded."""


class RowDecodeError(CrawlStoreError):
    """Raised when a stored row cannot be decoded into a typed record."""


class PartialWriteFailure(CrawlStoreError):
    """Raised when a write group of a processed crawl fails.

    Rows already written by the sibling groups stay in the store; no summary
    row is written for the crawl.

    Attributes:
        crawl_key: Crawl whose write failed.
        failed_groups: Names of the write groups that raised.
        completed_groups: Names of the write groups that finished.
        errors: The underlying exceptions, in failed_groups order.
    """

    def __init__(
        self,
        crawl_key: str,
        *,
        failed_groups: Sequence[str],
        completed_groups: Sequence[str],
        errors: Sequence[BaseException],
    ) -> None:
        self.crawl_key = crawl_key
        self.failed_groups = list(failed_groups)
        self.completed_groups = list(completed_groups)
        self.errors = list(errors)
        super().__init__(
            f"Processed crawl {crawl_key!r} partially written: "
            f"failed={self.failed_groups} completed={self.completed_groups}"
        )


__all__ = [
    "CrawlStoreError",
    "KeyFormatError",
    "NotFoundError",
    "PartialWriteFailure",
    "RowDecodeError",
    "StoreRequestError",
    "StoreUnavailableError",
]
