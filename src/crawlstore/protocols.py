# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Protocol definitions for the column store the repository runs on.

The repository depends on ``ProtocolColumnStore`` (not on a concrete client)
so the HBase REST client, the in-memory store and test doubles are
interchangeable.

Scan bounds:
    ``start_row`` is inclusive and ``stop_row`` exclusive. Both are always the
    logical low and high ends of the range; ``descending=True`` only reverses
    the order rows are returned in (and which end ``limit`` keeps).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from crawlstore.filters import ColumnValueFilterSpec
    from crawlstore.schema import TableSchema


@dataclass(frozen=True)
class StoreRow:
    """One row as returned by a store, before normalization.

    Attributes:
        rowkey: The row key.
        cells: ``family:qualifier`` -> raw cell bytes.
    """

    rowkey: str
    cells: Mapping[str, bytes] = field(default_factory=dict)


@runtime_checkable
class ProtocolColumnStore(Protocol):
    """Async wide-column store capability.

    Implementations must provide:
    - ``create_table`` / ``delete_table``: Table lifecycle.
    - ``put_row`` / ``put_rows``: Writes, each call atomic from the caller's view.
    - ``get_row``: Point read, raising ``NotFoundError`` if absent.
    - ``get_scan``: Range scan with optional order, limit and filter.
    - ``build_single_column_value_filters``: Filter string construction.

    Failures propagate as ``CrawlStoreError`` subclasses; implementations do
    not retry.
    """

    async def create_table(self, table: TableSchema) -> None:
        """Create ``table`` with its column families."""
        ...

    async def delete_table(self, table: TableSchema) -> None:
        """Delete ``table`` and all of its rows."""
        ...

    async def put_row(self, table: str, rowkey: str, columns: Mapping[str, str]) -> None:
        """Write one row of ``family:qualifier -> value`` columns."""
        ...

    async def put_rows(self, table: str, rows: Mapping[str, Mapping[str, str]]) -> None:
        """Write many rows keyed by row key."""
        ...

    async def get_row(self, table: str, rowkey: str) -> StoreRow:
        """Read one row.

        Raises:
            NotFoundError: If the row does not exist.
        """
        ...

    async def get_scan(
        self,
        table: str,
        *,
        start_row: str | None = None,
        stop_row: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        filter_string: str | None = None,
    ) -> list[StoreRow]:
        """Scan ``[start_row, stop_row)``; ``None`` bounds are open."""
        ...

    def build_single_column_value_filters(
        self,
        specs: Sequence[ColumnValueFilterSpec | Mapping[str, str]],
    ) -> str:
        """Build a ``filter_string`` for ``get_scan``."""
        ...


__all__ = [
    "ProtocolColumnStore",
    "StoreRow",
]
