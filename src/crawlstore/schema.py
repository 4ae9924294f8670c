# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Static schema registry for the crawl tables.

Each table has exactly one column family. ``columns`` maps record field names
to the column qualifiers actually stored, so that the qualifier strings live
here and nowhere else. Qualifiers keep the names used by the crawler's
historical data (``ipp`` for the ip:port address, ``exceptions`` for error
lists).

Tables:
    crawls            (c)   crawl summary, keyed by crawl key
    connections       (cn)  directed edges, keyed by crawl+from+to
    crawl_node_stats  (s)   per-node stats, keyed by crawl+pubkey
    raw_crawls        (rc)  verbatim crawler output, keyed by time range
    nodes             (n)   node change log, keyed by pubkey+crawl
    node_state        (n)   latest node view, keyed by pubkey
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType

from crawlstore.errors import RowDecodeError

COLUMN_SEPARATOR = ":"


@dataclass(frozen=True)
class TableSchema:
    """Layout of one wide-column table.

    Attributes:
        name: Table name in the store.
        family: The table's single column family.
        columns: Record field name -> column qualifier.
    """

    name: str
    family: str
    columns: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", MappingProxyType(dict(self.columns)))

    @cached_property
    def _fields_by_qualifier(self) -> Mapping[str, str]:
        return {qualifier: name for name, qualifier in self.columns.items()}

    @property
    def column_families(self) -> frozenset[str]:
        return frozenset({self.family})

    def qualified(self, field_name: str) -> str:
        """Return ``family:qualifier`` for a record field."""
        try:
            qualifier = self.columns[field_name]
        except KeyError:
            msg = f"Table {self.name!r} has no field {field_name!r}"
            raise ValueError(msg) from None
        return f"{self.family}{COLUMN_SEPARATOR}{qualifier}"

    def encode_columns(self, values: Mapping[str, str | None]) -> dict[str, str]:
        """Map field values to qualified column names, dropping ``None`` values."""
        return {
            self.qualified(name): value
            for name, value in values.items()
            if value is not None
        }

    def decode_columns(self, cells: Mapping[str, str]) -> dict[str, str]:
        """Map qualified column names back to record field names.

        Qualifiers this registry does not know are ignored.

        Raises:
            RowDecodeError: If a column belongs to another family.
        """
        fields_by_qualifier = self._fields_by_qualifier
        decoded: dict[str, str] = {}
        for column, value in cells.items():
            family, sep, qualifier = column.partition(COLUMN_SEPARATOR)
            if not sep or family != self.family:
                msg = f"Column {column!r} is not in family {self.family!r} of {self.name!r}"
                raise RowDecodeError(msg)
            field_name = fields_by_qualifier.get(qualifier)
            if field_name is not None:
                decoded[field_name] = value
        return decoded


CRAWLS = TableSchema(
    name="crawls",
    family="c",
    columns={"entry": "entry"},
)

CONNECTIONS = TableSchema(
    name="connections",
    family="cn",
    columns={"to": "to"},
)

CRAWL_NODE_STATS = TableSchema(
    name="crawl_node_stats",
    family="s",
    columns={
        "pubkey": "pubkey",
        "address": "ipp",
        "version": "version",
        "uptime": "uptime",
        "request_time": "request_time",
        "errors": "exceptions",
        "in_count": "in_count",
        "out_count": "out_count",
        "in_add_count": "in_add_count",
        "in_drop_count": "in_drop_count",
        "out_add_count": "out_add_count",
        "out_drop_count": "out_drop_count",
    },
)

RAW_CRAWLS = TableSchema(
    name="raw_crawls",
    family="rc",
    columns={"entry": "entry_ipp", "data": "data", "errors": "exceptions"},
)

NODES = TableSchema(
    name="nodes",
    family="n",
    columns={"address": "ipp", "version": "version"},
)

NODE_STATE = TableSchema(
    name="node_state",
    family="n",
    columns={"address": "ipp", "version": "version", "last_updated": "last_updated"},
)

ALL_TABLES: tuple[TableSchema, ...] = (
    CRAWLS,
    CONNECTIONS,
    CRAWL_NODE_STATS,
    RAW_CRAWLS,
    NODES,
    NODE_STATE,
)

_TABLES_BY_NAME = {table.name: table for table in ALL_TABLES}


def get_table(name: str) -> TableSchema:
    """Look up a registered table by name.

    Raises:
        KeyError: If no table has that name.
    """
    return _TABLES_BY_NAME[name]


__all__ = [
    "ALL_TABLES",
    "COLUMN_SEPARATOR",
    "CONNECTIONS",
    "CRAWLS",
    "CRAWL_NODE_STATS",
    "NODES",
    "NODE_STATE",
    "RAW_CRAWLS",
    "TableSchema",
    "get_table",
]
