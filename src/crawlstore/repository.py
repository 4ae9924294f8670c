# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Read and write operations for crawl topology snapshots.

Provides the CrawlRepository, which fans a processed crawl out across the
crawl tables and reads it back as typed records. Row keys come from
``crawlstore.keys``, column names from ``crawlstore.schema`` and peer churn
from ``crawlstore.delta``; the repository itself holds no state between calls.

Write Semantics:
    ``store_processed_crawl`` builds every row first (so malformed ids fail
    before anything is written), then runs three write groups concurrently
    in a task group:

    - ``nodes``: change-log rows, then node_state rows
    - ``stats``: one crawl_node_stats row per node in the crawl
    - ``connections``: one row per directed edge

    Only when all three succeed is the ``crawls`` summary row written, so a
    summary row marks a complete crawl. If a group fails the call raises
    ``PartialWriteFailure``; rows written by the other groups stay in place
    and no summary row is written. Re-issuing the whole crawl overwrites the
    same rows, except that the change log is computed against the old crawl
    the caller passes in.

    Writes for the same crawl key must not run concurrently; nothing here
    locks or deduplicates.

Read Semantics:
    Point lookups (``get_raw_crawl_by_key``, ``get_crawl_info``,
    ``get_node_state``, ``get_latest_raw_crawl``) return ``None`` when no row
    exists. Range reads return lists ordered by row key.
    ``get_crawl_info(key, at_or_before=True)`` instead returns the latest crawl
    whose key sorts at or before ``key``.

    ``get_connections(..., "in")`` cannot use a key range because edges are
    keyed by source; it scans the whole crawl's edges with a ``cn:to`` value
    filter, so its cost grows with the crawl's edge count rather than the
    node's.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from crawlstore import delta
from crawlstore.enums import EnumConnectionDirection
from crawlstore.errors import NotFoundError, PartialWriteFailure, RowDecodeError
from crawlstore.filters import ColumnValueFilterSpec
from crawlstore.keys import (
    RAW_CRAWL_RANGE,
    decode_connection_key,
    decode_node_key,
    decode_stats_key,
    decode_time_range_key,
    encode_connection_key,
    encode_crawl_key,
    encode_node_key,
    encode_node_state_key,
    encode_stats_key,
    encode_time_range_key,
    prefix_range,
    split_connection_pair,
    validate_id,
)
from crawlstore.models import (
    NOT_PRESENT,
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
from crawlstore.normalizer import ROWKEY_FIELD, normalize_row, normalize_rows
from crawlstore.protocols import ProtocolColumnStore
from crawlstore.schema import (
    ALL_TABLES,
    CONNECTIONS,
    CRAWL_NODE_STATS,
    CRAWLS,
    NODE_STATE,
    NODES,
    RAW_CRAWLS,
    TableSchema,
)

logger = logging.getLogger(__name__)

LAST_UPDATED_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

WRITE_GROUP_NODES = "nodes"
WRITE_GROUP_STATS = "stats"
WRITE_GROUP_CONNECTIONS = "connections"

_RecordT = TypeVar("_RecordT", bound=BaseModel)

Rows = dict[str, dict[str, str]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _count_text(value: int | float | None) -> str | None:
    return None if value is None else str(value)


def _json_text(value: Any) -> str | None:
    return None if value is None else json.dumps(value)


def _coerce(model: type[_RecordT], value: _RecordT | Mapping[str, Any]) -> _RecordT:
    if isinstance(value, model):
        return value
    return model.model_validate(value)


class CrawlRepository:
    """Repository for crawl snapshots on a wide-column store.

    Args:
        store: Any ``ProtocolColumnStore`` implementation.
        clock: Returns the current time for ``node_state.last_updated``;
            defaults to UTC now.
    """

    def __init__(
        self,
        store: ProtocolColumnStore,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or _utcnow

    @property
    def store(self) -> ProtocolColumnStore:
        return self._store

    # ------------------------------------------------------------------
    # Table maintenance
    # ------------------------------------------------------------------

    async def init_tables(self, *, recreate: bool = False) -> None:
        """Create every crawl table; with ``recreate`` delete them first.

        Recreating drops all stored crawls and is a maintenance operation.
        """
        if recreate:
            async with asyncio.TaskGroup() as tg:
                for table in ALL_TABLES:
                    tg.create_task(self._delete_table(table))
        async with asyncio.TaskGroup() as tg:
            for table in ALL_TABLES:
                tg.create_task(self._store.create_table(table))
        logger.info("Initialized %d crawl tables (recreate=%s)", len(ALL_TABLES), recreate)

    async def _delete_table(self, table: TableSchema) -> None:
        try:
            await self._store.delete_table(table)
        except NotFoundError:
            logger.warning("Table %s did not exist; nothing to delete", table.name)

    # ------------------------------------------------------------------
    # Raw crawls
    # ------------------------------------------------------------------

    async def store_raw_crawl(self, crawl: RawCrawl | Mapping[str, Any]) -> str:
        """Store crawler output verbatim under its time-range key.

        Returns:
            The row key, ``"<start13>_<end13>"``.
        """
        crawl = _coerce(RawCrawl, crawl)
        key = encode_time_range_key(crawl.start, crawl.end)
        columns = RAW_CRAWLS.encode_columns(
            {
                "entry": crawl.entry,
                "data": json.dumps(crawl.data),
                "errors": json.dumps(crawl.errors),
            }
        )
        await self._store.put_row(RAW_CRAWLS.name, key, columns)
        logger.debug("Stored raw crawl %s", key)
        return key

    async def get_latest_raw_crawl(self) -> RawCrawlRecord | None:
        """Return the raw crawl with the latest start time, or None."""
        start, stop = RAW_CRAWL_RANGE
        rows = await self._scan(RAW_CRAWLS, start, stop, descending=True, limit=1)
        if not rows:
            return None
        return self._raw_crawl_record(rows[0])

    async def get_raw_crawl_by_key(self, key: str) -> RawCrawlRecord | None:
        """Return the raw crawl stored under ``key``, or None.

        Raises:
            KeyFormatError: If ``key`` is not a time-range key.
        """
        decode_time_range_key(key)
        row = await self._get(RAW_CRAWLS, key)
        if row is None:
            return None
        return self._raw_crawl_record(row)

    # ------------------------------------------------------------------
    # Processed crawls
    # ------------------------------------------------------------------

    def build_changed_nodes(
        self,
        new_nodes: Mapping[str, NodeSnapshot],
        old_nodes: Mapping[str, NodeSnapshot] | None,
    ) -> dict[str, NodeSnapshot]:
        """Nodes of the new crawl that are new or changed address/version."""
        return delta.compute_changed_nodes(new_nodes, old_nodes)

    def build_node_stats(
        self,
        new_crawl: ProcessedCrawl,
        old_crawl: ProcessedCrawl | None,
    ) -> dict[str, NodeStats]:
        """Per-node stats of the new crawl, with peer churn against the old one."""
        return delta.compute_node_stats(new_crawl, old_crawl)

    async def store_processed_crawl(
        self,
        new_crawl: ProcessedCrawl | Mapping[str, Any],
        old_crawl: ProcessedCrawl | Mapping[str, Any] | None = None,
        *,
        correlation_id: str | None = None,
    ) -> str:
        """Store a processed crawl and its delta against the previous crawl.

        Args:
            new_crawl: The crawl to store.
            old_crawl: The previously stored crawl, or None for the first.
            correlation_id: Optional tracing ID, attached to log records.

        Returns:
            The crawl key (``new_crawl.crawl.id``).

        Raises:
            KeyFormatError: If the crawl key, a pubkey or a connection is
                malformed. Nothing has been written.
            PartialWriteFailure: If a write group failed. Other groups may
                have written rows; no summary row was written.
        """
        new_crawl = _coerce(ProcessedCrawl, new_crawl)
        old = _coerce(ProcessedCrawl, old_crawl) if old_crawl is not None else None
        crawl_key = encode_crawl_key(new_crawl.crawl.id)
        log_extra = {"correlation_id": correlation_id, "crawl_key": crawl_key}

        changed_nodes = self.build_changed_nodes(new_crawl.nodes, old.nodes if old else None)
        node_stats = self.build_node_stats(new_crawl, old)

        history_rows, state_rows = self._node_rows(changed_nodes, crawl_key)
        stats_rows = self._stats_rows(node_stats, crawl_key)
        connection_rows = self._connection_rows(new_crawl.connections, crawl_key)

        groups = {
            WRITE_GROUP_NODES: self._write_node_rows(history_rows, state_rows),
            WRITE_GROUP_STATS: self._put_rows(CRAWL_NODE_STATS, stats_rows),
            WRITE_GROUP_CONNECTIONS: self._put_rows(CONNECTIONS, connection_rows),
        }
        tasks: dict[str, asyncio.Task[None]] = {}
        try:
            async with asyncio.TaskGroup() as tg:
                for name, coro in groups.items():
                    tasks[name] = tg.create_task(coro, name=f"{crawl_key}:{name}")
        except ExceptionGroup as eg:
            failed = [
                name
                for name, task in tasks.items()
                if task.done() and not task.cancelled() and task.exception() is not None
            ]
            completed = [
                name
                for name, task in tasks.items()
                if task.done() and not task.cancelled() and task.exception() is None
            ]
            logger.error(
                "Processed crawl %s partially written: failed=%s completed=%s",
                crawl_key,
                failed,
                completed,
                extra=log_extra,
            )
            raise PartialWriteFailure(
                crawl_key,
                failed_groups=failed,
                completed_groups=completed,
                errors=eg.exceptions,
            ) from eg

        await self.store_crawl_info(new_crawl.crawl, crawl_key)
        logger.info(
            "Stored processed crawl %s: nodes=%d changed=%d edges=%d",
            crawl_key,
            len(new_crawl.nodes),
            len(changed_nodes),
            len(connection_rows),
            extra=log_extra,
        )
        return crawl_key

    async def store_changed_nodes(
        self,
        nodes: Mapping[str, NodeSnapshot],
        crawl_key: str,
    ) -> None:
        """Write change-log rows for ``nodes`` and overwrite their node_state."""
        history_rows, state_rows = self._node_rows(nodes, crawl_key)
        await self._write_node_rows(history_rows, state_rows)

    async def store_crawl_node_stats(
        self,
        stats: Mapping[str, NodeStats],
        crawl_key: str,
    ) -> None:
        await self._put_rows(CRAWL_NODE_STATS, self._stats_rows(stats, crawl_key))

    async def store_connections(self, connections: Mapping[str, Any], crawl_key: str) -> None:
        await self._put_rows(CONNECTIONS, self._connection_rows(connections, crawl_key))

    async def store_crawl_info(self, crawl: CrawlSummary, crawl_key: str) -> None:
        """Write the crawl summary row, the completion marker of a crawl."""
        columns = CRAWLS.encode_columns({"entry": crawl.entry or NOT_PRESENT})
        await self._store.put_row(CRAWLS.name, encode_crawl_key(crawl_key), columns)

    async def get_crawl_info(
        self,
        crawl_key: str | None = None,
        *,
        at_or_before: bool = False,
    ) -> CrawlInfoRecord | None:
        """Return a crawl summary.

        Args:
            crawl_key: Crawl to look up. If omitted, the latest crawl.
            at_or_before: Return the latest crawl whose key is ``crawl_key``
                or sorts before it, instead of requiring an exact match.

        Returns:
            The summary, or None if no crawl matches.
        """
        if crawl_key is None:
            rows = await self._scan(CRAWLS, None, None, descending=True, limit=1)
            row = rows[0] if rows else None
        elif at_or_before:
            # The smallest key above crawl_key is crawl_key + NUL.
            stop_row = encode_crawl_key(crawl_key) + "\x00"
            rows = await self._scan(CRAWLS, None, stop_row, descending=True, limit=1)
            row = rows[0] if rows else None
        else:
            row = await self._get(CRAWLS, encode_crawl_key(crawl_key))
        if row is None:
            return None
        return self._record(CrawlInfoRecord, CRAWLS, row, crawl_key=row[ROWKEY_FIELD])

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def get_node_history(self, pubkey: str) -> list[NodeHistoryRecord]:
        """Return the change log of one node, oldest crawl first."""
        start, stop = prefix_range(pubkey)
        rows = await self._scan(NODES, start, stop)
        records = []
        for row in rows:
            crawl_key, node_pubkey = decode_node_key(row[ROWKEY_FIELD])
            records.append(
                self._record(NodeHistoryRecord, NODES, row, crawl_key=crawl_key, pubkey=node_pubkey)
            )
        return records

    async def get_node_state(self, pubkey: str) -> NodeStateRecord | None:
        row = await self._get(NODE_STATE, encode_node_state_key(pubkey))
        if row is None:
            return None
        return self._record(NodeStateRecord, NODE_STATE, row, pubkey=row[ROWKEY_FIELD])

    async def get_crawl_node_stats(self, crawl_key: str) -> list[NodeStatsRecord]:
        """Return the stats of every node in one crawl, ordered by pubkey."""
        start, stop = prefix_range(crawl_key)
        rows = await self._scan(CRAWL_NODE_STATS, start, stop)
        records = []
        for row in rows:
            row_crawl_key, pubkey = decode_stats_key(row[ROWKEY_FIELD])
            records.append(
                self._record(
                    NodeStatsRecord, CRAWL_NODE_STATS, row, crawl_key=row_crawl_key, pubkey=pubkey
                )
            )
        return records

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def get_connections(
        self,
        crawl_key: str,
        pubkey: str,
        direction: EnumConnectionDirection | str,
    ) -> list[ConnectionRecord]:
        """Return one node's edges in one crawl.

        ``"out"`` reads the ``<crawl>+<pubkey>+`` key range. ``"in"`` scans all
        of the crawl's edges with a filter on the ``to`` column.

        Raises:
            ValueError: If ``direction`` is not ``"in"`` or ``"out"``.
        """
        direction = EnumConnectionDirection(direction)
        if direction is EnumConnectionDirection.IN:
            start, stop = prefix_range(crawl_key)
            filter_string = self._store.build_single_column_value_filters(
                [
                    ColumnValueFilterSpec(
                        family=CONNECTIONS.family,
                        qualifier=CONNECTIONS.columns["to"],
                        comparator="=",
                        value=validate_id(pubkey, what="pubkey"),
                    )
                ]
            )
            rows = await self._scan(CONNECTIONS, start, stop, filter_string=filter_string)
        else:
            start, stop = prefix_range(crawl_key, pubkey)
            rows = await self._scan(CONNECTIONS, start, stop)
        return [self._connection_record(row) for row in rows]

    async def get_all_connections(self, crawl_key: str) -> list[ConnectionRecord]:
        start, stop = prefix_range(crawl_key)
        rows = await self._scan(CONNECTIONS, start, stop)
        return [self._connection_record(row) for row in rows]

    # ------------------------------------------------------------------
    # Row building
    # ------------------------------------------------------------------

    def _node_rows(self, nodes: Mapping[str, NodeSnapshot], crawl_key: str) -> tuple[Rows, Rows]:
        last_updated = self._clock().astimezone(UTC).strftime(LAST_UPDATED_FORMAT)
        history_rows: Rows = {}
        state_rows: Rows = {}
        for pubkey, node in nodes.items():
            values = {
                "address": node.address or NOT_PRESENT,
                "version": node.version or NOT_PRESENT,
            }
            history_rows[encode_node_key(crawl_key, pubkey)] = NODES.encode_columns(values)
            state_rows[encode_node_state_key(pubkey)] = NODE_STATE.encode_columns(
                {**values, "last_updated": last_updated}
            )
        return history_rows, state_rows

    @staticmethod
    def _stats_rows(stats: Mapping[str, NodeStats], crawl_key: str) -> Rows:
        rows: Rows = {}
        for pubkey, node in stats.items():
            rows[encode_stats_key(crawl_key, pubkey)] = CRAWL_NODE_STATS.encode_columns(
                {
                    "pubkey": pubkey,
                    "address": node.address,
                    "version": node.version,
                    "uptime": _count_text(node.uptime),
                    "request_time": _count_text(node.request_time),
                    "errors": _json_text(node.errors),
                    "in_count": _count_text(node.in_count),
                    "out_count": _count_text(node.out_count),
                    "in_add_count": _count_text(node.in_add_count),
                    "in_drop_count": _count_text(node.in_drop_count),
                    "out_add_count": _count_text(node.out_add_count),
                    "out_drop_count": _count_text(node.out_drop_count),
                }
            )
        return rows

    @staticmethod
    def _connection_rows(connections: Mapping[str, Any], crawl_key: str) -> Rows:
        rows: Rows = {}
        for pair in connections:
            from_pubkey, to_pubkey = split_connection_pair(pair)
            rows[encode_connection_key(crawl_key, from_pubkey, to_pubkey)] = (
                CONNECTIONS.encode_columns({"to": to_pubkey})
            )
        return rows

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    async def _write_node_rows(self, history_rows: Rows, state_rows: Rows) -> None:
        await self._put_rows(NODES, history_rows)
        await self._put_rows(NODE_STATE, state_rows)

    async def _put_rows(self, table: TableSchema, rows: Rows) -> None:
        if not rows:
            return
        await self._store.put_rows(table.name, rows)
        logger.debug("Wrote %d rows to %s", len(rows), table.name)

    async def _get(self, table: TableSchema, rowkey: str) -> dict[str, str] | None:
        try:
            row = await self._store.get_row(table.name, rowkey)
        except NotFoundError:
            return None
        return normalize_row(row)

    async def _scan(
        self,
        table: TableSchema,
        start_row: str | None,
        stop_row: str | None,
        *,
        descending: bool = False,
        limit: int | None = None,
        filter_string: str | None = None,
    ) -> list[dict[str, str]]:
        rows = await self._store.get_scan(
            table.name,
            start_row=start_row,
            stop_row=stop_row,
            descending=descending,
            limit=limit,
            filter_string=filter_string,
        )
        return normalize_rows(rows)

    # ------------------------------------------------------------------
    # Record decoding
    # ------------------------------------------------------------------

    @staticmethod
    def _record(
        model: type[_RecordT],
        table: TableSchema,
        row: Mapping[str, str],
        **key_fields: Any,
    ) -> _RecordT:
        columns = {k: v for k, v in row.items() if k != ROWKEY_FIELD}
        try:
            return model.model_validate({**table.decode_columns(columns), **key_fields})
        except (ValidationError, json.JSONDecodeError) as exc:
            msg = f"Row {row.get(ROWKEY_FIELD)!r} of {table.name!r} is not a valid {model.__name__}"
            raise RowDecodeError(msg) from exc

    def _raw_crawl_record(self, row: Mapping[str, str]) -> RawCrawlRecord:
        key = row[ROWKEY_FIELD]
        start_ms, end_ms = decode_time_range_key(key)
        return self._record(
            RawCrawlRecord, RAW_CRAWLS, row, key=key, start_ms=start_ms, end_ms=end_ms
        )

    def _connection_record(self, row: Mapping[str, str]) -> ConnectionRecord:
        crawl_key, from_pubkey, to_pubkey = decode_connection_key(row[ROWKEY_FIELD])
        return self._record(
            ConnectionRecord,
            CONNECTIONS,
            row,
            crawl_key=crawl_key,
            from_pubkey=from_pubkey,
            to_pubkey=to_pubkey,
        )


__all__ = [
    "LAST_UPDATED_FORMAT",
    "WRITE_GROUP_CONNECTIONS",
    "WRITE_GROUP_NODES",
    "WRITE_GROUP_STATS",
    "CrawlRepository",
]
