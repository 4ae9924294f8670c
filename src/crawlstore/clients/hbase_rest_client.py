# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Async client for the HBase REST gateway implementing ProtocolColumnStore.

Speaks the gateway's JSON representation: table schemas, CellSets with
base64 row keys, column names and values, and stateful scanners
(``POST /<table>/scanner`` -> ``GET <location>`` until 204 -> ``DELETE``).
Scanner batches count cells, so a row split across batches is merged.

The gateway's scanner model has no reverse flag. A descending scan with a
limit scans row keys only (``FirstKeyOnlyFilter`` plus ``KeyOnlyFilter``) and
then reads the last ``limit`` rows individually, so "latest row" lookups do
not transfer the values of the rest of the range. A descending scan without a
limit reverses a full ascending scan.

Errors:
    - Transport failures, timeouts and 5xx responses raise
      ``StoreUnavailableError``.
    - 404 on a row read raises ``NotFoundError``.
    - Other 4xx responses raise ``StoreRequestError``.
    Nothing is retried.

Example:
    ```python
    from crawlstore.clients import HBaseRestStore
    from crawlstore.repository import CrawlRepository

    async with HBaseRestStore("http://localhost:8080") as store:
        repo = CrawlRepository(store)
        crawl = await repo.get_latest_raw_crawl()
    ```
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from crawlstore.config import CrawlStoreSettings, get_settings
from crawlstore.errors import (
    CrawlStoreError,
    NotFoundError,
    StoreRequestError,
    StoreUnavailableError,
)
from crawlstore.filters import (
    ColumnValueFilterSpec,
    build_single_column_value_filters,
    key_only_filter,
)
from crawlstore.protocols import StoreRow

if TYPE_CHECKING:
    from types import TracebackType

    from crawlstore.schema import TableSchema

logger = logging.getLogger(__name__)

_JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}

# HTTP status code boundaries for error classification
_HTTP_CLIENT_ERROR_MIN = 400
_HTTP_SERVER_ERROR_MIN = 500


def _b64encode(value: str | bytes) -> str:
    raw = value.encode("utf-8") if isinstance(value, str) else value
    return base64.b64encode(raw).decode("ascii")


def _b64decode(value: str) -> bytes:
    return base64.b64decode(value)


def _cell_set(rows: Mapping[str, Mapping[str, str]]) -> dict[str, Any]:
    return {
        "Row": [
            {
                "key": _b64encode(rowkey),
                "Cell": [
                    {"column": _b64encode(column), "$": _b64encode(value)}
                    for column, value in columns.items()
                ],
            }
            for rowkey, columns in rows.items()
        ]
    }


def _parse_cell_set(payload: Mapping[str, Any], into: list[StoreRow]) -> None:
    """Append the rows of a CellSet to ``into``, merging a continued last row."""
    for row in payload.get("Row", []):
        rowkey = _b64decode(row["key"]).decode("utf-8")
        cells = {
            _b64decode(cell["column"]).decode("utf-8"): _b64decode(cell["$"])
            for cell in row.get("Cell", [])
        }
        if into and into[-1].rowkey == rowkey:
            into[-1] = StoreRow(rowkey=rowkey, cells={**into[-1].cells, **cells})
        else:
            into.append(StoreRow(rowkey=rowkey, cells=cells))


class HBaseRestStore:
    """Column store backed by an HBase REST gateway.

    Maintains a persistent ``httpx.AsyncClient``. Supports both context
    manager and manual ``connect()``/``close()`` lifecycle; requests made
    before ``connect()`` open the client on demand.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        scan_batch_size: int = 1000,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._scan_batch_size = scan_batch_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: CrawlStoreSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> HBaseRestStore:
        return cls(
            settings.hbase_url,
            timeout_seconds=settings.request_timeout_seconds,
            scan_batch_size=settings.scan_batch_size,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> httpx.AsyncClient:
        """Open the connection pool and return it. Safe to call multiple times."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout_seconds),
                headers=_JSON_HEADERS,
                transport=self._transport,
            )
            logger.debug("HBaseRestStore connected to %s", self._base_url)
        return self._client

    async def close(self) -> None:
        """Close the connection pool. Safe to call multiple times."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("HBaseRestStore connection closed")

    async def __aenter__(self) -> HBaseRestStore:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self.connect()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            msg = f"HBase REST {method} {url} timed out after {self._timeout_seconds}s"
            raise StoreUnavailableError(msg) from exc
        except httpx.TransportError as exc:
            msg = f"HBase REST {method} {url} failed: {exc}"
            raise StoreUnavailableError(msg) from exc
        if response.status_code >= _HTTP_SERVER_ERROR_MIN:
            msg = f"HBase REST {method} {url} returned {response.status_code}"
            raise StoreUnavailableError(msg)
        return response

    @staticmethod
    def _raise_for_client_error(response: httpx.Response, action: str) -> None:
        if response.status_code >= _HTTP_CLIENT_ERROR_MIN:
            raise StoreRequestError(
                f"{action} rejected with {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

    @staticmethod
    def _row_path(table: str, rowkey: str) -> str:
        return f"/{quote(table, safe='')}/{quote(rowkey, safe='')}"

    # ------------------------------------------------------------------
    # Table lifecycle
    # ------------------------------------------------------------------

    async def create_table(self, table: TableSchema) -> None:
        body = {
            "name": table.name,
            "ColumnSchema": [{"name": family} for family in sorted(table.column_families)],
        }
        response = await self._request("PUT", f"/{quote(table.name, safe='')}/schema", json=body)
        self._raise_for_client_error(response, f"create table {table.name!r}")
        logger.debug("Created table %s", table.name)

    async def delete_table(self, table: TableSchema) -> None:
        response = await self._request("DELETE", f"/{quote(table.name, safe='')}/schema")
        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFoundError(table.name, "")
        self._raise_for_client_error(response, f"delete table {table.name!r}")
        logger.debug("Deleted table %s", table.name)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put_row(self, table: str, rowkey: str, columns: Mapping[str, str]) -> None:
        await self.put_rows(table, {rowkey: columns})

    async def put_rows(self, table: str, rows: Mapping[str, Mapping[str, str]]) -> None:
        if not rows:
            return
        # The gateway ignores the path row key when the body carries row keys.
        path = self._row_path(table, next(iter(rows)))
        response = await self._request("PUT", path, json=_cell_set(rows))
        self._raise_for_client_error(response, f"put {len(rows)} rows into {table!r}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_row(self, table: str, rowkey: str) -> StoreRow:
        response = await self._request("GET", self._row_path(table, rowkey))
        if response.status_code == httpx.codes.NOT_FOUND:
            raise NotFoundError(table, rowkey)
        self._raise_for_client_error(response, f"get row {rowkey!r} from {table!r}")
        rows: list[StoreRow] = []
        _parse_cell_set(response.json(), rows)
        if not rows:
            raise NotFoundError(table, rowkey)
        return rows[0]

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
        if descending and limit is not None:
            return await self._scan_tail(table, start_row, stop_row, limit, filter_string)

        rows = await self._run_scanner(
            table,
            start_row,
            stop_row,
            filter_string,
            stop_after=None if descending else limit,
        )
        if descending:
            rows.reverse()
        if limit is not None:
            rows = rows[:limit]
        logger.debug("Scanned %d rows from %s", len(rows), table)
        return rows

    async def _scan_tail(
        self,
        table: str,
        start_row: str | None,
        stop_row: str | None,
        limit: int,
        filter_string: str | None,
    ) -> list[StoreRow]:
        """Return the last ``limit`` rows of a range, highest key first.

        Scans row keys only, then reads the selected rows one by one, so cell
        values outside the tail are never transferred.
        """
        key_rows = await self._run_scanner(
            table, start_row, stop_row, key_only_filter(filter_string), stop_after=None
        )
        rows: list[StoreRow] = []
        for key_row in reversed(key_rows[-limit:] if limit else []):
            try:
                rows.append(await self.get_row(table, key_row.rowkey))
            except NotFoundError:
                logger.debug("Row %s left %s during a descending scan", key_row.rowkey, table)
        logger.debug(
            "Scanned %d keys and read %d rows from %s", len(key_rows), len(rows), table
        )
        return rows

    async def _run_scanner(
        self,
        table: str,
        start_row: str | None,
        stop_row: str | None,
        filter_string: str | None,
        *,
        stop_after: int | None,
    ) -> list[StoreRow]:
        scanner: dict[str, Any] = {"batch": self._scan_batch_size}
        if start_row is not None:
            scanner["startRow"] = _b64encode(start_row)
        if stop_row is not None:
            scanner["endRow"] = _b64encode(stop_row)
        if filter_string is not None:
            scanner["filter"] = filter_string

        response = await self._request(
            "POST", f"/{quote(table, safe='')}/scanner", json=scanner
        )
        self._raise_for_client_error(response, f"open scanner on {table!r}")
        location = response.headers.get("Location")
        if not location:
            msg = f"HBase REST scanner on {table!r} returned no Location header"
            raise StoreRequestError(msg, status_code=response.status_code)

        rows: list[StoreRow] = []
        try:
            while True:
                page = await self._request("GET", location)
                if page.status_code == httpx.codes.NO_CONTENT:
                    break
                self._raise_for_client_error(page, f"read scanner on {table!r}")
                _parse_cell_set(page.json(), rows)
                # One extra row guards against the last row continuing in the next batch.
                if stop_after is not None and len(rows) > stop_after:
                    break
        finally:
            await self._close_scanner(location)
        return rows

    async def _close_scanner(self, location: str) -> None:
        try:
            await self._request("DELETE", location)
        except CrawlStoreError:
            logger.warning("Failed to delete HBase REST scanner %s", location, exc_info=True)

    def build_single_column_value_filters(
        self,
        specs: Sequence[ColumnValueFilterSpec | Mapping[str, str]],
    ) -> str:
        return build_single_column_value_filters(specs)


def create_hbase_store(settings: CrawlStoreSettings | None = None) -> HBaseRestStore:
    """Build an unconnected ``HBaseRestStore`` from settings (environment by default)."""
    return HBaseRestStore.from_settings(settings or get_settings())


__all__ = ["HBaseRestStore", "create_hbase_store"]
