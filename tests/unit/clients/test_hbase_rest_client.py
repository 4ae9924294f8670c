# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Unit tests for HBaseRestStore.

Uses httpx.MockTransport in place of a gateway - no real external services.
Covers: lifecycle, CellSet encoding, scanner paging and cleanup, and error
classification.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable

import httpx
import pytest

from crawlstore.clients import HBaseRestStore
from crawlstore.errors import NotFoundError, StoreRequestError, StoreUnavailableError
from crawlstore.keys import encode_time_range_key
from crawlstore.protocols import ProtocolColumnStore
from crawlstore.repository import CrawlRepository
from crawlstore.schema import CONNECTIONS, NODES, RAW_CRAWLS

BASE_URL = "http://gateway:8080"
SCANNER_URL = f"{BASE_URL}/nodes/scanner/1234"

Handler = Callable[[httpx.Request], httpx.Response]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def _cell_set(*rows: tuple[str, dict[str, str]]) -> dict:
    return {
        "Row": [
            {
                "key": _b64(key),
                "Cell": [{"column": _b64(col), "$": _b64(val)} for col, val in cells.items()],
            }
            for key, cells in rows
        ]
    }


def _make_store(handler: Handler, requests: list[httpx.Request] | None = None) -> HBaseRestStore:
    def recording(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return handler(request)

    return HBaseRestStore(BASE_URL, transport=httpx.MockTransport(recording), scan_batch_size=50)


def _scanner_handler(pages: list[dict], *, page_status: int = 200) -> Handler:
    """Gateway that opens one scanner and serves ``pages`` then 204."""
    remaining = list(pages)

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return httpx.Response(201, headers={"Location": SCANNER_URL})
        if request.method == "GET":
            if page_status != 200:
                return httpx.Response(page_status)
            if remaining:
                return httpx.Response(200, json=remaining.pop(0))
            return httpx.Response(204)
        return httpx.Response(200)

    return handler


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestLifecycle:
    """Tests for connect/close and protocol compliance."""

    def test_store_satisfies_protocol(self) -> None:
        assert isinstance(HBaseRestStore(BASE_URL), ProtocolColumnStore)

    def test_trailing_slash_is_stripped(self) -> None:
        assert HBaseRestStore(f"{BASE_URL}/").base_url == BASE_URL

    @pytest.mark.asyncio
    async def test_context_manager_connects_and_closes(self) -> None:
        store = _make_store(lambda request: httpx.Response(200))
        async with store as entered:
            assert entered is store
            assert store.is_connected
        assert not store.is_connected

    @pytest.mark.asyncio
    async def test_request_before_connect_opens_client(self) -> None:
        store = _make_store(lambda request: httpx.Response(200))
        await store.put_row("nodes", "a", {"n:version": "1"})
        assert store.is_connected
        await store.close()

    @pytest.mark.asyncio
    async def test_connect_returns_the_shared_client(self) -> None:
        store = _make_store(lambda request: httpx.Response(200))
        first = await store.connect()
        assert await store.connect() is first
        await store.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        store = _make_store(lambda request: httpx.Response(200))
        await store.connect()
        await store.close()
        await store.close()
        assert not store.is_connected


# ---------------------------------------------------------------------------
# Table lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestTables:
    """Tests for create_table / delete_table."""

    @pytest.mark.asyncio
    async def test_create_table_sends_column_schema(self) -> None:
        requests: list[httpx.Request] = []
        store = _make_store(lambda request: httpx.Response(201), requests)

        await store.create_table(CONNECTIONS)

        assert requests[0].method == "PUT"
        assert requests[0].url.path == "/connections/schema"
        assert json.loads(requests[0].content) == {
            "name": "connections",
            "ColumnSchema": [{"name": "cn"}],
        }

    @pytest.mark.asyncio
    async def test_delete_missing_table_raises_not_found(self) -> None:
        store = _make_store(lambda request: httpx.Response(404))
        with pytest.raises(NotFoundError):
            await store.delete_table(NODES)


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestWrites:
    """Tests for put_row / put_rows."""

    @pytest.mark.asyncio
    async def test_put_rows_sends_base64_cell_set(self) -> None:
        requests: list[httpx.Request] = []
        store = _make_store(lambda request: httpx.Response(200), requests)

        await store.put_rows("nodes", {"a": {"n:version": "1"}, "b": {"n:ipp": "1.1.1.1:1"}})

        assert len(requests) == 1
        assert requests[0].method == "PUT"
        assert requests[0].url.path == "/nodes/a"
        assert json.loads(requests[0].content) == _cell_set(
            ("a", {"n:version": "1"}), ("b", {"n:ipp": "1.1.1.1:1"})
        )

    @pytest.mark.asyncio
    async def test_empty_put_issues_no_request(self) -> None:
        requests: list[httpx.Request] = []
        store = _make_store(lambda request: httpx.Response(200), requests)
        await store.put_rows("nodes", {})
        assert requests == []

    @pytest.mark.asyncio
    async def test_client_error_raises_request_error(self) -> None:
        store = _make_store(lambda request: httpx.Response(400, text="bad family"))
        with pytest.raises(StoreRequestError) as exc_info:
            await store.put_row("nodes", "a", {"x:y": "1"})
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_server_error_raises_unavailable(self) -> None:
        store = _make_store(lambda request: httpx.Response(503))
        with pytest.raises(StoreUnavailableError):
            await store.put_row("nodes", "a", {"n:version": "1"})

    @pytest.mark.asyncio
    async def test_transport_error_raises_unavailable(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = _make_store(refuse)
        with pytest.raises(StoreUnavailableError):
            await store.put_row("nodes", "a", {"n:version": "1"})


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestGetRow:
    """Tests for get_row."""

    @pytest.mark.asyncio
    async def test_returns_decoded_row(self) -> None:
        payload = _cell_set(("nA", {"n:ipp": "1.1.1.1:1", "n:version": "2"}))
        store = _make_store(lambda request: httpx.Response(200, json=payload))

        row = await store.get_row("node_state", "nA")

        assert row.rowkey == "nA"
        assert row.cells == {"n:ipp": b"1.1.1.1:1", "n:version": b"2"}

    @pytest.mark.asyncio
    async def test_missing_row_raises_not_found(self) -> None:
        store = _make_store(lambda request: httpx.Response(404))
        with pytest.raises(NotFoundError):
            await store.get_row("node_state", "nA")


@pytest.mark.unit
class TestGetScan:
    """Tests for scanner-based range reads."""

    @pytest.mark.asyncio
    async def test_scanner_definition_and_cleanup(self) -> None:
        requests: list[httpx.Request] = []
        store = _make_store(_scanner_handler([_cell_set(("a", {"n:version": "1"}))]), requests)

        rows = await store.get_scan(
            "nodes", start_row="a", stop_row="b", filter_string='{"type":"X"}'
        )

        assert [r.rowkey for r in rows] == ["a"]
        assert json.loads(requests[0].content) == {
            "batch": 50,
            "startRow": _b64("a"),
            "endRow": _b64("b"),
            "filter": '{"type":"X"}',
        }
        assert [r.method for r in requests] == ["POST", "GET", "GET", "DELETE"]
        assert str(requests[-1].url) == SCANNER_URL

    @pytest.mark.asyncio
    async def test_row_split_across_batches_is_merged(self) -> None:
        pages = [
            _cell_set(("a", {"n:ipp": "1.1.1.1:1"})),
            _cell_set(("a", {"n:version": "2"}), ("b", {"n:version": "3"})),
        ]
        store = _make_store(_scanner_handler(pages))

        rows = await store.get_scan("nodes")

        assert [r.rowkey for r in rows] == ["a", "b"]
        assert rows[0].cells == {"n:ipp": b"1.1.1.1:1", "n:version": b"2"}

    @pytest.mark.asyncio
    async def test_descending_without_limit_reverses_full_scan(self) -> None:
        pages = [_cell_set(("a", {"n:version": "1"}), ("b", {"n:version": "2"}), ("c", {}))]
        store = _make_store(_scanner_handler(pages))

        rows = await store.get_scan("nodes", descending=True)

        assert [r.rowkey for r in rows] == ["c", "b", "a"]
        assert rows[1].cells == {"n:version": b"2"}

    @pytest.mark.asyncio
    async def test_scanner_deleted_when_page_read_fails(self) -> None:
        requests: list[httpx.Request] = []
        store = _make_store(_scanner_handler([], page_status=500), requests)

        with pytest.raises(StoreUnavailableError):
            await store.get_scan("nodes")

        assert requests[-1].method == "DELETE"

    @pytest.mark.asyncio
    async def test_missing_location_header_rejected(self) -> None:
        store = _make_store(lambda request: httpx.Response(201))
        with pytest.raises(StoreRequestError, match="Location"):
            await store.get_scan("nodes")


# ---------------------------------------------------------------------------
# Descending scans
# ---------------------------------------------------------------------------


class _FakeGateway:
    """Single-table gateway that counts rows served with cell values."""

    def __init__(self, table: str, rows: dict[str, dict[str, str]]) -> None:
        self.table = table
        self.rows = rows
        self.scanner_filters: list[str | None] = []
        self.rows_with_values = 0
        self._pending: list[tuple[str, dict[str, str]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST":
            return self._open_scanner(json.loads(request.content))
        if request.method == "DELETE":
            return httpx.Response(200)
        if "/scanner/" in path:
            if not self._pending:
                return httpx.Response(204)
            page, self._pending = self._pending, []
            self.rows_with_values += sum(1 for _, cells in page if any(cells.values()))
            return httpx.Response(200, json=_cell_set(*page))
        rowkey = path.rsplit("/", 1)[1]
        if rowkey not in self.rows:
            return httpx.Response(404)
        self.rows_with_values += 1
        return httpx.Response(200, json=_cell_set((rowkey, self.rows[rowkey])))

    def _open_scanner(self, definition: dict) -> httpx.Response:
        start = base64.b64decode(definition.get("startRow", "")).decode()
        stop = base64.b64decode(definition["endRow"]).decode() if "endRow" in definition else None
        filter_string = definition.get("filter")
        self.scanner_filters.append(filter_string)
        key_only = filter_string is not None and "KeyOnlyFilter" in filter_string
        keys = sorted(k for k in self.rows if k >= start and (stop is None or k < stop))
        self._pending = [
            (key, dict.fromkeys(list(self.rows[key])[:1], "") if key_only else self.rows[key])
            for key in keys
        ]
        return httpx.Response(201, headers={"Location": f"{BASE_URL}/{self.table}/scanner/1"})


@pytest.mark.unit
class TestDescendingScan:
    """Descending scans with a limit transfer only the selected rows' values."""

    @pytest.mark.asyncio
    async def test_reads_only_selected_rows(self) -> None:
        gateway = _FakeGateway(
            "nodes", {key: {"n:version": key.upper()} for key in ("a", "b", "c", "d")}
        )
        store = HBaseRestStore(BASE_URL, transport=httpx.MockTransport(gateway))

        rows = await store.get_scan("nodes", start_row="a", stop_row="d", descending=True, limit=2)

        assert [r.rowkey for r in rows] == ["c", "b"]
        assert rows[0].cells == {"n:version": b"C"}
        assert gateway.rows_with_values == 2
        assert "KeyOnlyFilter" in (gateway.scanner_filters[0] or "")

    @pytest.mark.asyncio
    async def test_caller_filter_is_applied_before_key_stripping(self) -> None:
        gateway = _FakeGateway("connections", {"c1+nA+nB": {"cn:to": "nB"}})
        store = HBaseRestStore(BASE_URL, transport=httpx.MockTransport(gateway))
        caller_filter = store.build_single_column_value_filters(
            [{"family": "cn", "qualifier": "to", "comparator": "=", "value": "nB"}]
        )

        await store.get_scan(
            "connections", descending=True, limit=1, filter_string=caller_filter
        )

        sent = json.loads(gateway.scanner_filters[0] or "{}")
        assert sent["op"] == "MUST_PASS_ALL"
        assert [f["type"] for f in sent["filters"]] == [
            "SingleColumnValueFilter",
            "FirstKeyOnlyFilter",
            "KeyOnlyFilter",
        ]

    @pytest.mark.asyncio
    async def test_latest_raw_crawl_reads_one_row_of_many(self) -> None:
        payload = json.dumps("x" * 1024)
        rows = {
            encode_time_range_key(i * 1000, i * 1000 + 500): {
                "rc:entry_ipp": "10.0.0.1:51235",
                "rc:data": payload,
                "rc:exceptions": "null",
            }
            for i in range(1, 201)
        }
        gateway = _FakeGateway(RAW_CRAWLS.name, rows)
        repo = CrawlRepository(HBaseRestStore(BASE_URL, transport=httpx.MockTransport(gateway)))

        latest = await repo.get_latest_raw_crawl()

        assert latest is not None
        assert latest.start_ms == 200_000
        assert latest.data == "x" * 1024
        assert gateway.rows_with_values == 1
