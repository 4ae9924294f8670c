# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Pydantic models for crawls, node snapshots and stored records.

Input models accept the crawler's native field names as aliases (``ipp``,
``in``, ``out``, ``rippleds``) as well as the descriptive names used here.

Read records are built from normalized rows at the store boundary: key
derived fields (crawl key, pubkey, edge endpoints) come from the decoded row
key, column values arrive as text and are coerced back to their types. The
``not_present`` placeholder written for missing address, version and entry
values reads back as ``None``.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

NOT_PRESENT = "not_present"
"""Placeholder stored for a missing address, version or entry point."""


def _absent_to_none(value: Any) -> Any:
    if value == NOT_PRESENT:
        return None
    return value


def _json_text_to_value(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


# ---------------------------------------------------------------------------
# Crawl input models
# ---------------------------------------------------------------------------


class NodeSnapshot(BaseModel):
    """State of one node as observed by one crawl.

    Attributes:
        address: ``ip:port`` the node was reached at (crawler field ``ipp``).
        version: Reported protocol/server version.
        uptime: Reported uptime in seconds.
        request_time: Latency of the crawler's request, in milliseconds.
        errors: Errors the crawler recorded for this node (JSON-compatible).
        in_count: Number of inbound peers (crawler field ``in``).
        out_count: Number of outbound peers (crawler field ``out``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    address: str | None = Field(default=None, alias="ipp")
    version: str | None = None
    uptime: int | None = None
    request_time: float | None = None
    errors: Any = None
    in_count: int = Field(default=0, ge=0, alias="in")
    out_count: int = Field(default=0, ge=0, alias="out")


class CrawlSummary(BaseModel):
    """Identity and entry point of a processed crawl.

    ``id`` is the caller-supplied crawl key and must sort in crawl order under
    the store's byte ordering (a time-range key does).
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    start: datetime | int | str | None = None
    end: datetime | int | str | None = None
    entry: str | None = None


class ProcessedCrawl(BaseModel):
    """A fully processed crawl: node snapshots plus directed connections.

    Attributes:
        crawl: Crawl identity and entry point.
        nodes: pubkey -> snapshot (crawler field ``rippleds``).
        connections: ``"fromPubkey,toPubkey"`` -> edge marker.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    crawl: CrawlSummary
    nodes: dict[str, NodeSnapshot] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("nodes", "rippleds"),
    )
    connections: dict[str, Any] = Field(default_factory=dict)


class RawCrawl(BaseModel):
    """Verbatim crawler output, stored once and never mutated."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    start: datetime | int | str
    end: datetime | int | str
    entry: str | None = None
    data: Any = None
    errors: Any = None


# ---------------------------------------------------------------------------
# Delta output
# ---------------------------------------------------------------------------


class NodeStats(BaseModel):
    """Per-node statistics for one crawl, including peer churn since the last crawl."""

    model_config = ConfigDict(frozen=True)

    pubkey: str
    address: str | None = None
    version: str | None = None
    uptime: int | None = None
    request_time: float | None = None
    errors: Any = None
    in_count: int = 0
    out_count: int = 0
    in_add_count: int = 0
    in_drop_count: int = 0
    out_add_count: int = 0
    out_drop_count: int = 0


# ---------------------------------------------------------------------------
# Read records
# ---------------------------------------------------------------------------


class RawCrawlRecord(BaseModel):
    """A stored raw crawl with its time range decoded from the row key."""

    model_config = ConfigDict(frozen=True)

    key: str
    start_ms: int
    end_ms: int
    entry: str | None = None
    data: Any = None
    errors: Any = None

    @field_validator("data", "errors", mode="before")
    @classmethod
    def decode_json_columns(cls, value: Any) -> Any:
        return _json_text_to_value(value)


class CrawlInfoRecord(BaseModel):
    """Summary row of a processed crawl; its presence marks the crawl complete."""

    model_config = ConfigDict(frozen=True)

    crawl_key: str
    entry: str | None = None

    @field_validator("entry", mode="before")
    @classmethod
    def absent_entry_to_none(cls, value: Any) -> Any:
        return _absent_to_none(value)


class NodeHistoryRecord(BaseModel):
    """Change-log entry: the node was new or changed address/version in this crawl."""

    model_config = ConfigDict(frozen=True)

    crawl_key: str
    pubkey: str
    address: str | None = None
    version: str | None = None

    @field_validator("address", "version", mode="before")
    @classmethod
    def absent_fields_to_none(cls, value: Any) -> Any:
        return _absent_to_none(value)


class NodeStateRecord(BaseModel):
    """Latest known address/version of a node."""

    model_config = ConfigDict(frozen=True)

    pubkey: str
    address: str | None = None
    version: str | None = None
    last_updated: datetime | None = None

    @field_validator("address", "version", mode="before")
    @classmethod
    def absent_fields_to_none(cls, value: Any) -> Any:
        return _absent_to_none(value)


class NodeStatsRecord(NodeStats):
    """Stored per-crawl node statistics."""

    crawl_key: str

    @field_validator("errors", mode="before")
    @classmethod
    def decode_errors_json(cls, value: Any) -> Any:
        return _json_text_to_value(value)


class ConnectionRecord(BaseModel):
    """A directed edge observed in one crawl."""

    model_config = ConfigDict(frozen=True)

    crawl_key: str
    from_pubkey: str
    to_pubkey: str


__all__ = [
    "NOT_PRESENT",
    "ConnectionRecord",
    "CrawlInfoRecord",
    "CrawlSummary",
    "NodeHistoryRecord",
    "NodeSnapshot",
    "NodeStateRecord",
    "NodeStats",
    "NodeStatsRecord",
    "ProcessedCrawl",
    "RawCrawl",
    "RawCrawlRecord",
]
