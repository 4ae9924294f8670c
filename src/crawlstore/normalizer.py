# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Decoding of raw store cells into text on every read path.

Values are stored as UTF-8 text (JSON where the written value is
structured), so a row normalizes to ``{"rowkey": str, <column>: str, ...}``.
The same function serves single-row and multi-row results.
"""

from __future__ import annotations

from collections.abc import Iterable

from crawlstore.errors import RowDecodeError
from crawlstore.protocols import StoreRow

ROWKEY_FIELD = "rowkey"


def decode_value(value: bytes | bytearray | memoryview | str) -> str:
    """Decode one cell value to text.

    Raises:
        RowDecodeError: If the bytes are not valid UTF-8.
    """
    if isinstance(value, str):
        return value
    try:
        return bytes(value).decode("utf-8")
    except UnicodeDecodeError as exc:
        msg = f"Cell value is not UTF-8 text: {bytes(value)[:32]!r}"
        raise RowDecodeError(msg) from exc


def normalize_row(row: StoreRow) -> dict[str, str]:
    """Decode every column of ``row``; the row key is kept under ``rowkey``."""
    normalized = {column: decode_value(value) for column, value in row.cells.items()}
    normalized[ROWKEY_FIELD] = row.rowkey
    return normalized


def normalize_rows(rows: StoreRow | Iterable[StoreRow]) -> dict[str, str] | list[dict[str, str]]:
    """Normalize one row or many, preserving the shape of the input."""
    if isinstance(rows, StoreRow):
        return normalize_row(rows)
    return [normalize_row(row) for row in rows]


__all__ = ["ROWKEY_FIELD", "decode_value", "normalize_row", "normalize_rows"]
