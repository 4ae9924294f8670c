# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Server-side scan filters in the HBase REST JSON representation.

Only single-column value equality/ordering filters are needed: the inbound
connection query cannot be expressed as a row-key range, so it scans the
crawl's edges and filters on the ``cn:to`` column instead.

A filter string is the JSON text the HBase REST gateway accepts in a scanner
definition's ``filter`` field. Family, qualifier and value are base64
encoded. More than one spec is wrapped in a ``FilterList`` that requires
every filter to pass.

``evaluate_filter`` interprets the same strings so that stores without a
server-side filter engine (the in-memory store) apply identical semantics.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from crawlstore.schema import COLUMN_SEPARATOR

_COMPARE_OPS: dict[str, str] = {
    "=": "EQUAL",
    "!=": "NOT_EQUAL",
    "<": "LESS",
    "<=": "LESS_OR_EQUAL",
    ">": "GREATER",
    ">=": "GREATER_OR_EQUAL",
}

# Filters that trim cells but never drop a row.
_ROW_PRESERVING_FILTERS = frozenset({"FirstKeyOnlyFilter", "KeyOnlyFilter"})

_OP_PREDICATES: dict[str, Callable[[bytes, bytes], bool]] = {
    "EQUAL": lambda cell, value: cell == value,
    "NOT_EQUAL": lambda cell, value: cell != value,
    "LESS": lambda cell, value: cell < value,
    "LESS_OR_EQUAL": lambda cell, value: cell <= value,
    "GREATER": lambda cell, value: cell > value,
    "GREATER_OR_EQUAL": lambda cell, value: cell >= value,
}


@dataclass(frozen=True)
class ColumnValueFilterSpec:
    """One ``family:qualifier <comparator> value`` predicate.

    Attributes:
        family: Column family.
        qualifier: Column qualifier.
        comparator: One of ``=``, ``!=``, ``<``, ``<=``, ``>``, ``>=``.
        value: Value compared byte-wise against the stored cell.
    """

    family: str
    qualifier: str
    comparator: str
    value: str

    def __post_init__(self) -> None:
        if self.comparator not in _COMPARE_OPS:
            msg = (
                f"Unsupported comparator {self.comparator!r}; "
                f"expected one of {sorted(_COMPARE_OPS)}"
            )
            raise ValueError(msg)


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _unb64(value: str) -> bytes:
    return base64.b64decode(value)


def _single_filter(spec: ColumnValueFilterSpec) -> dict[str, Any]:
    return {
        "type": "SingleColumnValueFilter",
        "op": _COMPARE_OPS[spec.comparator],
        "family": _b64(spec.family),
        "qualifier": _b64(spec.qualifier),
        "latestVersion": True,
        "ifMissing": True,
        "comparator": {"type": "BinaryComparator", "value": _b64(spec.value)},
    }


def build_single_column_value_filters(
    specs: Sequence[ColumnValueFilterSpec | Mapping[str, str]],
) -> str:
    """Build a filter string from one or more column value specs.

    Args:
        specs: ``ColumnValueFilterSpec`` instances or mappings with
            ``family``, ``qualifier``, ``comparator`` and ``value`` keys.

    Returns:
        JSON filter text for a scanner definition.

    Raises:
        ValueError: If ``specs`` is empty or a comparator is unsupported.
    """
    if not specs:
        msg = "At least one filter spec is required"
        raise ValueError(msg)
    resolved = [
        spec if isinstance(spec, ColumnValueFilterSpec) else ColumnValueFilterSpec(**spec)
        for spec in specs
    ]
    filters = [_single_filter(spec) for spec in resolved]
    if len(filters) == 1:
        return json.dumps(filters[0], separators=(",", ":"))
    return json.dumps(
        {"type": "FilterList", "op": "MUST_PASS_ALL", "filters": filters},
        separators=(",", ":"),
    )


def key_only_filter(filter_string: str | None = None) -> str:
    """Return a filter that keeps row keys and drops every cell value.

    The result passes one empty-valued cell per row. A given
    ``filter_string`` is applied first, inside a ``MUST_PASS_ALL`` list.
    """
    filters: list[dict[str, Any]] = []
    if filter_string is not None:
        filters.append(json.loads(filter_string))
    filters.extend(({"type": "FirstKeyOnlyFilter"}, {"type": "KeyOnlyFilter"}))
    return json.dumps(
        {"type": "FilterList", "op": "MUST_PASS_ALL", "filters": filters},
        separators=(",", ":"),
    )


def _matches(node: Mapping[str, Any], cells: Mapping[str, bytes]) -> bool:
    kind = node.get("type")
    if kind in _ROW_PRESERVING_FILTERS:
        return True
    if kind == "FilterList":
        results = (_matches(child, cells) for child in node.get("filters", []))
        if node.get("op", "MUST_PASS_ALL") == "MUST_PASS_ONE":
            return any(results)
        return all(results)
    if kind == "SingleColumnValueFilter":
        column = (
            _unb64(node["family"]).decode("utf-8")
            + COLUMN_SEPARATOR
            + _unb64(node["qualifier"]).decode("utf-8")
        )
        cell = cells.get(column)
        if cell is None:
            return not node.get("ifMissing", False)
        predicate = _OP_PREDICATES[node["op"]]
        return predicate(bytes(cell), _unb64(node["comparator"]["value"]))
    msg = f"Unsupported filter type {kind!r}"
    raise ValueError(msg)


def evaluate_filter(filter_string: str, cells: Mapping[str, bytes]) -> bool:
    """Return True if a row with ``cells`` passes ``filter_string``.

    Rows missing the filtered column fail when ``ifMissing`` is set (always
    the case for filters built here) and pass otherwise, matching the HBase
    ``filterIfMissing`` flag.
    """
    return _matches(json.loads(filter_string), cells)


__all__ = [
    "ColumnValueFilterSpec",
    "build_single_column_value_filters",
    "evaluate_filter",
    "key_only_filter",
]
