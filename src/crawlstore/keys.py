# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Composite row key encoding for the crawl tables.

Row keys are the only sort key of the column store, so every range scan in
the repository is only as correct as the functions below.

Ordering invariant:
    Components are joined with ``KEY_SEPARATOR`` ("+", 0x2B). Every character
    of the legal id alphabet ``[0-9A-Za-z._:-]`` sorts after the separator, so
    for any two ids ``a < b`` (lexicographically) the composite keys compare
    the same way, and a shorter id never sorts after a longer id it prefixes.
    Ids are validated on encode instead of escaped.

Time-range keys:
    ``<start>_<end>`` with both millisecond epochs zero-padded to 13 digits.
    Unpadded concatenation misorders keys whose epochs straddle a digit-count
    boundary, so the width is enforced here rather than assumed.

Crawl keys:
    Processed crawl keys are supplied by the caller and only checked against
    the id alphabet. They must sort in crawl order as plain strings, because
    the latest-crawl lookup and the order of a node's history both follow
    key order. Variable-width numbers do not: ``"999"`` sorts after
    ``"1000"``. Use fixed-width values such as a time-range key.

Prefix ranges:
    ``prefix_range(*parts)`` returns ``[prefix + "+", prefix + ",")``. The stop
    bound is the separator's successor, which brackets every key that starts
    with the prefix for any id alphabet. ``'0'``/``'z'`` sentinels are not used
    because base58 ids may begin with ``z``.

Key shapes:
    raw_crawls        <start13>_<end13>
    crawls            <crawl>
    crawl_node_stats  <crawl>+<pubkey>
    connections       <crawl>+<from>+<to>
    nodes             <pubkey>+<crawl>
    node_state        <pubkey>
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

from crawlstore.errors import KeyFormatError

KEY_SEPARATOR = "+"
KEY_SEPARATOR_SUCCESSOR = chr(ord(KEY_SEPARATOR) + 1)
TIME_RANGE_SEPARATOR = "_"
CONNECTION_PAIR_SEPARATOR = ","

EPOCH_MILLIS_WIDTH = 13
MAX_EPOCH_MILLIS = 10**EPOCH_MILLIS_WIDTH - 1

# Bounds covering every time-range key (all keys start with a digit).
RAW_CRAWL_RANGE: tuple[str, str] = ("0", chr(ord("9") + 1))

_ID_PATTERN = re.compile(r"[0-9A-Za-z._:\-]+")
_EPOCH_PATTERN = re.compile(rf"[0-9]{{{EPOCH_MILLIS_WIDTH}}}")
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_id(value: str, *, what: str = "id") -> str:
    """Return ``value`` unchanged if it is a legal key component.

    Raises:
        KeyFormatError: If ``value`` is empty, not a string, or contains a
            character outside ``[0-9A-Za-z._:-]``.
    """
    if not isinstance(value, str) or not _ID_PATTERN.fullmatch(value):
        msg = f"Illegal {what} for row key: {value!r}"
        raise KeyFormatError(msg)
    return value


def _to_epoch_millis(value: datetime | int | str) -> int:
    if isinstance(value, bool):
        msg = f"Timestamp must not be a bool: {value!r}"
        raise KeyFormatError(msg)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError as exc:
            msg = f"Cannot parse timestamp {value!r}"
            raise KeyFormatError(msg) from exc
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return (value - _EPOCH) // timedelta(milliseconds=1)
    msg = f"Unsupported timestamp type {type(value).__name__}"
    raise KeyFormatError(msg)


def _format_epoch_millis(millis: int) -> str:
    if millis < 0 or millis > MAX_EPOCH_MILLIS:
        msg = f"Epoch millis {millis} outside fixed-width range [0, {MAX_EPOCH_MILLIS}]"
        raise KeyFormatError(msg)
    return f"{millis:0{EPOCH_MILLIS_WIDTH}d}"


def _split(key: str, expected_parts: int, what: str) -> list[str]:
    if not isinstance(key, str):
        msg = f"Malformed {what} key: {key!r}"
        raise KeyFormatError(msg)
    parts = key.split(KEY_SEPARATOR)
    if len(parts) != expected_parts:
        msg = f"Malformed {what} key {key!r}: expected {expected_parts} parts, got {len(parts)}"
        raise KeyFormatError(msg)
    for part in parts:
        validate_id(part, what=f"{what} key component")
    return parts


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def encode_time_range_key(start: datetime | int | str, end: datetime | int | str) -> str:
    """Encode a raw crawl's ``(start, end)`` as a fixed-width sortable key.

    Args:
        start: Crawl start as datetime (naive is UTC), epoch millis or ISO string.
        end: Crawl end, same accepted forms.

    Returns:
        ``"<start13>_<end13>"``.
    """
    return (
        _format_epoch_millis(_to_epoch_millis(start))
        + TIME_RANGE_SEPARATOR
        + _format_epoch_millis(_to_epoch_millis(end))
    )


def encode_crawl_key(crawl_key: str) -> str:
    return validate_id(crawl_key, what="crawl key")


def encode_node_key(crawl_key: str, pubkey: str) -> str:
    """Key of a node history row: pubkey first so a node's history is contiguous."""
    return KEY_SEPARATOR.join(
        (validate_id(pubkey, what="pubkey"), validate_id(crawl_key, what="crawl key"))
    )


def encode_stats_key(crawl_key: str, pubkey: str) -> str:
    return KEY_SEPARATOR.join(
        (validate_id(crawl_key, what="crawl key"), validate_id(pubkey, what="pubkey"))
    )


def encode_connection_key(crawl_key: str, from_pubkey: str, to_pubkey: str) -> str:
    return KEY_SEPARATOR.join(
        (
            validate_id(crawl_key, what="crawl key"),
            validate_id(from_pubkey, what="pubkey"),
            validate_id(to_pubkey, what="pubkey"),
        )
    )


def encode_node_state_key(pubkey: str) -> str:
    return validate_id(pubkey, what="pubkey")


def prefix_range(*parts: str) -> tuple[str, str]:
    """Return ``(start, stop)`` bounds of every key extending ``parts``.

    ``start`` is inclusive and ``stop`` exclusive. The result covers exactly
    the keys whose leading components equal ``parts``.
    """
    if not parts:
        msg = "prefix_range needs at least one key component"
        raise KeyFormatError(msg)
    prefix = KEY_SEPARATOR.join(validate_id(p, what="key component") for p in parts)
    return prefix + KEY_SEPARATOR, prefix + KEY_SEPARATOR_SUCCESSOR


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_time_range_key(key: str) -> tuple[int, int]:
    """Inverse of :func:`encode_time_range_key`, returning epoch millis."""
    if not isinstance(key, str):
        msg = f"Malformed time range key: {key!r}"
        raise KeyFormatError(msg)
    start, sep, end = key.partition(TIME_RANGE_SEPARATOR)
    if not sep or not _EPOCH_PATTERN.fullmatch(start) or not _EPOCH_PATTERN.fullmatch(end):
        msg = f"Malformed time range key: {key!r}"
        raise KeyFormatError(msg)
    return int(start), int(end)


def decode_node_key(key: str) -> tuple[str, str]:
    """Inverse of :func:`encode_node_key`, returning ``(crawl_key, pubkey)``."""
    pubkey, crawl_key = _split(key, 2, "node")
    return crawl_key, pubkey


def decode_stats_key(key: str) -> tuple[str, str]:
    """Inverse of :func:`encode_stats_key`, returning ``(crawl_key, pubkey)``."""
    crawl_key, pubkey = _split(key, 2, "stats")
    return crawl_key, pubkey


def decode_connection_key(key: str) -> tuple[str, str, str]:
    """Inverse of :func:`encode_connection_key`, returning ``(crawl, from, to)``."""
    crawl_key, from_pubkey, to_pubkey = _split(key, 3, "connection")
    return crawl_key, from_pubkey, to_pubkey


def split_connection_pair(pair: str) -> tuple[str, str]:
    """Parse a processed crawl's ``"fromPubkey,toPubkey"`` connection key."""
    if not isinstance(pair, str):
        msg = f"Malformed connection pair: {pair!r}"
        raise KeyFormatError(msg)
    parts = pair.split(CONNECTION_PAIR_SEPARATOR)
    if len(parts) != 2:
        msg = f"Malformed connection pair {pair!r}: expected 'from,to'"
        raise KeyFormatError(msg)
    from_pubkey, to_pubkey = parts
    return validate_id(from_pubkey, what="pubkey"), validate_id(to_pubkey, what="pubkey")


__all__ = [
    "CONNECTION_PAIR_SEPARATOR",
    "EPOCH_MILLIS_WIDTH",
    "KEY_SEPARATOR",
    "KEY_SEPARATOR_SUCCESSOR",
    "MAX_EPOCH_MILLIS",
    "RAW_CRAWL_RANGE",
    "TIME_RANGE_SEPARATOR",
    "decode_connection_key",
    "decode_node_key",
    "decode_stats_key",
    "decode_time_range_key",
    "encode_connection_key",
    "encode_crawl_key",
    "encode_node_key",
    "encode_node_state_key",
    "encode_stats_key",
    "encode_time_range_key",
    "prefix_range",
    "split_connection_pair",
    "validate_id",
]
