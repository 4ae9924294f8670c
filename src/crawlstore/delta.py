# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Pure compute functions for topology change between two crawls.

All functions are pure (no I/O, no side effects) and accept a missing old
crawl, which is the first-crawl case.

Public API:
    derive_peer_index:     Build inbound/outbound neighbour lists from edges.
    compute_node_stats:    Per-node snapshot fields plus peer add/drop counts.
    compute_changed_nodes: Nodes that are new or changed address/version.

Peer churn is computed with set lookups over each node's neighbour lists, so
the whole pass is linear in the number of peers across both crawls.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from crawlstore.keys import split_connection_pair
from crawlstore.models import NodeSnapshot, NodeStats, ProcessedCrawl


@dataclass(frozen=True)
class PeerIndex:
    """Neighbour lists of every node in one crawl.

    Lists keep first-seen edge order and contain no duplicates.

    Attributes:
        incoming: pubkey -> pubkeys with an edge into it.
        outgoing: pubkey -> pubkeys it has an edge to.
    """

    incoming: dict[str, list[str]] = field(default_factory=dict)
    outgoing: dict[str, list[str]] = field(default_factory=dict)


def derive_peer_index(connections: Mapping[str, Any] | Iterable[str] | None) -> PeerIndex:
    """Build a ``PeerIndex`` from ``"from,to"`` connection keys.

    Args:
        connections: A processed crawl's connection mapping (only keys are
            read), any iterable of ``"from,to"`` strings, or ``None``.

    Returns:
        The index; empty when ``connections`` is ``None`` or empty.

    Raises:
        KeyFormatError: If a connection key is not ``"from,to"``.
    """
    if not connections:
        return PeerIndex()

    incoming: dict[str, dict[str, None]] = {}
    outgoing: dict[str, dict[str, None]] = {}
    for pair in connections:
        from_pubkey, to_pubkey = split_connection_pair(pair)
        outgoing.setdefault(from_pubkey, {})[to_pubkey] = None
        incoming.setdefault(to_pubkey, {})[from_pubkey] = None

    return PeerIndex(
        incoming={pubkey: list(peers) for pubkey, peers in incoming.items()},
        outgoing={pubkey: list(peers) for pubkey, peers in outgoing.items()},
    )


def _churn(new_peers: list[str] | None, old_peers: list[str] | None) -> tuple[int, int]:
    """Return ``(added, dropped)`` counts between two neighbour lists."""
    new_set = set(new_peers or ())
    old_set = set(old_peers or ())
    return len(new_set - old_set), len(old_set - new_set)


def compute_node_stats(
    new_crawl: ProcessedCrawl,
    old_crawl: ProcessedCrawl | None,
) -> dict[str, NodeStats]:
    """Compute statistics for every node of ``new_crawl``.

    Observed fields are copied from the node snapshot. Add counts are peers
    in the new index but not the old one for that pubkey; drop counts are
    the reverse. A node with no old entry has zero drops and all of its
    peers counted as added.

    Args:
        new_crawl: The crawl being stored.
        old_crawl: The previously stored crawl, or None for the first crawl.

    Returns:
        pubkey -> NodeStats, one entry per node in ``new_crawl.nodes``.
    """
    new_index = derive_peer_index(new_crawl.connections)
    old_index = derive_peer_index(old_crawl.connections if old_crawl else None)

    stats: dict[str, NodeStats] = {}
    for pubkey, node in new_crawl.nodes.items():
        in_add, in_drop = _churn(new_index.incoming.get(pubkey), old_index.incoming.get(pubkey))
        out_add, out_drop = _churn(
            new_index.outgoing.get(pubkey), old_index.outgoing.get(pubkey)
        )
        stats[pubkey] = NodeStats(
            pubkey=pubkey,
            address=node.address,
            version=node.version,
            uptime=node.uptime,
            request_time=node.request_time,
            errors=node.errors,
            in_count=node.in_count,
            out_count=node.out_count,
            in_add_count=in_add,
            in_drop_count=in_drop,
            out_add_count=out_add,
            out_drop_count=out_drop,
        )
    return stats


def compute_changed_nodes(
    new_nodes: Mapping[str, NodeSnapshot],
    old_nodes: Mapping[str, NodeSnapshot] | None,
) -> dict[str, NodeSnapshot]:
    """Return the subset of ``new_nodes`` that is new or changed.

    A node is changed when it is absent from ``old_nodes`` or its address or
    version differs. Nodes that disappeared are not reported; this is a
    filter of the new set, not a diff.
    """
    old_nodes = old_nodes or {}
    changed: dict[str, NodeSnapshot] = {}
    for pubkey, node in new_nodes.items():
        old = old_nodes.get(pubkey)
        if old is None or old.address != node.address or old.version != node.version:
            changed[pubkey] = node
    return changed


__all__ = [
    "PeerIndex",
    "compute_changed_nodes",
    "compute_node_stats",
    "derive_peer_index",
]
