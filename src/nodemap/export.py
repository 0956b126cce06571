"""
export.py

Tabular export of a built graph: one row per artist with its orbit (hop),
stats, genres and similarity to the root.

Similarity to root comes from an edge touching the root (either direction).
A hop-2 artist whose indirect score fell under the materiality threshold has
no such edge and reports 0%.
"""

from __future__ import annotations

import csv
import math
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from nodemap.errors import InvalidInput, NoRootFound
from nodemap.models import Graph, GraphEdge, GraphNode
from nodemap.projection import UNKNOWN_GENRE, display_size

CSV_COLUMNS = [
    "Artist Name",
    "Orbit",
    "Listeners",
    "Plays",
    "Genres",
    "Similarity To Root",
    "URL",
]

ORBIT_LABELS = {0: "Root", 1: "1st Hop", 2: "2nd Hop"}


def orbit_label(hop_level: Optional[int]) -> str:
    return ORBIT_LABELS.get(hop_level, "Unknown")


def format_count(value: Any) -> str:
    """
    Thousands separators, no decimals.
    Example: 1234567.8 -> "1,234,567"
    """
    try:
        n = math.floor(float(value or 0))
    except (TypeError, ValueError):
        return "0"
    if n <= 0:
        return "0"
    return f"{n:,}"


def format_percent(similarity: float) -> str:
    # Half-up rounding: 0.125 -> "13%"
    return f"{int(math.floor(similarity * 100 + 0.5))}%"


def similarity_to_root(graph: Graph) -> Dict[str, float]:
    root = graph.root
    if root is None:
        raise NoRootFound()

    lookup: Dict[str, float] = {}
    for edge in graph.edges:
        if edge.source == root.name:
            lookup[edge.target] = edge.match
        elif edge.target == root.name:
            lookup[edge.source] = edge.match
    return lookup


def graph_to_frame(graph: Graph) -> pd.DataFrame:
    lookup = similarity_to_root(graph)

    rows: List[Dict[str, str]] = []
    for node in graph.nodes:
        similarity = 1.0 if node.is_root else lookup.get(node.name, 0.0)
        rows.append(
            {
                "Artist Name": node.name,
                "Orbit": orbit_label(node.hop_level),
                "Listeners": format_count(node.listeners),
                "Plays": format_count(node.playcount),
                "Genres": ", ".join(node.tags),
                "Similarity To Root": format_percent(similarity),
                "URL": node.url or "",
            }
        )

    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def graph_to_csv(graph: Graph) -> str:
    df = graph_to_frame(graph)
    return df.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")


def export_filename(root_name: Optional[str] = None) -> str:
    """
    Example: "Sigur Rós" -> "artist-network-Sigur-R-s.csv"
    """
    if not root_name:
        return "artist-network-export.csv"
    safe = "".join(ch if ch.isascii() and ch.isalnum() else "-" for ch in root_name)
    return f"artist-network-{safe}.csv"


# ----------------------------
# Client-supplied graphs
# ----------------------------

def _pick(d: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return default


def _node_from_payload(d: Dict[str, Any]) -> GraphNode:
    name = _pick(d, "name", "id")
    if not name:
        raise InvalidInput("Every node needs a name")

    is_root = bool(_pick(d, "isRoot", "is_root", default=False))
    hop_level = _pick(d, "hopLevel", "hop_level", default=0 if is_root else None)
    listeners = int(_pick(d, "listeners", default=0) or 0)
    tags = list(_pick(d, "tags", default=[]) or [])

    return GraphNode(
        name=str(name),
        listeners=listeners,
        playcount=int(_pick(d, "playcount", "plays", default=0) or 0),
        tags=tags,
        primary_genre=_pick(d, "primaryGenre", "primary_genre", default=tags[0] if tags else UNKNOWN_GENRE),
        size=float(_pick(d, "size", default=display_size(listeners))),
        is_root=is_root,
        hop_level=int(hop_level) if hop_level is not None else -1,
        url=_pick(d, "url"),
        image_url=_pick(d, "image", "image_url"),
        bio=_pick(d, "bio"),
    )


def _edge_from_payload(d: Dict[str, Any]) -> GraphEdge:
    source = _pick(d, "source")
    target = _pick(d, "target")
    if not source or not target:
        raise InvalidInput("Every edge needs a source and a target")

    return GraphEdge(
        id=str(_pick(d, "id", default=f"{source}->{target}")),
        source=str(source),
        target=str(target),
        match=float(_pick(d, "match", "weight", default=0.0)),
    )


def graph_from_payload(nodes: Iterable[Dict[str, Any]], edges: Iterable[Dict[str, Any]]) -> Graph:
    """Rebuild a Graph from the JSON the frontend holds (camelCase or snake_case)."""
    try:
        return Graph(
            nodes=[_node_from_payload(n) for n in nodes],
            edges=[_edge_from_payload(e) for e in edges],
        )
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"Malformed graph data: {e}")
