"""
models.py

Data shapes shared by the Last.fm client, the graph builder and the exporters.

JSON output follows the frontend contract (camelCase keys, edges carry both
`match` and `weight`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# ----------------------------
# Source records
# ----------------------------

@dataclass(frozen=True)
class ArtistRecord:
    name: str
    listeners: int = 0
    playcount: int = 0
    tags: List[str] = field(default_factory=list)
    url: Optional[str] = None
    image_url: Optional[str] = None
    bio: Optional[str] = None
    mbid: Optional[str] = None

    @property
    def key(self) -> str:
        return self.name.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "mbid": self.mbid or "",
            "listeners": self.listeners,
            "playcount": self.playcount,
            "url": self.url or "",
            "image": self.image_url or "",
            "bio": self.bio or "",
            "tags": list(self.tags),
        }


@dataclass(frozen=True)
class SimilarityEntry:
    """One row of an artist's similarity list. `match` is relative to the queried artist."""

    name: str
    match: float
    mbid: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "mbid": self.mbid or "",
            "match": self.match,
            "url": self.url or "",
            "image": self.image_url or "",
        }


# ----------------------------
# Graph shapes
# ----------------------------

@dataclass(frozen=True)
class GraphNode:
    name: str
    listeners: int
    playcount: int
    tags: List[str]
    primary_genre: str
    size: float
    is_root: bool
    hop_level: int  # 0 for root, 1 for hop1, 2 for hop2
    url: Optional[str] = None
    image_url: Optional[str] = None
    bio: Optional[str] = None

    @property
    def id(self) -> str:
        return self.name

    @property
    def key(self) -> str:
        return self.name.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.name,
            "name": self.name,
            "listeners": self.listeners,
            "playcount": self.playcount,
            "url": self.url or "",
            "image": self.image_url or "",
            "bio": self.bio or "",
            "tags": list(self.tags),
            "primaryGenre": self.primary_genre,
            "size": self.size,
            "isRoot": self.is_root,
            "hopLevel": self.hop_level,
        }


@dataclass(frozen=True)
class GraphEdge:
    id: str
    source: str
    target: str
    match: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "match": self.match,
            "weight": self.match,
        }


@dataclass(frozen=True)
class GraphStats:
    total_nodes: int
    total_edges: int
    root_artist: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalNodes": self.total_nodes,
            "totalEdges": self.total_edges,
            "rootArtist": self.root_artist,
        }


@dataclass
class Graph:
    nodes: List[GraphNode]
    edges: List[GraphEdge]

    @property
    def root(self) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.is_root:
                return node
        return None

    @property
    def stats(self) -> GraphStats:
        root = self.root
        return GraphStats(
            total_nodes=len(self.nodes),
            total_edges=len(self.edges),
            root_artist=root.name if root else "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "stats": self.stats.to_dict(),
        }
