"""
projection.py

Turn a Last.fm artist record into a display node.
"""

from __future__ import annotations

import math

from nodemap.models import ArtistRecord, GraphNode

MIN_NODE_SIZE = 20.0
MAX_NODE_SIZE = 60.0
UNKNOWN_GENRE = "unknown"


def display_size(listeners: int) -> float:
    """
    Map listener count to a node size on a log scale.
    Example: 1 -> 20, 1,000 -> 35, 1,000,000 -> 50
    """
    size = MIN_NODE_SIZE + math.log10(max(1, listeners or 0)) * 5
    return max(MIN_NODE_SIZE, min(MAX_NODE_SIZE, size))


def project_node(record: ArtistRecord, is_root: bool = False, hop_level: int = 0) -> GraphNode:
    tags = list(record.tags)
    return GraphNode(
        name=record.name,
        listeners=record.listeners,
        playcount=record.playcount,
        tags=tags,
        primary_genre=tags[0] if tags else UNKNOWN_GENRE,
        size=display_size(record.listeners),
        is_root=is_root,
        hop_level=hop_level,
        url=record.url,
        image_url=record.image_url,
        bio=record.bio,
    )
