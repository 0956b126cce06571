"""
builder.py

Build a similar-artist network around a root artist:
- Hop 1: root -> its most similar artists (weight = root's own match score)
- Hop 2: a few new artists per hop-1 artist, scored against the ROOT
         (direct score if the root lists them, otherwise an indirect estimate)

Every fetch goes through the client's rate gate, so the "parallel" batches
below still reach Last.fm one request at a time. Per-artist failures are
logged and skipped; only a failure on the root aborts the build.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple

from nodemap.errors import InvalidInput
from nodemap.models import ArtistRecord, Graph, GraphEdge, GraphNode, SimilarityEntry
from nodemap.projection import project_node

logger = logging.getLogger(__name__)


# ----------------------------
# Tuning knobs
# ----------------------------

MIN_DEPTH, MAX_DEPTH = 1, 2

# Range accepted at the API boundary
MIN_LIMIT, MAX_LIMIT = 5, 50

# Depth-2 builds fetch a longer root list so hop-2 artists can be matched
# against the root directly.
EXTENDED_FANOUT_FACTOR = 4
MAX_FANOUT = 100

# Hop 2 scope: how many hop-1 artists get expanded, and how much each contributes
MAX_EXPANSION_SOURCES = 8
EXPANSION_BATCH_SIZE = 4
SECOND_HOP_FANOUT = 5
MAX_PER_SOURCE = 2

# Indirect (path-based) similarity never claims more than a mid-strength direct match
INDIRECT_SIMILARITY_CAP = 0.5

# Below this, a hop-2 artist keeps only its path edge (no root edge)
MATERIALITY_THRESHOLD = 0.1


class SimilaritySource(Protocol):
    async def get_artist_info(self, name: str) -> ArtistRecord: ...

    async def get_similar_artists(self, name: str, limit: int = 25) -> List[SimilarityEntry]: ...


@dataclass(frozen=True)
class _Candidate:
    name: str
    source: GraphNode
    source_match: float  # from the source's own list, NOT root-relative


def root_relative_similarity(
    candidate_name: str,
    root_to_source: float,
    source_to_candidate: float,
    root_similarity: Dict[str, float],
) -> float:
    """
    Score a hop-2 artist against the root.

    If the root's own similarity list mentions the artist, that score wins.
    Otherwise use the geometric mean of the two path scores, capped.
    Example: root->source 0.8, source->candidate 0.6 -> min(0.5, 0.69) = 0.5
    """
    key = candidate_name.lower()
    if key in root_similarity:
        return root_similarity[key]

    return min(INDIRECT_SIMILARITY_CAP, math.sqrt(max(0.0, root_to_source) * max(0.0, source_to_candidate)))


def validate_params(depth: int, limit: int) -> None:
    if depth not in (MIN_DEPTH, MAX_DEPTH):
        raise InvalidInput(f"depth must be {MIN_DEPTH} or {MAX_DEPTH}, got {depth}")
    if limit < 1:
        raise InvalidInput(f"limit must be positive, got {limit}")


class GraphBuilder:
    def __init__(self, client: SimilaritySource):
        self.client = client

    # ----------------------------
    # Fetch helpers (per-item failures become None)
    # ----------------------------

    async def _safe_info(self, name: str) -> Optional[ArtistRecord]:
        try:
            return await self.client.get_artist_info(name)
        except Exception as e:
            logger.warning("Failed to get info for %s: %s", name, e)
            return None

    async def _safe_similar(self, name: str, limit: int) -> Optional[List[SimilarityEntry]]:
        try:
            return await self.client.get_similar_artists(name, limit)
        except Exception as e:
            logger.warning("Failed to get similar artists for %s: %s", name, e)
            return None

    async def _resolve_center(self, name: str, fanout: int) -> Tuple[ArtistRecord, List[SimilarityEntry]]:
        info, similar = await asyncio.gather(
            self.client.get_artist_info(name),
            self.client.get_similar_artists(name, fanout),
            return_exceptions=True,
        )
        # Info failure takes precedence (it decides NotFound vs. the rest)
        for outcome in (info, similar):
            if isinstance(outcome, BaseException):
                raise outcome
        return info, similar

    # ----------------------------
    # Build
    # ----------------------------

    async def build(self, root_name: str, depth: int = 1, limit: int = 25) -> Graph:
        validate_params(depth, limit)

        fanout = min(MAX_FANOUT, limit * EXTENDED_FANOUT_FACTOR) if depth > 1 else limit
        logger.info('Building %d-hop graph for "%s" with limit %d', depth, root_name, limit)

        root_info, root_similar = await self._resolve_center(root_name, fanout)

        root_similarity: Dict[str, float] = {}
        for entry in root_similar:
            root_similarity.setdefault(entry.name.lower(), entry.match)

        root = project_node(root_info, is_root=True, hop_level=0)
        nodes: List[GraphNode] = [root]
        edges: List[GraphEdge] = []
        existing: Set[str] = {root.key}

        logger.info("Root: %s (%d similar artists)", root.name, len(root_similar))

        hop1_scores = await self._add_first_hop(root, root_similar[:limit], nodes, edges, existing)
        logger.info("Hop 1 built: %d artists", len(hop1_scores))

        if depth > 1:
            await self._add_second_hop(root, root_similarity, hop1_scores, nodes, edges, existing)

        graph = Graph(nodes=nodes, edges=edges)
        logger.info("Graph complete: nodes=%d, edges=%d", len(nodes), len(edges))
        return graph

    async def _add_first_hop(
        self,
        root: GraphNode,
        similar: Sequence[SimilarityEntry],
        nodes: List[GraphNode],
        edges: List[GraphEdge],
        existing: Set[str],
    ) -> Dict[str, float]:
        """
        Returns hop-1 node key -> root-relative score, in list order.
        """
        infos = await asyncio.gather(*(self._safe_info(entry.name) for entry in similar))

        hop1_scores: Dict[str, float] = {}
        for entry, info in zip(similar, infos):
            if info is None:
                continue
            # Self-loop guard, and autocorrect can fold two list entries into one artist
            if info.key in existing:
                continue

            node = project_node(info, is_root=False, hop_level=1)
            nodes.append(node)
            existing.add(node.key)
            hop1_scores[node.key] = entry.match

            edges.append(
                GraphEdge(
                    id=f"{root.name}->{node.name}",
                    source=root.name,
                    target=node.name,
                    match=entry.match,
                )
            )

        return hop1_scores

    async def _select_second_hop(self, sources: Sequence[GraphNode], existing: Set[str]) -> List[_Candidate]:
        selected: List[_Candidate] = []
        seen: Set[str] = set()

        for i in range(0, len(sources), EXPANSION_BATCH_SIZE):
            batch = sources[i : i + EXPANSION_BATCH_SIZE]
            results = await asyncio.gather(*(self._safe_similar(s.name, SECOND_HOP_FANOUT) for s in batch))

            for source, similar in zip(batch, results):
                if similar is None:
                    continue

                taken = 0
                for entry in similar:
                    if taken >= MAX_PER_SOURCE:
                        break
                    key = entry.name.lower()
                    if key in existing or key in seen or key == source.key:
                        continue

                    selected.append(_Candidate(name=entry.name, source=source, source_match=entry.match))
                    seen.add(key)
                    taken += 1

                logger.debug("Selected %d hop-2 candidates from %s", taken, source.name)

        return selected

    async def _add_second_hop(
        self,
        root: GraphNode,
        root_similarity: Dict[str, float],
        hop1_scores: Dict[str, float],
        nodes: List[GraphNode],
        edges: List[GraphEdge],
        existing: Set[str],
    ) -> None:
        sources = [n for n in nodes if n.hop_level == 1][:MAX_EXPANSION_SOURCES]
        candidates = await self._select_second_hop(sources, existing)
        logger.info("Selected %d hop-2 candidates from %d sources", len(candidates), len(sources))

        infos = await asyncio.gather(*(self._safe_info(c.name) for c in candidates))

        for candidate, info in zip(candidates, infos):
            if info is None or info.key in existing:
                continue

            source = candidate.source
            score = root_relative_similarity(
                info.name,
                root_to_source=hop1_scores.get(source.key, 0.0),
                source_to_candidate=candidate.source_match,
                root_similarity=root_similarity,
            )

            node = project_node(info, is_root=False, hop_level=2)
            nodes.append(node)
            existing.add(node.key)

            # Discovery path keeps the source's own score
            edges.append(
                GraphEdge(
                    id=f"{source.name}->{node.name}",
                    source=source.name,
                    target=node.name,
                    match=candidate.source_match,
                )
            )

            if score > MATERIALITY_THRESHOLD:
                edges.append(
                    GraphEdge(
                        id=f"{root.name}->{node.name}_root",
                        source=root.name,
                        target=node.name,
                        match=score,
                    )
                )

    # ----------------------------
    # Expand (delta around one node)
    # ----------------------------

    async def expand(self, artist_name: str, limit: int = 25) -> Graph:
        """
        One-hop neighbourhood of `artist_name`, for the client to merge into
        a graph it already shows. The center is flagged as root of the delta.
        """
        validate_params(MIN_DEPTH, limit)

        info, similar = await self._resolve_center(artist_name, limit)

        center = project_node(info, is_root=True, hop_level=0)
        nodes: List[GraphNode] = [center]
        edges: List[GraphEdge] = []
        await self._add_first_hop(center, similar[:limit], nodes, edges, {center.key})

        logger.info("Expanded %s: %d new artists", center.name, len(nodes) - 1)
        return Graph(nodes=nodes, edges=edges)
