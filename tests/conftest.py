"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple, Union

import pytest

from nodemap.errors import NotFound
from nodemap.models import ArtistRecord, SimilarityEntry


class FakeSource:
    """
    In-memory stand-in for LastFmClient.

    `artists` maps a name to listeners (or to an exception to raise);
    `similar` maps a name to [(name, match), ...]. Lookups are case-insensitive.
    """

    def __init__(
        self,
        artists: Dict[str, Union[int, Exception]],
        similar: Optional[Dict[str, Sequence[Tuple[str, float]]]] = None,
        similar_errors: Optional[Dict[str, Exception]] = None,
    ):
        self.artists = {k.lower(): (k, v) for k, v in artists.items()}
        self.similar = {k.lower(): list(v) for k, v in (similar or {}).items()}
        self.similar_errors = {k.lower(): v for k, v in (similar_errors or {}).items()}
        self.info_calls: List[str] = []
        self.similar_calls: List[Tuple[str, int]] = []

    async def get_artist_info(self, name: str) -> ArtistRecord:
        self.info_calls.append(name)
        entry = self.artists.get(name.lower())
        if entry is None:
            raise NotFound(f'Artist "{name}" not found')
        display, value = entry
        if isinstance(value, Exception):
            raise value
        return ArtistRecord(
            name=display,
            listeners=value,
            playcount=value * 10,
            tags=["electronic", "ambient"],
            url=f"https://www.last.fm/music/{display.replace(' ', '+')}",
        )

    async def get_similar_artists(self, name: str, limit: int = 25) -> List[SimilarityEntry]:
        self.similar_calls.append((name, limit))
        error = self.similar_errors.get(name.lower())
        if error is not None:
            raise error
        return [SimilarityEntry(name=n, match=m) for n, m in self.similar.get(name.lower(), [])][:limit]

    async def search_artists(self, query: str, limit: int = 10):
        q = query.lower()
        return [
            {"name": display, "listeners": 0, "url": "", "image": ""}
            for key, (display, _) in self.artists.items()
            if q in key
        ][:limit]


@pytest.fixture
def simple_source() -> FakeSource:
    return FakeSource(
        artists={"Root": 1000, "A": 500, "B": 200},
        similar={"Root": [("A", 0.9), ("B", 0.7)]},
    )
