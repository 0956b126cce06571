"""
lastfm.py

Async Last.fm client:
- every request goes through the shared RateGate (one call in flight)
- results are cached by a lowercase key for 24h; a cache hit never touches the gate
- Last.fm error payloads are turned into NotFound / RateLimited / UpstreamError
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import unquote_plus

import httpx

from nodemap.cache import TTLCache
from nodemap.config import LASTFM_BASE_URL, LASTFM_TIMEOUT_SECONDS, Settings
from nodemap.errors import InvalidInput, NotFound, RateLimited, UpstreamError, UpstreamTimeout
from nodemap.gate import RateGate
from nodemap.models import ArtistRecord, SimilarityEntry

logger = logging.getLogger(__name__)

# Last.fm API error codes
ERROR_INVALID_PARAMETERS = 6  # "The artist you supplied could not be found"
ERROR_RATE_LIMIT = 29

# Hard cap the API applies to artist.getsimilar
MAX_SIMILAR_LIMIT = 100
MAX_TAGS = 5

_PROFILE_URL_RE = re.compile(r"last\.fm/music/([^/?#]+)", re.IGNORECASE)


def parse_artist_input(text: str) -> str:
    """
    Accept a plain artist name or a Last.fm profile URL.

    Example: "https://www.last.fm/music/Boards+of+Canada" -> "Boards of Canada"
    """
    if text is None:
        raise InvalidInput("Please provide a valid Last.fm URL or artist name")

    m = _PROFILE_URL_RE.search(text)
    name = unquote_plus(m.group(1)) if m else text
    name = name.strip()

    if not name:
        raise InvalidInput("Please provide a valid Last.fm URL or artist name")
    return name


def _as_list(value: Any) -> List[Any]:
    # Last.fm collapses one-element lists into a bare object
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _image(images: Any, index: int) -> Optional[str]:
    images = _as_list(images)
    if len(images) > index:
        url = (images[index] or {}).get("#text")
        return url or None
    return None


def _int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class LastFmClient:
    """
    Similarity data source.

    The gate and cache are owned by the caller so that one instance of each
    can be shared process-wide.
    """

    def __init__(
        self,
        api_key: str,
        gate: RateGate,
        cache: TTLCache,
        base_url: str = LASTFM_BASE_URL,
        timeout: float = LASTFM_TIMEOUT_SECONDS,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.gate = gate
        self.cache = cache
        self.base_url = base_url
        self._http = http or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        gate: RateGate,
        cache: TTLCache,
        http: Optional[httpx.AsyncClient] = None,
    ) -> "LastFmClient":
        return cls(
            api_key=settings.lastfm_api_key,
            gate=gate,
            cache=cache,
            base_url=settings.lastfm_base_url,
            timeout=settings.lastfm_timeout,
            http=http,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # ----------------------------
    # Transport
    # ----------------------------

    async def _call(self, params: Dict[str, Any]) -> Dict[str, Any]:
        query = {**params, "api_key": self.api_key, "format": "json"}
        logger.debug("Last.fm %s %s", params.get("method"), params.get("artist", ""))
        try:
            response = await self._http.get(self.base_url, params=query)
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"Last.fm timed out on {params.get('method')}: {e}")
        except httpx.HTTPError as e:
            raise UpstreamError(f"Last.fm request failed on {params.get('method')}: {e}")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimited(
                "Too many requests to Last.fm API",
                retry_after=_float(retry_after) if retry_after else None,
            )

        try:
            data = response.json()
        except ValueError:
            raise UpstreamError(f"Last.fm returned a non-JSON response (HTTP {response.status_code})")

        if isinstance(data, dict) and data.get("error"):
            code = _int(data.get("error"))
            message = data.get("message") or "Last.fm API error"
            if code == ERROR_INVALID_PARAMETERS:
                raise NotFound(message)
            if code == ERROR_RATE_LIMIT:
                raise RateLimited(message)
            raise UpstreamError(f"Last.fm error {code}: {message}")

        if response.status_code >= 400:
            raise UpstreamError(f"Last.fm returned HTTP {response.status_code}")

        return data

    async def request(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Send one API call through the rate gate."""
        label = f"{params.get('method')}({params.get('artist', '')})"
        return await self.gate.submit(lambda: self._call(params), label=label)

    # ----------------------------
    # Endpoints
    # ----------------------------

    async def get_artist_info(self, name: str) -> ArtistRecord:
        cache_key = f"info:{name.lower()}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        data = await self.request({"method": "artist.getinfo", "artist": name, "autocorrect": 1})

        artist = data.get("artist")
        if not artist or not artist.get("name"):
            raise NotFound(f'Artist "{name}" not found')

        stats = artist.get("stats") or {}
        tags = [t.get("name") for t in _as_list((artist.get("tags") or {}).get("tag")) if t and t.get("name")]

        record = ArtistRecord(
            name=artist["name"],
            listeners=_int(stats.get("listeners")),
            playcount=_int(stats.get("playcount")),
            tags=tags[:MAX_TAGS],
            url=artist.get("url") or None,
            image_url=_image(artist.get("image"), 3),
            bio=(artist.get("bio") or {}).get("summary") or None,
            mbid=artist.get("mbid") or None,
        )

        self.cache.set(cache_key, record)
        return record

    async def get_similar_artists(self, name: str, limit: int = 25) -> List[SimilarityEntry]:
        cache_key = f"similar:{name.lower()}:{limit}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        data = await self.request(
            {
                "method": "artist.getsimilar",
                "artist": name,
                "limit": min(limit, MAX_SIMILAR_LIMIT),
                "autocorrect": 1,
            }
        )

        raw = _as_list((data.get("similarartists") or {}).get("artist"))
        similar = [
            SimilarityEntry(
                name=a["name"],
                match=_float(a.get("match")),
                mbid=a.get("mbid") or None,
                url=a.get("url") or None,
                image_url=_image(a.get("image"), 2),
            )
            for a in raw
            if a and a.get("name")
        ][:limit]

        self.cache.set(cache_key, similar)
        return similar

    async def search_artists(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        cache_key = f"search:{query.lower()}:{limit}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        data = await self.request({"method": "artist.search", "artist": query, "limit": limit})

        matches = _as_list(((data.get("results") or {}).get("artistmatches") or {}).get("artist"))
        results = [
            {
                "name": a["name"],
                "listeners": _int(a.get("listeners")),
                "url": a.get("url") or "",
                "image": _image(a.get("image"), 1) or "",
            }
            for a in matches
            if a and a.get("name")
        ]

        self.cache.set(cache_key, results)
        return results
