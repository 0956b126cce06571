"""
playlist.py

Turn a list of artist names into a Spotify playlist for the signed-in user:
- OAuth: authorize URL + code exchange (authorization code flow)
- one track per artist: its top track ("popular") or the first track of its
  newest release ("recent")
- artists that can't be resolved on Spotify are skipped

Spotipy is synchronous; the API serves these routes from its threadpool.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import spotipy
from spotipy.cache_handler import MemoryCacheHandler
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyOAuth, SpotifyOauthError

from nodemap.config import Settings
from nodemap.errors import InvalidInput, InvalidToken, NotFound, RateLimited, UpstreamError

logger = logging.getLogger(__name__)

SCOPES = "playlist-modify-public playlist-modify-private user-read-private"
MARKET = "US"

# Spotify accepts at most 100 items per add call
ADD_CHUNK_SIZE = 100

# Back off on 429 but never sit out a long lockout
MAX_RETRY_AFTER_SECONDS = 30.0


@dataclass(frozen=True)
class PickedTrack:
    artist: str
    name: str
    uri: str
    url: str
    release_date: Optional[str]
    track_type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "artist": self.artist,
            "trackName": self.name,
            "trackUrl": self.url,
            "releaseDate": self.release_date,
            "trackType": self.track_type,
        }


# ----------------------------
# OAuth
# ----------------------------

def make_oauth(settings: Settings, state: Optional[str] = None) -> SpotifyOAuth:
    if not settings.spotify_configured:
        raise InvalidInput(
            "Spotify integration is not configured. Please add your Spotify API credentials."
        )

    return SpotifyOAuth(
        client_id=settings.spotify_client_id,
        client_secret=settings.spotify_client_secret,
        redirect_uri=settings.spotify_redirect_uri,
        scope=SCOPES,
        state=state,
        open_browser=False,
        cache_handler=MemoryCacheHandler(),
    )


def authorize_url(settings: Settings, state: str) -> str:
    return make_oauth(settings, state=state).get_authorize_url(state=state)


def exchange_code(settings: Settings, code: str) -> Dict[str, Any]:
    oauth = make_oauth(settings)
    try:
        return oauth.get_access_token(code, as_dict=True, check_cache=False)
    except SpotifyOauthError as e:
        raise InvalidToken(f"Spotify authorization failed: {e}")


# ----------------------------
# Safe call wrapper
# ----------------------------

def spotify_call(fn, *args, max_retries: int = 3, **kwargs):
    """
    Retry wrapper for Spotify API calls.
    429 -> wait Retry-After (bounded) and retry; 401 -> InvalidToken.
    """
    for attempt in range(1, max_retries + 1):
        try:
            return fn(*args, **kwargs)
        except SpotifyException as e:
            if e.http_status == 401:
                raise InvalidToken("Spotify access token is invalid or expired")

            if e.http_status == 429:
                retry_after = None
                if getattr(e, "headers", None):
                    try:
                        retry_after = float(e.headers.get("Retry-After"))
                    except (TypeError, ValueError):
                        retry_after = None

                if retry_after is None or retry_after > MAX_RETRY_AFTER_SECONDS or attempt == max_retries:
                    raise RateLimited("Too many requests to Spotify API", retry_after=retry_after)

                logger.info(
                    "[rate-limit] 429 from Spotify. Sleeping %.1fs (attempt %d/%d)",
                    retry_after,
                    attempt,
                    max_retries,
                )
                time.sleep(retry_after)
                continue

            raise UpstreamError(f"Spotify call failed: {e.msg if hasattr(e, 'msg') else e}")

    raise UpstreamError(f"Spotify call failed after {max_retries} retries: {getattr(fn, '__name__', str(fn))}")


# ----------------------------
# Track picking
# ----------------------------

def make_user_client(access_token: str) -> spotipy.Spotify:
    return spotipy.Spotify(auth=access_token, retries=0, status_retries=0, backoff_factor=0)


def find_artist_id(sp: spotipy.Spotify, artist_name: str) -> Optional[str]:
    result = spotify_call(sp.search, q=artist_name, type="artist", limit=1)
    items = (result.get("artists") or {}).get("items") or []
    return items[0]["id"] if items else None


def top_track(sp: spotipy.Spotify, artist_id: str) -> Optional[dict]:
    result = spotify_call(sp.artist_top_tracks, artist_id, country=MARKET)
    tracks = result.get("tracks") or []
    return tracks[0] if tracks else None


def most_recent_track(sp: spotipy.Spotify, artist_id: str) -> Optional[dict]:
    result = spotify_call(
        sp.artist_albums,
        artist_id,
        include_groups="album,single",
        country=MARKET,
        limit=10,
    )
    albums = sorted(result.get("items") or [], key=lambda a: a.get("release_date") or "", reverse=True)

    for album in albums:
        tracks = spotify_call(sp.album_tracks, album["id"], limit=1).get("items") or []
        if tracks:
            return {**tracks[0], "album": album}
    return None


def pick_track(sp: spotipy.Spotify, artist_name: str, track_type: str) -> Optional[PickedTrack]:
    artist_id = find_artist_id(sp, artist_name)
    if not artist_id:
        return None

    track = most_recent_track(sp, artist_id) if track_type == "recent" else top_track(sp, artist_id)
    if not track or not track.get("uri"):
        return None

    album = track.get("album") or {}
    return PickedTrack(
        artist=artist_name,
        name=track.get("name", ""),
        uri=track["uri"],
        url=(track.get("external_urls") or {}).get("spotify") or track["uri"],
        release_date=album.get("release_date"),
        track_type=track_type,
    )


def default_playlist_name(track_type: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    label = "Latest" if track_type == "recent" else "Popular"
    return f"AnR Map ({label}) - {now:%B} {now.day}, {now.year}"


# ----------------------------
# Playlist creation
# ----------------------------

def create_playlist(
    access_token: str,
    artists: List[str],
    playlist_name: Optional[str] = None,
    track_type: str = "popular",
    sp: Optional[spotipy.Spotify] = None,
) -> Dict[str, Any]:
    """
    Tracks are picked before anything is written, so a request where no
    artist resolves fails with NotFound and leaves the account untouched.
    """
    sp = sp or make_user_client(access_token)

    user = spotify_call(sp.current_user)
    now = datetime.now()
    name = playlist_name or default_playlist_name(track_type, now)
    description = (
        f"Curated playlist with {'latest releases' if track_type == 'recent' else 'popular tracks'} "
        f"based on Last.fm artist network analysis. Generated on {now:%B} {now.day}, {now.year}."
    )

    picked: List[PickedTrack] = []
    for artist_name in artists:
        try:
            track = pick_track(sp, artist_name, track_type)
        except (InvalidToken, RateLimited):
            raise
        except UpstreamError as e:
            logger.warning("Failed to get %s track for %s: %s", track_type, artist_name, e)
            continue
        if track:
            picked.append(track)

    if not picked:
        raise NotFound("None of the artists could be matched to a Spotify track")

    playlist = spotify_call(sp.user_playlist_create, user["id"], name, public=True, description=description)

    uris = [t.uri for t in picked]
    for i in range(0, len(uris), ADD_CHUNK_SIZE):
        spotify_call(sp.playlist_add_items, playlist["id"], uris[i : i + ADD_CHUNK_SIZE])

    logger.info("Playlist %s: %d tracks from %d artists", playlist["id"], len(uris), len(artists))

    return {
        "success": True,
        "playlist": {
            "id": playlist["id"],
            "name": playlist.get("name", name),
            "url": (playlist.get("external_urls") or {}).get("spotify", ""),
            "tracksAdded": len(uris),
            "totalArtists": len(artists),
            "trackType": track_type,
        },
        "tracks": [t.to_dict() for t in picked],
    }
