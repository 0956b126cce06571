from datetime import datetime

import pytest
from spotipy.exceptions import SpotifyException

from nodemap import playlist
from nodemap.errors import InvalidToken, NotFound, RateLimited, UpstreamError
from nodemap.playlist import create_playlist, default_playlist_name, pick_track, spotify_call


class FakeSpotify:
    """Just enough of spotipy.Spotify for playlist creation."""

    def __init__(self, catalog=None, failing=()):
        self.catalog = catalog or {
            "A": {"top": "Alpha Hit", "albums": [("a-old", "2019-01-01"), ("a-new", "2024-05-17")]},
            "B": {"top": "Beta Hit", "albums": [("b-only", "2021-09-09")]},
        }
        self.failing = set(failing)
        self.added = []
        self.created = None

    def current_user(self):
        return {"id": "user-1"}

    def search(self, q, type="artist", limit=1):
        if q in self.failing:
            raise SpotifyException(500, -1, "server error")
        items = [{"id": f"id-{q}", "name": q}] if q in self.catalog else []
        return {"artists": {"items": items}}

    def artist_top_tracks(self, artist_id, country="US"):
        name = artist_id[3:]
        title = self.catalog[name]["top"]
        return {
            "tracks": [
                {
                    "name": title,
                    "uri": f"spotify:track:{title}",
                    "external_urls": {"spotify": f"https://open.spotify.com/track/{title}"},
                    "album": {"release_date": "2020-02-02"},
                }
            ]
        }

    def artist_albums(self, artist_id, include_groups=None, country=None, limit=20):
        name = artist_id[3:]
        return {"items": [{"id": album_id, "release_date": date} for album_id, date in self.catalog[name]["albums"]]}

    def album_tracks(self, album_id, limit=50):
        return {"items": [{"name": f"{album_id} opener", "uri": f"spotify:track:{album_id}"}]}

    def user_playlist_create(self, user, name, public=True, description=""):
        self.created = {"user": user, "name": name, "description": description}
        return {"id": "pl-1", "name": name, "external_urls": {"spotify": "https://open.spotify.com/playlist/pl-1"}}

    def playlist_add_items(self, playlist_id, items):
        self.added.append(list(items))


# ----------------------------
# spotify_call
# ----------------------------

def test_spotify_call_passes_through():
    assert spotify_call(lambda x, y=0: x + y, 1, y=2) == 3


def test_spotify_call_maps_401():
    def expired():
        raise SpotifyException(401, -1, "The access token expired")

    with pytest.raises(InvalidToken):
        spotify_call(expired)


def test_spotify_call_retries_429(monkeypatch):
    monkeypatch.setattr(playlist.time, "sleep", lambda seconds: None)
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise SpotifyException(429, -1, "rate limited", headers={"Retry-After": "1"})
        return "ok"

    assert spotify_call(flaky) == "ok"
    assert len(calls) == 3


def test_spotify_call_gives_up_on_long_lockout():
    def locked_out():
        raise SpotifyException(429, -1, "rate limited", headers={"Retry-After": "3600"})

    with pytest.raises(RateLimited) as exc:
        spotify_call(locked_out)
    assert exc.value.retry_after == 3600


def test_spotify_call_other_errors():
    def broken():
        raise SpotifyException(503, -1, "unavailable")

    with pytest.raises(UpstreamError):
        spotify_call(broken)


# ----------------------------
# Track picking
# ----------------------------

def test_pick_popular_track():
    track = pick_track(FakeSpotify(), "A", "popular")

    assert track.uri == "spotify:track:Alpha Hit"
    assert track.url == "https://open.spotify.com/track/Alpha Hit"
    assert track.to_dict()["trackType"] == "popular"


def test_pick_recent_track_uses_newest_release():
    track = pick_track(FakeSpotify(), "A", "recent")

    assert track.uri == "spotify:track:a-new"
    assert track.release_date == "2024-05-17"
    # no external url on album tracks -> fall back to the uri
    assert track.url == "spotify:track:a-new"


def test_pick_track_unknown_artist():
    assert pick_track(FakeSpotify(), "Nobody", "popular") is None


def test_default_playlist_name():
    now = datetime(2024, 3, 5)

    assert default_playlist_name("popular", now) == "AnR Map (Popular) - March 5, 2024"
    assert default_playlist_name("recent", now) == "AnR Map (Latest) - March 5, 2024"


# ----------------------------
# Playlist creation
# ----------------------------

def test_create_playlist_skips_unresolved_artists():
    sp = FakeSpotify(failing={"Broken"})
    result = create_playlist("tok", ["A", "Nobody", "Broken", "B"], track_type="popular", sp=sp)

    assert result["success"] is True
    assert result["playlist"] == {
        "id": "pl-1",
        "name": sp.created["name"],
        "url": "https://open.spotify.com/playlist/pl-1",
        "tracksAdded": 2,
        "totalArtists": 4,
        "trackType": "popular",
    }
    assert [t["artist"] for t in result["tracks"]] == ["A", "B"]
    assert sp.added == [["spotify:track:Alpha Hit", "spotify:track:Beta Hit"]]
    assert sp.created["name"].startswith("AnR Map (Popular) - ")
    assert "popular tracks" in sp.created["description"]


def test_create_playlist_adds_in_chunks(monkeypatch):
    monkeypatch.setattr(playlist, "ADD_CHUNK_SIZE", 1)
    sp = FakeSpotify()
    create_playlist("tok", ["A", "B"], playlist_name="Two", track_type="recent", sp=sp)

    assert sp.created["name"] == "Two"
    assert sp.added == [["spotify:track:a-new"], ["spotify:track:b-only"]]


def test_create_playlist_with_no_matches_creates_nothing():
    sp = FakeSpotify()

    with pytest.raises(NotFound):
        create_playlist("tok", ["Nobody"], sp=sp)
    assert sp.created is None
    assert sp.added == []
