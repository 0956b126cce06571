"""
config.py

Runtime settings, read from the environment (and a local .env file).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


# ----------------------------
# Defaults
# ----------------------------

LASTFM_BASE_URL = "https://ws.audioscrobbler.com/2.0/"

# Last.fm fair use: 5 requests per second
LASTFM_MIN_INTERVAL_SECONDS = 0.2

# Pause for the whole queue after a 429 before retrying the same request
LASTFM_COOLDOWN_SECONDS = 2.0

# Throttles tolerated per request before RateLimited reaches the caller
LASTFM_MAX_RETRIES = 5

LASTFM_TIMEOUT_SECONDS = 10.0

CACHE_TTL_SECONDS = 24 * 60 * 60

DEFAULT_FRONTEND_URL = "http://localhost:5173"


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


def allowed_origins_from_env() -> List[str]:
    """
    ALLOWED_ORIGINS (comma separated) wins; otherwise the frontend URL plus
    the local dev servers.
    """
    load_dotenv()

    origins_raw = os.getenv("ALLOWED_ORIGINS")
    if origins_raw:
        return [o.strip() for o in origins_raw.split(",") if o.strip()]

    frontend_url = os.getenv("FRONTEND_URL") or DEFAULT_FRONTEND_URL
    return list(dict.fromkeys([frontend_url, DEFAULT_FRONTEND_URL, "http://localhost:3000"]))


@dataclass(frozen=True)
class Settings:
    lastfm_api_key: str
    lastfm_base_url: str = LASTFM_BASE_URL
    lastfm_min_interval: float = LASTFM_MIN_INTERVAL_SECONDS
    lastfm_cooldown: float = LASTFM_COOLDOWN_SECONDS
    lastfm_max_retries: int = LASTFM_MAX_RETRIES
    lastfm_timeout: float = LASTFM_TIMEOUT_SECONDS
    cache_ttl: float = CACHE_TTL_SECONDS
    spotify_client_id: Optional[str] = None
    spotify_client_secret: Optional[str] = None
    spotify_redirect_uri: Optional[str] = None
    frontend_url: str = DEFAULT_FRONTEND_URL
    allowed_origins: List[str] = field(default_factory=lambda: [DEFAULT_FRONTEND_URL, "http://localhost:3000"])
    port: int = 3001

    @property
    def spotify_configured(self) -> bool:
        return bool(self.spotify_client_id and self.spotify_client_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        api_key = os.getenv("LASTFM_API_KEY")
        if not api_key:
            raise RuntimeError("Missing Last.fm credentials in .env: LASTFM_API_KEY")

        frontend_url = os.getenv("FRONTEND_URL") or DEFAULT_FRONTEND_URL

        return cls(
            lastfm_api_key=api_key,
            lastfm_base_url=os.getenv("LASTFM_BASE_URL") or LASTFM_BASE_URL,
            lastfm_min_interval=_float_env("LASTFM_MIN_INTERVAL", LASTFM_MIN_INTERVAL_SECONDS),
            lastfm_cooldown=_float_env("LASTFM_COOLDOWN", LASTFM_COOLDOWN_SECONDS),
            lastfm_max_retries=int(_float_env("LASTFM_MAX_RETRIES", LASTFM_MAX_RETRIES)),
            lastfm_timeout=_float_env("LASTFM_TIMEOUT", LASTFM_TIMEOUT_SECONDS),
            cache_ttl=_float_env("CACHE_TTL_SECONDS", CACHE_TTL_SECONDS),
            spotify_client_id=os.getenv("SPOTIFY_CLIENT_ID") or None,
            spotify_client_secret=os.getenv("SPOTIFY_CLIENT_SECRET") or None,
            spotify_redirect_uri=os.getenv("SPOTIFY_REDIRECT_URI") or None,
            frontend_url=frontend_url,
            allowed_origins=allowed_origins_from_env(),
            port=int(_float_env("PORT", 3001)),
        )
