"""Request bodies accepted by the API."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from nodemap.builder import MAX_DEPTH, MAX_LIMIT, MIN_DEPTH, MIN_LIMIT

DEFAULT_DEPTH = 1
DEFAULT_LIMIT = 25


class MapRequest(BaseModel):
    """Artist name or Last.fm profile URL, plus graph size."""

    input: str = Field(min_length=1, validation_alias=AliasChoices("input", "url"))
    depth: int = Field(default=DEFAULT_DEPTH, ge=MIN_DEPTH, le=MAX_DEPTH)
    limit: int = Field(default=DEFAULT_LIMIT, ge=MIN_LIMIT, le=MAX_LIMIT)


class ExpandRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    artist_name: str = Field(min_length=1, alias="artistName")
    limit: int = Field(default=DEFAULT_LIMIT, ge=MIN_LIMIT, le=MAX_LIMIT)


class ExportGraphRequest(BaseModel):
    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]]


class PlaylistRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(min_length=1, alias="accessToken")
    artists: List[str]
    playlist_name: Optional[str] = Field(default=None, alias="playlistName")
    track_type: Literal["popular", "recent"] = Field(default="popular", alias="trackType")
