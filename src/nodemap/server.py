"""
NodeMap API Server
==================

Similar-artist graphs over HTTP for the frontend.

Endpoints:
- POST /api/map                     -> build a 1- or 2-hop graph
- POST /api/expand                  -> hop-1 delta around one artist
- GET  /api/export/csv              -> build + CSV download
- POST /api/export/connections      -> CSV of a graph the client already holds
- GET  /api/artist/{name}           -> artist info + top 10 similar
- GET  /api/search                  -> artist autocomplete
- GET  /api/spotify/auth|callback   -> Spotify OAuth
- POST /api/spotify/create-playlist -> playlist from a list of artists

Usage:
    uvicorn nodemap.server:app --reload
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response

from nodemap import playlist
from nodemap.builder import GraphBuilder, MAX_DEPTH, MAX_LIMIT, MIN_DEPTH, MIN_LIMIT
from nodemap.cache import TTLCache
from nodemap.config import Settings, allowed_origins_from_env
from nodemap.errors import InternalError, InvalidInput, NodeMapError
from nodemap.export import export_filename, graph_from_payload, graph_to_csv
from nodemap.gate import RateGate
from nodemap.lastfm import LastFmClient, parse_artist_input
from nodemap.schemas import DEFAULT_DEPTH, DEFAULT_LIMIT, ExpandRequest, ExportGraphRequest, MapRequest, PlaylistRequest

logger = logging.getLogger(__name__)


# =============================================================================
# APP FACTORY
# =============================================================================

def create_app(settings: Optional[Settings] = None, source=None) -> FastAPI:
    """
    `source` replaces the Last.fm client (anything with the LastFmClient
    coroutine methods); the gate and cache are then not created.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings or Settings.from_env()

        gate = None
        client = source
        if client is None:
            s = app.state.settings
            gate = RateGate.from_settings(s)
            client = LastFmClient.from_settings(s, gate=gate, cache=TTLCache(ttl_seconds=s.cache_ttl))

        app.state.lastfm = client
        app.state.builder = GraphBuilder(client)
        logger.info("Last.fm service ready")

        yield

        if gate is not None:
            await gate.aclose()
            await client.aclose()
        logger.info("Shut down Last.fm service")

    app = FastAPI(
        title="NodeMap API",
        version="0.1.0",
        description="Similar-artist network graphs from Last.fm",
        lifespan=lifespan,
    )

    # CORS (Allow Frontend)
    origins = settings.allowed_origins if settings else allowed_origins_from_env()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NodeMapError)
    async def nodemap_error_handler(request: Request, exc: NodeMapError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.title, "message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        err = InvalidInput(_validation_message(exc))
        return JSONResponse(status_code=err.status_code, content={"error": err.title, "message": err.message})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("%s %s failed", request.method, request.url.path)
        err = InternalError("Something went wrong")
        return JSONResponse(status_code=err.status_code, content={"error": err.title, "message": err.message})

    @app.get("/healthz")
    async def health_check():
        return {"ok": True, "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")}

    app.include_router(api_router, prefix="/api")
    app.include_router(spotify_router, prefix="/api/spotify")
    return app


def _validation_message(exc: RequestValidationError) -> str:
    """
    Example: [{"loc": ("body", "limit"), "msg": "Input should be less than or equal to 50"}]
    -> "limit: Input should be less than or equal to 50"
    """
    parts = []
    for error in exc.errors():
        field = ".".join(str(p) for p in error.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


# =============================================================================
# GRAPH ENDPOINTS
# =============================================================================

api_router = APIRouter()


@api_router.post("/map")
async def build_map(body: MapRequest, request: Request):
    root_name = parse_artist_input(body.input)
    graph = await request.app.state.builder.build(root_name, depth=body.depth, limit=body.limit)
    return {
        "success": True,
        "rootArtist": root_name,
        "depth": body.depth,
        "limit": body.limit,
        **graph.to_dict(),
    }


@api_router.post("/expand")
async def expand_node(body: ExpandRequest, request: Request):
    graph = await request.app.state.builder.expand(body.artist_name, limit=body.limit)
    payload = graph.to_dict()
    return {
        "success": True,
        "artist": body.artist_name,
        "nodes": payload["nodes"],
        "edges": payload["edges"],
    }


def _csv_response(csv_text: str, filename: str) -> Response:
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@api_router.get("/export/csv")
async def export_csv(
    request: Request,
    root: str = Query(..., min_length=1),
    depth: int = Query(DEFAULT_DEPTH, ge=MIN_DEPTH, le=MAX_DEPTH),
    limit: int = Query(DEFAULT_LIMIT, ge=MIN_LIMIT, le=MAX_LIMIT),
):
    root_name = parse_artist_input(root)
    graph = await request.app.state.builder.build(root_name, depth=depth, limit=limit)
    return _csv_response(graph_to_csv(graph), export_filename(root_name))


@api_router.post("/export/connections")
async def export_connections(body: ExportGraphRequest):
    graph = graph_from_payload(body.nodes, body.edges)
    return _csv_response(graph_to_csv(graph), export_filename())


@api_router.get("/artist/{name}")
async def artist_detail(name: str, request: Request):
    lastfm = request.app.state.lastfm
    artist_name = parse_artist_input(name)

    info, similar = await asyncio.gather(
        lastfm.get_artist_info(artist_name),
        lastfm.get_similar_artists(artist_name, 10),
    )
    return {
        "success": True,
        "artist": {**info.to_dict(), "similar": [s.to_dict() for s in similar]},
    }


@api_router.get("/search")
async def search(request: Request, q: str = Query(..., min_length=1), limit: int = Query(10, ge=1, le=30)):
    results = await request.app.state.lastfm.search_artists(q, limit)
    return {"success": True, "query": q, "results": results}


# =============================================================================
# SPOTIFY ENDPOINTS
# =============================================================================

spotify_router = APIRouter()


@spotify_router.get("/auth")
def spotify_auth(request: Request):
    state = secrets.token_urlsafe(9)
    url = playlist.authorize_url(request.app.state.settings, state)
    return {"success": True, "authUrl": url, "state": state}


@spotify_router.get("/callback")
def spotify_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
):
    if error:
        raise InvalidInput(f"Spotify authorization failed: {error}")
    if not code:
        raise InvalidInput("Authorization code is required")

    settings = request.app.state.settings
    token = playlist.exchange_code(settings, code)
    # The frontend keeps the token; nothing is stored server-side
    return RedirectResponse(f"{settings.frontend_url}?{urlencode({'spotify_token': token['access_token']})}")


@spotify_router.post("/create-playlist")
def spotify_create_playlist(body: PlaylistRequest):
    return playlist.create_playlist(
        body.access_token,
        body.artists,
        playlist_name=body.playlist_name,
        track_type=body.track_type,
    )


app = create_app()
