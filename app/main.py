"""Entry point for the FastAPI-powered Stremio trailer addon."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import timedelta
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import Database
from .models import ContentIdentity
from .services.cache import PreviewCache
from .services.itunes import CatalogMatcher, ITunesClient
from .services.relays import create_video_locator
from .services.resolver import PreviewResolver
from .services.tmdb import TMDBClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ADDON_VERSION = "2.0.0"

MANIFEST: dict[str, Any] = {
    "id": "com.trailer.preview",
    "name": "Trailer Preview",
    "version": ADDON_VERSION,
    "description": "Watch trailers and previews for movies and TV shows",
    "logo": (
        "https://upload.wikimedia.org/wikipedia/commons/thumb/3/3f/"
        "Film_reel.svg/200px-Film_reel.svg.png"
    ),
    "resources": [
        {"name": "stream", "types": ["movie", "series"], "idPrefixes": ["tt"]}
    ],
    "types": ["movie", "series"],
    "idPrefixes": ["tt"],
    "catalogs": [],
}

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(5.0, connect=3.0),
        )
    )
    itunes_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.itunes_api_url),
            timeout=httpx.Timeout(5.0, connect=3.0),
        )
    )
    relay_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(8.0, connect=4.0),
            follow_redirects=True,
        )
    )
    try:
        metadata_client = TMDBClient(settings, tmdb_http_client)
    except ValueError:
        await exit_stack.aclose()
        raise

    database = Database(settings.database_url)
    await database.create_all()

    cache = PreviewCache(
        database.session_factory, ttl=timedelta(seconds=settings.cache_ttl_seconds)
    )
    resolver = PreviewResolver(
        cache,
        metadata_client,
        CatalogMatcher(settings, ITunesClient(settings, itunes_http_client)),
        create_video_locator(settings, relay_http_client),
    )

    fastapi_app.state.resolver = resolver
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Trailer and preview streams for Stremio",
        version=ADDON_VERSION,
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_resolver(app: FastAPI) -> PreviewResolver:
    resolver = getattr(app.state, "resolver", None)
    if not isinstance(resolver, PreviewResolver):
        raise RuntimeError("Preview resolver not initialised")
    return resolver


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok", "version": ADDON_VERSION}

    @fastapi_app.get("/manifest.json")
    async def manifest() -> dict[str, Any]:
        return MANIFEST

    @fastapi_app.get("/stream/{content_type}/{content_id}.json")
    async def stream(content_type: str, content_id: str) -> JSONResponse:
        if content_type not in {"movie", "series"}:
            raise HTTPException(status_code=400, detail="Unsupported content type")
        if not content_id.startswith("tt"):
            return JSONResponse({"streams": []})

        resolver = get_resolver(fastapi_app)
        identity = ContentIdentity(external_id=content_id, media_kind=content_type)
        result = await resolver.resolve(identity)
        return JSONResponse({"streams": result.to_streams(identity.media_kind)})

    @fastapi_app.post("/api/resolve")
    async def resolve_endpoint(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")
        if not payload.get("imdbId"):
            raise HTTPException(status_code=400, detail="imdbId is required")

        try:
            identity = ContentIdentity(
                external_id=str(payload["imdbId"]),
                media_kind=payload.get("type") or "movie",
            )
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors()) from exc

        resolver = get_resolver(fastapi_app)
        result = await resolver.resolve(identity)
        return JSONResponse(result.to_payload())

    async def _stats() -> JSONResponse:
        resolver = get_resolver(fastapi_app)
        try:
            stats = await resolver.cache.stats()
        except SQLAlchemyError as exc:
            logger.exception("Failed to compute cache stats")
            raise HTTPException(status_code=500, detail="Failed to fetch stats") from exc
        return JSONResponse(stats)

    fastapi_app.add_api_route("/stats", _stats, methods=["GET"])
    fastapi_app.add_api_route("/stats.json", _stats, methods=["GET"])


app = create_app()
