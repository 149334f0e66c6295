"""Utilities for resolving title metadata from The Movie Database (TMDB)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import Settings
from ..errors import MetadataNotFoundError, MetadataUnavailableError, UpstreamError
from ..models import ContentIdentity, MediaKind, Metadata
from ..utils import normalize_title, parse_year

logger = logging.getLogger(__name__)

TRAILER_PLATFORM = "YouTube"
TRAILER_TYPE_PRIORITY = ("Trailer", "Teaser", "Clip")
ENGLISH_TERRITORIES = frozenset({"US", "GB", "CA", "AU"})


class TMDBClient:
    """Resolves external ids into canonical title metadata."""

    request_timeout = 5.0

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def resolve(self, identity: ContentIdentity) -> Metadata:
        """Return metadata for ``identity`` or raise a metadata error."""

        logger.info("Fetching TMDB metadata for %s", identity)
        media_kind, tmdb_id = await self._find(identity)
        endpoint = self._endpoint(media_kind, tmdb_id)

        detail_result, titles_result = await asyncio.gather(
            self._get_json(endpoint, append_to_response="videos"),
            self._get_json(f"{endpoint}/alternative_titles"),
            return_exceptions=True,
        )
        if isinstance(detail_result, BaseException):
            logger.warning(
                "TMDB detail fetch failed for %s: %s", identity, detail_result
            )
            raise MetadataUnavailableError(
                f"Detail for {identity.external_id} could not be retrieved"
            ) from detail_result
        if isinstance(titles_result, BaseException):
            logger.warning(
                "TMDB alternative titles fetch failed for %s: %s",
                identity,
                titles_result,
            )
            titles_result = {}

        metadata = self._build_metadata(media_kind, tmdb_id, detail_result, titles_result)
        logger.info(
            "TMDB: %r (%s), trailer: %s, alternate titles: %d",
            metadata.canonical_title,
            metadata.release_year,
            metadata.external_trailer_key or "none",
            len(metadata.alternate_titles),
        )
        return metadata

    async def _find(self, identity: ContentIdentity) -> tuple[MediaKind, int]:
        """Look the id up across both kinds, preferring the hinted one."""

        try:
            payload = await self._get_json(
                f"/find/{identity.external_id}", external_source="imdb_id"
            )
        except UpstreamError as exc:
            logger.warning("TMDB find failed for %s: %s", identity, exc)
            raise MetadataNotFoundError(identity.external_id) from exc

        results: dict[MediaKind, list[Any]] = {
            "movie": self._as_list(payload.get("movie_results")),
            "series": self._as_list(payload.get("tv_results")),
        }
        order: list[MediaKind] = [identity.media_kind, "movie", "series"]
        for media_kind in order:
            for entry in results[media_kind]:
                if isinstance(entry, dict) and isinstance(entry.get("id"), int):
                    return media_kind, entry["id"]

        logger.info("No TMDB results found for %s", identity)
        raise MetadataNotFoundError(identity.external_id)

    def _build_metadata(
        self,
        media_kind: MediaKind,
        tmdb_id: int,
        detail: dict[str, Any],
        titles: dict[str, Any],
    ) -> Metadata:
        if media_kind == "movie":
            title = detail.get("title")
            original = detail.get("original_title")
            release_date = detail.get("release_date")
        else:
            title = detail.get("name")
            original = detail.get("original_name")
            release_date = detail.get("first_air_date")
        if not isinstance(title, str) or not title.strip():
            raise MetadataUnavailableError(f"TMDB {media_kind} {tmdb_id} has no title")
        title = title.strip()
        original_title = original.strip() if isinstance(original, str) and original.strip() else title

        runtime = detail.get("runtime")
        videos_payload = detail.get("videos")
        videos = (
            self._as_list(videos_payload.get("results"))
            if isinstance(videos_payload, dict)
            else []
        )
        raw_titles = titles.get("titles") if media_kind == "movie" else titles.get("results")

        return Metadata(
            canonical_title=title,
            original_title=original_title,
            media_kind=media_kind,
            alternate_titles=self.extract_alternate_titles(
                self._as_list(raw_titles), exclude=(title, original_title)
            ),
            release_year=parse_year(release_date),
            runtime_minutes=runtime if isinstance(runtime, int) and runtime > 0 else None,
            external_trailer_key=self.extract_trailer_key(videos),
        )

    @staticmethod
    def extract_trailer_key(videos: list[Any]) -> str | None:
        """Pick the trailer key: official Trailer > Teaser > Clip, then any."""

        hosted = [
            video
            for video in videos
            if isinstance(video, dict)
            and video.get("site") == TRAILER_PLATFORM
            and video.get("key")
        ]
        for video_type in TRAILER_TYPE_PRIORITY:
            for video in hosted:
                if video.get("type") == video_type and video.get("official") is True:
                    return str(video["key"])
        if hosted:
            return str(hosted[0]["key"])
        return None

    @staticmethod
    def extract_alternate_titles(
        entries: list[Any], *, exclude: tuple[str, ...] = ()
    ) -> tuple[str, ...]:
        """Return English-territory titles, de-duplicated in listing order."""

        seen = {normalize_title(title) for title in exclude}
        titles: list[str] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if entry.get("iso_3166_1") not in ENGLISH_TERRITORIES:
                continue
            text = entry.get("title")
            if not isinstance(text, str) or not text.strip():
                continue
            key = normalize_title(text)
            if key in seen:
                continue
            seen.add(key)
            titles.append(text.strip())
        return tuple(titles)

    async def _get_json(self, path: str, **params: Any) -> dict[str, Any]:
        params["api_key"] = self._settings.tmdb_api_key
        try:
            response = await self._client.get(
                path, params=params, timeout=self.request_timeout
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"TMDB request to {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise UpstreamError(
                f"TMDB returned {response.status_code} for {path}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"TMDB returned invalid JSON for {path}") from exc
        if not isinstance(payload, dict):
            raise UpstreamError(f"Unexpected TMDB payload for {path}")
        return payload

    @staticmethod
    def _endpoint(media_kind: MediaKind, tmdb_id: int) -> str:
        return f"/{'movie' if media_kind == 'movie' else 'tv'}/{tmdb_id}"

    @staticmethod
    def _as_list(value: Any) -> list[Any]:
        return value if isinstance(value, list) else []
