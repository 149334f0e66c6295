"""Licensed catalog search against iTunes storefronts."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import Settings
from ..errors import UpstreamError
from ..models import CatalogCandidate, CatalogMatch, MediaKind, Metadata
from ..scoring import find_best_match
from ..utils import parse_year

logger = logging.getLogger(__name__)

MAX_TITLE_VARIANTS = 3

# (strict params, broad params, client-side kind filter for the broad query)
_SEARCH_PROFILES: dict[MediaKind, tuple[dict[str, str], dict[str, str], str]] = {
    "movie": (
        {"media": "movie", "entity": "movie", "attribute": "movieTerm"},
        {},
        "feature-movie",
    ),
    "series": (
        {"media": "tvShow", "entity": "tvEpisode", "attribute": "showTerm"},
        {"media": "tvShow"},
        "tv-episode",
    ),
}


class ITunesClient:
    """Wrapper around the iTunes search endpoint."""

    _SEARCH_PATH = "/search"
    request_timeout = 5.0

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    async def search(
        self, term: str, *, region: str, media_kind: MediaKind
    ) -> list[CatalogCandidate]:
        """Search one storefront; strict query first, broad query if empty."""

        strict, broad, kind_filter = _SEARCH_PROFILES[media_kind]
        results = await self._try_search(term, region, strict)
        if not results:
            results = [
                record
                for record in await self._try_search(term, region, broad)
                if record.get("kind") == kind_filter
            ]
        return [self.to_candidate(record, media_kind) for record in results]

    async def _try_search(
        self, term: str, region: str, extra_params: dict[str, str]
    ) -> list[dict[str, Any]]:
        params = {
            "term": term,
            "country": region,
            "limit": str(self._settings.catalog_search_limit),
            **extra_params,
        }
        try:
            payload = await self._get_json(params)
        except UpstreamError as exc:
            logger.debug("iTunes search %r in %s failed: %s", term, region, exc)
            return []
        results = payload.get("results")
        if not isinstance(results, list):
            return []
        return [record for record in results if isinstance(record, dict)]

    async def _get_json(self, params: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self._client.get(
                self._SEARCH_PATH, params=params, timeout=self.request_timeout
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(
                f"iTunes returned {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"iTunes request failed: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError("iTunes returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise UpstreamError("Unexpected iTunes payload")
        return payload

    @staticmethod
    def to_candidate(record: dict[str, Any], media_kind: MediaKind) -> CatalogCandidate:
        """Map a search record; episodes are matched on their show name."""

        if media_kind == "series":
            name = record.get("artistName") or record.get("collectionName")
        else:
            name = record.get("trackName") or record.get("collectionName")

        runtime: int | None = None
        millis = record.get("trackTimeMillis")
        if isinstance(millis, (int, float)) and millis > 0:
            runtime = int(millis / 60_000 + 0.5)

        identifier = record.get("trackId") or record.get("collectionId")
        preview = record.get("previewUrl")
        return CatalogCandidate(
            display_name=str(name or ""),
            identifier=identifier if isinstance(identifier, int) else None,
            release_year=parse_year(record.get("releaseDate")),
            runtime_minutes=runtime,
            preview_url=preview if isinstance(preview, str) and preview else None,
        )


class CatalogMatcher:
    """Finds the best licensed preview for a title across storefronts."""

    def __init__(self, settings: Settings, client: ITunesClient):
        self._client = client
        self._regions = settings.catalog_regions

    async def match(self, metadata: Metadata) -> CatalogMatch | None:
        """Return the accepted match or ``None`` when every variant misses."""

        variants = self.title_variants(metadata)
        logger.info("Titles to try: %s", ", ".join(variants))

        for variant in variants:
            logger.debug("Searching %d storefronts for %r", len(self._regions), variant)
            region_results = await asyncio.gather(
                *(
                    self._client.search(
                        variant, region=region, media_kind=metadata.media_kind
                    )
                    for region in self._regions
                )
            )
            pool = [
                (region, candidate)
                for region, candidates in zip(self._regions, region_results)
                for candidate in candidates
            ]
            match = find_best_match(pool, metadata)
            if match is not None:
                logger.info(
                    "Best match %r from %s, score: %.2f",
                    match.candidate.display_name,
                    match.region.upper(),
                    match.score,
                )
                return match

        logger.info("No catalog match for %r", metadata.canonical_title)
        return None

    @staticmethod
    def title_variants(metadata: Metadata) -> list[str]:
        variants = [metadata.canonical_title]
        if metadata.original_title and metadata.original_title != metadata.canonical_title:
            variants.append(metadata.original_title)
        for title in metadata.alternate_titles:
            if title not in variants:
                variants.append(title)
                break
        return variants[:MAX_TITLE_VARIANTS]
