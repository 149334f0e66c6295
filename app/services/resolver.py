"""Resolution orchestrator: cache, metadata, catalog search, relay fallback."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..errors import MetadataNotFoundError, MetadataUnavailableError
from ..models import ContentIdentity, ResolutionResult, SourceKind
from .cache import CacheEntry, PreviewCache
from .itunes import CatalogMatcher
from .relays import VideoLocator
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class PreviewResolver:
    """Turns a content identity into a playable preview URL.

    Catalog URLs are stable and reused until the entry expires. Relay URLs
    expire quickly, so only the video key is cached and a fresh URL is
    located on every request.
    """

    def __init__(
        self,
        cache: PreviewCache,
        metadata_client: TMDBClient,
        catalog_matcher: CatalogMatcher,
        video_locator: VideoLocator,
    ):
        self._cache = cache
        self._metadata = metadata_client
        self._matcher = catalog_matcher
        self._locator = video_locator

    @property
    def cache(self) -> PreviewCache:
        return self._cache

    async def resolve(self, identity: ContentIdentity) -> ResolutionResult:
        """Return the resolution result; misses never raise."""

        logger.info("Resolving %s", identity)
        entry = await self._read_cache(identity)
        if entry is not None:
            cached = await self._from_cache(entry)
            if cached is not None:
                return cached

        try:
            metadata = await self._metadata.resolve(identity)
        except (MetadataNotFoundError, MetadataUnavailableError) as exc:
            logger.info("No metadata for %s: %s", identity, exc.__class__.__name__)
            await self._write_cache(identity, "absent")
            return ResolutionResult.not_found()

        match = await self._matcher.match(metadata)
        if match is not None and match.candidate.preview_url:
            await self._write_cache(
                identity,
                "catalog",
                playable_url=match.candidate.preview_url,
                region=match.region,
                track_id=match.candidate.identifier,
            )
            logger.info("Found catalog preview: %s", match.candidate.preview_url)
            return ResolutionResult(
                found=True,
                source_kind="catalog",
                playable_url=match.candidate.preview_url,
                region=match.region,
                track_id=match.candidate.identifier,
            )

        trailer_key = metadata.external_trailer_key
        if trailer_key:
            url = await self._locator.locate(trailer_key)
            if url:
                await self._write_cache(identity, "relay", relay_key=trailer_key)
                logger.info("Got relay URL for %s (caching key only)", identity)
                return ResolutionResult(
                    found=True,
                    source_kind="relay",
                    playable_url=url,
                    relay_key=trailer_key,
                )

        await self._write_cache(identity, "absent")
        logger.info("No preview found for %s", identity)
        return ResolutionResult.not_found()

    async def _from_cache(self, entry: CacheEntry) -> ResolutionResult | None:
        """Serve a fresh cache entry; ``None`` means resolve from scratch."""

        if entry.source_kind == "catalog":
            logger.info("Cache hit: catalog preview for %s", entry.identity)
            return ResolutionResult(
                found=True,
                source_kind="catalog",
                playable_url=entry.playable_url,
                region=entry.region,
                track_id=entry.track_id,
            )
        if entry.source_kind == "relay" and entry.relay_key:
            logger.info(
                "Cache hit: relay key %s, locating fresh URL", entry.relay_key
            )
            url = await self._locator.locate(entry.relay_key)
            if url:
                await self._write_cache(entry.identity, "relay", relay_key=entry.relay_key)
                return ResolutionResult(
                    found=True,
                    source_kind="relay",
                    playable_url=url,
                    relay_key=entry.relay_key,
                )
            logger.info("Fresh relay lookup failed for %s, re-resolving", entry.identity)
            return None
        logger.info("Cache hit: negative entry for %s", entry.identity)
        return ResolutionResult.not_found()

    async def _read_cache(self, identity: ContentIdentity) -> CacheEntry | None:
        try:
            return await self._cache.get(identity)
        except SQLAlchemyError:
            logger.exception("Cache lookup failed for %s", identity)
            return None

    async def _write_cache(
        self,
        identity: ContentIdentity,
        source_kind: SourceKind,
        *,
        playable_url: str | None = None,
        relay_key: str | None = None,
        region: str | None = None,
        track_id: int | None = None,
    ) -> None:
        try:
            await self._cache.set(
                identity,
                source_kind,
                playable_url,
                relay_key,
                region=region,
                track_id=track_id,
            )
        except SQLAlchemyError:
            logger.exception("Cache write failed for %s", identity)
