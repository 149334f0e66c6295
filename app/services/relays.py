"""Relay providers that turn a YouTube video key into a playable stream URL."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Iterable, Sequence, TypeVar
from urllib.parse import quote

import httpx

from ..config import Settings
from ..errors import UpstreamError
from .instances import (
    COBALT_FALLBACK_INSTANCES,
    INVIDIOUS_FALLBACK_INSTANCES,
    PIPED_FALLBACK_INSTANCES,
    Clock,
    InstancePool,
    parse_cobalt_directory,
    parse_invidious_directory,
    parse_piped_directory,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUALITY_LADDER = ("2160p", "1440p", "1080p", "720p", "480p", "360p")


@dataclass(slots=True, frozen=True)
class StreamOption:
    """One stream variant advertised by a relay response."""

    url: str
    quality: str | None = None
    combined: bool = True
    hdr: bool = False
    compatible: bool = False


@dataclass(slots=True, frozen=True)
class RequestStrategy:
    """A distinct quality/codec request sent to every instance of a class."""

    label: str
    body: dict[str, Any] = field(default_factory=dict)


DEFAULT_STRATEGY = RequestStrategy(label="default")


def quality_rank(label: str | None) -> int:
    """Position on the resolution ladder; lower is better."""

    if not label:
        return 999
    for index, rung in enumerate(QUALITY_LADDER):
        if rung in label:
            return index
    return 998


def select_stream(options: Sequence[StreamOption]) -> StreamOption | None:
    """Muxed over video-only, then resolution, then HDR, then container."""

    if not options:
        return None
    pool = [option for option in options if option.combined] or list(options)
    return min(
        pool,
        key=lambda option: (
            quality_rank(option.quality),
            not option.hdr,
            not option.compatible,
        ),
    )


def _is_hdr(stream: dict[str, Any]) -> bool:
    label = str(stream.get("qualityLabel") or stream.get("quality") or "").lower()
    kind = str(stream.get("type") or "").lower()
    color = stream.get("colorInfo")
    primaries = color.get("primaries") if isinstance(color, dict) else None
    return "hdr" in label or "hdr" in kind or primaries == "bt2020"


def _is_mp4(*values: Any) -> bool:
    return any("mp4" in str(value).lower() or value == "MPEG_4" for value in values if value)


async def first_success(attempts: Iterable[Awaitable[T | None]]) -> T | None:
    """Run ``attempts`` concurrently; return the first non-``None`` result.

    Remaining attempts are cancelled as soon as a winner is known. Attempts
    that raise count as empty results.
    """

    tasks = [asyncio.ensure_future(attempt) for attempt in attempts]
    pending: set[asyncio.Future[T | None]] = set(tasks)
    try:
        while pending:
            done, pending = await asyncio.wait(
                pending, return_when=asyncio.FIRST_COMPLETED
            )
            for task in sorted(done, key=tasks.index):
                if task.cancelled() or task.exception() is not None:
                    continue
                result = task.result()
                if result is not None:
                    return result
        return None
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class RelayProvider(ABC):
    """A relay class: an instance pool plus ordered request strategies."""

    name = "relay"
    request_timeout = 6.0

    def __init__(self, http_client: httpx.AsyncClient, pool: InstancePool):
        self._client = http_client
        self._pool = pool

    def strategies(self, video_key: str) -> Sequence[RequestStrategy]:
        return (DEFAULT_STRATEGY,)

    @abstractmethod
    async def fetch(
        self, instance: str, video_key: str, strategy: RequestStrategy
    ) -> str | None:
        """Ask one instance for a playable URL using ``strategy``."""

    async def locate(self, video_key: str) -> str | None:
        """Race every instance per strategy; ``None`` once all are exhausted."""

        instances = await self._pool.get_instances()
        logger.info(
            "Trying %d %s instances for %s", len(instances), self.name, video_key
        )
        for strategy in self.strategies(video_key):
            url = await first_success(
                self._attempt(instance, video_key, strategy) for instance in instances
            )
            if url:
                logger.info("Got URL from %s (%s)", self.name, strategy.label)
                return url
        logger.info("No %s instance returned a usable URL", self.name)
        return None

    async def _attempt(
        self, instance: str, video_key: str, strategy: RequestStrategy
    ) -> str | None:
        try:
            return await asyncio.wait_for(
                self.fetch(instance, video_key, strategy), timeout=self.request_timeout
            )
        except (httpx.HTTPError, UpstreamError, ValueError, asyncio.TimeoutError) as exc:
            logger.debug(
                "  %s %s: %s", self.name, instance, str(exc) or exc.__class__.__name__
            )
            return None

    async def _get_json(self, url: str) -> dict[str, Any]:
        response = await self._client.get(
            url, headers={"Accept": "application/json"}, timeout=self.request_timeout
        )
        if response.status_code >= 400:
            raise UpstreamError(f"HTTP {response.status_code}", status_code=response.status_code)
        payload = response.json()
        if not isinstance(payload, dict):
            raise UpstreamError("Unexpected relay payload")
        return payload


class PipedRelay(RelayProvider):
    """Class A: proxied URLs that stay valid long enough to play."""

    name = "Piped"

    async def fetch(
        self, instance: str, video_key: str, strategy: RequestStrategy
    ) -> str | None:
        data = await self._get_json(f"{instance}/streams/{video_key}")
        streams = data.get("videoStreams")
        if not isinstance(streams, list):
            return None
        options = [
            StreamOption(
                url=stream["url"],
                quality=stream.get("quality"),
                combined=not stream.get("videoOnly"),
                hdr=_is_hdr(stream),
                compatible=_is_mp4(stream.get("format"), stream.get("mimeType")),
            )
            for stream in streams
            if isinstance(stream, dict)
            and stream.get("url")
            and str(stream.get("mimeType") or "").startswith("video/")
        ]
        best = select_stream(options)
        if best is None:
            return None
        logger.debug(
            "  Piped %s: got %s (%s)",
            instance,
            best.quality or "unknown",
            "combined" if best.combined else "video-only",
        )
        return best.url


class InvidiousRelay(RelayProvider):
    """Class B: origin URLs that must be fetched through the byte-range proxy."""

    name = "Invidious"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        pool: InstancePool,
        *,
        proxy_url: str | None = None,
    ):
        super().__init__(http_client, pool)
        self._proxy_url = proxy_url.rstrip("/") if proxy_url else None

    async def fetch(
        self, instance: str, video_key: str, strategy: RequestStrategy
    ) -> str | None:
        data = await self._get_json(f"{instance}/api/v1/videos/{video_key}")
        options: list[StreamOption] = []
        for stream in data.get("formatStreams") or []:
            if isinstance(stream, dict) and stream.get("url"):
                options.append(self._option(stream, combined=True))
        for stream in data.get("adaptiveFormats") or []:
            if not isinstance(stream, dict) or not stream.get("url"):
                continue
            if "video" in str(stream.get("type") or stream.get("mimeType") or ""):
                options.append(self._option(stream, combined=False))

        best = select_stream(options)
        if best is None:
            return None
        logger.debug(
            "  Invidious %s: got %s%s", instance, best.quality or "unknown", " HDR" if best.hdr else ""
        )
        return self.wrap(best.url)

    def wrap(self, url: str) -> str:
        if not self._proxy_url:
            return url
        return f"{self._proxy_url}?url={quote(url, safe='')}"

    @staticmethod
    def _option(stream: dict[str, Any], *, combined: bool) -> StreamOption:
        return StreamOption(
            url=stream["url"],
            quality=stream.get("qualityLabel") or stream.get("resolution"),
            combined=combined,
            hdr=_is_hdr(stream),
            compatible=_is_mp4(stream.get("container"), stream.get("type")),
        )


class CobaltRelay(RelayProvider):
    """Class C: only immediately usable ``redirect`` answers are accepted."""

    name = "Cobalt"
    request_timeout = 8.0

    # H.264 in MP4 first for player compatibility, VP9 as the last attempt.
    _STRATEGIES: tuple[tuple[str, dict[str, Any]], ...] = (
        (
            "h264-4k-mp4",
            {
                "videoQuality": "2160",
                "youtubeVideoCodec": "h264",
                "youtubeVideoContainer": "mp4",
            },
        ),
        (
            "h264-1080p-mp4",
            {
                "videoQuality": "1080",
                "youtubeVideoCodec": "h264",
                "youtubeVideoContainer": "mp4",
            },
        ),
        (
            "h264-720p-mp4",
            {
                "videoQuality": "720",
                "youtubeVideoCodec": "h264",
                "youtubeVideoContainer": "mp4",
            },
        ),
        ("vp9-4k", {"videoQuality": "2160", "youtubeVideoCodec": "vp9"}),
    )

    def strategies(self, video_key: str) -> Sequence[RequestStrategy]:
        source = f"https://www.youtube.com/watch?v={video_key}"
        return tuple(
            RequestStrategy(
                label=label,
                body={
                    "url": source,
                    **options,
                    "downloadMode": "auto",
                    "audioFormat": "best",
                    "alwaysProxy": False,
                },
            )
            for label, options in self._STRATEGIES
        )

    async def fetch(
        self, instance: str, video_key: str, strategy: RequestStrategy
    ) -> str | None:
        response = await self._client.post(
            instance,
            json=strategy.body,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            timeout=self.request_timeout,
        )
        if response.status_code >= 400:
            if "auth.jwt" in response.text:
                return None
            raise UpstreamError(
                f"HTTP {response.status_code} - {response.text[:100]}",
                status_code=response.status_code,
            )
        data = response.json()
        if not isinstance(data, dict):
            return None
        status = data.get("status")
        if status == "redirect" and data.get("url"):
            return str(data["url"])
        if status in {"tunnel", "picker"}:
            logger.debug("  Cobalt %s: skipping %s URL (expires too quickly)", instance, status)
        return None


class VideoLocator:
    """Tries relay classes in priority order until one yields a URL."""

    def __init__(self, relays: Sequence[RelayProvider]):
        self._relays = tuple(relays)

    async def locate(self, video_key: str) -> str | None:
        logger.info("Extracting stream URL for key: %s", video_key)
        for relay in self._relays:
            url = await relay.locate(video_key)
            if url:
                return url
        logger.info("No stream URL found from any relay for %s", video_key)
        return None


def create_video_locator(
    settings: Settings,
    http_client: httpx.AsyncClient,
    *,
    clock: Clock = time.monotonic,
) -> VideoLocator:
    """Wire the three relay classes with their discovery pools."""

    ttl = float(settings.relay_instance_ttl_seconds)
    piped_pool = InstancePool(
        "Piped",
        http_client,
        directory_url=str(settings.piped_instances_url),
        parser=parse_piped_directory,
        fallback=PIPED_FALLBACK_INSTANCES,
        ttl_seconds=ttl,
        clock=clock,
    )
    invidious_pool = InstancePool(
        "Invidious",
        http_client,
        directory_url=str(settings.invidious_instances_url),
        parser=parse_invidious_directory,
        fallback=INVIDIOUS_FALLBACK_INSTANCES,
        ttl_seconds=ttl,
        clock=clock,
    )
    cobalt_pool = InstancePool(
        "Cobalt",
        http_client,
        directory_url=str(settings.cobalt_instances_url),
        parser=parse_cobalt_directory,
        fallback=COBALT_FALLBACK_INSTANCES,
        ttl_seconds=ttl,
        clock=clock,
    )
    proxy_url = str(settings.video_proxy_url) if settings.video_proxy_url else None
    return VideoLocator(
        (
            PipedRelay(http_client, piped_pool),
            InvidiousRelay(http_client, invidious_pool, proxy_url=proxy_url),
            CobaltRelay(http_client, cobalt_pool),
        )
    )
