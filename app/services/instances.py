"""Dynamic discovery of relay provider instances with static fallbacks."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import httpx

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
DirectoryParser = Callable[[Any], list[str]]

PIPED_FALLBACK_INSTANCES: tuple[str, ...] = (
    "https://pipedapi.kavin.rocks",
    "https://pipedapi.r4fo.com",
    "https://pipedapi.syncpundit.io",
    "https://piped-api.garudalinux.org",
    "https://pipedapi.leptons.xyz",
    "https://pipedapi.adminforge.de",
    "https://api.piped.projectsegfau.lt",
)

INVIDIOUS_FALLBACK_INSTANCES: tuple[str, ...] = (
    "https://inv.nadeko.net",
    "https://invidious.nerdvpn.de",
    "https://invidious.f5.si",
    "https://inv.perditum.com",
    "https://yewtu.be",
    "https://invidious.privacyredirect.com",
    "https://iv.nboeck.de",
    "https://invidious.protokolla.fi",
    "https://invidious.lunar.icu",
    "https://invidious.perennialte.ch",
    "https://invidious.drgns.space",
    "https://invidious.io.lol",
    "https://vid.puffyan.us",
    "https://yt.artemislena.eu",
)

COBALT_FALLBACK_INSTANCES: tuple[str, ...] = (
    "https://cobalt-api.kwiatekmiki.com",
    "https://capi.3kh0.net",
    "https://cobalt.api.timelessnesses.me",
    "https://cobalt-backend.canine.tools",
    "https://cobalt-api.meowing.de",
    "https://nuko-c.meowing.de",
    "https://dl.khyernet.xyz",
    "https://cobalt.lostdusty.dev",
)

COBALT_MIN_SCORE = 40


def parse_piped_directory(payload: Any) -> list[str]:
    """Any entry with an API URL is eligible; most available first."""

    if not isinstance(payload, list):
        return []
    entries = [
        entry
        for entry in payload
        if isinstance(entry, dict) and isinstance(entry.get("api_url"), str) and entry["api_url"]
    ]

    def _uptime(entry: dict[str, Any]) -> float:
        value = entry.get("uptime_24h")
        return float(value) if isinstance(value, (int, float)) and value else 50.0

    entries.sort(key=_uptime, reverse=True)
    return [entry["api_url"].rstrip("/") for entry in entries[:15]]


def parse_invidious_directory(payload: Any) -> list[str]:
    """HTTPS instances exposing the API, most popular first."""

    if not isinstance(payload, list):
        return []
    eligible: list[tuple[str, int]] = []
    for entry in payload:
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            continue
        host, data = entry
        if not isinstance(host, str) or not host or not isinstance(data, dict):
            continue
        if data.get("api") is not True or data.get("type") != "https":
            continue
        if ".onion" in host:
            continue
        eligible.append((host, _invidious_user_count(data)))

    eligible.sort(key=lambda item: item[1], reverse=True)
    return [f"https://{host}" for host, _ in eligible[:20]]


def _invidious_user_count(data: dict[str, Any]) -> int:
    node: Any = data.get("stats")
    for key in ("usage", "users", "total"):
        if not isinstance(node, dict):
            return 0
        node = node.get(key)
    return node if isinstance(node, int) else 0


def parse_cobalt_directory(payload: Any) -> list[str]:
    """Online, YouTube-capable, unauthenticated, reliable instances."""

    if not isinstance(payload, list):
        return []
    eligible: list[dict[str, Any]] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        services = entry.get("services") if isinstance(entry.get("services"), dict) else {}
        info = entry.get("info") if isinstance(entry.get("info"), dict) else {}
        score = entry.get("score") if isinstance(entry.get("score"), (int, float)) else 0
        if entry.get("online") is not True or services.get("youtube") is not True:
            continue
        if info.get("auth") is True or score < COBALT_MIN_SCORE:
            continue
        if not entry.get("api") or not entry.get("protocol"):
            continue
        eligible.append(entry)

    eligible.sort(key=lambda entry: entry.get("score") or 0, reverse=True)
    return [f"{entry['protocol']}://{entry['api']}".rstrip("/") for entry in eligible[:15]]


@dataclass(slots=True, frozen=True)
class _Snapshot:
    instances: tuple[str, ...]
    fetched_at: float


class InstancePool:
    """Instance list for one relay class, cached for a short TTL.

    A discovery answer is used only when it yields at least one eligible
    instance; otherwise the static list is returned unchanged.
    """

    discovery_timeout = 5.0

    def __init__(
        self,
        name: str,
        http_client: httpx.AsyncClient,
        *,
        directory_url: str,
        parser: DirectoryParser,
        fallback: Sequence[str],
        ttl_seconds: float = 300.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self._client = http_client
        self._directory_url = directory_url
        self._parser = parser
        self._fallback = tuple(fallback)
        self._ttl = ttl_seconds
        self._clock = clock
        self._snapshot: _Snapshot | None = None

    async def get_instances(self) -> tuple[str, ...]:
        """Return cached instances while fresh, else refresh."""

        snapshot = self._snapshot
        if snapshot is not None and self._clock() - snapshot.fetched_at < self._ttl:
            return snapshot.instances
        return await self.refresh()

    async def refresh(self) -> tuple[str, ...]:
        """Query the directory; fall back to the static list on any failure."""

        logger.debug("Fetching dynamic %s instances", self.name)
        try:
            response = await self._client.get(
                self._directory_url,
                headers={"Accept": "application/json"},
                timeout=self.discovery_timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.info(
                "Failed to fetch %s instances (%s), using fallback", self.name, exc
            )
            return self._fallback

        instances = tuple(self._parser(payload))
        if not instances:
            logger.info("No suitable %s instances from directory, using fallback", self.name)
            return self._fallback

        logger.info("Got %d dynamic %s instances", len(instances), self.name)
        self._snapshot = _Snapshot(instances=instances, fetched_at=self._clock())
        return instances
