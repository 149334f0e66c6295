"""TTL cache of resolution outcomes keyed by content identity."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import PreviewMapping
from ..models import ContentIdentity, SourceKind

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the database stores datetimes."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(slots=True, frozen=True)
class CacheEntry:
    """A persisted resolution outcome.

    Exactly one shape holds: catalog (URL, no key), relay (key, no URL) or
    negative (neither).
    """

    identity: ContentIdentity
    source_kind: SourceKind
    last_checked_at: datetime
    playable_url: str | None = None
    relay_key: str | None = None
    region: str | None = None
    track_id: int | None = None

    @property
    def is_negative(self) -> bool:
        return self.source_kind == "absent"


def _validate_shape(
    source_kind: SourceKind, playable_url: str | None, relay_key: str | None
) -> None:
    if source_kind == "catalog" and (not playable_url or relay_key):
        raise ValueError("Catalog entries require a URL and no relay key")
    if source_kind == "relay" and (not relay_key or playable_url):
        raise ValueError("Relay entries require a relay key and no URL")
    if source_kind == "absent" and (playable_url or relay_key):
        raise ValueError("Negative entries may not carry a URL or relay key")


class PreviewCache:
    """Cache Store backed by the ``preview_mappings`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        ttl: timedelta = timedelta(days=30),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._ttl = ttl
        self._clock = clock

    def is_stale(self, last_checked_at: datetime) -> bool:
        return self._clock() - last_checked_at >= self._ttl

    async def get(self, identity: ContentIdentity) -> CacheEntry | None:
        """Return the entry for ``identity`` unless it is missing or stale."""

        async with self._session_factory() as session:
            record = await self._load(session, identity)
        if record is None:
            return None
        if self.is_stale(record.last_checked):
            logger.info("Cache expired for %s", identity)
            return None
        return self._to_entry(record)

    async def set(
        self,
        identity: ContentIdentity,
        source_kind: SourceKind,
        playable_url: str | None = None,
        relay_key: str | None = None,
        *,
        region: str | None = None,
        track_id: int | None = None,
    ) -> CacheEntry:
        """Upsert the outcome for ``identity`` and refresh its timestamp."""

        _validate_shape(source_kind, playable_url, relay_key)
        values = {
            "source_kind": source_kind,
            "preview_url": playable_url,
            "relay_key": relay_key,
            "region": region,
            "track_id": track_id,
            "last_checked": self._clock(),
        }
        try:
            await self._upsert(identity, values)
        except IntegrityError:
            # A concurrent resolution inserted the row first; overwrite it.
            await self._upsert(identity, values)
        return CacheEntry(
            identity=identity,
            source_kind=source_kind,
            last_checked_at=values["last_checked"],
            playable_url=playable_url,
            relay_key=relay_key,
            region=region,
            track_id=track_id,
        )

    async def entries(self) -> list[CacheEntry]:
        """Every stored entry, most recently checked first, stale ones included."""

        async with self._session_factory() as session:
            stmt = select(PreviewMapping).order_by(PreviewMapping.last_checked.desc())
            result = await session.execute(stmt)
            records = result.scalars().all()
        return [self._to_entry(record) for record in records]

    async def stats(self) -> dict[str, Any]:
        """Aggregate hit/miss statistics over the stored entries."""

        entries = await self.entries()
        hits = [entry for entry in entries if not entry.is_negative]
        misses = [entry for entry in entries if entry.is_negative]
        total = len(entries)
        hit_rate = f"{(len(hits) / total) * 100:.1f}%" if total else "0.0%"

        by_region: dict[str, int] = {}
        by_source: dict[str, int] = {}
        for entry in hits:
            if entry.region:
                by_region[entry.region] = by_region.get(entry.region, 0) + 1
            by_source[entry.source_kind] = by_source.get(entry.source_kind, 0) + 1

        return {
            "cache": {
                "totalEntries": total,
                "hits": len(hits),
                "misses": len(misses),
                "hitRate": hit_rate,
            },
            "byCountry": by_region,
            "bySource": by_source,
            "recentHits": [
                {
                    "imdbId": entry.identity.external_id,
                    "type": entry.identity.media_kind,
                    "source": entry.source_kind,
                    "country": entry.region,
                    "lastChecked": entry.last_checked_at.isoformat(),
                }
                for entry in hits[:10]
            ],
            "recentMisses": [
                {
                    "imdbId": entry.identity.external_id,
                    "type": entry.identity.media_kind,
                    "lastChecked": entry.last_checked_at.isoformat(),
                }
                for entry in misses[:20]
            ],
            "generatedAt": self._clock().isoformat(),
        }

    async def _upsert(self, identity: ContentIdentity, values: dict[str, Any]) -> None:
        async with self._session_factory() as session:
            record = await self._load(session, identity)
            if record is None:
                record = PreviewMapping(
                    external_id=identity.external_id,
                    media_kind=identity.media_kind,
                )
                session.add(record)
            for key, value in values.items():
                setattr(record, key, value)
            await session.commit()

    @staticmethod
    async def _load(
        session: AsyncSession, identity: ContentIdentity
    ) -> PreviewMapping | None:
        stmt = select(PreviewMapping).where(
            PreviewMapping.external_id == identity.external_id,
            PreviewMapping.media_kind == identity.media_kind,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _to_entry(record: PreviewMapping) -> CacheEntry:
        return CacheEntry(
            identity=ContentIdentity(
                external_id=record.external_id,
                media_kind=record.media_kind,  # type: ignore[arg-type]
            ),
            source_kind=record.source_kind,  # type: ignore[arg-type]
            last_checked_at=record.last_checked,
            playable_url=record.preview_url,
            relay_key=record.relay_key,
            region=record.region,
            track_id=record.track_id,
        )
