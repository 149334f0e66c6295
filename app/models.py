"""Data models shared across the preview resolution engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MediaKind = Literal["movie", "series"]
SourceKind = Literal["catalog", "relay", "absent"]


class ContentIdentity(BaseModel):
    """External catalog id plus media kind; the cache key for a resolution."""

    model_config = ConfigDict(frozen=True)

    external_id: str = Field(min_length=1)
    media_kind: MediaKind = "movie"

    def __str__(self) -> str:
        return f"{self.external_id} ({self.media_kind})"


@dataclass(slots=True, frozen=True)
class Metadata:
    """Canonical title metadata for one resolution attempt."""

    canonical_title: str
    original_title: str
    media_kind: MediaKind
    alternate_titles: tuple[str, ...] = ()
    release_year: int | None = None
    runtime_minutes: int | None = None
    external_trailer_key: str | None = None


@dataclass(slots=True, frozen=True)
class CatalogCandidate:
    """A licensed catalog item returned by a storefront search."""

    display_name: str
    identifier: int | None = None
    release_year: int | None = None
    runtime_minutes: int | None = None
    preview_url: str | None = None


@dataclass(slots=True)
class CatalogMatch:
    """The accepted candidate together with its score and storefront."""

    score: float
    candidate: CatalogCandidate
    region: str


class ResolutionResult(BaseModel):
    """Outcome of resolving a content identity into a playable URL."""

    model_config = ConfigDict(populate_by_name=True)

    found: bool
    source_kind: SourceKind = Field(default="absent", serialization_alias="source")
    playable_url: str | None = Field(default=None, serialization_alias="previewUrl")
    relay_key: str | None = Field(default=None, serialization_alias="relayKey")
    region: str | None = None
    track_id: int | None = Field(default=None, serialization_alias="trackId")

    @classmethod
    def not_found(cls) -> "ResolutionResult":
        return cls(found=False)

    def to_payload(self) -> dict[str, object]:
        """Return the JSON body used by the resolve endpoint."""

        return self.model_dump(by_alias=True, exclude_none=True)

    def to_streams(self, media_kind: MediaKind) -> list[dict[str, str]]:
        """Return Stremio stream objects for this result."""

        if not self.found or not self.playable_url:
            return []
        if self.source_kind == "relay":
            name = title = "Official Trailer"
        else:
            name = "Movie Preview" if media_kind == "movie" else "Episode Preview"
            region = (self.region or "us").upper()
            title = f"Trailer / Preview ({region})"
        return [{"name": name, "title": title, "url": self.playable_url}]
