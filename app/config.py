"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Iterable, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_CATALOG_REGIONS: tuple[str, ...] = ("us", "gb", "ca", "au")


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Trailerio", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3001, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    itunes_api_url: HttpUrl = Field(
        default="https://itunes.apple.com", alias="ITUNES_API_URL"
    )

    catalog_regions: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_CATALOG_REGIONS, alias="CATALOG_REGIONS"
    )
    catalog_search_limit: int = Field(
        default=25, alias="CATALOG_SEARCH_LIMIT", ge=1, le=200
    )
    cache_days: int = Field(default=30, alias="CACHE_DAYS", ge=1, le=365)

    relay_instance_ttl_seconds: int = Field(
        default=300, alias="RELAY_INSTANCE_TTL", ge=10, le=86_400
    )
    piped_instances_url: HttpUrl = Field(
        default="https://piped-instances.kavin.rocks/", alias="PIPED_INSTANCES_URL"
    )
    invidious_instances_url: HttpUrl = Field(
        default="https://api.invidious.io/instances.json",
        alias="INVIDIOUS_INSTANCES_URL",
    )
    cobalt_instances_url: HttpUrl = Field(
        default="https://instances.cobalt.best/api/instances.json",
        alias="COBALT_INSTANCES_URL",
    )
    video_proxy_url: HttpUrl | None = Field(default=None, alias="VIDEO_PROXY_URL")

    database_url: str = Field(
        default="sqlite+aiosqlite:///./trailerio.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("catalog_regions", mode="before")
    @classmethod
    def _parse_catalog_regions(cls, value: object) -> tuple[str, ...]:
        """Normalise storefront region codes from environment values."""

        if value is None:
            return DEFAULT_CATALOG_REGIONS
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("CATALOG_REGIONS must be a string or iterable of strings")

        cleaned: list[str] = []
        for entry in raw_values:
            if not entry:
                continue
            code = entry.lower()
            if len(code) != 2 or not code.isalpha():
                raise ValueError("Catalog regions must be two-letter country codes")
            if code not in cleaned:
                cleaned.append(code)
        if not cleaned:
            return DEFAULT_CATALOG_REGIONS
        return tuple(cleaned)

    @property
    def cache_ttl_seconds(self) -> int:
        return self.cache_days * 86_400

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
