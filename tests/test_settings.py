"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest

from app.config import DEFAULT_CATALOG_REGIONS, Settings


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.server_port == 3001
    assert settings.catalog_regions == DEFAULT_CATALOG_REGIONS
    assert settings.catalog_search_limit == 25
    assert settings.cache_days == 30
    assert settings.cache_ttl_seconds == 30 * 86_400
    assert settings.relay_instance_ttl_seconds == 300
    assert settings.video_proxy_url is None


def test_catalog_regions_are_normalised() -> None:
    """Region codes should be lower-cased and de-duplicated in order."""

    settings = Settings(_env_file=None, CATALOG_REGIONS="GB, us,gb ,,ca")

    assert settings.catalog_regions == ("gb", "us", "ca")


def test_catalog_regions_accept_iterables() -> None:
    settings = Settings(_env_file=None, CATALOG_REGIONS=["FR", "de"])

    assert settings.catalog_regions == ("fr", "de")


def test_catalog_regions_blank_defaults() -> None:
    """Blank region lists should fall back to the default storefronts."""

    settings = Settings(_env_file=None, CATALOG_REGIONS="")

    assert settings.catalog_regions == DEFAULT_CATALOG_REGIONS


@pytest.mark.parametrize("value", ["usa", "u1", "united kingdom"])
def test_catalog_regions_invalid_raises(value: str) -> None:
    with pytest.raises(ValueError, match="two-letter country codes"):
        Settings(_env_file=None, CATALOG_REGIONS=value)


def test_cache_ttl_follows_cache_days() -> None:
    settings = Settings(_env_file=None, CACHE_DAYS=7)

    assert settings.cache_ttl_seconds == 7 * 86_400


def test_cache_days_must_be_positive() -> None:
    with pytest.raises(ValueError):
        Settings(_env_file=None, CACHE_DAYS=0)
