"""Tests for the TMDB metadata resolver."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from app.config import Settings
from app.errors import MetadataNotFoundError, MetadataUnavailableError
from app.models import ContentIdentity
from app.services.tmdb import TMDBClient


def build_settings(**overrides: Any) -> Settings:
    base = {"TMDB_API_KEY": "tmdb-key"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


MOVIE_DETAIL = {
    "title": "Spirited Away",
    "original_title": "千と千尋の神隠し",
    "release_date": "2001-07-20",
    "runtime": 125,
    "videos": {
        "results": [
            {"site": "Vimeo", "type": "Trailer", "official": True, "key": "vimeo1"},
            {"site": "YouTube", "type": "Clip", "official": True, "key": "clip1"},
            {"site": "YouTube", "type": "Teaser", "official": True, "key": "teaser1"},
            {"site": "YouTube", "type": "Trailer", "official": False, "key": "fan1"},
        ]
    },
}

MOVIE_TITLES = {
    "titles": [
        {"iso_3166_1": "US", "title": "Spirited Away"},
        {"iso_3166_1": "GB", "title": "Spirited Away: The Movie"},
        {"iso_3166_1": "FR", "title": "Le Voyage de Chihiro"},
        {"iso_3166_1": "AU", "title": "spirited away the movie"},
        {"iso_3166_1": "CA", "title": "Sen and the Mysterious Disappearance"},
    ]
}


def movie_handler(
    requests: list[httpx.Request],
    *,
    find_payload: dict[str, Any] | None = None,
    detail_status: int = 200,
    titles_status: int = 200,
):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path.startswith("/3/find/"):
            return httpx.Response(
                200, json=find_payload or {"movie_results": [{"id": 129}], "tv_results": []}
            )
        if path.endswith("/alternative_titles"):
            return httpx.Response(titles_status, json=MOVIE_TITLES)
        if path == "/3/movie/129":
            return httpx.Response(detail_status, json=MOVIE_DETAIL)
        return httpx.Response(404, json={})

    return handler


def test_client_requires_api_key() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
    with pytest.raises(ValueError, match="TMDB API key is required"):
        TMDBClient(Settings(_env_file=None), httpx.AsyncClient(transport=transport))


@pytest.mark.anyio("asyncio")
async def test_resolve_movie_metadata() -> None:
    requests: list[httpx.Request] = []
    transport = httpx.MockTransport(movie_handler(requests))
    async with httpx.AsyncClient(
        transport=transport, base_url="https://api.example.com/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        metadata = await client.resolve(ContentIdentity(external_id="tt0245429"))

    assert metadata.canonical_title == "Spirited Away"
    assert metadata.original_title == "千と千尋の神隠し"
    assert metadata.media_kind == "movie"
    assert metadata.release_year == 2001
    assert metadata.runtime_minutes == 125
    assert metadata.external_trailer_key == "teaser1"
    assert metadata.alternate_titles == (
        "Spirited Away: The Movie",
        "Sen and the Mysterious Disappearance",
    )
    assert requests[0].url.params["external_source"] == "imdb_id"
    assert all(request.url.params["api_key"] == "tmdb-key" for request in requests)
    assert any(
        request.url.params.get("append_to_response") == "videos" for request in requests
    )


@pytest.mark.anyio("asyncio")
async def test_resolve_prefers_hinted_kind_and_records_actual_kind() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path.startswith("/3/find/"):
            return httpx.Response(
                200, json={"movie_results": [{"id": 1}], "tv_results": [{"id": 2}]}
            )
        if path == "/3/tv/2":
            return httpx.Response(
                200,
                json={"name": "Chernobyl", "first_air_date": "2019-05-06", "videos": {}},
            )
        if path == "/3/tv/2/alternative_titles":
            return httpx.Response(200, json={"results": []})
        return httpx.Response(500)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(
        transport=transport, base_url="https://api.example.com/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        metadata = await client.resolve(
            ContentIdentity(external_id="tt7366338", media_kind="series")
        )

    assert metadata.media_kind == "series"
    assert metadata.canonical_title == "Chernobyl"
    assert metadata.original_title == "Chernobyl"
    assert metadata.release_year == 2019
    assert metadata.external_trailer_key is None


@pytest.mark.anyio("asyncio")
async def test_resolve_falls_back_to_other_kind() -> None:
    requests: list[httpx.Request] = []
    transport = httpx.MockTransport(movie_handler(requests))
    async with httpx.AsyncClient(
        transport=transport, base_url="https://api.example.com/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        metadata = await client.resolve(
            ContentIdentity(external_id="tt0245429", media_kind="series")
        )

    assert metadata.media_kind == "movie"


@pytest.mark.anyio("asyncio")
async def test_resolve_raises_not_found_without_results() -> None:
    requests: list[httpx.Request] = []
    transport = httpx.MockTransport(
        movie_handler(requests, find_payload={"movie_results": [], "tv_results": []})
    )
    async with httpx.AsyncClient(
        transport=transport, base_url="https://api.example.com/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(MetadataNotFoundError):
            await client.resolve(ContentIdentity(external_id="tt0000000"))

    assert len(requests) == 1


@pytest.mark.anyio("asyncio")
async def test_resolve_raises_unavailable_when_detail_fails() -> None:
    requests: list[httpx.Request] = []
    transport = httpx.MockTransport(movie_handler(requests, detail_status=503))
    async with httpx.AsyncClient(
        transport=transport, base_url="https://api.example.com/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(MetadataUnavailableError):
            await client.resolve(ContentIdentity(external_id="tt0245429"))


@pytest.mark.anyio("asyncio")
async def test_resolve_tolerates_missing_alternative_titles() -> None:
    requests: list[httpx.Request] = []
    transport = httpx.MockTransport(movie_handler(requests, titles_status=500))
    async with httpx.AsyncClient(
        transport=transport, base_url="https://api.example.com/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        metadata = await client.resolve(ContentIdentity(external_id="tt0245429"))

    assert metadata.alternate_titles == ()
    assert metadata.canonical_title == "Spirited Away"


def test_extract_trailer_key_priority() -> None:
    videos = [
        {"site": "YouTube", "type": "Teaser", "official": True, "key": "teaser"},
        {"site": "YouTube", "type": "Trailer", "official": True, "key": "trailer"},
    ]
    assert TMDBClient.extract_trailer_key(videos) == "trailer"


def test_extract_trailer_key_falls_back_to_any_hosted_video() -> None:
    videos = [
        {"site": "Vimeo", "type": "Trailer", "official": True, "key": "vimeo"},
        {"site": "YouTube", "type": "Featurette", "official": False, "key": "featurette"},
    ]
    assert TMDBClient.extract_trailer_key(videos) == "featurette"
    assert TMDBClient.extract_trailer_key([]) is None


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("videos", [[{"key": "x"}], "unexpected", None])
async def test_resolve_ignores_malformed_videos_payload(videos: Any) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/3/find/"):
            return httpx.Response(200, json={"movie_results": [{"id": 949}], "tv_results": []})
        if path == "/3/movie/949":
            return httpx.Response(
                200, json={"title": "Heat", "release_date": "1995-12-15", "videos": videos}
            )
        return httpx.Response(200, json={"titles": []})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(
        transport=transport, base_url="https://api.example.com/3"
    ) as http_client:
        client = TMDBClient(build_settings(), http_client)
        metadata = await client.resolve(ContentIdentity(external_id="tt0113277"))

    assert metadata.canonical_title == "Heat"
    assert metadata.external_trailer_key is None
