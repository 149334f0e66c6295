from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.main import register_routes
from app.models import ContentIdentity, ResolutionResult
from app.services.resolver import PreviewResolver


class DummyCache:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail

    async def stats(self) -> dict[str, Any]:
        if self.fail:
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        return {"cache": {"totalEntries": 0}}


class DummyResolver(PreviewResolver):
    """Minimal PreviewResolver stub answering from a fixed table."""

    def __init__(
        self, results: dict[str, ResolutionResult] | None = None, cache: DummyCache | None = None
    ) -> None:
        # Deliberately skip super().__init__ to avoid touching external systems.
        self._cache = cache or DummyCache()  # type: ignore[assignment]
        self.results = results or {}
        self.identities: list[ContentIdentity] = []

    async def resolve(self, identity: ContentIdentity) -> ResolutionResult:  # type: ignore[override]
        self.identities.append(identity)
        return self.results.get(identity.external_id, ResolutionResult.not_found())


def build_client(resolver: PreviewResolver) -> TestClient:
    app = FastAPI()
    register_routes(app)
    app.state.resolver = resolver
    return TestClient(app)


CATALOG_RESULT = ResolutionResult(
    found=True,
    source_kind="catalog",
    playable_url="https://video-ssl.itunes.apple.com/matrix.m4v",
    region="gb",
    track_id=271469518,
)

RELAY_RESULT = ResolutionResult(
    found=True,
    source_kind="relay",
    playable_url="https://pipedproxy.example/videoplayback",
    relay_key="s9APLXM9Ei8",
)


def test_manifest_advertises_stream_resource() -> None:
    with build_client(DummyResolver()) as client:
        response = client.get("/manifest.json")

    assert response.status_code == 200
    payload = response.json()
    assert payload["id"] == "com.trailer.preview"
    assert payload["resources"][0]["name"] == "stream"
    assert payload["types"] == ["movie", "series"]
    assert payload["idPrefixes"] == ["tt"]


def test_stream_returns_catalog_preview() -> None:
    resolver = DummyResolver({"tt0133093": CATALOG_RESULT})

    with build_client(resolver) as client:
        response = client.get("/stream/movie/tt0133093.json")

    assert response.status_code == 200
    assert response.json() == {
        "streams": [
            {
                "name": "Movie Preview",
                "title": "Trailer / Preview (GB)",
                "url": "https://video-ssl.itunes.apple.com/matrix.m4v",
            }
        ]
    }
    assert resolver.identities == [ContentIdentity(external_id="tt0133093", media_kind="movie")]


def test_stream_returns_relay_trailer_for_series() -> None:
    resolver = DummyResolver({"tt7366338": RELAY_RESULT})

    with build_client(resolver) as client:
        response = client.get("/stream/series/tt7366338.json")

    assert response.json()["streams"] == [
        {
            "name": "Official Trailer",
            "title": "Official Trailer",
            "url": "https://pipedproxy.example/videoplayback",
        }
    ]
    assert resolver.identities[0].media_kind == "series"


def test_stream_miss_returns_empty_list() -> None:
    with build_client(DummyResolver()) as client:
        response = client.get("/stream/movie/tt0000001.json")

    assert response.status_code == 200
    assert response.json() == {"streams": []}


def test_stream_ignores_foreign_ids() -> None:
    resolver = DummyResolver()

    with build_client(resolver) as client:
        response = client.get("/stream/movie/kitsu:1234.json")

    assert response.json() == {"streams": []}
    assert resolver.identities == []


def test_stream_rejects_unknown_type() -> None:
    with build_client(DummyResolver()) as client:
        response = client.get("/stream/channel/tt0133093.json")

    assert response.status_code == 400


def test_resolve_endpoint_returns_payload() -> None:
    resolver = DummyResolver({"tt0133093": CATALOG_RESULT})

    with build_client(resolver) as client:
        response = client.post("/api/resolve", json={"imdbId": "tt0133093", "type": "movie"})

    assert response.status_code == 200
    assert response.json() == {
        "found": True,
        "source": "catalog",
        "previewUrl": "https://video-ssl.itunes.apple.com/matrix.m4v",
        "region": "gb",
        "trackId": 271469518,
    }


def test_resolve_endpoint_defaults_to_movie() -> None:
    resolver = DummyResolver()

    with build_client(resolver) as client:
        response = client.post("/api/resolve", json={"imdbId": "tt0000001"})

    assert response.json() == {"found": False, "source": "absent"}
    assert resolver.identities[0].media_kind == "movie"


def test_resolve_endpoint_validates_payload() -> None:
    with build_client(DummyResolver()) as client:
        missing = client.post("/api/resolve", json={"type": "movie"})
        bad_type = client.post("/api/resolve", json={"imdbId": "tt1", "type": "podcast"})
        not_json = client.post("/api/resolve", content=b"not json")

    assert missing.status_code == 400
    assert bad_type.status_code == 400
    assert not_json.status_code == 400


def test_stats_routes() -> None:
    with build_client(DummyResolver()) as client:
        plain = client.get("/stats")
        with_suffix = client.get("/stats.json")

    assert plain.status_code == 200
    assert plain.json() == with_suffix.json() == {"cache": {"totalEntries": 0}}


def test_stats_reports_database_failures() -> None:
    with build_client(DummyResolver(cache=DummyCache(fail=True))) as client:
        response = client.get("/stats")

    assert response.status_code == 500


def test_healthcheck() -> None:
    with build_client(DummyResolver()) as client:
        response = client.get("/healthz")

    assert response.json() == {"status": "ok", "version": "2.0.0"}
