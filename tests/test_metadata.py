"""Cache handling of metadata sources and the primary/fallback resolver."""

from __future__ import annotations

from datetime import datetime, timedelta

import httpx
import pytest

from app.cache import CachedMetadata, InMemoryMetadataCache
from app.config import Settings
from app.models import MetadataRecord
from app.services.metadata import MetadataResolver, MetadataSource
from app.services.omdb import OMDbMetadataSource

NOW = datetime(2026, 1, 1, 12, 0, 0)


class RecordingSource(MetadataSource):
    """Metadata source returning a canned record and counting fetches."""

    def __init__(self, cache, record: MetadataRecord | None, *, name: str = "fake", error: Exception | None = None):
        super().__init__(cache, ttl_seconds=3600, clock=lambda: NOW)
        self.name = name
        self.cache_namespace = name
        self.record = record
        self.error = error
        self.calls: list[tuple[str, int | None]] = []

    async def fetch(self, title_or_imdb_id: str, year: int | None = None) -> MetadataRecord | None:
        self.calls.append((title_or_imdb_id, year))
        if self.error is not None:
            raise self.error
        return self.record


class BrokenCache(InMemoryMetadataCache):
    async def get(self, key: str) -> CachedMetadata | None:
        raise RuntimeError("cache offline")

    async def upsert(self, key, record, expires_at) -> None:
        raise RuntimeError("cache offline")


def test_cache_keys_are_namespaced_per_source() -> None:
    cache = InMemoryMetadataCache()
    source = RecordingSource(cache, None, name="tmdb")

    assert source.cache_key("tt1375666") == "tmdb:imdb:tt1375666"
    assert source.cache_key("The Matrix", 1999) == "tmdb:title:thematrix:1999"
    assert source.cache_key("The Matrix") == "tmdb:title:thematrix"


@pytest.mark.anyio
async def test_lookup_writes_cache_with_ttl_and_reuses_it() -> None:
    cache = InMemoryMetadataCache()
    record = MetadataRecord(poster_url="https://img.example.com/p.jpg")
    source = RecordingSource(cache, record)

    first = await source.lookup("tt1375666")
    second = await source.lookup("tt1375666")

    assert first == record
    assert second == record
    assert source.calls == [("tt1375666", None)]
    cached = await cache.get("fake:imdb:tt1375666")
    assert cached is not None
    assert cached.expires_at == NOW + timedelta(hours=1)


@pytest.mark.anyio
async def test_failed_fetch_returns_none_and_skips_cache() -> None:
    cache = InMemoryMetadataCache()
    source = RecordingSource(cache, None, error=httpx.ConnectError("boom"))

    assert await source.lookup("Inception", 2010) is None
    assert len(cache) == 0


@pytest.mark.anyio
async def test_cache_faults_degrade_to_fetch() -> None:
    record = MetadataRecord(plot="Still works")
    source = RecordingSource(BrokenCache(), record)

    assert await source.lookup("Inception", 2010) == record
    assert source.calls == [("Inception", 2010)]


@pytest.mark.anyio
async def test_expired_omdb_entry_triggers_fresh_fetch() -> None:
    """An ``imdb:`` entry whose expiry has passed is a miss and is replaced."""

    cache = InMemoryMetadataCache()
    stale = MetadataRecord(plot="stale plot")
    await cache.upsert("imdb:tt1375666", stale, NOW - timedelta(minutes=1))
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "Response": "True",
                "Title": "Inception",
                "Poster": "https://img.example.com/inception.jpg",
                "Plot": "A thief who steals corporate secrets.",
                "imdbRating": "8.8",
                "Runtime": "148 min",
                "Genre": "Action, Sci-Fi",
                "Director": "Christopher Nolan",
                "Actors": "N/A",
                "imdbID": "tt1375666",
            },
        )

    settings = Settings(_env_file=None, OMDB_API_KEY="omdb-key")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        source = OMDbMetadataSource(settings, client, cache, clock=lambda: NOW)
        record = await source.lookup("tt1375666")

    assert len(requests) == 1
    assert requests[0].url.params["i"] == "tt1375666"
    assert requests[0].url.params["apikey"] == "omdb-key"
    assert record is not None
    assert record.plot == "A thief who steals corporate secrets."
    assert record.actors_text is None
    refreshed = await cache.get("imdb:tt1375666")
    assert refreshed is not None
    assert refreshed.record == record
    assert refreshed.expires_at == NOW + timedelta(days=7)


@pytest.mark.anyio
async def test_omdb_title_lookup_and_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["t"] == "Missing Movie"
        assert request.url.params["y"] == "1999"
        return httpx.Response(200, json={"Response": "False", "Error": "Movie not found!"})

    settings = Settings(_env_file=None, OMDB_API_KEY="omdb-key")
    cache = InMemoryMetadataCache()
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        source = OMDbMetadataSource(settings, client, cache)
        assert await source.lookup("Missing Movie", 1999) is None
    assert len(cache) == 0


@pytest.mark.anyio
async def test_omdb_disabled_without_key() -> None:
    def handler(_: httpx.Request) -> httpx.Response:  # pragma: no cover - must not run
        raise AssertionError("OMDb should not be called without a key")

    settings = Settings(_env_file=None)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        source = OMDbMetadataSource(settings, client, InMemoryMetadataCache())
        assert source.enabled is False
        assert await source.lookup("tt1375666") is None


@pytest.mark.anyio
async def test_resolver_returns_primary_with_poster() -> None:
    cache = InMemoryMetadataCache()
    primary = RecordingSource(cache, MetadataRecord(poster_url="https://p/1.jpg"), name="primary")
    fallback = RecordingSource(cache, MetadataRecord(poster_url="https://f/1.jpg"), name="fallback")

    record = await MetadataResolver(primary, fallback).resolve("Inception", 2010)

    assert record is not None
    assert record.poster_url == "https://p/1.jpg"
    assert fallback.calls == []


@pytest.mark.anyio
async def test_resolver_merges_fallback_poster_into_primary() -> None:
    cache = InMemoryMetadataCache()
    primary = RecordingSource(
        cache, MetadataRecord(plot="Primary plot", rating_text="8.4"), name="primary"
    )
    fallback = RecordingSource(
        cache,
        MetadataRecord(poster_url="https://f/inception.jpg", plot="Fallback plot", director="Nolan"),
        name="fallback",
    )

    record = await MetadataResolver(primary, fallback).resolve("tt1375666")

    assert record is not None
    assert record.poster_url == "https://f/inception.jpg"
    assert record.plot == "Primary plot"
    assert record.rating_text == "8.4"
    assert record.director == "Nolan"


@pytest.mark.anyio
async def test_resolver_uses_fallback_when_primary_missing() -> None:
    cache = InMemoryMetadataCache()
    fallback_record = MetadataRecord(poster_url="https://f/x.jpg")
    primary = RecordingSource(cache, None, name="primary")
    fallback = RecordingSource(cache, fallback_record, name="fallback")

    assert await MetadataResolver(primary, fallback).resolve("X") == fallback_record


@pytest.mark.anyio
async def test_resolver_keeps_partial_primary_when_fallback_empty() -> None:
    cache = InMemoryMetadataCache()
    partial = MetadataRecord(plot="Only a plot")
    primary = RecordingSource(cache, partial, name="primary")
    fallback = RecordingSource(cache, None, error=RuntimeError("down"), name="fallback")

    assert await MetadataResolver(primary, fallback).resolve("X") == partial


@pytest.mark.anyio
async def test_resolver_returns_none_when_both_empty() -> None:
    cache = InMemoryMetadataCache()
    primary = RecordingSource(cache, None, name="primary")
    fallback = RecordingSource(cache, None, name="fallback")

    assert await MetadataResolver(primary, fallback).resolve("X") is None


def test_metadata_source_requires_fetch_implementation() -> None:
    class Incomplete(MetadataSource):
        name = "incomplete"

    with pytest.raises(TypeError):
        Incomplete(InMemoryMetadataCache())
