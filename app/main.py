"""Entry point for the FastAPI-powered movie aggregation service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .cache import DatabaseMetadataCache, InMemoryMetadataCache, MetadataCache
from .config import Settings, settings
from .database import Database
from .models import MovieDetails, PaginatedMovies, WatchedUpdate
from .services.aggregator import MovieAggregator, MovieNotFoundError
from .services.archive import InternetArchiveProvider
from .services.metadata import MetadataResolver
from .services.omdb import OMDbMetadataSource
from .services.providers import MovieProvider
from .services.static_catalog import (
    CATALOG_A_SCHEMA,
    CATALOG_B_SCHEMA,
    StaticCatalogProvider,
)
from .services.tmdb import TMDBMetadataSource
from .services.yts import YTSProvider
from .watched import DatabaseWatchedStore

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app: FastAPI


def build_providers(
    config: Settings,
    *,
    yts_client: httpx.AsyncClient,
    archive_client: httpx.AsyncClient,
) -> list[MovieProvider]:
    """Instantiate the configured providers in their configured order."""

    providers: list[MovieProvider] = []
    for name in config.providers:
        if name == "yts":
            providers.append(YTSProvider(yts_client))
        elif name == "archive":
            providers.append(
                InternetArchiveProvider(
                    archive_client,
                    str(config.archive_api_url),
                    config.archive_collection,
                )
            )
        elif name in {"catalogA", "catalogB"}:
            schema = CATALOG_A_SCHEMA if name == "catalogA" else CATALOG_B_SCHEMA
            filename = "catalog-a.json" if name == "catalogA" else "catalog-b.json"
            catalog = StaticCatalogProvider(name, config.catalog_data_dir / filename, schema)
            catalog.load()
            providers.append(catalog)
    return providers


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    yts_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.yts_api_url),
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    archive_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(20.0, connect=5.0))
    )
    tmdb_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    omdb_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(15.0, connect=5.0))
    )
    database = Database(settings.database_url)
    await database.create_all()

    cache: MetadataCache
    if settings.metadata_cache_backend == "memory":
        cache = InMemoryMetadataCache()
    else:
        cache = DatabaseMetadataCache(database.session_factory)
        await cache.purge_expired()

    resolver = MetadataResolver(
        TMDBMetadataSource(settings, tmdb_client, cache),
        OMDbMetadataSource(settings, omdb_client, cache),
    )
    watched_store = DatabaseWatchedStore(database.session_factory)
    aggregator = MovieAggregator(
        build_providers(settings, yts_client=yts_client, archive_client=archive_client),
        resolver,
        watched_store,
        provider_timeout=settings.provider_timeout_seconds,
        stable_id_mode=settings.stable_id_mode,
    )

    fastapi_app.state.aggregator = aggregator
    fastapi_app.state.watched_store = watched_store
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Aggregated movie catalogs enriched with TMDB and OMDb metadata",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_aggregator(fastapi_app: FastAPI) -> MovieAggregator:
    aggregator = getattr(fastapi_app.state, "aggregator", None)
    if not isinstance(aggregator, MovieAggregator):
        raise RuntimeError("Movie aggregator not initialised")
    return aggregator


def get_watched_store(fastapi_app: FastAPI) -> DatabaseWatchedStore:
    store = getattr(fastapi_app.state, "watched_store", None)
    if not isinstance(store, DatabaseWatchedStore):
        raise RuntimeError("Watched store not initialised")
    return store


def _require_user(user_id: str | None) -> str:
    if not user_id or not user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return user_id.strip()


def _dump(model: PaginatedMovies | MovieDetails) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def register_routes(fastapi_app: FastAPI) -> None:
    page_size_limit = settings.max_page_size
    default_page_size = settings.default_page_size

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, Any]:
        aggregator = getattr(fastapi_app.state, "aggregator", None)
        providers = aggregator.provider_names if aggregator is not None else []
        return {"status": "ok", "providers": providers}

    @fastapi_app.get("/movies/popular")
    async def popular_movies(
        page: int = Query(default=1, ge=1),
        page_size: int = Query(
            default=default_page_size, ge=1, le=page_size_limit, alias="pageSize"
        ),
        user_id: str | None = Header(default=None, alias="X-User-Id"),
    ) -> dict[str, Any]:
        aggregator = get_aggregator(fastapi_app)
        result = await aggregator.popular(page, page_size, user_id)
        return _dump(result)

    @fastapi_app.get("/movies/search")
    async def search_movies(
        q: str = Query(min_length=1),
        page: int = Query(default=1, ge=1),
        page_size: int = Query(
            default=default_page_size, ge=1, le=page_size_limit, alias="pageSize"
        ),
        user_id: str | None = Header(default=None, alias="X-User-Id"),
    ) -> dict[str, Any]:
        aggregator = get_aggregator(fastapi_app)
        result = await aggregator.search(q, page, page_size, user_id)
        return _dump(result)

    @fastapi_app.get("/movies/{movie_id}")
    async def movie_details(
        movie_id: str,
        user_id: str | None = Header(default=None, alias="X-User-Id"),
    ) -> dict[str, Any]:
        aggregator = get_aggregator(fastapi_app)
        try:
            details = await aggregator.get_by_id(movie_id, user_id)
        except MovieNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return _dump(details)

    @fastapi_app.post("/movies/{movie_id}/watched")
    async def mark_watched(
        movie_id: str,
        body: WatchedUpdate | None = None,
        user_id: str | None = Header(default=None, alias="X-User-Id"),
    ) -> dict[str, bool]:
        resolved_user = _require_user(user_id)
        store = get_watched_store(fastapi_app)
        progress = body.progress if body is not None else None
        await store.mark_watched(resolved_user, movie_id, progress)
        return {"success": True}

    @fastapi_app.delete("/movies/{movie_id}/watched")
    async def mark_unwatched(
        movie_id: str,
        user_id: str | None = Header(default=None, alias="X-User-Id"),
    ) -> dict[str, bool]:
        resolved_user = _require_user(user_id)
        store = get_watched_store(fastapi_app)
        await store.mark_unwatched(resolved_user, movie_id)
        return {"success": True}


app = create_app()
