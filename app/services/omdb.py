"""Fallback metadata lookups against the OMDb API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..cache import MetadataCache
from ..config import Settings
from ..models import MetadataRecord
from ..utils import clean_text, is_imdb_id
from .metadata import MetadataSource

logger = logging.getLogger(__name__)


class OMDbMetadataSource(MetadataSource):
    """Fallback metadata source keyed by IMDb id or title and year.

    Cache keys are left un-namespaced (``imdb:<id>``, ``title:<slug>[:year]``)
    while TMDB prefixes its own with ``tmdb:``.
    """

    name = "omdb"
    cache_namespace = None

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        cache: MetadataCache,
        **kwargs: Any,
    ):
        kwargs.setdefault("ttl_seconds", settings.metadata_cache_ttl_seconds)
        kwargs.setdefault("concurrency", settings.metadata_concurrency)
        super().__init__(cache, **kwargs)
        self._settings = settings
        self._client = http_client
        self._url = str(settings.omdb_api_url)
        if not self.enabled:
            logger.warning("OMDB_API_KEY not configured - OMDb metadata disabled")

    @property
    def enabled(self) -> bool:
        return bool(self._settings.omdb_api_key)

    async def fetch(
        self, title_or_imdb_id: str, year: int | None = None
    ) -> MetadataRecord | None:
        params: dict[str, Any] = {"apikey": self._settings.omdb_api_key, "plot": "short"}
        if is_imdb_id(title_or_imdb_id):
            params["i"] = title_or_imdb_id
        else:
            params["t"] = title_or_imdb_id
            if year:
                params["y"] = year

        response = await self._client.get(self._url, params=params)
        if response.status_code >= 400:
            logger.warning("OMDb API returned %s for %s", response.status_code, title_or_imdb_id)
            return None
        payload = response.json()
        if not isinstance(payload, dict):
            return None
        if payload.get("Response") == "False":
            logger.debug("OMDb: %s for %s", payload.get("Error"), title_or_imdb_id)
            return None
        return self._to_record(payload)

    @staticmethod
    def _to_record(payload: dict[str, Any]) -> MetadataRecord:
        return MetadataRecord(
            poster_url=clean_text(payload.get("Poster")),
            rating_text=clean_text(payload.get("imdbRating")),
            plot=clean_text(payload.get("Plot")),
            genre=clean_text(payload.get("Genre")),
            runtime_text=clean_text(payload.get("Runtime")),
            director=clean_text(payload.get("Director")),
            actors_text=clean_text(payload.get("Actors")),
            imdb_id=clean_text(payload.get("imdbID")),
        )
