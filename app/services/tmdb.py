"""Metadata lookups against The Movie Database (TMDB)."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..cache import MetadataCache
from ..config import Settings
from ..models import MetadataRecord
from ..utils import is_imdb_id, parse_year
from .metadata import MetadataSource

logger = logging.getLogger(__name__)

POSTER_SIZE = "w500"
TOP_CAST = 4


@dataclass(slots=True)
class TMDBSearchResult:
    """Normalized view of a TMDB search result."""

    tmdb_id: int
    title: str
    year: int | None


class TMDBMetadataSource(MetadataSource):
    """Primary metadata source with better posters and credits."""

    name = "tmdb"
    cache_namespace = "tmdb"

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
        self._image_base_url = settings.tmdb_image_base_url.rstrip("/")
        if not self.enabled:
            logger.warning("TMDB credentials not configured - TMDB metadata disabled")

    @property
    def enabled(self) -> bool:
        return bool(self._settings.tmdb_api_token or self._settings.tmdb_api_key)

    async def fetch(
        self, title_or_imdb_id: str, year: int | None = None
    ) -> MetadataRecord | None:
        if is_imdb_id(title_or_imdb_id):
            movie_id = await self._find_by_imdb_id(title_or_imdb_id)
        else:
            result = await self._search(title_or_imdb_id, year=year)
            movie_id = result.tmdb_id if result else None
        if movie_id is None:
            return None

        details, credits = await asyncio.gather(
            self._get_json(f"/movie/{movie_id}"),
            self._get_json(f"/movie/{movie_id}/credits"),
        )
        if not details:
            return None
        return self._to_record(details, credits)

    async def _find_by_imdb_id(self, imdb_id: str) -> int | None:
        payload = await self._get_json(
            f"/find/{imdb_id}", params={"external_source": "imdb_id"}
        )
        if not payload:
            return None
        results = payload.get("movie_results") or []
        if not results or not isinstance(results[0], dict):
            return None
        movie_id = results[0].get("id")
        return int(movie_id) if movie_id else None

    async def _search(self, title: str, *, year: int | None) -> TMDBSearchResult | None:
        """Return the best search match for the supplied title."""

        params: dict[str, Any] = {"query": title, "include_adult": "false", "page": 1}
        if year:
            params["year"] = year
        payload = await self._get_json("/search/movie", params=params)
        if not payload:
            return None
        results = [item for item in payload.get("results") or [] if isinstance(item, dict)]
        if not results:
            return None

        normalized_title = title.casefold()
        best_match: dict[str, Any] | None = None

        for candidate in results:
            candidate_title = candidate.get("title") or candidate.get("original_title")
            if not candidate_title:
                continue
            candidate_year = parse_year(candidate.get("release_date"))
            if candidate_title.casefold() == normalized_title:
                if year is None or candidate_year == year:
                    best_match = candidate
                    break
            if best_match is None:
                best_match = candidate
            elif year is not None and candidate_year == year:
                best_match = candidate

        if not best_match or not best_match.get("id"):
            return None

        return TMDBSearchResult(
            tmdb_id=int(best_match["id"]),
            title=best_match.get("title") or title,
            year=parse_year(best_match.get("release_date")),
        )

    async def _get_json(
        self, endpoint: str, *, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        query: dict[str, Any] = {"language": "en-US", **(params or {})}
        headers = {"Accept": "application/json"}
        if self._settings.tmdb_api_token:
            headers["Authorization"] = f"Bearer {self._settings.tmdb_api_token}"
        elif self._settings.tmdb_api_key:
            query["api_key"] = self._settings.tmdb_api_key

        response = await self._client.get(endpoint, params=query, headers=headers)
        if response.status_code >= 400:
            logger.debug(
                "TMDB request %s failed with %s: %s",
                endpoint,
                response.status_code,
                response.text[:200],
            )
            return None
        payload = response.json()
        return payload if isinstance(payload, dict) else None

    def _to_record(
        self, details: dict[str, Any], credits: dict[str, Any] | None
    ) -> MetadataRecord:
        crew = (credits or {}).get("crew") or []
        cast = (credits or {}).get("cast") or []
        director = next(
            (
                member.get("name")
                for member in crew
                if isinstance(member, dict) and member.get("job") == "Director"
            ),
            None,
        )
        actors = ", ".join(
            member["name"]
            for member in cast[:TOP_CAST]
            if isinstance(member, dict) and member.get("name")
        )
        genres = ", ".join(
            genre["name"]
            for genre in details.get("genres") or []
            if isinstance(genre, dict) and genre.get("name")
        )
        runtime = details.get("runtime")
        vote_average = details.get("vote_average")

        return MetadataRecord(
            poster_url=self._build_image_url(details.get("poster_path")),
            rating_text=f"{float(vote_average):.1f}" if vote_average else None,
            plot=details.get("overview") or None,
            genre=genres or None,
            runtime_text=f"{runtime} min" if runtime else None,
            director=director,
            actors_text=actors or None,
            imdb_id=details.get("imdb_id") or None,
        )

    def _build_image_url(self, path: str | None) -> str | None:
        if not path:
            return None
        if path.startswith("http"):
            return path
        return f"{self._image_base_url}/{POSTER_SIZE}{path}"
