"""Provider backed by the YTS torrent indexer API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..models import ProviderHit, ProviderPage
from ..utils import parse_int
from .providers import MovieProvider

logger = logging.getLogger(__name__)

TRACKERS = (
    "udp://tracker.opentrackr.org:1337/announce",
    "udp://tracker.openbittorrent.com:6969/announce",
    "udp://open.stealth.si:80/announce",
    "udp://tracker.torrent.eu.org:451/announce",
    "udp://exodus.desync.com:6969/announce",
)
QUALITY_RANK = {"2160p": 4, "1080p": 3, "720p": 2, "480p": 1}
MAX_PAGE_SIZE = 50


def build_magnet_link(info_hash: str, title: str) -> str:
    trackers = "".join(f"&tr={quote(tracker, safe='')}" for tracker in TRACKERS)
    return f"magnet:?xt=urn:btih:{info_hash}&dn={quote(title, safe='')}{trackers}"


class YTSProvider(MovieProvider):
    """Modern movies with magnet links, ranked by seeds."""

    name = "yts"

    def __init__(self, http_client: httpx.AsyncClient):
        self._client = http_client

    async def search(self, query: str, page: int, page_size: int) -> ProviderPage:
        return await self._list_movies(
            {"query_term": query}, page=page, page_size=page_size
        )

    async def popular(self, page: int, page_size: int) -> ProviderPage:
        return await self._list_movies({}, page=page, page_size=page_size)

    async def get_by_id(self, external_id: str) -> ProviderHit | None:
        key = "imdb_id" if external_id.startswith("tt") else "movie_id"
        payload = await self._get_json(
            "/movie_details.json",
            {key: external_id, "with_images": "true", "with_cast": "true"},
        )
        movie = (payload or {}).get("movie")
        if not isinstance(movie, dict) or not movie.get("torrents"):
            return None
        return self._to_hit(movie)

    async def _list_movies(
        self, params: dict[str, Any], *, page: int, page_size: int
    ) -> ProviderPage:
        payload = await self._get_json(
            "/list_movies.json",
            {
                **params,
                "page": page,
                "limit": min(page_size, MAX_PAGE_SIZE),
                "sort_by": "seeds",
                "order_by": "desc",
            },
        )
        if payload is None:
            return ProviderPage()
        movies = payload.get("movies") or []
        items = [
            self._to_hit(movie)
            for movie in movies
            if isinstance(movie, dict) and movie.get("torrents")
        ]
        return ProviderPage(items=items, total=parse_int(payload.get("movie_count")) or 0)

    async def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any] | None:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            logger.warning("YTS request %s failed: %s", path, exc)
            return None
        except ValueError:
            logger.warning("YTS returned invalid JSON for %s", path)
            return None
        if not isinstance(payload, dict) or payload.get("status") != "ok":
            return None
        data = payload.get("data")
        return data if isinstance(data, dict) else None

    def _to_hit(self, movie: dict[str, Any]) -> ProviderHit:
        torrents = [torrent for torrent in movie.get("torrents") or [] if isinstance(torrent, dict)]
        best = max(
            torrents,
            key=lambda torrent: QUALITY_RANK.get(str(torrent.get("quality")), 0),
        )
        title = movie.get("title_english") or movie.get("title") or ""
        imdb_code = movie.get("imdb_code") or None
        return ProviderHit(
            provider=self.name,
            external_id=imdb_code or str(movie.get("id")),
            title=title,
            year=parse_int(movie.get("year")),
            imdb_id=imdb_code,
            primary_link=build_magnet_link(str(best.get("hash")), title),
            seeders=sum(parse_int(torrent.get("seeds")) or 0 for torrent in torrents),
            leechers=sum(parse_int(torrent.get("peers")) or 0 for torrent in torrents),
            size_label=best.get("size"),
            language=movie.get("language") or "en",
            cover_url=movie.get("medium_cover_image") or movie.get("small_cover_image"),
            quality_label=best.get("quality"),
        )
