"""Provider backed by the Internet Archive feature film collection."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..models import ProviderHit, ProviderPage
from ..utils import parse_int, parse_year
from .providers import MovieProvider

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("identifier", "title", "year", "date", "description", "downloads")


class InternetArchiveProvider(MovieProvider):
    """Public domain films distributed as ``_archive.torrent`` files.

    The archive exposes no swarm statistics, so download counts stand in
    for seeders when ranking popularity.
    """

    name = "archive"

    def __init__(self, http_client: httpx.AsyncClient, base_url: str, collection: str):
        self._client = http_client
        self._base_url = base_url.rstrip("/")
        self._collection = collection

    async def search(self, query: str, page: int, page_size: int) -> ProviderPage:
        term = query.replace('"', " ").strip()
        return await self._advanced_search(
            f"collection:{self._collection} AND mediatype:movies "
            f'AND (title:"{term}" OR description:"{term}")',
            page=page,
            page_size=page_size,
        )

    async def popular(self, page: int, page_size: int) -> ProviderPage:
        return await self._advanced_search(
            f"collection:{self._collection} AND mediatype:movies",
            page=page,
            page_size=page_size,
        )

    async def get_by_id(self, external_id: str) -> ProviderHit | None:
        payload = await self._get_json(f"/metadata/{external_id}")
        metadata = payload.get("metadata") if isinstance(payload, dict) else None
        if not isinstance(metadata, dict) or not metadata:
            return None

        torrent_name = next(
            (
                entry.get("name")
                for entry in payload.get("files") or []
                if isinstance(entry, dict)
                and str(entry.get("name", "")).endswith("_archive.torrent")
            ),
            None,
        )
        return ProviderHit(
            provider=self.name,
            external_id=external_id,
            title=metadata.get("title") or external_id,
            year=parse_year(metadata.get("year") or metadata.get("date")),
            primary_link=(
                f"{self._base_url}/download/{external_id}/{torrent_name}"
                if torrent_name
                else None
            ),
            seeders=0,
            language="en",
        )

    async def _advanced_search(
        self, query: str, *, page: int, page_size: int
    ) -> ProviderPage:
        payload = await self._get_json(
            "/advancedsearch.php",
            params={
                "q": query,
                "fl": ",".join(SEARCH_FIELDS),
                "rows": page_size,
                "page": page,
                "output": "json",
                "sort": "downloads desc",
            },
        )
        body = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(body, dict):
            return ProviderPage()

        docs = [
            doc
            for doc in body.get("docs") or []
            if isinstance(doc, dict) and doc.get("identifier") and doc.get("title")
        ]
        return ProviderPage(
            items=[self._to_hit(doc) for doc in docs[:page_size]],
            total=parse_int(body.get("numFound")) or 0,
        )

    def _to_hit(self, doc: dict[str, Any]) -> ProviderHit:
        identifier = str(doc["identifier"])
        return ProviderHit(
            provider=self.name,
            external_id=identifier,
            title=str(doc.get("title") or identifier),
            year=parse_year(doc.get("year") or doc.get("date")),
            primary_link=f"{self._base_url}/download/{identifier}/{identifier}_archive.torrent",
            seeders=parse_int(doc.get("downloads")) or 0,
            language="en",
        )

    async def _get_json(
        self, path: str, params: dict[str, Any] | None = None
    ) -> Any:
        try:
            response = await self._client.get(f"{self._base_url}{path}", params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            logger.warning("Archive.org request %s failed: %s", path, exc)
        except ValueError:
            logger.warning("Archive.org returned invalid JSON for %s", path)
        return None
