"""Providers serving movies from static JSON datasets."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..models import ProviderHit, ProviderPage
from ..utils import clean_text, parse_int
from .providers import MovieProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CatalogSchema:
    """Maps a dataset's field names onto :class:`ProviderHit` attributes."""

    entries_key: str
    name_key: str
    id: str
    title: str
    year: str
    imdb_id: str
    link: str
    seeders: str
    leechers: str
    size: str
    language: str


CATALOG_A_SCHEMA = CatalogSchema(
    entries_key="movies",
    name_key="name",
    id="id",
    title="title",
    year="year",
    imdb_id="imdbId",
    link="magnet",
    seeders="seeders",
    leechers="leechers",
    size="size",
    language="language",
)

CATALOG_B_SCHEMA = CatalogSchema(
    entries_key="entries",
    name_key="catalog_name",
    id="entry_id",
    title="movie_title",
    year="release_year",
    imdb_id="imdb_id",
    link="torrent_magnet",
    seeders="seeds",
    leechers="peers",
    size="file_size",
    language="audio_language",
)


class StaticCatalogProvider(MovieProvider):
    """In-memory catalog loaded once from a JSON file."""

    def __init__(self, name: str, path: Path, schema: CatalogSchema):
        self.name = name
        self._path = Path(path)
        self._schema = schema
        self._hits: list[ProviderHit] = []

    def __len__(self) -> int:
        return len(self._hits)

    def load(self) -> None:
        """Read the dataset; an unreadable file leaves the catalog empty."""

        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Failed to load %s catalog from %s: %s", self.name, self._path, exc)
            self._hits = []
            return

        if not isinstance(payload, dict):
            logger.error("Catalog %s at %s is not a JSON object", self.name, self._path)
            self._hits = []
            return

        entries = payload.get(self._schema.entries_key)
        hits: list[ProviderHit] = []
        for entry in entries if isinstance(entries, list) else []:
            try:
                hit = self._to_hit(entry)
            except ValidationError as exc:
                logger.warning("Skipping malformed %s entry %r: %s", self.name, entry, exc)
                continue
            if hit is not None:
                hits.append(hit)
        self._hits = hits
        catalog_name = payload.get(self._schema.name_key) or self.name
        logger.info("Loaded %s movies from %s", len(hits), catalog_name)

    async def search(self, query: str, page: int, page_size: int) -> ProviderPage:
        needle = query.lower()
        matches = [
            hit
            for hit in self._hits
            if needle in hit.title.lower()
            or (hit.year is not None and query in str(hit.year))
        ]
        return ProviderPage(
            items=self._slice(matches, page, page_size), total=len(matches)
        )

    async def popular(self, page: int, page_size: int) -> ProviderPage:
        ranked = sorted(self._hits, key=lambda hit: hit.seeders or 0, reverse=True)
        return ProviderPage(
            items=self._slice(ranked, page, page_size), total=len(self._hits)
        )

    async def get_by_id(self, external_id: str) -> ProviderHit | None:
        return next((hit for hit in self._hits if hit.external_id == external_id), None)

    @staticmethod
    def _slice(hits: list[ProviderHit], page: int, page_size: int) -> list[ProviderHit]:
        start = max(page - 1, 0) * page_size
        return hits[start : start + page_size]

    def _to_hit(self, entry: Any) -> ProviderHit | None:
        if not isinstance(entry, dict):
            return None
        schema = self._schema
        external_id = entry.get(schema.id)
        title = entry.get(schema.title)
        if external_id in (None, "") or not title:
            return None
        return ProviderHit(
            provider=self.name,
            external_id=str(external_id),
            title=str(title),
            year=parse_int(entry.get(schema.year)),
            imdb_id=clean_text(entry.get(schema.imdb_id)),
            primary_link=clean_text(entry.get(schema.link)),
            seeders=parse_int(entry.get(schema.seeders)),
            leechers=parse_int(entry.get(schema.leechers)),
            size_label=clean_text(entry.get(schema.size)),
            language=clean_text(entry.get(schema.language)),
        )
