"""Cache-backed metadata sources and the primary/fallback resolver."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable

from ..cache import MetadataCache
from ..config import SEVEN_DAYS
from ..models import MetadataRecord
from ..utils import compact_title, is_imdb_id

logger = logging.getLogger(__name__)


class MetadataSource(ABC):
    """Base class for an external metadata API fronted by a TTL cache.

    Subclasses implement :meth:`fetch`; :meth:`lookup` handles the cache
    round trip and guarantees that failures surface as ``None``.
    """

    name = "metadata"
    cache_namespace: str | None = None

    def __init__(
        self,
        cache: MetadataCache,
        *,
        ttl_seconds: int = SEVEN_DAYS,
        concurrency: int = 8,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._cache = cache
        self._ttl = timedelta(seconds=ttl_seconds)
        self._semaphore = asyncio.Semaphore(concurrency)
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return True

    def cache_key(self, title_or_imdb_id: str, year: int | None = None) -> str:
        """Return the namespaced cache key for a lookup."""

        value = title_or_imdb_id.strip()
        if is_imdb_id(value):
            key = f"imdb:{value}"
        else:
            key = f"title:{compact_title(value)}"
            if year:
                key = f"{key}:{year}"
        if self.cache_namespace:
            return f"{self.cache_namespace}:{key}"
        return key

    async def lookup(
        self, title_or_imdb_id: str, year: int | None = None
    ) -> MetadataRecord | None:
        """Return metadata from cache or the upstream API, never raising."""

        if not self.enabled:
            return None
        query = (title_or_imdb_id or "").strip()
        if not query:
            return None

        key = self.cache_key(query, year)
        cached = await self._read_cache(key)
        if cached is not None:
            return cached

        try:
            async with self._semaphore:
                record = await self.fetch(query, year)
        except Exception as exc:
            logger.warning("%s lookup failed for %s: %s", self.name, query, exc)
            return None
        if record is None:
            return None

        await self._write_cache(key, record)
        return record

    @abstractmethod
    async def fetch(
        self, title_or_imdb_id: str, year: int | None = None
    ) -> MetadataRecord | None:
        """Query the upstream API; :meth:`lookup` absorbs any error raised here."""

    async def _read_cache(self, key: str) -> MetadataRecord | None:
        try:
            cached = await self._cache.get(key)
            if cached is None:
                return None
            if cached.is_expired(self._clock()):
                logger.debug("%s cache entry expired for %s", self.name, key)
                await self._cache.delete(key)
                return None
        except Exception:
            logger.exception("%s cache read error for %s", self.name, key)
            return None
        logger.debug("%s cache hit for %s", self.name, key)
        return cached.record

    async def _write_cache(self, key: str, record: MetadataRecord) -> None:
        try:
            await self._cache.upsert(key, record, self._clock() + self._ttl)
        except Exception:
            logger.exception("%s cache write error for %s", self.name, key)


class MetadataResolver:
    """Consult the primary source first and fill gaps from the fallback."""

    def __init__(self, primary: MetadataSource, fallback: MetadataSource):
        self._primary = primary
        self._fallback = fallback

    @property
    def sources(self) -> tuple[MetadataSource, MetadataSource]:
        return self._primary, self._fallback

    async def resolve(
        self, title_or_imdb_id: str, year: int | None = None
    ) -> MetadataRecord | None:
        primary = await self._primary.lookup(title_or_imdb_id, year)
        if primary is not None and primary.has_poster():
            logger.debug("Metadata for %s from %s", title_or_imdb_id, self._primary.name)
            return primary

        fallback = await self._fallback.lookup(title_or_imdb_id, year)
        if fallback is not None:
            logger.debug("Metadata for %s from %s", title_or_imdb_id, self._fallback.name)
            if primary is not None:
                return primary.merged_with(fallback)
            return fallback

        return primary
