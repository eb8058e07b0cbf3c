"""Time-bound metadata cache stores."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import MetadataCacheEntry
from .models import MetadataRecord

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CachedMetadata:
    """A cached record together with its expiry timestamp."""

    record: MetadataRecord
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class MetadataCache(Protocol):
    """Key/value store of metadata records with explicit expiry."""

    async def get(self, key: str) -> CachedMetadata | None: ...

    async def upsert(
        self, key: str, record: MetadataRecord, expires_at: datetime
    ) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryMetadataCache:
    """Process-wide arena of ``key -> (record, expiry)`` pairs."""

    def __init__(self) -> None:
        self._entries: dict[str, CachedMetadata] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    async def get(self, key: str) -> CachedMetadata | None:
        return self._entries.get(key)

    async def upsert(
        self, key: str, record: MetadataRecord, expires_at: datetime
    ) -> None:
        self._entries[key] = CachedMetadata(record=record, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class DatabaseMetadataCache:
    """Metadata cache persisted through SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, key: str) -> CachedMetadata | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MetadataCacheEntry).where(MetadataCacheEntry.cache_key == key)
            )
            entry = result.scalar_one_or_none()
        if entry is None:
            return None
        return CachedMetadata(
            record=MetadataRecord.model_validate(entry.data),
            expires_at=entry.expires_at,
        )

    async def upsert(
        self, key: str, record: MetadataRecord, expires_at: datetime
    ) -> None:
        payload = record.model_dump(mode="json", exclude_none=True)
        now = datetime.utcnow()
        async with self._session_factory() as session:
            if session.bind.dialect.name == "sqlite":
                statement = sqlite_insert(MetadataCacheEntry).values(
                    cache_key=key, data=payload, fetched_at=now, expires_at=expires_at
                )
                statement = statement.on_conflict_do_update(
                    index_elements=[MetadataCacheEntry.cache_key],
                    set_={"data": payload, "fetched_at": now, "expires_at": expires_at},
                )
                await session.execute(statement)
            else:
                result = await session.execute(
                    select(MetadataCacheEntry).where(
                        MetadataCacheEntry.cache_key == key
                    )
                )
                entry = result.scalar_one_or_none()
                if entry is None:
                    session.add(
                        MetadataCacheEntry(
                            cache_key=key,
                            data=payload,
                            fetched_at=now,
                            expires_at=expires_at,
                        )
                    )
                else:
                    entry.data = payload
                    entry.fetched_at = now
                    entry.expires_at = expires_at
            await session.commit()

    async def delete(self, key: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(MetadataCacheEntry).where(MetadataCacheEntry.cache_key == key)
            )
            await session.commit()

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Remove every expired row and return how many were deleted."""

        cutoff = now or datetime.utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                delete(MetadataCacheEntry).where(MetadataCacheEntry.expires_at < cutoff)
            )
            await session.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("Purged %s expired metadata cache entries", removed)
        return removed
