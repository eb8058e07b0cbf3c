"""Per-user watched state backed by the relational store."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db_models import WatchedMovie


class WatchedStateStore(Protocol):
    """Lookup contract consumed by the aggregator."""

    async def is_watched(self, user_id: str, movie_id: str) -> bool: ...

    async def watched_membership(
        self, user_id: str, movie_ids: Iterable[str]
    ) -> set[str]: ...


class DatabaseWatchedStore:
    """Stores watched flags in the ``watched_movies`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def is_watched(self, user_id: str, movie_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WatchedMovie.id).where(
                    WatchedMovie.user_id == user_id,
                    WatchedMovie.movie_id == movie_id,
                )
            )
            return result.first() is not None

    async def watched_membership(
        self, user_id: str, movie_ids: Iterable[str]
    ) -> set[str]:
        """Return the subset of ``movie_ids`` the user has watched."""

        ids = list(dict.fromkeys(movie_ids))
        if not ids:
            return set()
        async with self._session_factory() as session:
            result = await session.execute(
                select(WatchedMovie.movie_id).where(
                    WatchedMovie.user_id == user_id,
                    WatchedMovie.movie_id.in_(ids),
                )
            )
            return set(result.scalars().all())

    async def mark_watched(
        self, user_id: str, movie_id: str, progress: int | None = None
    ) -> None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WatchedMovie).where(
                    WatchedMovie.user_id == user_id,
                    WatchedMovie.movie_id == movie_id,
                )
            )
            record = result.scalar_one_or_none()
            if record is None:
                session.add(
                    WatchedMovie(user_id=user_id, movie_id=movie_id, progress=progress)
                )
            else:
                record.progress = progress
                record.watched_at = datetime.utcnow()
            await session.commit()

    async def mark_unwatched(self, user_id: str, movie_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(WatchedMovie).where(
                    WatchedMovie.user_id == user_id,
                    WatchedMovie.movie_id == movie_id,
                )
            )
            await session.commit()
