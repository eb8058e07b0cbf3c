"""Fan-out aggregation of provider catalogs into enriched movie listings."""

from __future__ import annotations

import asyncio
import logging
import unicodedata
from dataclasses import dataclass, field
from typing import Callable, Iterable, Literal, Sequence

from ..models import (
    MetadataRecord,
    MovieDetails,
    MovieListItem,
    MovieSource,
    PaginatedMovies,
    ProviderHit,
)
from ..stable_ids import (
    StableId,
    canonical_movie_id,
    decode_movie_id,
    encode_movie_id,
    split_canonical,
)
from ..watched import WatchedStateStore
from .metadata import MetadataResolver
from .providers import MovieProvider, fan_out_pages, guarded_call

logger = logging.getLogger(__name__)

StableIdMode = Literal["anchor", "canonical"]
DETAIL_MATCH_PAGE_SIZE = 5


class MovieNotFoundError(LookupError):
    """Raised when a movie identifier cannot be resolved to a provider hit."""


def anchor_movie_id(hit: ProviderHit) -> str:
    return encode_movie_id(hit.provider, hit.external_id)


def title_movie_id(hit: ProviderHit) -> str:
    return canonical_movie_id(hit.title, hit.year)


@dataclass(slots=True)
class MovieGroup:
    """Hits judged to be the same movie; the first hit is the anchor."""

    id: str
    hits: list[ProviderHit] = field(default_factory=list)

    @property
    def anchor(self) -> ProviderHit:
        return self.hits[0]

    @property
    def providers(self) -> list[str]:
        return list(dict.fromkeys(hit.provider for hit in self.hits))

    def accepts(self, hit: ProviderHit) -> bool:
        return self.anchor.same_movie(hit)


def group_hits(
    hits: Iterable[ProviderHit],
    *,
    id_for: Callable[[ProviderHit], str] = anchor_movie_id,
) -> list[MovieGroup]:
    """Cluster hits by exact title/year match against each group's anchor.

    Matching is not transitive: a hit is compared with anchors only, so the
    insertion order can change how hits cluster. Groups keep first-seen order.
    """

    groups: list[MovieGroup] = []
    for hit in hits:
        for group in groups:
            if group.accepts(hit):
                group.hits.append(hit)
                break
        else:
            groups.append(MovieGroup(id=id_for(hit), hits=[hit]))
    return groups


def title_sort_key(title: str) -> tuple[str, str]:
    """Case-insensitive, accent-folding collation key for titles."""

    decomposed = unicodedata.normalize("NFKD", title)
    folded = "".join(char for char in decomposed if not unicodedata.combining(char))
    return folded.casefold(), title


def rank_by_seeders(hits: Sequence[ProviderHit]) -> list[ProviderHit]:
    return sorted(hits, key=lambda hit: hit.seeders or 0, reverse=True)


class MovieAggregator:
    """Merges provider results, groups duplicates and enriches them."""

    def __init__(
        self,
        providers: Sequence[MovieProvider],
        resolver: MetadataResolver,
        watched_store: WatchedStateStore | None = None,
        *,
        provider_timeout: float | None = None,
        stable_id_mode: StableIdMode = "anchor",
    ):
        self._providers = list(providers)
        self._resolver = resolver
        self._watched = watched_store
        self._timeout = provider_timeout
        self._id_for = title_movie_id if stable_id_mode == "canonical" else anchor_movie_id
        logger.info("Initialised aggregator with %s providers", len(self._providers))

    @property
    def provider_names(self) -> list[str]:
        return [provider.name for provider in self._providers]

    def get_provider(self, name: str) -> MovieProvider | None:
        return next((p for p in self._providers if p.name == name), None)

    async def search(
        self,
        query: str,
        page: int,
        page_size: int,
        user_id: str | None = None,
    ) -> PaginatedMovies:
        """Search every provider and return poster-bearing items sorted by title."""

        merged = await fan_out_pages(
            self._providers,
            "search",
            lambda provider: provider.search(query, page, page_size),
            timeout=self._timeout,
        )
        groups = group_hits(merged.hits, id_for=self._id_for)
        items = await self._enrich(groups)
        items.sort(key=lambda item: title_sort_key(item.title))

        if user_id:
            await self._apply_watched(items, user_id)

        return PaginatedMovies(
            items=items,
            page=page,
            page_size=page_size,
            has_more=len(items) == page_size,
            total_approx=merged.total,
        )

    async def popular(
        self,
        page: int,
        page_size: int,
        user_id: str | None = None,
    ) -> PaginatedMovies:
        """Rank merged hits by seeders before grouping, then enrich.

        ``has_more`` reflects the merged hit count before truncation rather
        than the number of items returned.
        """

        merged = await fan_out_pages(
            self._providers,
            "popular",
            lambda provider: provider.popular(page, page_size),
            timeout=self._timeout,
        )
        ranked = rank_by_seeders(merged.hits)
        groups = group_hits(ranked[:page_size], id_for=self._id_for)
        items = await self._enrich(groups)

        if user_id:
            await self._apply_watched(items, user_id)

        return PaginatedMovies(
            items=items,
            page=page,
            page_size=page_size,
            has_more=len(merged.hits) > page_size,
            total_approx=merged.total,
        )

    async def get_by_id(self, movie_id: str, user_id: str | None = None) -> MovieDetails:
        """Return details for ``movie_id`` with sources from every provider."""

        stable_id = decode_movie_id(movie_id)
        if stable_id is None:
            raise MovieNotFoundError(f"Movie {movie_id} not found")

        if stable_id.is_canonical:
            hit = await self._find_canonical_hit(stable_id)
        else:
            hit = await self._fetch_hit(stable_id)
        if hit is None:
            raise MovieNotFoundError(f"Movie {movie_id} not found")

        metadata_task = self._resolver.resolve(hit.imdb_id or hit.title, hit.year)
        others = [p for p in self._providers if p.name != hit.provider]
        metadata, matches = await asyncio.gather(
            metadata_task, self._matching_hits(hit, others)
        )
        metadata = metadata or MetadataRecord()

        sources = [MovieSource.from_hit(hit)]
        sources.extend(MovieSource.from_hit(match) for match in matches)

        is_watched: bool | None = None
        if user_id and self._watched is not None:
            is_watched = await self._watched.is_watched(user_id, movie_id)

        return MovieDetails(
            id=movie_id,
            title=hit.title,
            year=hit.year,
            poster_url=metadata.poster_url or hit.cover_url,
            rating_text=metadata.rating_text,
            genre=metadata.genre,
            plot=metadata.plot,
            runtime_text=metadata.runtime_text,
            director=metadata.director,
            actors_text=metadata.actors_text,
            providers=list(dict.fromkeys(source.provider for source in sources)),
            sources=sources,
            is_watched=is_watched,
        )

    async def _fetch_hit(self, stable_id: StableId) -> ProviderHit | None:
        provider = self.get_provider(stable_id.provider)
        if provider is None:
            raise MovieNotFoundError(f"Provider {stable_id.provider} not found")
        outcome = await guarded_call(
            provider,
            "get_by_id",
            lambda: provider.get_by_id(stable_id.external_id),
            timeout=self._timeout,
        )
        return None if outcome.degraded else outcome.value

    async def _find_canonical_hit(self, stable_id: StableId) -> ProviderHit | None:
        title, year = split_canonical(stable_id)
        if not title:
            return None
        merged = await fan_out_pages(
            self._providers,
            "search",
            lambda provider: provider.search(title, 1, DETAIL_MATCH_PAGE_SIZE),
            timeout=self._timeout,
        )
        return next(
            (
                hit
                for hit in merged.hits
                if hit.title.strip().lower() == title and hit.year == year
            ),
            None,
        )

    async def _matching_hits(
        self, hit: ProviderHit, providers: list[MovieProvider]
    ) -> list[ProviderHit]:
        if not providers:
            return []
        merged = await fan_out_pages(
            providers,
            "search",
            lambda provider: provider.search(hit.title, 1, DETAIL_MATCH_PAGE_SIZE),
            timeout=self._timeout,
        )
        return [candidate for candidate in merged.hits if hit.same_movie(candidate)]

    async def _enrich(self, groups: list[MovieGroup]) -> list[MovieListItem]:
        """Resolve metadata per group concurrently and drop posterless groups."""

        results = await asyncio.gather(
            *(
                self._resolver.resolve(
                    group.anchor.imdb_id or group.anchor.title, group.anchor.year
                )
                for group in groups
            ),
            return_exceptions=True,
        )

        items: list[MovieListItem] = []
        for group, result in zip(groups, results):
            if isinstance(result, Exception):
                logger.warning("Metadata resolution failed for %s: %s", group.anchor.title, result)
                result = None
            metadata = result or MetadataRecord()
            anchor = group.anchor
            poster_url = metadata.poster_url or anchor.cover_url
            if not poster_url:
                continue
            items.append(
                MovieListItem(
                    id=group.id,
                    title=anchor.title,
                    year=anchor.year,
                    poster_url=poster_url,
                    rating_text=metadata.rating_text,
                    genre=metadata.genre,
                    providers=group.providers,
                )
            )
        return items

    async def _apply_watched(self, items: list[MovieListItem], user_id: str) -> None:
        if not items or self._watched is None:
            return
        watched = await self._watched.watched_membership(
            user_id, [item.id for item in items]
        )
        for item in items:
            item.is_watched = item.id in watched
