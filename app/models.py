"""Pydantic models describing provider hits, metadata and API payloads."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DownloadKind = Literal["magnet", "torrent"]


class ApiModel(BaseModel):
    """Base model serialising to camelCase while accepting snake_case input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProviderHit(ApiModel):
    """One raw result returned by a provider for a query."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    provider: str
    external_id: str
    title: str
    year: int | None = None
    imdb_id: str | None = None
    primary_link: str | None = None
    seeders: int | None = None
    leechers: int | None = None
    size_label: str | None = None
    language: str | None = None
    cover_url: str | None = None
    quality_label: str | None = None

    def same_movie(self, other: "ProviderHit") -> bool:
        """Return ``True`` when both hits share a case-insensitive title and year."""

        return self.title.lower() == other.title.lower() and self.year == other.year


class ProviderPage(BaseModel):
    """A page of hits plus the provider's reported total."""

    items: list[ProviderHit] = Field(default_factory=list)
    total: int = 0


class MetadataRecord(ApiModel):
    """Normalised enrichment payload shared by every metadata source."""

    poster_url: str | None = None
    rating_text: str | None = None
    plot: str | None = None
    genre: str | None = None
    runtime_text: str | None = None
    director: str | None = None
    actors_text: str | None = None
    imdb_id: str | None = None

    def has_poster(self) -> bool:
        return bool(self.poster_url)

    def merged_with(self, fallback: "MetadataRecord") -> "MetadataRecord":
        """Fill empty fields from ``fallback``; this record wins when both are set."""

        update = {
            name: getattr(fallback, name)
            for name in type(self).model_fields
            if not getattr(self, name) and getattr(fallback, name)
        }
        if not update:
            return self
        return self.model_copy(update=update)


class MovieSource(ApiModel):
    """A downloadable source for a movie from one provider."""

    provider: str
    external_id: str
    download_ref: str | None = None
    download_kind: DownloadKind | None = None
    quality_label: str | None = None
    seeders: int | None = None
    leechers: int | None = None
    size_label: str | None = None
    language: str | None = None

    @classmethod
    def from_hit(cls, hit: ProviderHit) -> "MovieSource":
        link = hit.primary_link
        kind: DownloadKind | None = None
        if link:
            kind = "magnet" if link.startswith("magnet:") else "torrent"
        return cls(
            provider=hit.provider,
            external_id=hit.external_id,
            download_ref=link,
            download_kind=kind,
            quality_label=hit.quality_label,
            seeders=hit.seeders,
            leechers=hit.leechers,
            size_label=hit.size_label,
            language=hit.language,
        )


class MovieListItem(ApiModel):
    """Movie entry returned by list views; a poster is mandatory."""

    id: str
    title: str
    year: int | None = None
    poster_url: str
    rating_text: str | None = None
    genre: str | None = None
    providers: list[str] = Field(default_factory=list)
    is_watched: bool | None = None


class MovieDetails(MovieListItem):
    """Full movie view; tolerates a missing poster."""

    poster_url: str | None = None
    plot: str | None = None
    runtime_text: str | None = None
    director: str | None = None
    actors_text: str | None = None
    sources: list[MovieSource] = Field(default_factory=list)


class PaginatedMovies(ApiModel):
    """Paginated list response shared by search and popular."""

    items: list[MovieListItem] = Field(default_factory=list)
    page: int
    page_size: int
    has_more: bool
    total_approx: int | None = None


class WatchedUpdate(ApiModel):
    """Body accepted when marking a movie as watched."""

    progress: int | None = Field(default=None, ge=0)
