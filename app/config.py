"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Iterable, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


KNOWN_PROVIDERS: tuple[str, ...] = ("yts", "archive", "catalogA", "catalogB")
DEFAULT_DATA_DIR = Path(__file__).resolve().parent / "data"
SEVEN_DAYS = 7 * 24 * 60 * 60


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Reelmerge", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3001, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    tmdb_api_token: str | None = Field(default=None, alias="TMDB_API_TOKEN")
    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p", alias="TMDB_IMAGE_BASE_URL"
    )
    omdb_api_key: str | None = Field(default=None, alias="OMDB_API_KEY")
    omdb_api_url: HttpUrl = Field(
        default="https://www.omdbapi.com/", alias="OMDB_API_URL"
    )

    yts_api_url: HttpUrl = Field(
        default="https://yts.torrentbay.st/api/v2", alias="YTS_API_URL"
    )
    archive_api_url: HttpUrl = Field(
        default="https://archive.org", alias="ARCHIVE_API_URL"
    )
    archive_collection: str = Field(
        default="feature_films", alias="ARCHIVE_COLLECTION"
    )
    catalog_data_dir: Path = Field(default=DEFAULT_DATA_DIR, alias="CATALOG_DATA_DIR")

    providers: Annotated[tuple[str, ...], NoDecode] = Field(
        default=KNOWN_PROVIDERS, alias="PROVIDERS"
    )
    provider_timeout_seconds: float | None = Field(
        default=None, alias="PROVIDER_TIMEOUT", gt=0
    )

    metadata_cache_ttl_seconds: int = Field(
        default=SEVEN_DAYS, alias="METADATA_CACHE_TTL", ge=60
    )
    metadata_cache_backend: Literal["database", "memory"] = Field(
        default="database", alias="METADATA_CACHE_BACKEND"
    )
    metadata_concurrency: int = Field(
        default=8, alias="METADATA_CONCURRENCY", ge=1, le=64
    )

    stable_id_mode: Literal["anchor", "canonical"] = Field(
        default="anchor", alias="STABLE_ID_MODE"
    )
    default_page_size: int = Field(
        default=20, alias="DEFAULT_PAGE_SIZE", ge=1, le=50
    )
    max_page_size: int = Field(default=50, alias="MAX_PAGE_SIZE", ge=1, le=200)

    database_url: str = Field(
        default="sqlite+aiosqlite:///./reelmerge.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("providers", mode="before")
    @classmethod
    def _parse_providers(cls, value: object) -> tuple[str, ...]:
        """Normalise provider selections from environment values."""

        if value is None:
            return KNOWN_PROVIDERS
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("PROVIDERS must be a string or iterable of strings")

        lookup = {name.lower(): name for name in KNOWN_PROVIDERS}
        cleaned: list[str] = []
        for entry in raw_values:
            if not entry:
                continue
            name = lookup.get(entry.replace("-", "").replace("_", "").lower())
            if name is None:
                raise ValueError("Unknown providers configured")
            if name not in cleaned:
                cleaned.append(name)
        if not cleaned:
            return KNOWN_PROVIDERS
        return tuple(cleaned)

    @field_validator("tmdb_api_token", "tmdb_api_key", "omdb_api_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
