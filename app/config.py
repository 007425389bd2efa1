"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Iterable, Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .categories import CATEGORY_MAP, DEFAULT_CATEGORY_IDS, CategoryDefinition


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="ReelMates", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_read_token: str | None = Field(default=None, alias="TMDB_READ_TOKEN")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_base_url: str = Field(
        default="https://image.tmdb.org/t/p/w300", alias="TMDB_IMAGE_BASE_URL"
    )
    poster_placeholder: str = Field(
        default="/assets/default.jpg", alias="POSTER_PLACEHOLDER"
    )

    category_ids: Annotated[tuple[int, ...], NoDecode] = Field(
        default=DEFAULT_CATEGORY_IDS, alias="CATEGORY_IDS"
    )
    match_threshold: float = Field(
        default=75.0, alias="MATCH_THRESHOLD", ge=0, le=100
    )
    fetch_timeout_seconds: float = Field(
        default=15.0, alias="FETCH_TIMEOUT", gt=0, le=120
    )
    max_sessions: int = Field(default=1000, alias="MAX_SESSIONS", ge=1)

    database_url: str = Field(
        default="sqlite+aiosqlite:///./reelmates.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("category_ids", mode="before")
    @classmethod
    def _parse_category_ids(cls, value: object) -> tuple[int, ...]:
        """Normalise category selections from environment values."""

        if value is None:
            return DEFAULT_CATEGORY_IDS
        if isinstance(value, str):
            raw_values = [part.strip() for part in value.split(",")]
        elif isinstance(value, Iterable):
            raw_values = [str(part).strip() for part in value]
        else:
            raise TypeError("CATEGORY_IDS must be a string or iterable of ids")

        cleaned: list[int] = []
        for entry in raw_values:
            if not entry:
                continue
            try:
                category_id = int(entry)
            except ValueError as exc:
                raise ValueError("CATEGORY_IDS must contain integers") from exc
            if category_id not in CATEGORY_MAP:
                raise ValueError("Unknown category ids configured")
            if category_id not in cleaned:
                cleaned.append(category_id)
        if not cleaned:
            return DEFAULT_CATEGORY_IDS
        return tuple(cleaned)

    @property
    def categories(self) -> tuple[CategoryDefinition, ...]:
        """Return ordered category definitions for the selected ids."""

        return tuple(CATEGORY_MAP[category_id] for category_id in self.category_ids)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
