"""Pydantic models describing movies, category rows and user profiles."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from .utils import build_image_url, normalize_title

Origin = Literal["curated", "external"]
MovieKey = tuple[str, str]


class MovieEntry(BaseModel):
    """A single movie, either curated by an administrator or fetched from TMDB."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    title: str
    origin: Origin
    poster_ref: str | None = Field(
        default=None,
        validation_alias=AliasChoices("poster_ref", "posterRef", "poster_path"),
    )
    release_date: date | None = Field(
        default=None, validation_alias=AliasChoices("release_date", "releaseDate")
    )
    category_ids: tuple[int, ...] = Field(
        default=(),
        validation_alias=AliasChoices("category_ids", "categoryIds", "genre_ids"),
    )
    category: str | None = Field(
        default=None, validation_alias=AliasChoices("category", "genre")
    )
    description: str | None = Field(
        default=None, validation_alias=AliasChoices("description", "overview")
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("Movie id must be a string or integer")
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValueError("Movie id may not be blank")
            return stripped
        return value

    @field_validator("title", mode="before")
    @classmethod
    def _require_title(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValueError("Movie title may not be blank")
            return stripped
        return value

    @field_validator("poster_ref", "category", "description", "release_date", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value

    @field_validator("category_ids", mode="before")
    @classmethod
    def _default_category_ids(cls, value: object) -> object:
        if value is None:
            return ()
        return value

    @classmethod
    def from_tmdb(cls, data: dict[str, Any]) -> "MovieEntry":
        """Validate a TMDB discover result as an external entry."""

        return cls.model_validate({**data, "origin": "external"})

    @property
    def key(self) -> MovieKey:
        """Identity of the entry; ids are only unique within one origin."""

        return (self.origin, self.id)

    @property
    def title_key(self) -> str:
        return normalize_title(self.title)

    def poster_url(self, base_url: str, placeholder: str) -> str:
        return build_image_url(self.poster_ref, base_url, placeholder)

    def to_payload(self, *, image_base_url: str, placeholder: str) -> dict[str, object]:
        """Return the JSON representation used by the HTTP API."""

        payload: dict[str, object] = {
            "id": self.id,
            "origin": self.origin,
            "title": self.title,
            "poster": self.poster_url(image_base_url, placeholder),
            "addedByAdmin": self.origin == "curated",
        }
        if self.poster_ref:
            payload["posterRef"] = self.poster_ref
        if self.release_date:
            payload["releaseDate"] = self.release_date.isoformat()
        if self.category_ids:
            payload["categoryIds"] = list(self.category_ids)
        if self.category:
            payload["category"] = self.category
        if self.description:
            payload["description"] = self.description
        return payload


class ExternalPage(BaseModel):
    """One page of results returned by the catalog provider."""

    model_config = ConfigDict(frozen=True)

    category_id: int
    page_number: int = Field(ge=1)
    total_pages: int = Field(ge=1)
    items: tuple[MovieEntry, ...] = ()


class CategoryPage(BaseModel):
    """Immutable snapshot of one category row as currently displayed."""

    model_config = ConfigDict(frozen=True)

    category_id: int
    name: str
    page_number: int = Field(ge=1)
    total_pages: int = Field(ge=1)
    items: tuple[MovieEntry, ...] = ()

    @model_validator(mode="after")
    def _check_invariants(self) -> "CategoryPage":
        if self.page_number > self.total_pages:
            raise ValueError("page_number may not exceed total_pages")
        seen: set[str] = set()
        for item in self.items:
            if item.title_key in seen:
                raise ValueError(f"Duplicate title in category row: {item.title}")
            seen.add(item.title_key)
        return self

    @property
    def has_next(self) -> bool:
        return self.page_number < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page_number > 1

    def to_payload(self, *, image_base_url: str, placeholder: str) -> dict[str, object]:
        return {
            "categoryId": self.category_id,
            "name": self.name,
            "page": self.page_number,
            "totalPages": self.total_pages,
            "hasNext": self.has_next,
            "hasPrevious": self.has_previous,
            "movies": [
                item.to_payload(image_base_url=image_base_url, placeholder=placeholder)
                for item in self.items
            ],
        }


class UserProfile(BaseModel):
    """A user as seen by the matcher: identity, contact and favorites."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: str = Field(validation_alias=AliasChoices("user_id", "userId", "uid"))
    display_name: str = Field(
        default="", validation_alias=AliasChoices("display_name", "displayName")
    )
    contact: str | None = Field(
        default=None, validation_alias=AliasChoices("contact", "email")
    )
    active: bool = True
    favorites: tuple[MovieEntry, ...] = ()

    @field_validator("favorites")
    @classmethod
    def _unique_favorites(cls, value: tuple[MovieEntry, ...]) -> tuple[MovieEntry, ...]:
        unique: dict[MovieKey, MovieEntry] = {}
        for movie in value:
            unique.setdefault(movie.key, movie)
        return tuple(unique.values())

    @property
    def favorite_keys(self) -> frozenset[MovieKey]:
        return frozenset(movie.key for movie in self.favorites)

    def to_payload(self) -> dict[str, object]:
        return {
            "userId": self.user_id,
            "displayName": self.display_name,
            "contact": self.contact,
            "active": self.active,
            "favoriteCount": len(self.favorites),
        }


class AffinityResult(BaseModel):
    """Derived overlap between the current user's favorites and another user's."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    display_name: str = ""
    contact: str | None = None
    match_percentage: float = Field(ge=0, le=100)
    shared_count: int = Field(ge=0)

    def to_payload(self) -> dict[str, object]:
        return {
            "userId": self.user_id,
            "displayName": self.display_name,
            "contact": self.contact,
            "matchPercentage": self.match_percentage,
            "sharedCount": self.shared_count,
        }
