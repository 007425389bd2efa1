"""Category definitions shown as browse rows."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CategoryDefinition:
    """Describes a TMDB genre that can be rendered as a category row."""

    id: int
    name: str


CATEGORIES: tuple[CategoryDefinition, ...] = (
    CategoryDefinition(id=28, name="Action"),
    CategoryDefinition(id=12, name="Adventure"),
    CategoryDefinition(id=16, name="Animation"),
    CategoryDefinition(id=35, name="Comedy"),
    CategoryDefinition(id=80, name="Crime"),
    CategoryDefinition(id=99, name="Documentary"),
    CategoryDefinition(id=18, name="Drama"),
    CategoryDefinition(id=10751, name="Family"),
    CategoryDefinition(id=14, name="Fantasy"),
    CategoryDefinition(id=36, name="History"),
    CategoryDefinition(id=27, name="Horror"),
    CategoryDefinition(id=10402, name="Music"),
    CategoryDefinition(id=9648, name="Mystery"),
    CategoryDefinition(id=10749, name="Romance"),
    CategoryDefinition(id=878, name="Sci-Fi"),
    CategoryDefinition(id=10770, name="TV Movie"),
    CategoryDefinition(id=53, name="Thriller"),
    CategoryDefinition(id=10752, name="War"),
    CategoryDefinition(id=37, name="Western"),
)

CATEGORY_MAP: dict[int, CategoryDefinition] = {
    definition.id: definition for definition in CATEGORIES
}

# Rows rendered on the home screen unless CATEGORY_IDS overrides them.
DEFAULT_CATEGORY_IDS: tuple[int, ...] = (28, 12, 16, 35, 80, 18, 14, 10749, 878)


def category_name(category_id: int) -> str | None:
    """Return the display name for a category id, if it is known."""

    definition = CATEGORY_MAP.get(category_id)
    return definition.name if definition else None
