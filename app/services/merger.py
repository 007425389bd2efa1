"""Combine curated and external movies into a single category row."""

from __future__ import annotations

import logging
from typing import Iterable

from ..categories import category_name
from ..errors import ConfigurationError
from ..models import CategoryPage, ExternalPage, MovieEntry
from ..utils import normalize_title

logger = logging.getLogger(__name__)


class CatalogMerger:
    """Builds deduplicated category pages, curated entries first."""

    def merge(
        self,
        category_id: int,
        curated_all: Iterable[MovieEntry],
        external_page: ExternalPage,
    ) -> CategoryPage:
        """Return the row for ``category_id`` at the external page's position.

        Curated movies are matched by category name, not id, and are not paged:
        the full matching set leads every page. External movies whose title
        already appears in the row are dropped.
        """

        try:
            name = self._resolve_name(category_id)
        except ConfigurationError:
            logger.debug("Category %s has no curated mapping", category_id)
            name = str(category_id)
            curated: list[MovieEntry] = []
        else:
            curated = self.curated_for(name, curated_all)

        items: list[MovieEntry] = []
        seen_titles: set[str] = set()
        for movie in (*curated, *external_page.items):
            title_key = normalize_title(movie.title)
            if title_key in seen_titles:
                continue
            seen_titles.add(title_key)
            items.append(movie)

        return CategoryPage(
            category_id=category_id,
            name=name,
            page_number=external_page.page_number,
            total_pages=external_page.total_pages,
            items=tuple(items),
        )

    @staticmethod
    def curated_for(name: str, curated_all: Iterable[MovieEntry]) -> list[MovieEntry]:
        """Curated entries whose category name matches ``name``, in arrival order."""

        wanted = normalize_title(name)
        return [
            movie
            for movie in curated_all
            if movie.category and normalize_title(movie.category) == wanted
        ]

    @staticmethod
    def _resolve_name(category_id: int) -> str:
        name = category_name(category_id)
        if name is None:
            raise ConfigurationError(f"Unknown category {category_id}")
        return name
