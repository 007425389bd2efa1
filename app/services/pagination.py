"""Per-category page cursors against the paged external catalog."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Literal, Protocol, Sequence

from ..errors import ProviderError
from ..models import CategoryPage, ExternalPage, MovieEntry
from .merger import CatalogMerger

logger = logging.getLogger(__name__)

Direction = Literal["next", "prev"]
NoticeCallback = Callable[[str], None]

LOAD_ERROR_MESSAGE = "Error loading movies"


class CatalogProvider(Protocol):
    async def fetch_page(self, category_id: int, page_number: int) -> ExternalPage:
        ...


@dataclass(slots=True)
class _CategoryState:
    """Mutable holder for one category's current snapshot."""

    page: CategoryPage | None = None
    # Bumped whenever in-flight fetches must no longer be applied.
    generation: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class PaginationController:
    """Owns the page cursor of every category row and drives re-fetches."""

    def __init__(
        self,
        provider: CatalogProvider,
        merger: CatalogMerger,
        *,
        category_ids: Sequence[int],
        curated: Iterable[MovieEntry] = (),
        fetch_timeout: float = 15.0,
        on_error: NoticeCallback | None = None,
    ):
        self._provider = provider
        self._merger = merger
        self._category_ids = tuple(dict.fromkeys(category_ids))
        self._states = {category_id: _CategoryState() for category_id in self._category_ids}
        self._curated: tuple[MovieEntry, ...] = tuple(curated)
        self._fetch_timeout = fetch_timeout
        self._on_error = on_error

    @property
    def category_ids(self) -> tuple[int, ...]:
        return self._category_ids

    def set_curated(self, entries: Iterable[MovieEntry]) -> None:
        """Replace the curated set merged into subsequently fetched pages."""

        self._curated = tuple(entries)

    def page(self, category_id: int) -> CategoryPage | None:
        return self._state(category_id).page

    def pages(self) -> list[CategoryPage]:
        """Return loaded rows in configured order."""

        return [
            state.page
            for state in (self._states[category_id] for category_id in self._category_ids)
            if state.page is not None
        ]

    async def load(self) -> list[CategoryPage]:
        """Load page 1 of every category concurrently.

        A category that fails to load reports a notice and stays empty while
        the others still load.
        """

        await asyncio.gather(
            *(self._load_first_page(category_id) for category_id in self._category_ids)
        )
        return self.pages()

    async def advance(self, category_id: int, direction: Direction) -> CategoryPage:
        """Move one category a page forward or back and return its snapshot.

        At either boundary nothing is fetched and the current page is returned.
        On a provider failure the current page is kept and one notice is sent.
        """

        if direction not in ("next", "prev"):
            raise ValueError("direction must be 'next' or 'prev'")
        state = self._state(category_id)

        async with state.lock:
            current = state.page
            if current is None:
                raise KeyError(f"Category {category_id} has not been loaded")

            candidate = current.page_number
            if direction == "next" and current.page_number < current.total_pages:
                candidate += 1
            elif direction == "prev" and current.page_number > 1:
                candidate -= 1
            if candidate == current.page_number:
                return current

            try:
                await self._fetch_and_apply(category_id, state, candidate, state.generation)
            except ProviderError as exc:
                logger.warning(
                    "Navigation of category %s to page %s failed: %s",
                    category_id,
                    candidate,
                    exc,
                )
                self._notify(LOAD_ERROR_MESSAGE)
                return current

            return state.page if state.page is not None else current

    async def reload(self, category_id: int | None = None) -> list[CategoryPage]:
        """Fetch page 1 again for ``category_id``, or for every row still empty.

        Any fetch in flight for a reloaded row is discarded.
        """

        if category_id is not None:
            self._state(category_id)
            targets: tuple[int, ...] = (category_id,)
        else:
            targets = tuple(
                cid for cid in self._category_ids if self._states[cid].page is None
            )
        if targets:
            logger.info("Reloading categories %s", targets)
            await asyncio.gather(*(self._load_first_page(cid) for cid in targets))
        return self.pages()

    def clear(self) -> None:
        """Forget every row and discard any fetch still in flight."""

        for state in self._states.values():
            state.generation += 1
            state.page = None

    def _state(self, category_id: int) -> _CategoryState:
        state = self._states.get(category_id)
        if state is None:
            raise KeyError(f"Category {category_id} is not configured")
        return state

    async def _load_first_page(self, category_id: int) -> None:
        state = self._states[category_id]
        state.generation += 1
        generation = state.generation
        async with state.lock:
            try:
                await self._fetch_and_apply(category_id, state, 1, generation)
            except ProviderError as exc:
                logger.warning("Initial load of category %s failed: %s", category_id, exc)
                self._notify(LOAD_ERROR_MESSAGE)

    async def _fetch_and_apply(
        self,
        category_id: int,
        state: _CategoryState,
        page_number: int,
        generation: int,
    ) -> None:
        try:
            external = await asyncio.wait_for(
                self._provider.fetch_page(category_id, page_number),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"Timed out fetching category {category_id} page {page_number}"
            ) from exc

        if state.generation != generation or external.page_number != page_number:
            logger.debug(
                "Discarding superseded page %s for category %s", page_number, category_id
            )
            return

        state.page = self._merger.merge(category_id, self._curated, external)

    def _notify(self, message: str) -> None:
        if self._on_error is not None:
            self._on_error(message)
