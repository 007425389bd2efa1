"""Ranking of other users by how much of your favorites they share."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from ..models import AffinityResult, UserProfile
from .favorites import FavoritesService
from .users import UserDirectory

logger = logging.getLogger(__name__)


class AffinityMatcher:
    """Computes match percentages between one user and every other user."""

    @staticmethod
    def compute_matches(
        current_user: UserProfile,
        all_profiles: Iterable[UserProfile],
        threshold: float,
    ) -> list[AffinityResult]:
        """Return candidates sharing at least ``threshold`` percent of favorites.

        The percentage is relative to the current user's favorite count, not the
        candidate's and not the union of both sets. Results are ordered by
        percentage, highest first; equal percentages keep the order in which
        ``all_profiles`` listed them.
        """

        own = current_user.favorite_keys
        if not own:
            return []

        results: list[AffinityResult] = []
        for candidate in all_profiles:
            if candidate.user_id == current_user.user_id or not candidate.favorites:
                continue
            shared_count = len(own & candidate.favorite_keys)
            match_percentage = 100 * shared_count / len(own)
            if match_percentage < threshold:
                continue
            results.append(
                AffinityResult(
                    user_id=candidate.user_id,
                    display_name=candidate.display_name,
                    contact=candidate.contact,
                    match_percentage=match_percentage,
                    shared_count=shared_count,
                )
            )

        # list.sort is stable, which keeps scan order for ties.
        results.sort(key=lambda result: result.match_percentage, reverse=True)
        return results


class MatchService:
    """Caches match results per user until any favorite changes."""

    def __init__(
        self,
        directory: UserDirectory,
        favorites: FavoritesService,
        *,
        threshold: float,
        matcher: AffinityMatcher | None = None,
    ):
        self._directory = directory
        self._favorites = favorites
        self._threshold = threshold
        self._matcher = matcher or AffinityMatcher()
        self._cache: dict[str, list[AffinityResult]] = {}
        self._version = 0
        self._lock = asyncio.Lock()
        favorites.add_listener(self.invalidate)

    @property
    def threshold(self) -> float:
        return self._threshold

    def invalidate(self, user_id: str | None = None) -> None:
        """Drop cached results.

        One user's toggle changes their overlap with everybody, so the whole
        cache is cleared regardless of ``user_id``.
        """

        self._version += 1
        if self._cache:
            logger.debug("Match cache invalidated by %s", user_id)
        self._cache.clear()

    def release(self, user_id: str) -> None:
        self._cache.pop(user_id, None)

    async def get_matches(self, current_user: UserProfile) -> list[AffinityResult]:
        """Return ranked matches for ``current_user``, recomputing when stale."""

        cached = self._cache.get(current_user.user_id)
        if cached is not None:
            return list(cached)

        async with self._lock:
            version = self._version
            favorites = await self._favorites.get(current_user.user_id)
            if not favorites:
                return []
            snapshot = await self._directory.list_all()
            user = current_user.model_copy(update={"favorites": tuple(favorites)})
            results = self._matcher.compute_matches(user, snapshot, self._threshold)
            # A toggle during the snapshot read makes these results stale.
            if version == self._version:
                self._cache[current_user.user_id] = results

        logger.info(
            "Computed %s matches for %s at threshold %s",
            len(results),
            current_user.user_id,
            self._threshold,
        )
        return list(results)
