"""Per-viewer home screen state: category rows, favorites, matches, notices."""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections import deque
from typing import Callable, Sequence

from ..errors import PersistenceError
from ..models import AffinityResult, CategoryPage, MovieEntry, UserProfile
from .affinity import MatchService
from .curated import CuratedStore
from .favorites import FavoritesService
from .merger import CatalogMerger
from .pagination import CatalogProvider, Direction, PaginationController
from .session import SessionWatcher

logger = logging.getLogger(__name__)

MAX_PENDING_NOTICES = 20


class BrowseSession:
    """Everything one signed-in viewer sees on the home screen."""

    def __init__(
        self,
        session_id: str,
        watcher: SessionWatcher,
        *,
        provider: CatalogProvider,
        curated_store: CuratedStore,
        favorites: FavoritesService,
        matches: MatchService,
        category_ids: Sequence[int],
        fetch_timeout: float,
        merger: CatalogMerger | None = None,
    ):
        self.id = session_id
        self.watcher = watcher
        self._curated_store = curated_store
        self._favorites = favorites
        self._matches = matches
        self._notices: deque[str] = deque(maxlen=MAX_PENDING_NOTICES)
        self.pagination = PaginationController(
            provider,
            merger or CatalogMerger(),
            category_ids=category_ids,
            fetch_timeout=fetch_timeout,
            on_error=self._notices.append,
        )
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self._subscription = watcher.subscribe(self._on_user_changed)

    async def rows(self) -> list[CategoryPage]:
        self.watcher.require_user()
        if not await self._ensure_loaded():
            # Rows whose first page failed earlier get another attempt.
            await self.pagination.reload()
        return self.pagination.pages()

    async def advance(self, category_id: int, direction: Direction) -> CategoryPage:
        self.watcher.require_user()
        await self._ensure_loaded()
        if self.pagination.page(category_id) is None:
            await self.pagination.reload(category_id)
            page = self.pagination.page(category_id)
            if page is not None:
                return page
        return await self.pagination.advance(category_id, direction)

    async def favorites(self) -> list[MovieEntry]:
        user = self.watcher.require_user()
        return await self._favorites.get(user.user_id)

    async def toggle_favorite(self, movie: MovieEntry) -> bool:
        user = self.watcher.require_user()
        return await self._favorites.toggle_favorite(user.user_id, movie)

    async def matches(self) -> list[AffinityResult]:
        user = self.watcher.require_user()
        return await self._matches.get_matches(user)

    def drain_notices(self) -> list[str]:
        notices = list(self._notices)
        self._notices.clear()
        return notices

    def close(self) -> None:
        self._subscription.cancel()
        self.pagination.clear()
        self._loaded = False

    async def _ensure_loaded(self) -> bool:
        """Load the curated set once, then the first page of every row.

        Returns whether this call did the loading.
        """

        async with self._load_lock:
            if self._loaded:
                return False
            try:
                curated = await self._curated_store.list_all()
            except PersistenceError as exc:
                logger.warning("Continuing without curated movies: %s", exc)
                curated = []
            self.pagination.set_curated(curated)
            await self.pagination.load()
            self._loaded = True
            return True

    def _on_user_changed(self, user: UserProfile | None) -> None:
        if user is None:
            self.pagination.clear()
            self._loaded = False
            self._notices.clear()


SessionFactory = Callable[[str, SessionWatcher], BrowseSession]
ReleaseCallback = Callable[[str], None]

MAX_OPEN_SESSIONS = 1000


class SessionRegistry:
    """Open browse sessions keyed by an opaque session id.

    At most ``max_sessions`` stay open; opening one more signs out the oldest.
    ``on_release`` is called with a user id once that user has no open session.
    """

    def __init__(
        self,
        factory: SessionFactory,
        *,
        max_sessions: int = MAX_OPEN_SESSIONS,
        on_release: ReleaseCallback | None = None,
    ):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self._factory = factory
        self._max_sessions = max_sessions
        self._on_release = on_release
        self._sessions: dict[str, BrowseSession] = {}

    def open(self, user: UserProfile) -> BrowseSession:
        if not user.active:
            raise PermissionError(f"User {user.user_id} is deactivated")
        while len(self._sessions) >= self._max_sessions:
            oldest = next(iter(self._sessions))
            logger.info("Session limit reached, closing session %s", oldest)
            self.close(oldest)
        session_id = secrets.token_urlsafe(16)
        watcher = SessionWatcher()
        session = self._factory(session_id, watcher)
        watcher.set_user(user)
        self._sessions[session_id] = session
        logger.info("Opened session for %s", user.user_id)
        return session

    def get(self, session_id: str) -> BrowseSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(f"Session {session_id} not found")
        return session

    def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise KeyError(f"Session {session_id} not found")
        user = session.watcher.current
        session.watcher.set_user(None)
        session.close()
        if user is None or self._on_release is None:
            return
        if not self._has_session_for(user.user_id):
            self._on_release(user.user_id)

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def _has_session_for(self, user_id: str) -> bool:
        for session in self._sessions.values():
            current = session.watcher.current
            if current is not None and current.user_id == user_id:
                return True
        return False
