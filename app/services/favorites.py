"""Favorite persistence and the confirm-then-apply toggle contract."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import FavoriteRecord, UserRecord
from ..errors import PersistenceError
from ..models import MovieEntry, MovieKey
from .users import favorite_to_entry

logger = logging.getLogger(__name__)

FavoritesListener = Callable[[str], Awaitable[None] | None]


class FavoritesStore:
    """SQLAlchemy-backed storage of each user's favorite movies."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, user_id: str) -> list[MovieEntry]:
        stmt = (
            select(FavoriteRecord)
            .where(FavoriteRecord.user_id == user_id)
            .order_by(FavoriteRecord.id)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.exception("Failed to load favorites for %s", user_id)
            raise PersistenceError("Could not load favorites") from exc
        return [favorite_to_entry(record) for record in records]

    async def add(self, user_id: str, movie: MovieEntry) -> None:
        """Persist a favorite; adding one that already exists succeeds."""

        record = FavoriteRecord(
            user_id=user_id,
            origin=movie.origin,
            movie_id=movie.id,
            title=movie.title,
            poster_ref=movie.poster_ref,
            release_date=movie.release_date,
            category_ids=list(movie.category_ids) or None,
            category=movie.category,
            description=movie.description,
        )
        try:
            async with self._session_factory() as session:
                if await session.get(UserRecord, user_id) is None:
                    raise PersistenceError(f"User {user_id} does not exist")
                session.add(record)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.debug(
                        "Favorite %s already stored for %s", movie.key, user_id
                    )
        except SQLAlchemyError as exc:
            logger.exception("Failed to add favorite %s for %s", movie.key, user_id)
            raise PersistenceError("Could not add favorite") from exc

    async def remove(self, user_id: str, movie: MovieEntry) -> None:
        """Delete a favorite; removing one that is absent succeeds."""

        stmt = delete(FavoriteRecord).where(
            FavoriteRecord.user_id == user_id,
            FavoriteRecord.origin == movie.origin,
            FavoriteRecord.movie_id == movie.id,
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to remove favorite %s for %s", movie.key, user_id)
            raise PersistenceError("Could not remove favorite") from exc


class FavoritesService:
    """In-memory favorites that only ever reflect confirmed persisted state."""

    def __init__(self, store: FavoritesStore):
        self._store = store
        self._favorites: dict[str, dict[MovieKey, MovieEntry]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[FavoritesListener] = []

    def add_listener(self, listener: FavoritesListener) -> None:
        """Register a callback invoked with the user id after each toggle."""

        self._listeners.append(listener)

    async def get(self, user_id: str) -> list[MovieEntry]:
        """Return the user's favorites, loading them from the store once."""

        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            favorites = await self._ensure_loaded(user_id)
            return list(favorites.values())

    async def toggle_favorite(self, user_id: str, movie: MovieEntry) -> bool:
        """Add or remove ``movie``; returns whether it is now a favorite.

        The store is written first and memory is updated only after the write
        succeeds, so a ``PersistenceError`` leaves the favorites untouched.
        Toggles for the same user run one at a time.
        """

        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            favorites = await self._ensure_loaded(user_id)
            if movie.key in favorites:
                await self._store.remove(user_id, movie)
                updated = dict(favorites)
                del updated[movie.key]
                now_favorite = False
            else:
                await self._store.add(user_id, movie)
                updated = {**favorites, movie.key: movie}
                now_favorite = True
            self._favorites[user_id] = updated

        logger.info(
            "User %s %s favorite %s",
            user_id,
            "added" if now_favorite else "removed",
            movie.key,
        )
        await self._notify(user_id)
        return now_favorite

    def release(self, user_id: str) -> None:
        """Drop the cached favorites of a user nobody is browsing as.

        A user whose toggle is still running keeps the cache and lock.
        """

        lock = self._locks.get(user_id)
        if lock is not None and lock.locked():
            return
        self._locks.pop(user_id, None)
        self._favorites.pop(user_id, None)

    async def _ensure_loaded(self, user_id: str) -> dict[MovieKey, MovieEntry]:
        favorites = self._favorites.get(user_id)
        if favorites is None:
            loaded = await self._store.get(user_id)
            favorites = {}
            for movie in loaded:
                favorites.setdefault(movie.key, movie)
            self._favorites[user_id] = favorites
        return favorites

    async def _notify(self, user_id: str) -> None:
        for listener in self._listeners:
            result = listener(user_id)
            if asyncio.iscoroutine(result):
                await result
