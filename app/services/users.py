"""Directory of user profiles used for sign-in and taste matching."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..db_models import FavoriteRecord, UserRecord
from ..errors import PersistenceError
from ..models import MovieEntry, UserProfile

logger = logging.getLogger(__name__)


class UserDirectory:
    """Loads user profiles, including their persisted favorites."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_all(self) -> list[UserProfile]:
        """Return a snapshot of every profile, oldest account first."""

        stmt = (
            select(UserRecord)
            .options(selectinload(UserRecord.favorites))
            .order_by(UserRecord.created_at, UserRecord.id)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.exception("Failed to load user directory")
            raise PersistenceError("Could not load user profiles") from exc
        return [self._record_to_profile(record) for record in records]

    async def get(self, user_id: str) -> UserProfile | None:
        stmt = (
            select(UserRecord)
            .options(selectinload(UserRecord.favorites))
            .where(UserRecord.id == user_id)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                record = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.exception("Failed to load user %s", user_id)
            raise PersistenceError("Could not load user profile") from exc
        if record is None:
            return None
        return self._record_to_profile(record)

    async def register(
        self, user_id: str, display_name: str, contact: str | None = None
    ) -> UserProfile:
        """Create a profile, or update the name and contact of an existing one."""

        cleaned_id = (user_id or "").strip()
        if not cleaned_id:
            raise ValueError("User id may not be blank")
        try:
            async with self._session_factory() as session:
                record = await session.get(UserRecord, cleaned_id)
                if record is None:
                    record = UserRecord(id=cleaned_id)
                    session.add(record)
                record.display_name = (display_name or "").strip()
                record.contact = (contact or "").strip() or None
                await session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to register user %s", cleaned_id)
            raise PersistenceError("Could not save user profile") from exc

        profile = await self.get(cleaned_id)
        if profile is None:  # pragma: no cover - record was just committed
            raise PersistenceError("User profile vanished after registration")
        return profile

    async def set_active(self, user_id: str, active: bool) -> UserProfile:
        """Enable or disable an account; raises ``KeyError`` for unknown users."""

        try:
            async with self._session_factory() as session:
                record = await session.get(UserRecord, user_id)
                if record is None:
                    raise KeyError(f"User {user_id} not found")
                record.active = active
                await session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to update user %s", user_id)
            raise PersistenceError("Could not update user profile") from exc

        logger.info("User %s %s", user_id, "activated" if active else "deactivated")
        profile = await self.get(user_id)
        if profile is None:  # pragma: no cover - record was just committed
            raise KeyError(f"User {user_id} not found")
        return profile

    @staticmethod
    def _record_to_profile(record: UserRecord) -> UserProfile:
        return UserProfile(
            user_id=record.id,
            display_name=record.display_name or "",
            contact=record.contact,
            active=record.active,
            favorites=tuple(favorite_to_entry(item) for item in record.favorites),
        )


def favorite_to_entry(record: FavoriteRecord) -> MovieEntry:
    """Rebuild the movie entry stored with a favorite row."""

    return MovieEntry(
        id=record.movie_id,
        title=record.title,
        origin=record.origin,  # type: ignore[arg-type]
        poster_ref=record.poster_ref,
        release_date=record.release_date,
        category_ids=tuple(record.category_ids or ()),
        category=record.category,
        description=record.description,
    )
