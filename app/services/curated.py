"""Administrator-curated movies stored alongside user data."""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import CuratedMovieRecord
from ..errors import PersistenceError
from ..models import MovieEntry

logger = logging.getLogger(__name__)


class CuratedStore:
    """Reads and writes the curated movie collection."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_all(self) -> list[MovieEntry]:
        """Return every curated movie in the order it was added."""

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(CuratedMovieRecord).order_by(CuratedMovieRecord.id)
                )
                records = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.exception("Failed to load curated movies")
            raise PersistenceError("Could not load curated movies") from exc
        return [self._record_to_entry(record) for record in records]

    async def add(
        self,
        title: str,
        category: str,
        *,
        poster_ref: str | None = None,
        release_date: date | None = None,
        description: str | None = None,
    ) -> MovieEntry:
        """Store a new curated movie tagged with a free-text category name."""

        cleaned_title = (title or "").strip()
        cleaned_category = (category or "").strip()
        if not cleaned_title or not cleaned_category:
            raise ValueError("Please fill in the movie title and genre.")

        record = CuratedMovieRecord(
            title=cleaned_title,
            category=cleaned_category,
            poster_ref=(poster_ref or "").strip() or None,
            release_date=release_date,
            description=(description or "").strip() or None,
        )
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to store curated movie %s", cleaned_title)
            raise PersistenceError("Could not store curated movie") from exc

        logger.info("Curated movie %s added to %s", cleaned_title, cleaned_category)
        return self._record_to_entry(record)

    @staticmethod
    def _record_to_entry(record: CuratedMovieRecord) -> MovieEntry:
        return MovieEntry(
            id=str(record.id),
            title=record.title,
            origin="curated",
            poster_ref=record.poster_ref,
            release_date=record.release_date,
            category=record.category,
            description=record.description,
        )
