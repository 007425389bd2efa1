"""Paged access to The Movie Database (TMDB) discover endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import ProviderError
from ..models import ExternalPage, MovieEntry

logger = logging.getLogger(__name__)

# TMDB rejects discover requests for pages beyond this limit.
MAX_DISCOVER_PAGE = 500


class TMDBClient:
    """Catalog provider returning one page of movies for a genre."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def _auth(self) -> tuple[dict[str, str], dict[str, str]]:
        """Return (params, headers) carrying whichever credential is configured."""

        if self._settings.tmdb_read_token:
            return {}, {"Authorization": f"Bearer {self._settings.tmdb_read_token}"}
        if self._settings.tmdb_api_key:
            return {"api_key": self._settings.tmdb_api_key}, {}
        raise ProviderError("TMDB credentials are not configured")

    async def fetch_page(self, category_id: int, page_number: int) -> ExternalPage:
        """Fetch ``page_number`` of movies discovered for ``category_id``."""

        if page_number < 1:
            raise ValueError("page_number must be at least 1")

        auth_params, headers = self._auth()
        params: dict[str, Any] = {
            "with_genres": category_id,
            "page": page_number,
            **auth_params,
        }
        try:
            response = await self._client.get(
                "/discover/movie", params=params, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "TMDB discover for genre %s page %s failed with status %s",
                category_id,
                page_number,
                exc.response.status_code,
            )
            raise ProviderError(
                f"TMDB returned {exc.response.status_code} for genre {category_id}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning(
                "TMDB discover for genre %s page %s failed: %s",
                category_id,
                page_number,
                exc,
            )
            raise ProviderError(f"Could not reach TMDB: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError("TMDB returned a non-JSON response") from exc

        return self._parse_page(payload, category_id=category_id, page_number=page_number)

    @classmethod
    def _parse_page(
        cls, payload: object, *, category_id: int, page_number: int
    ) -> ExternalPage:
        if not isinstance(payload, dict):
            raise ProviderError("TMDB response is not an object")
        results = payload.get("results")
        if not isinstance(results, list):
            raise ProviderError("TMDB response is missing a results list")

        items: list[MovieEntry] = []
        for raw in results:
            if not isinstance(raw, dict):
                continue
            try:
                items.append(MovieEntry.from_tmdb(raw))
            except ValidationError as exc:
                logger.debug(
                    "Skipping malformed TMDB result %r: %s", raw.get("id"), exc
                )

        # A catalog that shrank since the last page still reports the page we asked for.
        total_pages = max(cls._clamp_total_pages(payload.get("total_pages")), page_number)
        return ExternalPage(
            category_id=category_id,
            page_number=page_number,
            total_pages=total_pages,
            items=tuple(items),
        )

    @staticmethod
    def _clamp_total_pages(value: object) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ProviderError("TMDB response has no usable total_pages")
        try:
            total = int(value)
        except (ValueError, OverflowError) as exc:
            raise ProviderError("TMDB response has no usable total_pages") from exc
        # An empty genre still renders as a single page.
        total = max(total, 1)
        return min(total, MAX_DISCOVER_PAGE)
