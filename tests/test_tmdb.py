"""Tests for the TMDB discover client."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from app.config import Settings
from app.errors import ProviderError
from app.services.tmdb import MAX_DISCOVER_PAGE, TMDBClient


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {"_env_file": None, "TMDB_API_KEY": "tmdb-key"}
    base.update(overrides)
    return Settings(**base)  # type: ignore[arg-type]


def discover_payload(page: int, total_pages: int = 12) -> dict[str, Any]:
    return {
        "page": page,
        "total_pages": total_pages,
        "total_results": total_pages * 20,
        "results": [
            {
                "id": 603,
                "title": "The Matrix",
                "poster_path": "/matrix.jpg",
                "genre_ids": [28, 878],
                "release_date": "1999-03-30",
                "overview": "A hacker learns the truth.",
                "popularity": 81.2,
            },
            {
                "id": 604,
                "title": "The Matrix Reloaded",
                "poster_path": None,
                "genre_ids": [28],
                "release_date": "",
                "overview": "",
            },
        ],
    }


@pytest.mark.anyio("asyncio")
async def test_fetch_page_requests_genre_and_page() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=discover_payload(int(request.url.params["page"])))

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        page = await client.fetch_page(28, 2)

    assert requests[0].url.path == "/3/discover/movie"
    assert requests[0].url.params["with_genres"] == "28"
    assert requests[0].url.params["page"] == "2"
    assert requests[0].url.params["api_key"] == "tmdb-key"

    assert page.page_number == 2
    assert page.total_pages == 12
    first, second = page.items
    assert first.key == ("external", "603")
    assert first.poster_ref == "/matrix.jpg"
    assert first.category_ids == (28, 878)
    assert first.release_date is not None and first.release_date.year == 1999
    assert first.description == "A hacker learns the truth."
    assert second.release_date is None
    assert second.poster_ref is None
    assert second.description is None


@pytest.mark.anyio("asyncio")
async def test_read_token_is_sent_as_bearer_header() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=discover_payload(1))

    transport = httpx.MockTransport(handler)
    settings = build_settings(TMDB_API_KEY=None, TMDB_READ_TOKEN="read-token")
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        await TMDBClient(settings, http_client).fetch_page(35, 1)

    assert seen[0].headers["Authorization"] == "Bearer read-token"
    assert "api_key" not in seen[0].url.params


@pytest.mark.anyio("asyncio")
async def test_error_status_raises_provider_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"status_message": "unavailable"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(ProviderError):
            await client.fetch_page(28, 1)


@pytest.mark.anyio("asyncio")
async def test_transport_error_raises_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(ProviderError):
            await client.fetch_page(28, 1)


@pytest.mark.anyio("asyncio")
async def test_malformed_payload_raises_provider_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"results": "nope", "total_pages": 3})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(), http_client)
        with pytest.raises(ProviderError):
            await client.fetch_page(28, 1)


@pytest.mark.anyio("asyncio")
async def test_missing_credentials_fail_before_any_request() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=discover_payload(1))

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com/3") as http_client:
        client = TMDBClient(build_settings(TMDB_API_KEY=None), http_client)
        with pytest.raises(ProviderError):
            await client.fetch_page(28, 1)

    assert requests == []


def test_parse_page_skips_malformed_results_and_clamps_pages() -> None:
    payload = {
        "total_pages": 38_000,
        "results": [
            {"id": 1, "title": "Keep Me"},
            {"id": 2, "title": "   "},
            {"title": "No Id"},
            "garbage",
        ],
    }

    page = TMDBClient._parse_page(payload, category_id=28, page_number=1)

    assert [movie.title for movie in page.items] == ["Keep Me"]
    assert page.total_pages == MAX_DISCOVER_PAGE


def test_parse_page_treats_empty_genre_as_single_page() -> None:
    page = TMDBClient._parse_page(
        {"results": [], "total_pages": 0}, category_id=28, page_number=1
    )

    assert page.items == ()
    assert page.total_pages == 1


@pytest.mark.parametrize("total_pages", [float("inf"), float("nan"), "Infinity", "many"])
def test_parse_page_rejects_non_numeric_total_pages(total_pages: object) -> None:
    with pytest.raises(ProviderError, match="total_pages"):
        TMDBClient._parse_page(
            {"results": [], "total_pages": total_pages}, category_id=28, page_number=1
        )
