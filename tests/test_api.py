from __future__ import annotations

from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.config import Settings
from app.database import Database
from app.errors import ProviderError
from app.main import build_services, register_routes
from app.models import ExternalPage, MovieEntry


class FakeProvider:
    """Catalog provider serving two pages per category."""

    def __init__(self) -> None:
        self.failing = False

    async def fetch_page(self, category_id: int, page_number: int) -> ExternalPage:
        if self.failing:
            raise ProviderError("TMDB unavailable")
        items = (
            MovieEntry(id=category_id * 100 + page_number, title=f"Film {category_id}-{page_number}", origin="external"),
            MovieEntry(id=949, title="Heat", origin="external", poster_path="/heat.jpg"),
        )
        return ExternalPage(
            category_id=category_id,
            page_number=page_number,
            total_pages=2,
            items=items,
        )


def build_app(tmp_path, provider: FakeProvider) -> FastAPI:
    app_settings = Settings(_env_file=None, CATEGORY_IDS="28,35")
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")

    @asynccontextmanager
    async def lifespan(fastapi_app: FastAPI):
        await database.create_all()
        fastapi_app.state.services = build_services(
            app_settings, provider, database.session_factory
        )
        try:
            yield
        finally:
            await database.dispose()

    app = FastAPI(lifespan=lifespan)
    register_routes(app)
    return app


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def client(tmp_path, provider):
    with TestClient(build_app(tmp_path, provider)) as test_client:
        yield test_client


def sign_in(client: TestClient, user_id: str, display_name: str) -> str:
    response = client.post("/api/users", json={"userId": user_id, "displayName": display_name})
    assert response.status_code == 201
    response = client.post("/api/sessions", json={"userId": user_id})
    assert response.status_code == 201
    return response.json()["sessionId"]


def test_sign_in_requires_known_active_user(client: TestClient) -> None:
    assert client.post("/api/sessions", json={"userId": "ghost"}).status_code == 404
    assert client.post("/api/sessions", json={}).status_code == 400

    client.post("/api/users", json={"uid": "off", "email": "off@example.com"})
    response = client.post("/api/admin/users/off/active", json={"active": False})
    assert response.json()["active"] is False

    assert client.post("/api/sessions", json={"userId": "off"}).status_code == 403


def test_rows_merge_curated_movies_and_navigate(client: TestClient) -> None:
    created = client.post(
        "/api/admin/movies", json={"title": " heat ", "genre": "Action", "releaseDate": "1995-12-15"}
    )
    assert created.status_code == 201
    assert created.json()["addedByAdmin"] is True
    session_id = sign_in(client, "ana", "Ana")

    response = client.get(f"/api/sessions/{session_id}/rows")

    assert response.status_code == 200
    rows = response.json()["rows"]
    assert [row["categoryId"] for row in rows] == [28, 35]
    action = rows[0]
    assert [movie["title"] for movie in action["movies"]] == ["heat", "Film 28-1"]
    assert action["movies"][0]["poster"] == "/assets/default.jpg"
    assert action["hasPrevious"] is False and action["hasNext"] is True
    assert [movie["title"] for movie in rows[1]["movies"]] == ["Film 35-1", "Heat"]
    assert rows[1]["movies"][1]["poster"] == "https://image.tmdb.org/t/p/w300/heat.jpg"

    response = client.post(f"/api/sessions/{session_id}/rows/28/next")
    assert response.json()["row"]["page"] == 2
    response = client.post(f"/api/sessions/{session_id}/rows/28/next")
    assert response.json()["row"]["page"] == 2
    assert client.post(f"/api/sessions/{session_id}/rows/28/sideways").status_code == 400
    assert client.post(f"/api/sessions/{session_id}/rows/99/next").status_code == 404


def test_navigation_failure_surfaces_notification(client: TestClient, provider: FakeProvider) -> None:
    session_id = sign_in(client, "ana", "Ana")
    client.get(f"/api/sessions/{session_id}/rows")
    provider.failing = True

    response = client.post(f"/api/sessions/{session_id}/rows/35/next")

    assert response.status_code == 200
    assert response.json()["row"]["page"] == 1
    assert response.json()["notifications"] == ["Error loading movies"]
    assert client.get(f"/api/sessions/{session_id}/notifications").json() == {"notifications": []}


def test_toggle_favorites_and_find_matches(client: TestClient) -> None:
    ana = sign_in(client, "ana", "Ana")
    bo = sign_in(client, "bo", "Bo")
    heat = {"id": 949, "title": "Heat", "origin": "external"}

    response = client.post(f"/api/sessions/{bo}/favorites/toggle", json=heat)
    assert response.json()["favorite"] is True
    assert client.get(f"/api/sessions/{ana}/matches").json() == {"matches": [], "threshold": 75.0}

    response = client.post(f"/api/sessions/{ana}/favorites/toggle", json=heat)
    assert [movie["id"] for movie in response.json()["favorites"]] == ["949"]

    matches = client.get(f"/api/sessions/{ana}/matches").json()["matches"]
    assert [(match["userId"], match["matchPercentage"]) for match in matches] == [("bo", 100.0)]

    response = client.post(f"/api/sessions/{ana}/favorites/toggle", json=heat)
    assert response.json() == {"favorite": False, "favorites": []}
    assert client.post(f"/api/sessions/{ana}/favorites/toggle", json={"id": 1}).status_code == 400


def test_signed_out_session_is_rejected(client: TestClient) -> None:
    session_id = sign_in(client, "ana", "Ana")

    assert client.delete(f"/api/sessions/{session_id}").status_code == 200
    assert client.get(f"/api/sessions/{session_id}/rows").status_code == 404
    assert client.delete(f"/api/sessions/{session_id}").status_code == 404


def test_admin_listing_and_validation(client: TestClient) -> None:
    sign_in(client, "ana", "Ana")

    assert client.post("/api/admin/movies", json={"title": "Heat", "genre": " "}).status_code == 400
    assert client.post("/api/admin/users/nobody/active", json={"active": True}).status_code == 404

    users = client.get("/api/admin/users").json()["users"]
    assert [user["userId"] for user in users] == ["ana"]
    assert client.get("/api/admin/movies").json() == {"movies": []}
    assert client.get("/healthz").json() == {"status": "ok"}


def test_rows_recover_after_a_failed_first_load(client: TestClient, provider: FakeProvider) -> None:
    session_id = sign_in(client, "ana", "Ana")
    provider.failing = True

    first = client.get(f"/api/sessions/{session_id}/rows").json()
    assert first == {"rows": [], "notifications": ["Error loading movies", "Error loading movies"]}

    provider.failing = False
    rows = client.get(f"/api/sessions/{session_id}/rows").json()["rows"]

    assert [(row["categoryId"], row["page"]) for row in rows] == [(28, 1), (35, 1)]
