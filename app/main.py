"""Entry point for the FastAPI-powered ReelMates service."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from . import __version__
from .config import Settings, settings
from .database import Database
from .errors import PersistenceError, PreconditionError, ProviderError, ReelMatesError
from .models import CategoryPage, MovieEntry
from .services.affinity import MatchService
from .services.browse import BrowseSession, SessionRegistry
from .services.curated import CuratedStore
from .services.favorites import FavoritesService, FavoritesStore
from .services.merger import CatalogMerger
from .services.pagination import CatalogProvider
from .services.session import SessionWatcher
from .services.tmdb import TMDBClient
from .services.users import UserDirectory

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class RegisterUserRequest(BaseModel):
    user_id: str = Field(validation_alias=AliasChoices("userId", "user_id", "uid"))
    display_name: str = Field(
        default="", validation_alias=AliasChoices("displayName", "display_name")
    )
    contact: str | None = Field(
        default=None, validation_alias=AliasChoices("contact", "email")
    )


class SignInRequest(BaseModel):
    user_id: str = Field(validation_alias=AliasChoices("userId", "user_id", "uid"))


class CuratedMovieRequest(BaseModel):
    title: str
    category: str = Field(validation_alias=AliasChoices("category", "genre"))
    poster_ref: str | None = Field(
        default=None, validation_alias=AliasChoices("posterRef", "poster_ref")
    )
    release_date: date | None = Field(
        default=None, validation_alias=AliasChoices("releaseDate", "release_date")
    )
    description: str | None = None


class ActiveRequest(BaseModel):
    active: bool


@dataclass
class ServiceContainer:
    """Long-lived services shared by every request."""

    settings: Settings
    users: UserDirectory
    curated: CuratedStore
    favorites: FavoritesService
    matches: MatchService
    sessions: SessionRegistry


def build_services(
    app_settings: Settings,
    provider: CatalogProvider,
    session_factory: async_sessionmaker[AsyncSession],
) -> ServiceContainer:
    users = UserDirectory(session_factory)
    curated = CuratedStore(session_factory)
    favorites = FavoritesService(FavoritesStore(session_factory))
    matches = MatchService(users, favorites, threshold=app_settings.match_threshold)
    merger = CatalogMerger()

    def _release_user(user_id: str) -> None:
        favorites.release(user_id)
        matches.release(user_id)

    def _open_session(session_id: str, watcher: SessionWatcher) -> BrowseSession:
        return BrowseSession(
            session_id,
            watcher,
            provider=provider,
            curated_store=curated,
            favorites=favorites,
            matches=matches,
            category_ids=app_settings.category_ids,
            fetch_timeout=app_settings.fetch_timeout_seconds,
            merger=merger,
        )

    return ServiceContainer(
        settings=app_settings,
        users=users,
        curated=curated,
        favorites=favorites,
        matches=matches,
        sessions=SessionRegistry(
            _open_session,
            max_sessions=app_settings.max_sessions,
            on_release=_release_user,
        ),
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(settings.fetch_timeout_seconds, connect=5.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    services = build_services(
        settings, TMDBClient(settings, tmdb_http_client), database.session_factory
    )
    fastapi_app.state.services = services
    logger.info(
        "Serving category rows %s from %s",
        ", ".join(category.name for category in settings.categories),
        settings.tmdb_api_url,
    )

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        services.sessions.close_all()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Browse movies by category, keep favorites and find people with your taste",
        version=__version__,
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_services(app: FastAPI) -> ServiceContainer:
    services = getattr(app.state, "services", None)
    if not isinstance(services, ServiceContainer):
        raise RuntimeError("Services not initialised")
    return services


def _http_error(exc: Exception) -> HTTPException:
    """Translate a service exception into the matching HTTP error."""

    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=exc.errors(include_context=False))
    if isinstance(exc, PreconditionError):
        return HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, PermissionError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, KeyError):
        return HTTPException(status_code=404, detail=exc.args[0] if exc.args else "Not found")
    if isinstance(exc, ProviderError):
        return HTTPException(status_code=502, detail=str(exc))
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, (ValueError, ReelMatesError)):
        return HTTPException(status_code=400, detail=str(exc))
    raise exc


HANDLED_ERRORS = (KeyError, ValueError, PermissionError, ReelMatesError)


def register_routes(fastapi_app: FastAPI) -> None:
    async def _read_json(request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = {}
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")
        return payload

    def _movie_payload(movie: MovieEntry) -> dict[str, object]:
        app_settings = get_services(fastapi_app).settings
        return movie.to_payload(
            image_base_url=app_settings.tmdb_image_base_url,
            placeholder=app_settings.poster_placeholder,
        )

    def _row_payload(page: CategoryPage) -> dict[str, object]:
        app_settings = get_services(fastapi_app).settings
        return page.to_payload(
            image_base_url=app_settings.tmdb_image_base_url,
            placeholder=app_settings.poster_placeholder,
        )

    def _session(session_id: str) -> BrowseSession:
        try:
            return get_services(fastapi_app).sessions.get(session_id)
        except KeyError as exc:
            raise _http_error(exc) from exc

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/api/users")
    async def register_user(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        payload = await _read_json(request)
        try:
            body = RegisterUserRequest.model_validate(payload)
            profile = await services.users.register(
                body.user_id, body.display_name, body.contact
            )
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse(profile.to_payload(), status_code=201)

    @fastapi_app.post("/api/sessions")
    async def sign_in(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        payload = await _read_json(request)
        try:
            body = SignInRequest.model_validate(payload)
            profile = await services.users.get(body.user_id)
            if profile is None:
                raise KeyError(f"User {body.user_id} not found")
            session = services.sessions.open(profile)
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse(
            {"sessionId": session.id, "user": profile.to_payload()}, status_code=201
        )

    @fastapi_app.delete("/api/sessions/{session_id}")
    async def sign_out(session_id: str) -> dict[str, str]:
        try:
            get_services(fastapi_app).sessions.close(session_id)
        except KeyError as exc:
            raise _http_error(exc) from exc
        return {"status": "signed-out"}

    @fastapi_app.get("/api/sessions/{session_id}/rows")
    async def list_rows(session_id: str) -> JSONResponse:
        session = _session(session_id)
        try:
            pages = await session.rows()
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse(
            {
                "rows": [_row_payload(page) for page in pages],
                "notifications": session.drain_notices(),
            }
        )

    @fastapi_app.post("/api/sessions/{session_id}/rows/{category_id}/{direction}")
    async def navigate_row(session_id: str, category_id: int, direction: str) -> JSONResponse:
        session = _session(session_id)
        try:
            page = await session.advance(category_id, direction)  # type: ignore[arg-type]
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse(
            {"row": _row_payload(page), "notifications": session.drain_notices()}
        )

    @fastapi_app.get("/api/sessions/{session_id}/favorites")
    async def list_favorites(session_id: str) -> JSONResponse:
        session = _session(session_id)
        try:
            favorites = await session.favorites()
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse({"favorites": [_movie_payload(movie) for movie in favorites]})

    @fastapi_app.post("/api/sessions/{session_id}/favorites/toggle")
    async def toggle_favorite(session_id: str, request: Request) -> JSONResponse:
        session = _session(session_id)
        payload = await _read_json(request)
        try:
            movie = MovieEntry.model_validate(payload)
            is_favorite = await session.toggle_favorite(movie)
            favorites = await session.favorites()
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse(
            {
                "favorite": is_favorite,
                "favorites": [_movie_payload(item) for item in favorites],
            }
        )

    @fastapi_app.get("/api/sessions/{session_id}/matches")
    async def list_matches(session_id: str) -> JSONResponse:
        session = _session(session_id)
        try:
            results = await session.matches()
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse(
            {
                "matches": [result.to_payload() for result in results],
                "threshold": get_services(fastapi_app).matches.threshold,
            }
        )

    @fastapi_app.get("/api/sessions/{session_id}/notifications")
    async def drain_notifications(session_id: str) -> dict[str, list[str]]:
        return {"notifications": _session(session_id).drain_notices()}

    @fastapi_app.get("/api/admin/movies")
    async def list_curated_movies() -> JSONResponse:
        services = get_services(fastapi_app)
        try:
            movies = await services.curated.list_all()
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse({"movies": [_movie_payload(movie) for movie in movies]})

    @fastapi_app.post("/api/admin/movies")
    async def add_curated_movie(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        payload = await _read_json(request)
        try:
            body = CuratedMovieRequest.model_validate(payload)
            movie = await services.curated.add(
                body.title,
                body.category,
                poster_ref=body.poster_ref,
                release_date=body.release_date,
                description=body.description,
            )
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse(_movie_payload(movie), status_code=201)

    @fastapi_app.get("/api/admin/users")
    async def list_users() -> JSONResponse:
        services = get_services(fastapi_app)
        try:
            profiles = await services.users.list_all()
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse({"users": [profile.to_payload() for profile in profiles]})

    @fastapi_app.post("/api/admin/users/{user_id}/active")
    async def set_user_active(user_id: str, request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        payload = await _read_json(request)
        try:
            body = ActiveRequest.model_validate(payload)
            profile = await services.users.set_active(user_id, body.active)
        except HANDLED_ERRORS as exc:
            raise _http_error(exc) from exc
        return JSONResponse(profile.to_payload())


app = create_app()
