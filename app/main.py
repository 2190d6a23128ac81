"""Entry point for the FastAPI-powered catalog service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Literal, TypeVar

import httpx
from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from .config import Settings, settings
from .database import Database
from .models import (
    Ad,
    AdminCreateUserRequest,
    ContactCategory,
    ContactMessage,
    ContentItem,
    EmailConfig,
    Page,
    PasswordChangeRequest,
    PasswordResetConfirm,
    PasswordResetRequest,
    ProfileUpdate,
    RatingRequest,
    SignInRequest,
    SignUpRequest,
    TokenPayload,
    UserFlagsUpdate,
    UserProfile,
)
from .services.ads import AdService
from .services.auth import AuthError, AuthErrorCode, AuthService
from .services.contact import ContactService
from .services.documents import DocumentStore
from .services.favorites import FavoritesStore
from .services.genres import GenreService
from .services.pages import PageService
from .services.ratings import RATINGS_STORAGE_KEY, CookieStorage, RatingsStore
from .services.search import SearchAggregator, filter_search_results
from .services.session import SessionContext
from .services.tmdb import TMDBClient, TMDBError, streaming_availability

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI

ModelT = TypeVar("ModelT", bound=BaseModel)
ResultT = TypeVar("ResultT")

AUTH_ERROR_STATUS: dict[AuthErrorCode, int] = {
    AuthErrorCode.NOT_REGISTERED: 401,
    AuthErrorCode.INVALID_CREDENTIALS: 401,
    AuthErrorCode.NOT_AUTHENTICATED: 401,
    AuthErrorCode.ACCOUNT_SUSPENDED: 403,
    AuthErrorCode.EMAIL_IN_USE: 409,
    AuthErrorCode.WEAK_PASSWORD: 400,
    AuthErrorCode.INVALID_TOKEN: 400,
}


@dataclass(slots=True)
class AppServices:
    """Long-lived collaborators shared by every request."""

    settings: Settings
    documents: DocumentStore
    auth: AuthService
    pages: PageService
    ads: AdService
    contact: ContactService
    tmdb: TMDBClient | None = None
    genres: GenreService | None = None


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()
    documents = DocumentStore(database.session_factory)

    tmdb: TMDBClient | None = None
    if settings.tmdb_api_key:
        tmdb = TMDBClient(settings, tmdb_http_client)
    else:
        logger.warning("TMDB_API_KEY is not configured; catalog routes are disabled")

    fastapi_app.state.services = AppServices(
        settings=settings,
        documents=documents,
        auth=AuthService(settings, database.session_factory, documents),
        pages=PageService(documents),
        ads=AdService(documents),
        contact=ContactService(documents),
        tmdb=tmdb,
        genres=GenreService(tmdb) if tmdb is not None else None,
    )
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        documents.close()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie and TV catalog browser backed by TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_services(app: FastAPI) -> AppServices:
    services = getattr(app.state, "services", None)
    if not isinstance(services, AppServices):
        raise RuntimeError("Application services not initialised")
    return services


def _require_tmdb(services: AppServices) -> TMDBClient:
    if services.tmdb is None:
        raise HTTPException(status_code=503, detail="Catalog is not configured")
    return services.tmdb


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _bearer_token(request: Request | WebSocket) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    token = request.query_params.get("token")
    return token or None


async def _parse_body(request: Request, model: type[ModelT]) -> ModelT:
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return _validate(model, payload)


def _validate(model: type[ModelT], payload: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc


async def _json_object(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")
    return payload


async def _current_session(services: AppServices, request: Request) -> SessionContext:
    token = _bearer_token(request)
    user = await services.auth.resolve_session(token)
    return SessionContext(user=user, token=token)


async def _require_user(services: AppServices, request: Request) -> SessionContext:
    session = await _current_session(services, request)
    if not session.is_authenticated:
        raise AuthError(AuthErrorCode.NOT_AUTHENTICATED)
    return session


async def _require_profile(services: AppServices, request: Request) -> UserProfile:
    session = await _require_user(services, request)
    if session.user is None:
        raise AuthError(AuthErrorCode.NOT_AUTHENTICATED)
    return session.user


async def _require_admin(services: AppServices, request: Request) -> UserProfile:
    user = await _require_profile(services, request)
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return user


async def _guard(call: Awaitable[ResultT]) -> ResultT:
    """Translate service-level errors into HTTP responses."""

    try:
        return await call
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Not found: {exc.args[0]}") from exc
    except ValidationError as exc:
        raise HTTPException(
            status_code=400,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(AuthError)
    async def auth_error_handler(_: Request, exc: AuthError) -> JSONResponse:
        return JSONResponse(
            exc.to_payload(), status_code=AUTH_ERROR_STATUS.get(exc.code, 400)
        )

    @fastapi_app.exception_handler(TMDBError)
    async def tmdb_error_handler(_: Request, exc: TMDBError) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse(
                {"error": "not_found", "description": f"No catalog entry at {exc.endpoint}"},
                status_code=404,
            )
        logger.warning("Catalog request failed at %s: %s", exc.endpoint, exc)
        return JSONResponse(
            {"error": "catalog_unavailable", "description": str(exc)}, status_code=502
        )

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    # Catalog -------------------------------------------------------------

    @fastapi_app.get("/api/genres")
    async def list_genres() -> JSONResponse:
        services = get_services(fastapi_app)
        if services.genres is None:
            raise HTTPException(status_code=503, detail="Catalog is not configured")
        genres = await services.genres.load_all()
        return JSONResponse({"genres": [_dump(genre) for genre in genres]})

    @fastapi_app.get("/api/genres/{kind}")
    async def list_genres_by_kind(kind: Literal["movie", "tv"]) -> JSONResponse:
        tmdb = _require_tmdb(get_services(fastapi_app))
        if kind == "movie":
            genres = await tmdb.get_movie_genres()
        else:
            genres = await tmdb.get_tv_genres()
        return JSONResponse({"genres": [_dump(genre) for genre in genres]})

    @fastapi_app.get("/api/movies")
    async def list_movies(
        filter: str = "popular", genre: int | None = None, page: int = 1
    ) -> JSONResponse:
        tmdb = _require_tmdb(get_services(fastapi_app))
        result = await _guard(tmdb.get_movies_by_filter(filter, genre, page))
        return JSONResponse(_dump(result))

    @fastapi_app.get("/api/tv")
    async def list_tv_shows(
        filter: str = "popular", genre: int | None = None, page: int = 1
    ) -> JSONResponse:
        tmdb = _require_tmdb(get_services(fastapi_app))
        result = await _guard(tmdb.get_tv_shows_by_filter(filter, genre, page))
        return JSONResponse(_dump(result))

    @fastapi_app.get("/api/latest/{kind}")
    async def list_latest(
        kind: Literal["movie", "tv"], genre: int | None = None, page: int = 1
    ) -> JSONResponse:
        tmdb = _require_tmdb(get_services(fastapi_app))
        if kind == "movie":
            result = await _guard(tmdb.get_latest_movies(genre, page))
        else:
            result = await _guard(tmdb.get_latest_tv_shows(genre, page))
        return JSONResponse(_dump(result))

    @fastapi_app.get("/api/movies/{movie_id}")
    async def movie_details(movie_id: int) -> JSONResponse:
        tmdb = _require_tmdb(get_services(fastapi_app))
        return JSONResponse(_dump(await tmdb.get_movie_details(movie_id)))

    @fastapi_app.get("/api/tv/{show_id}")
    async def tv_show_details(show_id: int) -> JSONResponse:
        tmdb = _require_tmdb(get_services(fastapi_app))
        return JSONResponse(_dump(await tmdb.get_tv_show_details(show_id)))

    @fastapi_app.get("/api/people/{person_id}")
    async def person_details(person_id: int) -> JSONResponse:
        tmdb = _require_tmdb(get_services(fastapi_app))
        return JSONResponse(_dump(await tmdb.get_person_details(person_id)))

    @fastapi_app.get("/api/streaming")
    async def streaming_offers() -> JSONResponse:
        return JSONResponse(_dump(streaming_availability()))

    @fastapi_app.get("/api/search")
    async def search(q: str = "") -> JSONResponse:
        services = get_services(fastapi_app)
        tmdb = _require_tmdb(services)
        raw_results = await tmdb.search_multi(q)
        results = filter_search_results(
            raw_results, image_base_url=str(services.settings.tmdb_image_base_url)
        )
        return JSONResponse({"query": q, "results": [_dump(result) for result in results]})

    @fastapi_app.websocket("/ws/search")
    async def search_socket(websocket: WebSocket) -> None:
        services = get_services(fastapi_app)
        if services.tmdb is None:
            await websocket.close(code=1013)
            return
        await websocket.accept()
        aggregator = SearchAggregator(
            services.tmdb.search_multi,
            debounce_seconds=services.settings.search_debounce_seconds,
            image_base_url=str(services.settings.tmdb_image_base_url),
        )
        aggregator.subscribe(lambda state: websocket.send_json(state.to_payload()))
        try:
            while True:
                aggregator.set_query(await websocket.receive_text())
        except WebSocketDisconnect:
            pass
        finally:
            await aggregator.aclose()

    # Authentication -------------------------------------------------------

    @fastapi_app.post("/api/auth/signup")
    async def sign_up(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        payload = await _parse_body(request, SignUpRequest)
        result = await services.auth.sign_up(payload)
        return JSONResponse(
            {"token": result.token, "user": _dump(result.user)}, status_code=201
        )

    @fastapi_app.post("/api/auth/signin")
    async def sign_in(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        payload = await _parse_body(request, SignInRequest)
        result = await services.auth.sign_in(payload.email, payload.password)
        return JSONResponse({"token": result.token, "user": _dump(result.user)})

    @fastapi_app.post("/api/auth/signout")
    async def sign_out(request: Request) -> dict[str, str]:
        services = get_services(fastapi_app)
        token = _bearer_token(request)
        if token:
            await services.auth.sign_out(token)
        return {"status": "signed_out"}

    @fastapi_app.post("/api/auth/password/reset")
    async def request_password_reset(request: Request) -> dict[str, str]:
        services = get_services(fastapi_app)
        payload = await _parse_body(request, PasswordResetRequest)
        await services.auth.request_password_reset(payload.email)
        return {"status": "sent"}

    @fastapi_app.post("/api/auth/password/reset/confirm")
    async def confirm_password_reset(request: Request) -> dict[str, str]:
        services = get_services(fastapi_app)
        payload = await _parse_body(request, PasswordResetConfirm)
        await services.auth.confirm_password_reset(payload.token, payload.password)
        return {"status": "updated"}

    @fastapi_app.post("/api/auth/password/change")
    async def change_password(request: Request) -> dict[str, str]:
        services = get_services(fastapi_app)
        user = await _require_profile(services, request)
        payload = await _parse_body(request, PasswordChangeRequest)
        await services.auth.change_password(
            user.uid, payload.current_password, payload.new_password
        )
        return {"status": "updated"}

    @fastapi_app.post("/api/auth/verify-email")
    async def request_email_verification(request: Request) -> dict[str, str]:
        services = get_services(fastapi_app)
        user = await _require_profile(services, request)
        await services.auth.request_email_verification(user.uid)
        return {"status": "sent"}

    @fastapi_app.post("/api/auth/verify-email/confirm")
    async def confirm_email(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        payload = await _parse_body(request, TokenPayload)
        profile = await services.auth.confirm_email(payload.token)
        return JSONResponse(_dump(profile))

    @fastapi_app.get("/api/me")
    async def current_user(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        user = await _require_profile(services, request)
        return JSONResponse(_dump(user))

    @fastapi_app.patch("/api/me")
    async def update_current_user(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        user = await _require_profile(services, request)
        payload = await _parse_body(request, ProfileUpdate)
        profile = await services.auth.update_profile(user.uid, payload)
        return JSONResponse(_dump(profile))

    # Favorites ------------------------------------------------------------

    @fastapi_app.get("/api/favorites")
    async def list_favorites(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        session = await _require_user(services, request)
        store = FavoritesStore(services.documents, session)
        try:
            await store.start()
            items = store.items()
        finally:
            await store.aclose()
        return JSONResponse({"favorites": [_dump(item) for item in items]})

    @fastapi_app.post("/api/favorites")
    async def add_favorite(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        session = await _require_user(services, request)
        item = await _parse_body(request, ContentItem)
        store = FavoritesStore(services.documents, session)
        try:
            await store.start()
            await store.add(item)
            favorite = store.is_favorite(item.id)
        finally:
            await store.aclose()
        return JSONResponse({"id": item.id, "favorite": favorite}, status_code=201)

    @fastapi_app.delete("/api/favorites/{content_id}")
    async def remove_favorite(request: Request, content_id: int) -> JSONResponse:
        services = get_services(fastapi_app)
        session = await _require_user(services, request)
        store = FavoritesStore(services.documents, session)
        try:
            await store.start()
            await store.remove(content_id)
            favorite = store.is_favorite(content_id)
        finally:
            await store.aclose()
        return JSONResponse({"id": content_id, "favorite": favorite})

    @fastapi_app.websocket("/ws/favorites")
    async def favorites_socket(websocket: WebSocket) -> None:
        services = get_services(fastapi_app)
        token = _bearer_token(websocket)
        user = await services.auth.resolve_session(token)
        if user is None:
            await websocket.close(code=4401)
            return
        await websocket.accept()
        store = FavoritesStore(services.documents, SessionContext(user=user, token=token))
        store.on_change(
            lambda records: websocket.send_json(
                {"favorites": [_dump(record.to_content_item()) for record in records]}
            )
        )
        try:
            await store.start()
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            await store.aclose()

    # Ratings --------------------------------------------------------------

    def _ratings_response(
        payload: Any, storage: CookieStorage, *, status_code: int = 200
    ) -> JSONResponse:
        response = JSONResponse(payload, status_code=status_code)
        services = get_services(fastapi_app)
        for key, value in storage.pending.items():
            response.set_cookie(
                key,
                value,
                max_age=services.settings.ratings_cookie_max_age,
                httponly=False,
                samesite="lax",
            )
        return response

    @fastapi_app.get("/api/ratings")
    async def list_ratings(request: Request) -> JSONResponse:
        store = RatingsStore(CookieStorage(request.cookies), key=RATINGS_STORAGE_KEY)
        return JSONResponse({"ratings": [_dump(record) for record in store.records]})

    @fastapi_app.get("/api/ratings/{content_id}")
    async def get_rating(request: Request, content_id: int) -> JSONResponse:
        store = RatingsStore(CookieStorage(request.cookies))
        return JSONResponse({"contentId": content_id, "rating": store.get_rating(content_id)})

    @fastapi_app.put("/api/ratings/{content_id}")
    async def rate_content(request: Request, content_id: int) -> JSONResponse:
        payload = await _parse_body(request, RatingRequest)
        storage = CookieStorage(request.cookies)
        store = RatingsStore(storage)
        try:
            record = store.rate(content_id, payload.rating)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return _ratings_response(_dump(record), storage)

    # Public content -------------------------------------------------------

    @fastapi_app.get("/api/pages")
    async def list_pages(location: Literal["navbar", "footer"] | None = None) -> JSONResponse:
        services = get_services(fastapi_app)
        if location is None:
            pages = await services.pages.get_visible_pages()
        else:
            pages = await services.pages.get_pages_by_location(location)
        return JSONResponse({"pages": [_dump(page) for page in pages]})

    @fastapi_app.get("/api/pages/{slug}")
    async def get_page(slug: str) -> JSONResponse:
        services = get_services(fastapi_app)
        page = await services.pages.get_visible_page(slug)
        if page is None:
            raise HTTPException(status_code=404, detail="Page not found")
        return JSONResponse(_dump(page))

    @fastapi_app.get("/api/ads/active")
    async def active_ad() -> JSONResponse:
        services = get_services(fastapi_app)
        ad = await services.ads.get_active_ad()
        return JSONResponse({"ad": _dump(ad) if ad is not None else None})

    @fastapi_app.get("/api/contact/categories")
    async def contact_categories() -> JSONResponse:
        services = get_services(fastapi_app)
        categories = await services.contact.get_categories(active_only=True)
        return JSONResponse({"categories": [_dump(category) for category in categories]})

    @fastapi_app.post("/api/contact")
    async def send_contact_message(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        message = await _parse_body(request, ContactMessage)
        stored = await services.contact.send_contact_message(message)
        return JSONResponse({"id": stored.id, "status": stored.status}, status_code=201)

    # Administration -------------------------------------------------------

    @fastapi_app.get("/api/admin/users")
    async def admin_list_users(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        users = await services.auth.list_users()
        return JSONResponse({"users": [_dump(user) for user in users]})

    @fastapi_app.post("/api/admin/users")
    async def admin_create_user(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        payload = await _parse_body(request, AdminCreateUserRequest)
        profile = await services.auth.create_user(payload, is_admin=payload.is_admin)
        return JSONResponse(_dump(profile), status_code=201)

    @fastapi_app.patch("/api/admin/users/{uid}")
    async def admin_update_user(request: Request, uid: str) -> JSONResponse:
        services = get_services(fastapi_app)
        admin = await _require_admin(services, request)
        payload = await _parse_body(request, UserFlagsUpdate)
        if uid == admin.uid and (payload.is_active is False or payload.is_admin is False):
            raise HTTPException(
                status_code=400, detail="Administrators cannot demote or suspend themselves"
            )
        profile = await services.auth.set_user_flags(
            uid, is_active=payload.is_active, is_admin=payload.is_admin
        )
        return JSONResponse(_dump(profile))

    @fastapi_app.get("/api/admin/pages")
    async def admin_list_pages(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        pages = await services.pages.get_all_pages()
        return JSONResponse({"pages": [_dump(page) for page in pages]})

    @fastapi_app.post("/api/admin/pages")
    async def admin_create_page(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        payload = await _json_object(request)
        payload.setdefault("id", "")
        page = await services.pages.create_page(_validate(Page, payload))
        return JSONResponse(_dump(page), status_code=201)

    @fastapi_app.patch("/api/admin/pages/{page_id}")
    async def admin_update_page(request: Request, page_id: str) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        updates = await _json_object(request)
        page = await _guard(services.pages.update_page(page_id, updates))
        return JSONResponse(_dump(page))

    @fastapi_app.get("/api/admin/ads")
    async def admin_list_ads(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        ads = await services.ads.get_all_ads()
        return JSONResponse({"ads": [_dump(ad) for ad in ads]})

    @fastapi_app.post("/api/admin/ads")
    async def admin_create_ad(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        ad = await _parse_body(request, Ad)
        created = await _guard(services.ads.create_ad(ad))
        return JSONResponse(_dump(created), status_code=201)

    @fastapi_app.patch("/api/admin/ads/{ad_id}")
    async def admin_update_ad(request: Request, ad_id: str) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        updates = await _json_object(request)
        ad = await _guard(services.ads.update_ad(ad_id, updates))
        return JSONResponse(_dump(ad))

    @fastapi_app.delete("/api/admin/ads/{ad_id}")
    async def admin_delete_ad(request: Request, ad_id: str) -> dict[str, str]:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        await services.ads.delete_ad(ad_id)
        return {"status": "deleted"}

    @fastapi_app.get("/api/admin/contact/categories")
    async def admin_list_categories(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        categories = await services.contact.get_categories()
        return JSONResponse({"categories": [_dump(category) for category in categories]})

    @fastapi_app.post("/api/admin/contact/categories")
    async def admin_create_category(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        category = await _parse_body(request, ContactCategory)
        created = await services.contact.create_category(category)
        return JSONResponse(_dump(created), status_code=201)

    @fastapi_app.patch("/api/admin/contact/categories/{category_id}")
    async def admin_update_category(request: Request, category_id: str) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        updates = await _json_object(request)
        category = await _guard(services.contact.update_category(category_id, updates))
        return JSONResponse(_dump(category))

    @fastapi_app.delete("/api/admin/contact/categories/{category_id}")
    async def admin_delete_category(request: Request, category_id: str) -> dict[str, str]:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        await services.contact.delete_category(category_id)
        return {"status": "deleted"}

    @fastapi_app.get("/api/admin/contact/email-configs")
    async def admin_list_email_configs(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        configs = await services.contact.get_email_configs()
        return JSONResponse({"emailConfigs": [_dump(config) for config in configs]})

    @fastapi_app.post("/api/admin/contact/email-configs")
    async def admin_create_email_config(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        config = await _parse_body(request, EmailConfig)
        created = await services.contact.create_email_config(config)
        return JSONResponse(_dump(created), status_code=201)

    @fastapi_app.patch("/api/admin/contact/email-configs/{config_id}")
    async def admin_update_email_config(request: Request, config_id: str) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        updates = await _json_object(request)
        config = await _guard(services.contact.update_email_config(config_id, updates))
        return JSONResponse(_dump(config))

    @fastapi_app.delete("/api/admin/contact/email-configs/{config_id}")
    async def admin_delete_email_config(request: Request, config_id: str) -> dict[str, str]:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        await services.contact.delete_email_config(config_id)
        return {"status": "deleted"}

    @fastapi_app.get("/api/admin/contact/messages")
    async def admin_list_messages(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        messages = await services.contact.get_messages()
        return JSONResponse({"messages": [_dump(message) for message in messages]})

    @fastapi_app.get("/api/admin/outbox")
    async def admin_list_outbox(request: Request) -> JSONResponse:
        services = get_services(fastapi_app)
        await _require_admin(services, request)
        emails = await services.auth.list_outbox()
        return JSONResponse({"emails": [_dump(email) for email in emails]})


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
