"""Client for The Movie Database (TMDB) catalog API."""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta
from typing import Any, Callable, Literal, Mapping, Sequence

import httpx

from ..config import IMAGE_SIZES, Settings
from ..models import (
    ContentItem,
    ContentPage,
    ContentType,
    Genre,
    PersonCredit,
    PersonDetails,
    PricedOffer,
    StreamingAvailability,
    StreamingService,
)
from ..utils import build_image_url, subtract_months, utc_today

logger = logging.getLogger(__name__)

MOVIE_FILTERS: tuple[str, ...] = ("popular", "top_rated", "upcoming", "now_playing")
TV_FILTERS: tuple[str, ...] = ("popular", "top_rated", "on_the_air", "airing_today")

# TMDB pages never hold more than 20 results; listing enrichment stops there.
MAX_PAGE_SIZE = 20
TOP_RATED_MIN_VOTES = 100
LATEST_WINDOW_DAYS = 30
LIST_APPEND = "credits,videos"
DETAIL_APPEND = "credits,videos,similar"

EnrichmentPolicy = Literal["fail", "partial"]

STREAMING_SERVICES: dict[str, StreamingService] = {
    service.id: service
    for service in (
        StreamingService(
            id="netflix",
            name="Netflix",
            logo="/images/services/netflix.svg",
            url="https://www.netflix.com",
        ),
        StreamingService(
            id="prime",
            name="Amazon Prime Video",
            logo="/images/services/prime.svg",
            url="https://www.primevideo.com",
        ),
        StreamingService(
            id="appletv",
            name="Apple TV",
            logo="/images/services/appletv.svg",
            url="https://tv.apple.com",
        ),
        StreamingService(
            id="googleplay",
            name="Google Play Movies",
            logo="/images/services/googleplay.svg",
            url="https://play.google.com/store/movies",
        ),
        StreamingService(
            id="max",
            name="Max",
            logo="/images/services/max.svg",
            url="https://www.max.com",
        ),
        StreamingService(
            id="youtube",
            name="YouTube",
            logo="/images/services/youtube.svg",
            url="https://www.youtube.com",
        ),
        StreamingService(
            id="microsoft",
            name="Microsoft Store",
            logo="/images/services/microsoft.svg",
            url="https://www.microsoft.com/store/movies-and-tv",
        ),
    )
}


def streaming_availability() -> StreamingAvailability:
    """Return the curated streaming offers shown on detail pages.

    TMDB exposes no pricing, so every title gets the same curated offers.
    """

    services = STREAMING_SERVICES
    return StreamingAvailability(
        subscription=[services["netflix"], services["prime"], services["max"]],
        rental=[
            PricedOffer(service=services["googleplay"], price=3.99),
            PricedOffer(service=services["appletv"], price=4.99),
            PricedOffer(service=services["youtube"], price=3.99),
        ],
        purchase=[
            PricedOffer(service=services["googleplay"], price=9.99),
            PricedOffer(service=services["appletv"], price=11.99),
            PricedOffer(service=services["microsoft"], price=9.99),
        ],
    )


class TMDBError(RuntimeError):
    """Raised when TMDB cannot satisfy a request."""

    def __init__(self, message: str, *, endpoint: str, status_code: int | None = None):
        super().__init__(message)
        self.endpoint = endpoint
        self.status_code = status_code


class TMDBClient:
    """Translate catalog queries into TMDB requests and enrich the results."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        today: Callable[[], date] = utc_today,
    ):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client
        self._today = today
        self._image_base = str(settings.tmdb_image_base_url)
        self._semaphore = asyncio.Semaphore(settings.enrichment_concurrency)

    def image_url(self, path: str | None, size: str = "w500") -> str:
        """Return the CDN URL for ``path`` or the placeholder image."""

        if size not in IMAGE_SIZES:
            raise ValueError(f"Unsupported image size: {size}")
        return (
            build_image_url(self._image_base, path, size)
            or self._settings.placeholder_image
        )

    async def get_movie_genres(self) -> list[Genre]:
        data = await self._get("/genre/movie/list")
        return [Genre.model_validate(entry) for entry in data.get("genres") or []]

    async def get_tv_genres(self) -> list[Genre]:
        data = await self._get("/genre/tv/list")
        return [Genre.model_validate(entry) for entry in data.get("genres") or []]

    def movie_query(
        self, filter_name: str, genre_id: int | None = None, page: int = 1
    ) -> tuple[str, dict[str, Any]]:
        """Return the endpoint and parameters for a movie listing."""

        if filter_name not in MOVIE_FILTERS:
            raise ValueError(f"Unknown movie filter: {filter_name}")
        params = self._page_params(genre_id, page)
        today = self._today()
        if filter_name == "top_rated":
            params["sort_by"] = "vote_average.desc"
            params["vote_count.gte"] = TOP_RATED_MIN_VOTES
        elif filter_name == "upcoming":
            params["sort_by"] = "primary_release_date.asc"
            params["primary_release_date.gte"] = today.isoformat()
        elif filter_name == "now_playing":
            params["sort_by"] = "primary_release_date.desc"
            params["primary_release_date.gte"] = subtract_months(today, 1).isoformat()
            params["primary_release_date.lte"] = today.isoformat()
        else:
            params["sort_by"] = "popularity.desc"
        endpoint = "/discover/movie" if genre_id else f"/movie/{filter_name}"
        return endpoint, params

    def tv_query(
        self, filter_name: str, genre_id: int | None = None, page: int = 1
    ) -> tuple[str, dict[str, Any]]:
        """Return the endpoint and parameters for a TV listing."""

        if filter_name not in TV_FILTERS:
            raise ValueError(f"Unknown TV filter: {filter_name}")
        params = self._page_params(genre_id, page)
        endpoint = "/discover/tv" if genre_id else f"/tv/{filter_name}"
        return endpoint, params

    def latest_query(
        self, content_type: ContentType, genre_id: int | None = None, page: int = 1
    ) -> tuple[str, dict[str, Any]]:
        """Return the endpoint and parameters for the trailing release window."""

        params = self._page_params(genre_id, page)
        today = self._today()
        window_start = today - timedelta(days=LATEST_WINDOW_DAYS)
        if content_type == "movie":
            params["sort_by"] = "release_date.desc"
            params["primary_release_date.lte"] = today.isoformat()
            params["primary_release_date.gte"] = window_start.isoformat()
            endpoint = "/discover/movie" if genre_id else "/movie/now_playing"
        else:
            params["sort_by"] = "first_air_date.desc"
            params["first_air_date.lte"] = today.isoformat()
            params["first_air_date.gte"] = window_start.isoformat()
            endpoint = "/discover/tv" if genre_id else "/tv/on_the_air"
        return endpoint, params

    async def get_movies_by_filter(
        self, filter_name: str = "popular", genre_id: int | None = None, page: int = 1
    ) -> ContentPage:
        endpoint, params = self.movie_query(filter_name, genre_id, page)
        return await self._enriched_page("movie", endpoint, params)

    async def get_tv_shows_by_filter(
        self, filter_name: str = "popular", genre_id: int | None = None, page: int = 1
    ) -> ContentPage:
        endpoint, params = self.tv_query(filter_name, genre_id, page)
        return await self._enriched_page("tv", endpoint, params)

    async def get_popular_movies(
        self, genre_id: int | None = None, page: int = 1
    ) -> ContentPage:
        return await self.get_movies_by_filter("popular", genre_id, page)

    async def get_popular_tv_shows(
        self, genre_id: int | None = None, page: int = 1
    ) -> ContentPage:
        return await self.get_tv_shows_by_filter("popular", genre_id, page)

    async def get_latest_movies(
        self, genre_id: int | None = None, page: int = 1
    ) -> ContentPage:
        endpoint, params = self.latest_query("movie", genre_id, page)
        return await self._enriched_page("movie", endpoint, params)

    async def get_latest_tv_shows(
        self, genre_id: int | None = None, page: int = 1
    ) -> ContentPage:
        endpoint, params = self.latest_query("tv", genre_id, page)
        return await self._enriched_page("tv", endpoint, params)

    async def get_movie_details(self, movie_id: int) -> ContentItem:
        return await self._get_details("movie", movie_id)

    async def get_tv_show_details(self, show_id: int) -> ContentItem:
        return await self._get_details("tv", show_id)

    async def get_person_details(self, person_id: int) -> PersonDetails:
        """Return an actor with every combined credit enriched where possible.

        The whole filmography is fetched; the semaphore bounds parallelism.
        Each credit keeps the character the actor played.
        """

        data = await self._get(
            f"/person/{person_id}", {"append_to_response": "combined_credits"}
        )
        raw_credits = (data.get("combined_credits") or {}).get("cast") or []
        credits = [
            credit
            for credit in raw_credits
            if isinstance(credit, dict)
            and credit.get("media_type") in {"movie", "tv"}
            and "id" in credit
        ]
        credits.sort(key=lambda credit: credit.get("popularity") or 0, reverse=True)
        summaries = [(credit["media_type"], credit) for credit in credits]
        enriched = await self.gather_enriched(summaries, policy="partial", limit=None)
        person_credits = [
            PersonCredit.model_validate(
                {**item.model_dump(), "character": credit.get("character") or None}
            )
            for item, credit in zip(enriched, credits)
        ]
        return PersonDetails(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            biography=data.get("biography") or "",
            birthday=data.get("birthday"),
            place_of_birth=data.get("place_of_birth"),
            profile_url=build_image_url(self._image_base, data.get("profile_path"), "w342"),
            credits=person_credits,
        )

    async def search_multi(self, query: str) -> list[dict[str, Any]]:
        """Run a multi-type search; blank queries never reach TMDB."""

        if not query.strip():
            return []
        data = await self._get("/search/multi", {"query": query})
        return [entry for entry in data.get("results") or [] if isinstance(entry, dict)]

    async def gather_enriched(
        self,
        summaries: Sequence[tuple[ContentType, Mapping[str, Any]]],
        *,
        policy: EnrichmentPolicy | None = None,
        limit: int | None = MAX_PAGE_SIZE,
    ) -> list[ContentItem]:
        """Fetch full details for every summary and join on all of them.

        Listings never enrich more than one TMDB page; pass ``limit=None`` to
        enrich every summary.

        With the ``fail`` policy the first failure propagates and the whole
        batch fails. With ``partial`` a failed item falls back to the summary
        it was built from. Result order always follows ``summaries``.
        """

        resolved_policy = policy or self._settings.enrichment_policy
        bounded = list(summaries) if limit is None else list(summaries)[:limit]
        tasks = [self._fetch_enriched(kind, summary) for kind, summary in bounded]
        if resolved_policy == "fail":
            return list(await asyncio.gather(*tasks))

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        items: list[ContentItem] = []
        for (kind, summary), outcome in zip(bounded, outcomes):
            if isinstance(outcome, ContentItem):
                items.append(outcome)
                continue
            logger.warning(
                "Falling back to summary for %s/%s: %s", kind, summary.get("id"), outcome
            )
            items.append(
                ContentItem.from_tmdb(
                    summary, content_type=kind, image_base_url=self._image_base
                )
            )
        return items

    async def _enriched_page(
        self, content_type: ContentType, endpoint: str, params: dict[str, Any]
    ) -> ContentPage:
        data = await self._get(endpoint, params)
        summaries = [
            (content_type, entry)
            for entry in data.get("results") or []
            if isinstance(entry, dict) and "id" in entry
        ]
        results = await self.gather_enriched(summaries)
        return ContentPage(
            page=int(data.get("page") or params.get("page") or 1),
            total_pages=int(data.get("total_pages") or 0),
            total_results=int(data.get("total_results") or 0),
            results=results,
        )

    async def _get_details(self, content_type: ContentType, content_id: int) -> ContentItem:
        data = await self._get(
            f"/{content_type}/{content_id}", {"append_to_response": DETAIL_APPEND}
        )
        similar = [
            (content_type, entry)
            for entry in (data.get("similar") or {}).get("results") or []
            if isinstance(entry, dict) and "id" in entry
        ]
        item = ContentItem.from_tmdb(
            data, content_type=content_type, image_base_url=self._image_base
        )
        if not similar:
            return item
        enriched = await self.gather_enriched(similar)
        return item.model_copy(update={"similar": enriched})

    async def _fetch_enriched(
        self, content_type: ContentType, summary: Mapping[str, Any]
    ) -> ContentItem:
        async with self._semaphore:
            details = await self._get(
                f"/{content_type}/{summary['id']}", {"append_to_response": LIST_APPEND}
            )
        return ContentItem.from_tmdb(
            details, content_type=content_type, image_base_url=self._image_base
        )

    async def _get(
        self, endpoint: str, params: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        query: dict[str, Any] = {
            "api_key": self._settings.tmdb_api_key,
            "language": self._settings.tmdb_language,
        }
        if params:
            query.update(params)
        try:
            response = await self._client.get(endpoint, params=query)
        except httpx.HTTPError as exc:
            logger.warning("TMDB request to %s failed: %s", endpoint, exc)
            raise TMDBError(str(exc), endpoint=endpoint) from exc
        if response.status_code >= 400:
            logger.warning(
                "TMDB request to %s failed (%s): %s",
                endpoint,
                response.status_code,
                response.text,
            )
            raise TMDBError(
                f"TMDB responded with {response.status_code}",
                endpoint=endpoint,
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TMDBError("TMDB returned invalid JSON", endpoint=endpoint) from exc
        if not isinstance(payload, dict):
            raise TMDBError("TMDB returned an unexpected payload", endpoint=endpoint)
        return payload

    @staticmethod
    def _page_params(genre_id: int | None, page: int) -> dict[str, Any]:
        if page < 1:
            raise ValueError("Page numbers start at 1")
        params: dict[str, Any] = {"page": page}
        if genre_id:
            params["with_genres"] = genre_id
        return params
