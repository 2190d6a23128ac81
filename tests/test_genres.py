from __future__ import annotations

import asyncio

import httpx

from app.config import Settings
from app.models import Genre
from app.services.genres import GenreService, reconcile_genres
from app.services.tmdb import TMDBClient


def test_reconcile_keeps_first_seen_entry_per_id() -> None:
    movie = [Genre(id=28, name="Action"), Genre(id=18, name="Drama")]
    tv = [Genre(id=18, name="Drame"), Genre(id=10765, name="Sci-Fi & Fantasy")]

    merged = reconcile_genres(movie, tv)

    assert [(genre.id, genre.name) for genre in merged] == [
        (28, "Action"),
        (18, "Drama"),
        (10765, "Sci-Fi & Fantasy"),
    ]


def test_reconcile_without_overlap_keeps_everything() -> None:
    merged = reconcile_genres([Genre(id=1, name="A")], [Genre(id=2, name="B")])

    assert [genre.id for genre in merged] == [1, 2]


def test_genre_service_loads_both_taxonomies() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/genre/movie/list"):
            return httpx.Response(200, json={"genres": [{"id": 28, "name": "Action"}]})
        return httpx.Response(
            200,
            json={"genres": [{"id": 28, "name": "Action & Adventure"}, {"id": 16, "name": "Animation"}]},
        )

    async def runner() -> list[Genre]:
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.test/3") as http_client:
            tmdb = TMDBClient(Settings(_env_file=None, TMDB_API_KEY="key"), http_client)
            return await GenreService(tmdb).load_all()

    genres = asyncio.run(runner())

    assert [(genre.id, genre.name) for genre in genres] == [(28, "Action"), (16, "Animation")]


def test_genre_service_returns_empty_list_on_failure() -> None:
    async def runner() -> list[Genre]:
        transport = httpx.MockTransport(lambda request: httpx.Response(503))
        async with httpx.AsyncClient(transport=transport, base_url="https://tmdb.test/3") as http_client:
            tmdb = TMDBClient(Settings(_env_file=None, TMDB_API_KEY="key"), http_client)
            return await GenreService(tmdb).load_all()

    assert asyncio.run(runner()) == []
