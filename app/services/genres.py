"""Merge the movie and TV genre taxonomies into one selector list."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from ..models import Genre
from .tmdb import TMDBClient, TMDBError

logger = logging.getLogger(__name__)


def reconcile_genres(
    movie_genres: Iterable[Genre], tv_genres: Iterable[Genre]
) -> list[Genre]:
    """Deduplicate genres by id, keeping the first-seen entry and its position.

    Movie genres are visited before TV genres, so a TV genre sharing an id with
    a movie genre is dropped even when its name differs.
    """

    merged: dict[int, Genre] = {}
    for genre in [*movie_genres, *tv_genres]:
        merged.setdefault(genre.id, genre)
    return list(merged.values())


class GenreService:
    """Load both taxonomies from TMDB and expose the reconciled list."""

    def __init__(self, tmdb: TMDBClient):
        self._tmdb = tmdb

    async def load_all(self) -> list[Genre]:
        try:
            movie_genres, tv_genres = await asyncio.gather(
                self._tmdb.get_movie_genres(), self._tmdb.get_tv_genres()
            )
        except TMDBError as exc:
            logger.warning("Unable to load genre taxonomies: %s", exc)
            return []
        return reconcile_genres(movie_genres, tv_genres)
