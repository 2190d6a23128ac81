"""Debounced multi-type search exposed as an observable result stream."""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping

from ..models import DEFAULT_IMAGE_BASE_URL, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.3

SearchFunction = Callable[[str], Awaitable[list[Mapping[str, Any]]]]


class SearchStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SETTLED = "settled"


@dataclass(slots=True)
class SearchState:
    """Snapshot delivered to listeners after every transition."""

    query: str = ""
    status: SearchStatus = SearchStatus.IDLE
    results: list[SearchResult] = field(default_factory=list)
    error: Exception | None = None

    @property
    def loading(self) -> bool:
        return self.status is SearchStatus.PENDING

    def to_payload(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "status": self.status.value,
            "loading": self.loading,
            "error": str(self.error) if self.error else None,
            "results": [
                result.model_dump(mode="json", by_alias=True) for result in self.results
            ],
        }


StateListener = Callable[[SearchState], Awaitable[None] | None]


def filter_search_results(
    raw_results: Iterable[Mapping[str, Any]],
    *,
    image_base_url: str = DEFAULT_IMAGE_BASE_URL,
) -> list[SearchResult]:
    """Keep movies and shows that have a poster, dropping people and the rest."""

    return [
        SearchResult.from_tmdb(entry, image_base_url=image_base_url)
        for entry in raw_results
        if SearchResult.is_supported(entry)
    ]


class SearchAggregator:
    """Turn keystrokes into at most one search per quiet period.

    Each call to :meth:`set_query` bumps a sequence number. A response is only
    applied if its sequence is still the latest one, so a slow answer for an
    old query can never overwrite the results of a newer query.
    """

    def __init__(
        self,
        search: SearchFunction,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        image_base_url: str = DEFAULT_IMAGE_BASE_URL,
    ):
        self._search = search
        self._debounce = debounce_seconds
        self._image_base_url = image_base_url
        self._state = SearchState()
        self._sequence = 0
        self._timer: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self._listeners: list[StateListener] = []
        self._settled = asyncio.Event()
        self._settled.set()

    @property
    def state(self) -> SearchState:
        return self._state

    @property
    def query(self) -> str:
        return self._state.query

    @property
    def results(self) -> list[SearchResult]:
        return list(self._state.results)

    @property
    def error(self) -> Exception | None:
        return self._state.error

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def set_query(self, query: str) -> None:
        """Record a keystroke; must be called from within the event loop."""

        self._sequence += 1
        sequence = self._sequence
        self._cancel_timer()

        if not query.strip():
            self._publish(SearchState(query=query, status=SearchStatus.IDLE))
            self._settled.set()
            return

        self._settled.clear()
        self._publish(
            SearchState(
                query=query,
                status=SearchStatus.PENDING,
                results=list(self._state.results),
            )
        )
        self._timer = asyncio.create_task(self._debounced(sequence, query))

    async def wait_settled(self) -> SearchState:
        """Wait until the latest query is settled or cleared."""

        await self._settled.wait()
        return self._state

    async def aclose(self) -> None:
        """Stop pending work; in-flight responses are discarded."""

        self._sequence += 1
        self._cancel_timer()
        for task in list(self._inflight):
            task.cancel()
        for task in list(self._inflight):
            with suppress(asyncio.CancelledError):
                await task
        self._listeners.clear()
        self._settled.set()

    async def _debounced(self, sequence: int, query: str) -> None:
        await asyncio.sleep(self._debounce)
        if sequence != self._sequence:
            return
        # Detach the request from the timer so a newer keystroke only cancels
        # the timer while this request keeps running to completion.
        task = asyncio.create_task(self._execute(sequence, query))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _execute(self, sequence: int, query: str) -> None:
        try:
            raw_results = await self._search(query)
            results = filter_search_results(
                raw_results, image_base_url=self._image_base_url
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if sequence != self._sequence:
                logger.debug("Ignoring failure for superseded search %r", query)
                return
            logger.warning("Search for %r failed: %s", query, exc)
            self._settle(SearchState(query=query, status=SearchStatus.SETTLED, error=exc))
            return

        if sequence != self._sequence:
            logger.debug("Discarding stale results for %r", query)
            return
        self._settle(
            SearchState(query=query, status=SearchStatus.SETTLED, results=results)
        )

    def _settle(self, state: SearchState) -> None:
        self._publish(state)
        self._settled.set()

    def _publish(self, state: SearchState) -> None:
        self._state = state
        for listener in list(self._listeners):
            result = listener(state)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._inflight.add(task)
                task.add_done_callback(self._inflight.discard)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
