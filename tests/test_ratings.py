from __future__ import annotations

import json

import pytest

from app.services.ratings import (
    RATINGS_STORAGE_KEY,
    CookieStorage,
    FileStorage,
    MemoryStorage,
    RatingsStore,
)


def test_rating_twice_overwrites_previous_value() -> None:
    storage = MemoryStorage()
    store = RatingsStore(storage)

    store.rate(550, 3)
    store.rate(550, 5)

    assert store.get_rating(550) == 5
    assert len(store.records) == 1
    persisted = json.loads(storage.get_item(RATINGS_STORAGE_KEY) or "[]")
    assert persisted[0]["movieId"] == 550
    assert persisted[0]["rating"] == 5


def test_unrated_content_has_no_rating() -> None:
    assert RatingsStore(MemoryStorage()).get_rating(1) is None


@pytest.mark.parametrize("value", [0, 6, -1])
def test_out_of_range_values_are_rejected(value: int) -> None:
    storage = MemoryStorage()
    store = RatingsStore(storage)

    with pytest.raises(ValueError):
        store.rate(1, value)
    assert storage.get_item(RATINGS_STORAGE_KEY) is None


def test_unreadable_storage_loads_as_empty() -> None:
    store = RatingsStore(MemoryStorage({RATINGS_STORAGE_KEY: "{not json"}))

    assert store.records == []
    store.rate(2, 4)
    assert store.get_rating(2) == 4


def test_duplicate_entries_keep_the_latest() -> None:
    raw = json.dumps(
        [
            {"movieId": 1, "rating": 2, "timestamp": "2024-01-01T00:00:00Z"},
            {"movieId": 1, "rating": 4, "timestamp": "2024-02-01T00:00:00Z"},
        ]
    )
    store = RatingsStore(MemoryStorage({RATINGS_STORAGE_KEY: raw}))

    assert store.get_rating(1) == 4
    assert len(store.records) == 1


def test_ratings_survive_a_new_store_on_the_same_file(tmp_path) -> None:
    path = tmp_path / "storage.json"
    RatingsStore(FileStorage(path)).rate(42, 3)

    assert RatingsStore(FileStorage(path)).get_rating(42) == 3


def test_cookie_storage_encodes_pending_writes() -> None:
    storage = CookieStorage({})
    RatingsStore(storage).rate(7, 2)

    assert RATINGS_STORAGE_KEY in storage.pending
    reloaded = RatingsStore(CookieStorage(storage.pending))
    assert reloaded.get_rating(7) == 2


def test_malformed_cookie_is_ignored() -> None:
    store = RatingsStore(CookieStorage({RATINGS_STORAGE_KEY: "%%%"}))

    assert store.records == []
