"""Per-browser 1-5 ratings persisted in client-side storage."""

from __future__ import annotations

import base64
import json
import logging
from pathlib import Path
from typing import Mapping, Protocol

from pydantic import TypeAdapter, ValidationError

from ..models import RatingRecord
from ..utils import utc_now

logger = logging.getLogger(__name__)

RATINGS_STORAGE_KEY = "ratings"
ALLOWED_RATINGS: frozenset[int] = frozenset(range(1, 6))

_RECORDS = TypeAdapter(list[RatingRecord])


class KeyValueStorage(Protocol):
    """Minimal string key/value storage, modelled on browser local storage."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: Mapping[str, str] | None = None):
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value


class FileStorage:
    """Storage kept as a JSON object in a single file."""

    def __init__(self, path: Path | str):
        self._path = Path(path)

    def _read(self) -> dict[str, str]:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(key): value for key, value in data.items() if isinstance(value, str)}

    def get_item(self, key: str) -> str | None:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(items), encoding="utf-8")


class CookieStorage:
    """Storage backed by request cookies; writes are collected for the response.

    Values are unpadded base64url so JSON survives cookie quoting rules.
    """

    def __init__(self, cookies: Mapping[str, str]):
        self._cookies = dict(cookies)
        self.pending: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        encoded = self._cookies.get(key)
        if not encoded:
            return None
        try:
            padded = encoded + "=" * (-len(encoded) % 4)
            return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        except (ValueError, UnicodeError):
            logger.warning("Ignoring malformed %s cookie", key)
            return None

    def set_item(self, key: str, value: str) -> None:
        encoded = base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")
        self._cookies[key] = encoded
        self.pending[key] = encoded


class RatingsStore:
    """Ratings owned by the local browser profile rather than the account."""

    def __init__(self, storage: KeyValueStorage, *, key: str = RATINGS_STORAGE_KEY):
        self._storage = storage
        self._key = key
        self._records: list[RatingRecord] = self._load()

    @property
    def records(self) -> list[RatingRecord]:
        return list(self._records)

    def rate(self, content_id: int, value: int) -> RatingRecord:
        """Insert or replace the rating for ``content_id``."""

        if value not in ALLOWED_RATINGS:
            raise ValueError("Ratings must be an integer between 1 and 5")
        record = RatingRecord(content_id=content_id, rating=value, timestamp=utc_now())
        for index, existing in enumerate(self._records):
            if existing.content_id == content_id:
                self._records[index] = record
                break
        else:
            self._records.append(record)
        self._save()
        return record

    def get_rating(self, content_id: int) -> int | None:
        for record in self._records:
            if record.content_id == content_id:
                return record.rating
        return None

    def _load(self) -> list[RatingRecord]:
        raw = self._storage.get_item(self._key)
        if not raw:
            return []
        try:
            records = _RECORDS.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Discarding unreadable ratings storage: %s", exc.error_count())
            return []
        # Older writers may have appended duplicates; the latest entry wins.
        latest: dict[int, RatingRecord] = {}
        for record in records:
            latest.pop(record.content_id, None)
            latest[record.content_id] = record
        return list(latest.values())

    def _save(self) -> None:
        payload = _RECORDS.dump_json(self._records, by_alias=True)
        self._storage.set_item(self._key, payload.decode("utf-8"))
