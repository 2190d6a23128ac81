"""Utility helpers for the CineFlux service."""

from __future__ import annotations

import calendar
import re
import unicodedata
from datetime import date, datetime, timezone


def slugify(value: str) -> str:
    """Return a URL-friendly slug."""

    value = unicodedata.normalize("NFKD", value)
    value = value.encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^a-zA-Z0-9]+", "-", value)
    value = value.strip("-")
    value = re.sub(r"-+", "-", value)
    return value.lower() or "page"


def utc_today() -> date:
    """Return today's date in UTC, matching TMDB's date filters."""

    return datetime.now(timezone.utc).date()


def subtract_months(day: date, months: int) -> date:
    """Move ``day`` back by whole calendar months, clamping the day of month."""

    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def parse_year(value: object) -> int | None:
    """Return the year from an ISO ``YYYY-MM-DD`` string."""

    if not isinstance(value, str) or len(value) < 4:
        return None
    try:
        return int(value[:4])
    except ValueError:
        return None


def composed_key(*parts: object) -> str:
    """Join identifiers into a single storage key."""

    return "_".join(str(part) for part in parts)


def utc_now() -> datetime:
    """Return the current timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def build_image_url(base_url: str, path: str | None, size: str = "w500") -> str | None:
    """Resolve a TMDB-relative image path against the CDN base."""

    if not path:
        return None
    if path.startswith("http"):
        return path
    return f"{base_url.rstrip('/')}/{size}{path}"
