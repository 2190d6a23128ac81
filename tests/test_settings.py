"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.config import Settings


def test_defaults_target_french_catalog() -> None:
    settings = Settings(_env_file=None)

    assert settings.tmdb_language == "fr-FR"
    assert str(settings.tmdb_api_url).startswith("https://api.themoviedb.org/3")
    assert settings.enrichment_policy == "fail"
    assert settings.search_debounce_seconds == pytest.approx(0.3)


def test_enrichment_policy_accepts_aliases() -> None:
    assert Settings(_env_file=None, ENRICHMENT_POLICY="fail-fast").enrichment_policy == "fail"
    assert Settings(_env_file=None, ENRICHMENT_POLICY="Lenient").enrichment_policy == "partial"


def test_unknown_enrichment_policy_raises() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, ENRICHMENT_POLICY="sometimes")


def test_blank_language_falls_back_to_default() -> None:
    settings = Settings(_env_file=None, TMDB_LANGUAGE="  ")

    assert settings.tmdb_language == "fr-FR"


def test_enrichment_concurrency_is_bounded() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, ENRICHMENT_CONCURRENCY=50)


def test_debounce_is_read_in_milliseconds() -> None:
    settings = Settings(_env_file=None, SEARCH_DEBOUNCE_MS=120)

    assert settings.search_debounce_seconds == pytest.approx(0.12)


def test_admin_emails_are_split_and_normalised() -> None:
    settings = Settings(_env_file=None, ADMIN_EMAILS=" Boss@Example.com,, chief@example.com ")

    assert settings.admin_addresses == frozenset({"boss@example.com", "chief@example.com"})
    assert Settings(_env_file=None).admin_addresses == frozenset()


def test_public_url_drops_trailing_slash() -> None:
    settings = Settings(_env_file=None, APP_URL="https://cineflux.test/")

    assert settings.public_url == "https://cineflux.test"
