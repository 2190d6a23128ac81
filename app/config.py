"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


IMAGE_SIZES: tuple[str, ...] = (
    "w92",
    "w154",
    "w185",
    "w342",
    "w500",
    "w780",
    "original",
)


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="CineFlux", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="fr-FR", alias="TMDB_LANGUAGE")
    tmdb_image_base_url: HttpUrl = Field(
        default="https://image.tmdb.org/t/p", alias="TMDB_IMAGE_BASE_URL"
    )
    placeholder_image: str = Field(
        default="/placeholder.jpg", alias="PLACEHOLDER_IMAGE"
    )

    enrichment_concurrency: int = Field(
        default=8, alias="ENRICHMENT_CONCURRENCY", ge=1, le=20
    )
    enrichment_policy: Literal["fail", "partial"] = Field(
        default="fail", alias="ENRICHMENT_POLICY"
    )
    search_debounce_ms: int = Field(
        default=300, alias="SEARCH_DEBOUNCE_MS", ge=0, le=5_000
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./cineflux.db", alias="DATABASE_URL"
    )

    ratings_cookie_max_age: int = Field(
        default=31_536_000, alias="RATINGS_COOKIE_MAX_AGE", ge=60
    )
    password_min_length: int = Field(
        default=6, alias="PASSWORD_MIN_LENGTH", ge=6, le=72
    )
    password_hash_rounds: int = Field(
        default=12, alias="PASSWORD_HASH_ROUNDS", ge=4, le=16
    )

    public_url: str = Field(default="http://localhost:3000", alias="APP_URL")
    admin_emails: str = Field(default="", alias="ADMIN_EMAILS")

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("enrichment_policy", mode="before")
    @classmethod
    def _normalise_policy(cls, value: object) -> object:
        """Accept a few spellings of the enrichment failure policy."""

        if not isinstance(value, str):
            return value
        cleaned = value.strip().lower().replace("_", "-")
        if cleaned in {"fail-fast", "fail", "strict"}:
            return "fail"
        if cleaned in {"partial", "partial-results", "lenient"}:
            return "partial"
        return cleaned

    @field_validator("public_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("tmdb_language", mode="before")
    @classmethod
    def _blank_language(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return "fr-FR"
        return value

    @property
    def search_debounce_seconds(self) -> float:
        """Return the search debounce interval in seconds."""

        return self.search_debounce_ms / 1000

    @property
    def admin_addresses(self) -> frozenset[str]:
        """Return the normalised addresses promoted to administrator on sign-in."""

        return frozenset(
            address.strip().lower()
            for address in self.admin_emails.split(",")
            if address.strip()
        )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
