"""Pydantic models describing catalog, account and back-office payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .utils import build_image_url, ensure_utc, parse_year, utc_now

ContentType = Literal["movie", "tv"]
SUPPORTED_CONTENT_TYPES: frozenset[str] = frozenset({"movie", "tv"})

DEFAULT_IMAGE_BASE_URL = "https://image.tmdb.org/t/p"
DEFAULT_QUALITY = "HD"
MAX_CAST_MEMBERS = 10


class CamelModel(BaseModel):
    """Base model serialising to the camelCase keys used by documents and the UI."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Genre(CamelModel):
    """A single entry of a TMDB genre taxonomy."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str


class CastMember(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    character: str | None = None
    profile_url: str | None = None


class ContentItem(CamelModel):
    """Normalized movie or TV show record used throughout the catalog."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    poster_url: str | None = None
    backdrop_url: str | None = None
    release_date: str | None = None
    year: int | None = None
    rating: float = 0.0
    duration: str | None = None
    quality: str = DEFAULT_QUALITY
    description: str = ""
    genres: list[str] = Field(default_factory=list)
    genre_ids: list[int] = Field(default_factory=list)
    type: ContentType = "movie"
    cast: list[CastMember] = Field(default_factory=list)
    trailer_key: str | None = None
    similar: list["ContentItem"] = Field(default_factory=list)

    @classmethod
    def from_tmdb(
        cls,
        payload: Mapping[str, Any],
        *,
        content_type: ContentType | None = None,
        image_base_url: str = DEFAULT_IMAGE_BASE_URL,
    ) -> "ContentItem":
        """Build an item from a TMDB summary or detail payload."""

        return cls.model_validate(
            _tmdb_fields(payload, content_type=content_type, image_base_url=image_base_url)
        )


class SearchResult(ContentItem):
    """Content item returned by a multi-type search."""

    media_type: ContentType = "movie"
    has_poster: bool = False

    @classmethod
    def from_tmdb(
        cls,
        payload: Mapping[str, Any],
        *,
        content_type: ContentType | None = None,
        image_base_url: str = DEFAULT_IMAGE_BASE_URL,
    ) -> "SearchResult":
        fields = _tmdb_fields(
            payload, content_type=content_type, image_base_url=image_base_url
        )
        fields["media_type"] = fields["type"]
        fields["has_poster"] = bool(payload.get("poster_path"))
        return cls.model_validate(fields)

    @staticmethod
    def is_supported(payload: Mapping[str, Any]) -> bool:
        """Return whether a raw search hit is a movie/show with artwork."""

        return (
            payload.get("media_type") in SUPPORTED_CONTENT_TYPES
            and payload.get("poster_path") is not None
        )


class ContentPage(CamelModel):
    """A page of enriched content items."""

    page: int = 1
    total_pages: int = 0
    total_results: int = 0
    results: list[ContentItem] = Field(default_factory=list)


class PersonCredit(ContentItem):
    """A title from an actor's filmography with the role they played."""

    character: str | None = None


class PersonDetails(CamelModel):
    """Actor profile with their combined movie and TV credits."""

    id: int
    name: str
    biography: str = ""
    birthday: str | None = None
    place_of_birth: str | None = None
    profile_url: str | None = None
    credits: list[PersonCredit] = Field(default_factory=list)


class FavoriteRecord(CamelModel):
    """Denormalized copy of a content item saved by one user."""

    user_id: str
    content_id: int
    title: str
    poster_url: str | None = None
    backdrop_url: str | None = None
    release_date: str | None = None
    year: int | None = None
    rating: float = 0.0
    quality: str = DEFAULT_QUALITY
    description: str = ""
    genres: list[str] = Field(default_factory=list)
    type: ContentType = "movie"
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def key(self) -> str:
        return f"{self.user_id}_{self.content_id}"

    @classmethod
    def from_item(cls, user_id: str, item: ContentItem) -> "FavoriteRecord":
        return cls(
            user_id=user_id,
            content_id=item.id,
            title=item.title,
            poster_url=item.poster_url,
            backdrop_url=item.backdrop_url,
            release_date=item.release_date,
            year=item.year,
            rating=item.rating,
            quality=item.quality or DEFAULT_QUALITY,
            description=item.description,
            genres=list(item.genres),
            type=item.type,
        )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_content_item(self) -> ContentItem:
        return ContentItem(
            id=self.content_id,
            title=self.title,
            poster_url=self.poster_url,
            backdrop_url=self.backdrop_url,
            release_date=self.release_date,
            year=self.year,
            rating=self.rating,
            quality=self.quality,
            description=self.description,
            genres=list(self.genres),
            type=self.type,
        )


class RatingRecord(CamelModel):
    """A 1-5 rating stored in the visitor's browser."""

    content_id: int = Field(alias="movieId")
    rating: int = Field(ge=1, le=5)
    timestamp: datetime = Field(default_factory=utc_now)


Gender = Literal["male", "female"]


class UserProfile(CamelModel):
    """Profile document stored in the ``users`` collection."""

    uid: str
    email: str
    first_name: str = ""
    last_name: str = ""
    username: str = ""
    birth_date: str = ""
    address: str | None = None
    postal_code: str | None = None
    city: str | None = None
    phone: str | None = None
    bio: str | None = None
    gender: Gender = "male"
    favorite_genres: list[str] = Field(default_factory=list)
    email_verified: bool = False
    is_admin: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ProfileUpdate(CamelModel):
    """Fields a user may change on their own profile."""

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = Field(default=None, max_length=120)
    last_name: str | None = Field(default=None, max_length=120)
    username: str | None = Field(default=None, max_length=120)
    birth_date: str | None = None
    address: str | None = None
    postal_code: str | None = Field(default=None, max_length=16)
    city: str | None = None
    phone: str | None = Field(default=None, max_length=32)
    bio: str | None = Field(default=None, max_length=2_000)
    gender: Gender | None = None
    favorite_genres: list[str] | None = None


class SignUpRequest(ProfileUpdate):
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=1, max_length=72)


PageLocation = Literal["navbar", "footer", "none"]
PageColumn = Literal["films", "series", "pages", "legal", "none"]


class Page(CamelModel):
    """Static informational page addressed by its slug."""

    id: str
    title: str
    path: str = ""
    content: str = ""
    location: PageLocation = "none"
    column: PageColumn = "none"
    is_visible: bool = True
    last_modified: datetime = Field(default_factory=utc_now)


class Ad(CamelModel):
    """Interstitial advertisement shown during a scheduled window."""

    id: str = ""
    title: str
    content: str = ""
    image_url: str | None = None
    link: str | None = None
    is_active: bool = True
    display_duration: int = Field(default=5, ge=1, le=120)
    start_date: datetime
    end_date: datetime
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("start_date", "end_date", "created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def is_running(self, now: datetime) -> bool:
        return self.is_active and self.start_date <= now <= self.end_date


class ContactCategory(CamelModel):
    id: str = ""
    name: str = Field(min_length=1, max_length=120)
    description: str | None = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class EmailConfig(CamelModel):
    """Routing rule delivering one contact category to a mailbox."""

    id: str = ""
    category: str
    recipient_email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    smtp_host: str = ""
    smtp_port: int = Field(default=587, ge=1, le=65_535)
    smtp_user: str = ""
    smtp_password: str = ""
    use_tls: bool = Field(default=True, alias="useTLS")
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


MessageStatus = Literal["pending", "sent", "error"]


class ContactMessage(CamelModel):
    id: str = ""
    category: str
    name: str = Field(min_length=1, max_length=120)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    subject: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=10_000)
    recipient_email: str | None = None
    status: MessageStatus = "pending"
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


EmailKind = Literal["passwordReset", "emailVerification"]


class OutboundEmail(CamelModel):
    """Account email waiting in the outbox for the mail relay."""

    id: str = ""
    to: str
    kind: EmailKind
    subject: str
    link: str
    uid: str
    status: MessageStatus = "pending"
    created_at: datetime = Field(default_factory=utc_now)


class StreamingService(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    logo: str
    url: str


class PricedOffer(CamelModel):
    model_config = ConfigDict(frozen=True)

    service: StreamingService
    price: float


class StreamingAvailability(CamelModel):
    """Where a title can be watched, grouped by offer type."""

    subscription: list[StreamingService] = Field(default_factory=list)
    rental: list[PricedOffer] = Field(default_factory=list)
    purchase: list[PricedOffer] = Field(default_factory=list)


def _tmdb_fields(
    payload: Mapping[str, Any],
    *,
    content_type: ContentType | None,
    image_base_url: str,
) -> dict[str, Any]:
    kind = content_type or payload.get("media_type") or "movie"
    if kind == "movie":
        title = payload.get("title") or payload.get("name") or ""
        release_date = payload.get("release_date")
    else:
        title = payload.get("name") or payload.get("title") or ""
        release_date = payload.get("first_air_date")

    raw_genres = payload.get("genres")
    if isinstance(raw_genres, list):
        genres = [g for g in raw_genres if isinstance(g, dict)]
        genre_names = [str(g.get("name", "")) for g in genres]
        genre_ids = [int(g["id"]) for g in genres if "id" in g]
    else:
        genre_names = []
        genre_ids = [int(value) for value in payload.get("genre_ids") or []]

    runtime = payload.get("runtime")
    credits = payload.get("credits") or {}
    cast = [
        CastMember(
            id=int(member["id"]),
            name=str(member.get("name") or ""),
            character=member.get("character"),
            profile_url=build_image_url(
                image_base_url, member.get("profile_path"), "w185"
            ),
        )
        for member in (credits.get("cast") or [])[:MAX_CAST_MEMBERS]
        if isinstance(member, dict) and "id" in member
    ]

    return {
        "id": int(payload["id"]),
        "title": str(title),
        "poster_url": build_image_url(image_base_url, payload.get("poster_path"), "w500"),
        "backdrop_url": build_image_url(
            image_base_url, payload.get("backdrop_path"), "original"
        ),
        "release_date": release_date or None,
        "year": parse_year(release_date),
        "rating": round(float(payload.get("vote_average") or 0), 1),
        "duration": f"{runtime}min" if kind == "movie" and runtime else None,
        "description": payload.get("overview") or "",
        "genres": genre_names,
        "genre_ids": genre_ids,
        "type": kind,
        "cast": cast,
        "trailer_key": _trailer_key(payload.get("videos")),
    }


def _trailer_key(videos: object) -> str | None:
    if not isinstance(videos, dict):
        return None
    entries = [video for video in videos.get("results") or [] if isinstance(video, dict)]
    youtube = [video for video in entries if video.get("site") == "YouTube" and video.get("key")]
    for video in youtube:
        if video.get("type") == "Trailer":
            return str(video["key"])
    if youtube:
        return str(youtube[0]["key"])
    return None


class SignInRequest(CamelModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class PasswordResetRequest(CamelModel):
    email: str = Field(min_length=3)


class PasswordResetConfirm(CamelModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=1, max_length=72)


class PasswordChangeRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1, max_length=72)


class TokenPayload(CamelModel):
    token: str = Field(min_length=1)


class RatingRequest(CamelModel):
    rating: int


class AdminCreateUserRequest(SignUpRequest):
    is_admin: bool = False


class UserFlagsUpdate(CamelModel):
    is_active: bool | None = None
    is_admin: bool | None = None
