"""Account lifecycle tests for the authentication service."""

from __future__ import annotations

import asyncio
import threading
from datetime import timedelta
from pathlib import Path
from typing import Awaitable, Callable
from urllib.parse import parse_qs, urlsplit

import pytest

from app.config import Settings
from app.database import Database
from app.db_models import TokenRecord
from app.models import ProfileUpdate, SignUpRequest
from app.services import auth as auth_module
from app.services.auth import (
    EMAIL_OUTBOX_COLLECTION,
    USERS_COLLECTION,
    AuthError,
    AuthErrorCode,
    AuthService,
    hash_password,
    verify_password,
)
from app.services.documents import DocumentStore
from app.utils import utc_now


def sign_up_request(email: str = "ana@example.com", password: str = "secret-pw") -> SignUpRequest:
    return SignUpRequest(
        email=email,
        password=password,
        first_name="Ana",
        last_name="Lopes",
        username="ana",
        favorite_genres=["Drame"],
    )


def run_with_service(
    tmp_path: Path,
    scenario: Callable[[AuthService, DocumentStore, Database], Awaitable[None]],
    **overrides: str,
) -> None:
    async def runner() -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}")
        await database.create_all()
        documents = DocumentStore(database.session_factory)
        service = AuthService(
            Settings(_env_file=None, PASSWORD_HASH_ROUNDS=4, **overrides),
            database.session_factory,
            documents,
        )
        try:
            await scenario(service, documents, database)
        finally:
            await database.dispose()

    asyncio.run(runner())


async def expect_auth_error(code: AuthErrorCode, call: Awaitable[object]) -> None:
    with pytest.raises(AuthError) as excinfo:
        await call
    assert excinfo.value.code is code


def test_password_hashes_are_salted() -> None:
    first = hash_password("hunter22", rounds=4)
    second = hash_password("hunter22", rounds=4)

    assert first != second
    assert verify_password("hunter22", first)
    assert not verify_password("hunter23", first)
    assert not verify_password("hunter22", "not-a-hash")


def test_sign_up_creates_profile_document(tmp_path) -> None:
    async def scenario(service: AuthService, documents: DocumentStore, _: Database) -> None:
        result = await service.sign_up(sign_up_request(email="Ana@Example.com"))

        assert result.token
        assert result.user.email == "ana@example.com"
        assert result.user.is_admin is False
        assert result.user.is_active is True
        stored = await documents.get(USERS_COLLECTION, result.user.uid)
        assert stored is not None
        assert stored["firstName"] == "Ana"
        assert stored["favoriteGenres"] == ["Drame"]
        assert "password" not in stored
        resolved = await service.resolve_session(result.token)
        assert resolved is not None
        assert resolved.uid == result.user.uid

    run_with_service(tmp_path, scenario)


def test_sign_up_rejects_duplicates_and_weak_passwords(tmp_path) -> None:
    async def scenario(service: AuthService, *_: object) -> None:
        await service.sign_up(sign_up_request())
        await expect_auth_error(
            AuthErrorCode.EMAIL_IN_USE, service.sign_up(sign_up_request(email="ANA@example.com"))
        )
        await expect_auth_error(
            AuthErrorCode.WEAK_PASSWORD,
            service.sign_up(sign_up_request(email="bob@example.com", password="123")),
        )

    run_with_service(tmp_path, scenario)


def test_sign_in_error_codes(tmp_path) -> None:
    async def scenario(service: AuthService, *_: object) -> None:
        created = await service.sign_up(sign_up_request())

        await expect_auth_error(
            AuthErrorCode.NOT_REGISTERED, service.sign_in("nobody@example.com", "secret-pw")
        )
        await expect_auth_error(
            AuthErrorCode.INVALID_CREDENTIALS, service.sign_in("ana@example.com", "wrong-pw")
        )

        signed_in = await service.sign_in("ana@example.com", "secret-pw")
        assert signed_in.user.uid == created.user.uid
        assert signed_in.token != created.token

    run_with_service(tmp_path, scenario)


def test_suspended_accounts_cannot_sign_in(tmp_path) -> None:
    async def scenario(service: AuthService, *_: object) -> None:
        created = await service.sign_up(sign_up_request())
        profile = await service.set_user_flags(created.user.uid, is_active=False)

        assert profile.is_active is False
        assert await service.resolve_session(created.token) is None
        await expect_auth_error(
            AuthErrorCode.ACCOUNT_SUSPENDED, service.sign_in("ana@example.com", "secret-pw")
        )

        await service.set_user_flags(created.user.uid, is_active=True)
        assert (await service.sign_in("ana@example.com", "secret-pw")).user.is_active

    run_with_service(tmp_path, scenario)


def test_sign_out_revokes_the_session(tmp_path) -> None:
    async def scenario(service: AuthService, *_: object) -> None:
        created = await service.sign_up(sign_up_request())
        await service.sign_out(created.token)

        assert await service.resolve_session(created.token) is None
        assert await service.resolve_session(None) is None

    run_with_service(tmp_path, scenario)


def test_password_reset_flow(tmp_path) -> None:
    async def scenario(service: AuthService, *_: object) -> None:
        created = await service.sign_up(sign_up_request())
        token = await service.request_password_reset("ana@example.com")

        await service.confirm_password_reset(token, "brand-new-pw")

        assert await service.resolve_session(created.token) is None
        await expect_auth_error(
            AuthErrorCode.INVALID_CREDENTIALS, service.sign_in("ana@example.com", "secret-pw")
        )
        assert await service.sign_in("ana@example.com", "brand-new-pw")
        await expect_auth_error(
            AuthErrorCode.INVALID_TOKEN, service.confirm_password_reset(token, "another-pw")
        )
        await expect_auth_error(
            AuthErrorCode.NOT_REGISTERED, service.request_password_reset("ghost@example.com")
        )

    run_with_service(tmp_path, scenario)


def test_expired_reset_token_is_rejected(tmp_path) -> None:
    async def scenario(service: AuthService, _: DocumentStore, database: Database) -> None:
        await service.sign_up(sign_up_request())
        token = await service.request_password_reset("ana@example.com")
        async with database.session() as session:
            record = await session.get(TokenRecord, token)
            assert record is not None
            record.created_at = utc_now() - timedelta(hours=2)
            await session.commit()

        await expect_auth_error(
            AuthErrorCode.INVALID_TOKEN, service.confirm_password_reset(token, "brand-new-pw")
        )

    run_with_service(tmp_path, scenario)


def test_change_password_checks_current_password(tmp_path) -> None:
    async def scenario(service: AuthService, *_: object) -> None:
        created = await service.sign_up(sign_up_request())
        await expect_auth_error(
            AuthErrorCode.INVALID_CREDENTIALS,
            service.change_password(created.user.uid, "wrong-pw", "brand-new-pw"),
        )
        await service.change_password(created.user.uid, "secret-pw", "brand-new-pw")

        assert await service.sign_in("ana@example.com", "brand-new-pw")

    run_with_service(tmp_path, scenario)


def test_email_verification(tmp_path) -> None:
    async def scenario(service: AuthService, *_: object) -> None:
        created = await service.sign_up(sign_up_request())
        token = await service.request_email_verification(created.user.uid)

        profile = await service.confirm_email(token)

        assert profile.email_verified is True
        await expect_auth_error(AuthErrorCode.INVALID_TOKEN, service.confirm_email(token))

    run_with_service(tmp_path, scenario)


def test_profile_updates_and_admin_listing(tmp_path) -> None:
    async def scenario(service: AuthService, *_: object) -> None:
        created = await service.sign_up(sign_up_request())
        admin = await service.create_user(
            sign_up_request(email="admin@example.com"), is_admin=True
        )

        updated = await service.update_profile(
            created.user.uid, ProfileUpdate(city="Lyon", bio="Cinéphile")
        )
        assert updated.city == "Lyon"
        assert updated.first_name == "Ana"

        users = await service.list_users()
        assert {user.email for user in users} == {"ana@example.com", "admin@example.com"}
        assert admin.is_admin is True

        await expect_auth_error(
            AuthErrorCode.NOT_REGISTERED, service.set_user_flags("missing", is_admin=True)
        )

    run_with_service(tmp_path, scenario)


def test_passwords_are_limited_to_72_bytes(tmp_path) -> None:
    async def scenario(service: AuthService, *_: object) -> None:
        await expect_auth_error(
            AuthErrorCode.WEAK_PASSWORD, service.sign_up(sign_up_request(password="é" * 40))
        )
        created = await service.sign_up(sign_up_request(password="a" * 72))
        await expect_auth_error(
            AuthErrorCode.WEAK_PASSWORD,
            service.change_password(created.user.uid, "a" * 72, "ü" * 37),
        )
        token = await service.request_password_reset("ana@example.com")
        await expect_auth_error(
            AuthErrorCode.WEAK_PASSWORD, service.confirm_password_reset(token, "€" * 25)
        )
        assert await service.sign_in("ana@example.com", "a" * 72)

    run_with_service(tmp_path, scenario)


def test_password_hashing_runs_off_the_event_loop(tmp_path, monkeypatch) -> None:
    threads: list[int] = []

    def recording(function):
        def wrapper(*args, **kwargs):
            threads.append(threading.get_ident())
            return function(*args, **kwargs)

        return wrapper

    monkeypatch.setattr(auth_module, "hash_password", recording(hash_password))
    monkeypatch.setattr(auth_module, "verify_password", recording(verify_password))

    async def scenario(service: AuthService, *_: object) -> None:
        loop_thread = threading.get_ident()
        await service.sign_up(sign_up_request())
        await service.sign_in("ana@example.com", "secret-pw")

        assert len(threads) == 2
        assert loop_thread not in threads

    run_with_service(tmp_path, scenario)


def test_account_emails_are_queued_with_their_links(tmp_path) -> None:
    async def scenario(service: AuthService, documents: DocumentStore, _: Database) -> None:
        created = await service.sign_up(sign_up_request())
        token = await service.request_password_reset("ana@example.com")

        queued = await documents.query(EMAIL_OUTBOX_COLLECTION, {"kind": "passwordReset"})
        assert len(queued) == 1
        assert queued[0].data["to"] == "ana@example.com"
        assert queued[0].data["status"] == "pending"

        outbox = await service.list_outbox()
        assert [email.kind for email in outbox] == ["emailVerification", "passwordReset"]
        assert all(email.uid == created.user.uid for email in outbox)
        link = urlsplit(outbox[1].link)
        assert (link.scheme, link.netloc, link.path) == ("https", "cineflux.test", "/auth")
        assert parse_qs(link.query) == {"mode": ["resetPassword"], "token": [token]}

        verify_token = parse_qs(urlsplit(outbox[0].link).query)["token"][0]
        assert (await service.confirm_email(verify_token)).email_verified is True

    run_with_service(tmp_path, scenario, APP_URL="https://cineflux.test/")


def test_configured_admins_are_promoted(tmp_path) -> None:
    async def scenario(service: AuthService, *_: object) -> None:
        boss = await service.sign_up(sign_up_request(email="Boss@Example.com"))
        assert boss.user.is_admin is True

        member = await service.sign_up(sign_up_request())
        assert member.user.is_admin is False

        await service.set_user_flags(boss.user.uid, is_admin=False)
        signed_in = await service.sign_in("boss@example.com", "secret-pw")
        assert signed_in.user.is_admin is True

    run_with_service(tmp_path, scenario, ADMIN_EMAILS=" boss@example.com , chief@example.com")
