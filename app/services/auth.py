"""Credential accounts, sessions and profile documents."""

from __future__ import annotations

import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any
from urllib.parse import urlencode

import bcrypt
from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import AccountRecord, TokenRecord
from ..models import EmailKind, OutboundEmail, ProfileUpdate, SignUpRequest, UserProfile
from ..utils import ensure_utc, utc_now
from .documents import DocumentStore

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
EMAIL_OUTBOX_COLLECTION = "emailOutbox"
BCRYPT_ROUNDS = 12
# bcrypt refuses passwords longer than 72 bytes.
MAX_PASSWORD_BYTES = 72

EMAIL_SUBJECTS: dict[EmailKind, str] = {
    "passwordReset": "Réinitialisation de votre mot de passe",
    "emailVerification": "Confirmez votre adresse email",
}
EMAIL_ACTION_MODES: dict[EmailKind, str] = {
    "passwordReset": "resetPassword",
    "emailVerification": "verifyEmail",
}

TOKEN_LIFETIMES: dict[str, timedelta | None] = {
    "session": None,
    "reset": timedelta(hours=1),
    "verify": timedelta(hours=24),
}


class AuthErrorCode(str, Enum):
    NOT_REGISTERED = "NOT_REGISTERED"
    ACCOUNT_SUSPENDED = "ACCOUNT_SUSPENDED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_IN_USE = "EMAIL_IN_USE"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    INVALID_TOKEN = "INVALID_TOKEN"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"


AUTH_ERROR_MESSAGES: dict[AuthErrorCode, str] = {
    AuthErrorCode.NOT_REGISTERED: "No account is registered for these credentials.",
    AuthErrorCode.ACCOUNT_SUSPENDED: "This account has been suspended.",
    AuthErrorCode.INVALID_CREDENTIALS: "Email or password is incorrect.",
    AuthErrorCode.EMAIL_IN_USE: "An account already exists for this email.",
    AuthErrorCode.WEAK_PASSWORD: "The password is too short.",
    AuthErrorCode.INVALID_TOKEN: "The link is invalid or has expired.",
    AuthErrorCode.NOT_AUTHENTICATED: "You must be signed in.",
}


class AuthError(Exception):
    """Authentication failure carrying a code the UI maps to specific copy."""

    def __init__(self, code: AuthErrorCode, message: str | None = None):
        super().__init__(message or AUTH_ERROR_MESSAGES[code])
        self.code = code

    def to_payload(self) -> dict[str, str]:
        return {"error": self.code.value, "description": str(self)}


@dataclass(slots=True)
class AuthResult:
    token: str
    user: UserProfile


def hash_password(password: str, *, rounds: int = BCRYPT_ROUNDS) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def verify_password(password: str, encoded: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), encoded.encode("utf-8"))
    except ValueError:
        return False


class AuthService:
    """Account lifecycle on top of the accounts table and ``users`` documents."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        documents: DocumentStore,
    ):
        self._settings = settings
        self._session_factory = session_factory
        self._documents = documents

    async def sign_up(self, request: SignUpRequest, *, is_admin: bool = False) -> AuthResult:
        """Register credentials, store the profile and open a session."""

        is_admin = is_admin or self._is_configured_admin(request.email)
        profile = await self._create_account(request, is_admin=is_admin)
        await self.request_email_verification(profile.uid)
        token = await self._issue_token(profile.uid, "session")
        logger.info("Registered account %s", profile.uid)
        return AuthResult(token=token, user=profile)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        async with self._session_factory() as session:
            account = await self._account_by_email(session, email)
        if account is None:
            raise AuthError(AuthErrorCode.NOT_REGISTERED)
        if not await self._verify(password, account.password_hash):
            raise AuthError(AuthErrorCode.INVALID_CREDENTIALS)

        profile = await self.get_profile(account.uid)
        if profile is None:
            raise AuthError(AuthErrorCode.NOT_REGISTERED)
        if not profile.is_active:
            logger.info("Rejected sign-in for suspended account %s", account.uid)
            raise AuthError(AuthErrorCode.ACCOUNT_SUSPENDED)
        if not profile.is_admin and self._is_configured_admin(account.email):
            logger.info("Promoting configured administrator %s", account.uid)
            profile = await self._update_profile_fields(account.uid, {"isAdmin": True})

        token = await self._issue_token(account.uid, "session")
        return AuthResult(token=token, user=profile)

    async def sign_out(self, token: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(TokenRecord).where(TokenRecord.token == token))
            await session.commit()

    async def resolve_session(self, token: str | None) -> UserProfile | None:
        """Return the profile behind a session token, or ``None``.

        Sessions of suspended users are revoked on sight.
        """

        if not token:
            return None
        record = await self._load_token(token, "session")
        if record is None:
            return None
        profile = await self.get_profile(record.uid)
        if profile is None or not profile.is_active:
            await self._revoke_tokens(record.uid, "session")
            return None
        return profile

    async def request_password_reset(self, email: str) -> str:
        """Issue a reset token and queue the email carrying its link."""

        async with self._session_factory() as session:
            account = await self._account_by_email(session, email)
        if account is None:
            raise AuthError(AuthErrorCode.NOT_REGISTERED)
        token = await self._issue_token(account.uid, "reset")
        await self._queue_email(account, "passwordReset", token)
        logger.info("Queued password reset email for %s", account.uid)
        return token

    async def confirm_password_reset(self, token: str, new_password: str) -> None:
        self._check_password(new_password)
        record = await self._consume_token(token, "reset")
        await self._store_password(record.uid, new_password)
        await self._revoke_tokens(record.uid, "session")

    async def change_password(
        self, uid: str, current_password: str, new_password: str
    ) -> None:
        self._check_password(new_password)
        async with self._session_factory() as session:
            account = await session.get(AccountRecord, uid)
        if account is None:
            raise AuthError(AuthErrorCode.NOT_AUTHENTICATED)
        if not await self._verify(current_password, account.password_hash):
            raise AuthError(AuthErrorCode.INVALID_CREDENTIALS)
        await self._store_password(uid, new_password)

    async def request_email_verification(self, uid: str) -> str:
        async with self._session_factory() as session:
            account = await session.get(AccountRecord, uid)
        if account is None:
            raise AuthError(AuthErrorCode.NOT_REGISTERED)
        token = await self._issue_token(uid, "verify")
        await self._queue_email(account, "emailVerification", token)
        logger.info("Queued email verification for %s", uid)
        return token

    async def list_outbox(self) -> list[OutboundEmail]:
        emails: list[OutboundEmail] = []
        for document in await self._documents.query(EMAIL_OUTBOX_COLLECTION):
            try:
                emails.append(OutboundEmail.model_validate({**document.data, "id": document.id}))
            except ValidationError:
                logger.warning("Skipping malformed outbox document %s", document.id)
        emails.sort(key=lambda email: email.created_at)
        return emails

    async def confirm_email(self, token: str) -> UserProfile:
        record = await self._consume_token(token, "verify")
        async with self._session_factory() as session:
            account = await session.get(AccountRecord, record.uid)
            if account is not None:
                account.email_verified = True
                await session.commit()
        return await self._update_profile_fields(record.uid, {"emailVerified": True})

    async def get_profile(self, uid: str) -> UserProfile | None:
        data = await self._documents.get(USERS_COLLECTION, uid)
        if data is None:
            return None
        try:
            return UserProfile.model_validate({**data, "uid": uid})
        except ValidationError:
            logger.warning("User document %s is malformed", uid)
            return None

    async def update_profile(self, uid: str, changes: ProfileUpdate) -> UserProfile:
        payload = changes.model_dump(mode="json", by_alias=True, exclude_none=True)
        return await self._update_profile_fields(uid, payload)

    async def list_users(self) -> list[UserProfile]:
        users: list[UserProfile] = []
        for document in await self._documents.query(USERS_COLLECTION):
            try:
                users.append(UserProfile.model_validate({**document.data, "uid": document.id}))
            except ValidationError:
                logger.warning("Skipping malformed user document %s", document.id)
        return users

    async def create_user(self, request: SignUpRequest, *, is_admin: bool = False) -> UserProfile:
        """Create an account on behalf of an administrator; no session is opened."""

        return await self._create_account(request, is_admin=is_admin)

    async def set_user_flags(
        self,
        uid: str,
        *,
        is_active: bool | None = None,
        is_admin: bool | None = None,
    ) -> UserProfile:
        changes: dict[str, Any] = {}
        if is_active is not None:
            changes["isActive"] = is_active
        if is_admin is not None:
            changes["isAdmin"] = is_admin
        profile = await self._update_profile_fields(uid, changes)
        if is_active is False:
            await self._revoke_tokens(uid, "session")
        return profile

    async def _create_account(self, request: SignUpRequest, *, is_admin: bool) -> UserProfile:
        self._check_password(request.password)
        email = self._normalise_email(request.email)
        uid = uuid.uuid4().hex
        password_hash = await self._hash(request.password)
        async with self._session_factory() as session:
            if await self._account_by_email(session, email) is not None:
                raise AuthError(AuthErrorCode.EMAIL_IN_USE)
            session.add(
                AccountRecord(
                    uid=uid,
                    email=email,
                    password_hash=password_hash,
                )
            )
            await session.commit()

        details = request.model_dump(
            exclude={"email", "password", "is_admin"}, exclude_none=True
        )
        profile = UserProfile(uid=uid, email=email, is_admin=is_admin, **details)
        await self._documents.set(
            USERS_COLLECTION, uid, profile.model_dump(mode="json", by_alias=True)
        )
        return profile

    async def _update_profile_fields(self, uid: str, changes: dict[str, Any]) -> UserProfile:
        try:
            await self._documents.update(
                USERS_COLLECTION,
                uid,
                {**changes, "updatedAt": utc_now().isoformat()},
            )
        except KeyError as exc:
            raise AuthError(AuthErrorCode.NOT_REGISTERED) from exc
        profile = await self.get_profile(uid)
        if profile is None:
            raise AuthError(AuthErrorCode.NOT_REGISTERED)
        return profile

    async def _store_password(self, uid: str, password: str) -> None:
        password_hash = await self._hash(password)
        async with self._session_factory() as session:
            account = await session.get(AccountRecord, uid)
            if account is None:
                raise AuthError(AuthErrorCode.NOT_REGISTERED)
            account.password_hash = password_hash
            await session.commit()

    async def _issue_token(self, uid: str, purpose: str) -> str:
        token = secrets.token_urlsafe(32)
        async with self._session_factory() as session:
            session.add(TokenRecord(token=token, uid=uid, purpose=purpose))
            await session.commit()
        return token

    async def _load_token(self, token: str, purpose: str) -> TokenRecord | None:
        async with self._session_factory() as session:
            record = await session.get(TokenRecord, token)
        if record is None or record.purpose != purpose:
            return None
        lifetime = TOKEN_LIFETIMES.get(purpose)
        if lifetime is not None and ensure_utc(record.created_at) + lifetime < utc_now():
            return None
        return record

    async def _consume_token(self, token: str, purpose: str) -> TokenRecord:
        record = await self._load_token(token, purpose)
        if record is None:
            raise AuthError(AuthErrorCode.INVALID_TOKEN)
        async with self._session_factory() as session:
            await session.execute(delete(TokenRecord).where(TokenRecord.token == token))
            await session.commit()
        return record

    async def _revoke_tokens(self, uid: str, purpose: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(TokenRecord).where(
                    TokenRecord.uid == uid, TokenRecord.purpose == purpose
                )
            )
            await session.commit()

    async def _hash(self, password: str) -> str:
        return await asyncio.to_thread(
            hash_password, password, rounds=self._settings.password_hash_rounds
        )

    async def _verify(self, password: str, encoded: str) -> bool:
        return await asyncio.to_thread(verify_password, password, encoded)

    async def _queue_email(self, account: AccountRecord, kind: EmailKind, token: str) -> None:
        query = urlencode({"mode": EMAIL_ACTION_MODES[kind], "token": token})
        email = OutboundEmail(
            to=account.email,
            kind=kind,
            subject=EMAIL_SUBJECTS[kind],
            link=f"{self._settings.public_url}/auth?{query}",
            uid=account.uid,
        )
        await self._documents.add(
            EMAIL_OUTBOX_COLLECTION,
            email.model_dump(mode="json", by_alias=True, exclude={"id"}),
        )

    def _check_password(self, password: str) -> None:
        if len(password) < self._settings.password_min_length:
            raise AuthError(AuthErrorCode.WEAK_PASSWORD)
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise AuthError(
                AuthErrorCode.WEAK_PASSWORD,
                f"The password must not exceed {MAX_PASSWORD_BYTES} bytes.",
            )

    def _is_configured_admin(self, email: str) -> bool:
        return self._normalise_email(email) in self._settings.admin_addresses

    async def _account_by_email(
        self, session: AsyncSession, email: str
    ) -> AccountRecord | None:
        result = await session.execute(
            select(AccountRecord).where(AccountRecord.email == self._normalise_email(email))
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _normalise_email(email: str) -> str:
        return email.strip().lower()
