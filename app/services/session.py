"""Explicit authentication session shared by the per-user stores."""

from __future__ import annotations

import inspect
from contextlib import suppress
from typing import Awaitable, Callable

from ..models import UserProfile

SessionListener = Callable[[UserProfile | None], Awaitable[None] | None]


class SessionContext:
    """Holds the signed-in user and notifies listeners when it changes."""

    def __init__(self, user: UserProfile | None = None, token: str | None = None):
        self._user = user
        self._token = token if user is not None else None
        self._listeners: list[SessionListener] = []

    @property
    def user(self) -> UserProfile | None:
        return self._user

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def is_admin(self) -> bool:
        return self._user is not None and self._user.is_admin

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    async def set_user(self, user: UserProfile | None, token: str | None = None) -> None:
        self._user = user
        self._token = token if user is not None else None
        for listener in list(self._listeners):
            result = listener(user)
            if inspect.isawaitable(result):
                await result

    async def clear(self) -> None:
        await self.set_user(None)
